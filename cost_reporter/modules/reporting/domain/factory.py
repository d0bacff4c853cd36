import asyncio
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import aioboto3
import structlog

from cost_reporter.modules.notifications.domain.webhook import (
    HttpPoster,
    WebhookDeliverer,
)
from cost_reporter.modules.reporting.domain.service import CostReportService
from cost_reporter.shared.adapters.aws_utils import get_boto_session
from cost_reporter.shared.adapters.cost_explorer import CostExplorerSource
from cost_reporter.shared.adapters.s3_store import S3ReportStore
from cost_reporter.shared.core.config import Settings
from cost_reporter.shared.core.http import get_http_client

logger = structlog.get_logger()


def build_service(
    settings: Settings,
    *,
    session: Optional[aioboto3.Session] = None,
    http_client: Optional[HttpPoster] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> CostReportService:
    """Wire the report service from one Settings value."""
    session = session or get_boto_session()

    source = CostExplorerSource(
        session,
        region=settings.COST_EXPLORER_REGION,
        metric=settings.COST_METRIC,
        default_unit=settings.REPORT_CURRENCY,
        max_pages=settings.COST_EXPLORER_MAX_PAGES,
    )

    store = None
    if settings.REPORT_BUCKET_NAME:
        store = S3ReportStore(
            settings.REPORT_BUCKET_NAME, session, region=settings.AWS_REGION
        )

    deliverer = None
    if settings.WEBHOOK_ENDPOINT:
        # Rejection happens per delivery and is recorded on the run outcome.
        if urlparse(settings.WEBHOOK_ENDPOINT).scheme.lower() != "https":
            logger.warning(
                "webhook_endpoint_not_https",
                environment=settings.ENVIRONMENT,
                webhook_endpoint=settings.WEBHOOK_ENDPOINT,
            )
        deliverer = WebhookDeliverer(
            http_client or get_http_client(settings.WEBHOOK_TIMEOUT_SECONDS),
            max_attempts=settings.WEBHOOK_MAX_ATTEMPTS,
            backoff_base_seconds=settings.WEBHOOK_BACKOFF_BASE_SECONDS,
            sleep=sleep,
            resolve_hostnames=settings.WEBHOOK_RESOLVE_HOSTNAMES,
        )

    logger.debug(
        "cost_report_service_built",
        store_enabled=store is not None,
        webhook_enabled=deliverer is not None,
    )
    return CostReportService(
        source,
        store=store,
        deliverer=deliverer,
        webhook_endpoint=settings.WEBHOOK_ENDPOINT,
        default_currency=settings.REPORT_CURRENCY,
    )
