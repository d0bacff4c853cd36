"""
Reporting Domain Service
Orchestrates window resolution, concurrent fetch, aggregation, assembly and
the downstream sinks (report store, webhook).
"""

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

import structlog

from cost_reporter.modules.notifications.domain.webhook import (
    DeliveryState,
    WebhookDeliverer,
)
from cost_reporter.modules.reporting.domain.aggregator import CostAggregator
from cost_reporter.modules.reporting.domain.assembler import assemble_report
from cost_reporter.modules.reporting.domain.periods import (
    coerce_period,
    resolve_date_range,
)
from cost_reporter.schemas.costs import (
    DEFAULT_CURRENCY,
    CostReport,
    RecordType,
    ReportPeriod,
)
from cost_reporter.shared.adapters.base import BillingRecordSource, ReportStore
from cost_reporter.shared.core.exceptions import (
    DeliveryFailedError,
    SourceFetchError,
    WebhookRejectedError,
)

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ReportRunOutcome:
    report: CostReport
    storage_location: Optional[str] = None
    webhook_state: DeliveryState = DeliveryState.SKIPPED
    webhook_error: Optional[str] = None

    @property
    def webhook_sent(self) -> bool:
        return self.webhook_state is DeliveryState.SUCCEEDED


class CostReportService:
    def __init__(
        self,
        source: BillingRecordSource,
        *,
        store: Optional[ReportStore] = None,
        deliverer: Optional[WebhookDeliverer] = None,
        webhook_endpoint: Optional[str] = None,
        default_currency: str = DEFAULT_CURRENCY,
    ):
        self.source = source
        self.store = store
        self.deliverer = deliverer
        self.webhook_endpoint = webhook_endpoint
        self.default_currency = default_currency

    async def generate_report(
        self,
        period: Union[ReportPeriod, str],
        is_scheduled: bool,
        today: Optional[date] = None,
    ) -> CostReport:
        """
        Fetch usage and credits concurrently and build the report.

        If either fetch fails the whole run fails; no report is built from
        half the data.
        """
        resolved = coerce_period(period)
        date_range = resolve_date_range(resolved, is_scheduled, today=today)
        logger.info(
            "cost_report_generation_started",
            period=resolved.value,
            trigger="scheduled" if is_scheduled else "on_demand",
            start=str(date_range.start),
            end=str(date_range.end),
        )

        usage_task = asyncio.ensure_future(
            self.source.fetch_daily_records(date_range, RecordType.USAGE)
        )
        credit_task = asyncio.ensure_future(
            self.source.fetch_daily_records(date_range, RecordType.CREDIT)
        )
        try:
            usage_records, credit_records = await asyncio.gather(
                usage_task, credit_task
            )
        except Exception as exc:
            for task in (usage_task, credit_task):
                task.cancel()
            logger.error(
                "cost_report_fetch_failed",
                period=resolved.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if isinstance(exc, SourceFetchError):
                raise
            raise SourceFetchError(
                f"Billing source failure: {exc}",
                details={"error_type": type(exc).__name__},
            ) from exc

        usage_items = CostAggregator.aggregate(usage_records, RecordType.USAGE)
        credit_items = CostAggregator.aggregate(credit_records, RecordType.CREDIT)

        return assemble_report(
            resolved,
            date_range,
            usage_items,
            credit_items,
            default_currency=self.default_currency,
        )

    async def deliver(self, report: CostReport) -> tuple[DeliveryState, Optional[str]]:
        """Best-effort webhook delivery; failures are reported, never raised."""
        if not self.webhook_endpoint or self.deliverer is None:
            logger.info("webhook_delivery_skipped", reason="no_endpoint_configured")
            return DeliveryState.SKIPPED, None

        try:
            await self.deliverer.deliver(self.webhook_endpoint, report)
        except WebhookRejectedError as exc:
            logger.warning(
                "webhook_endpoint_rejected",
                host=exc.details.get("host"),
                error=exc.message,
            )
            return DeliveryState.REJECTED, exc.message
        except DeliveryFailedError as exc:
            return DeliveryState.FAILED, exc.message
        return DeliveryState.SUCCEEDED, None

    async def run(
        self,
        period: Union[ReportPeriod, str],
        is_scheduled: bool,
        today: Optional[date] = None,
    ) -> ReportRunOutcome:
        """
        Generate the report, persist it, then hand it to the webhook.

        Fetch and storage errors propagate. Webhook errors are recorded on
        the outcome and leave the stored report untouched.
        """
        report = await self.generate_report(period, is_scheduled, today=today)

        storage_location: Optional[str] = None
        if self.store is not None:
            storage_location = await self.store.save(report)
            logger.info("cost_report_stored", location=storage_location)
        else:
            logger.info("cost_report_storage_skipped", reason="no_store_configured")

        webhook_state, webhook_error = await self.deliver(report)

        logger.info(
            "cost_report_run_completed",
            period=report.period.value,
            total_cost=report.total_cost.amount,
            stored=storage_location is not None,
            webhook_state=webhook_state.value,
        )
        return ReportRunOutcome(
            report=report,
            storage_location=storage_location,
            webhook_state=webhook_state,
            webhook_error=webhook_error,
        )
