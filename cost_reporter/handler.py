"""
Invocation entry point.

Accepts either a scheduled EventBridge event or an API Gateway request,
runs one report, and answers with an API Gateway style response dict.
"""

import asyncio
import json
from typing import Any, Dict, List, Literal, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from cost_reporter.modules.reporting.domain.factory import build_service
from cost_reporter.modules.reporting.domain.service import ReportRunOutcome
from cost_reporter.schemas.costs import ReportPeriod
from cost_reporter.shared.core.config import Settings, load_settings
from cost_reporter.shared.core.exceptions import ConfigurationError, CostReporterError
from cost_reporter.shared.core.http import close_http_client
from cost_reporter.shared.core.logging import setup_logging

logger = structlog.get_logger()

JSON_HEADERS = {"Content-Type": "application/json"}


class InvalidEventError(CostReporterError):
    """Raised when an invocation event has an unrecognised shape or bad JSON."""
    def __init__(self, message: str):
        super().__init__(message, code="invalid_event", status_code=400)


class ScheduledEventDetail(BaseModel):
    period: ReportPeriod


class ScheduledEvent(BaseModel):
    source: Literal["aws.events"]
    detail: ScheduledEventDetail


class ReportRequestBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    period: ReportPeriod


def parse_event(event: Dict[str, Any]) -> Tuple[ReportPeriod, bool]:
    """Returns (period, is_scheduled)."""
    if not isinstance(event, dict):
        raise InvalidEventError("Unknown event type")

    if event.get("source") == "aws.events":
        scheduled = ScheduledEvent.model_validate(event)
        return scheduled.detail.period, True

    body = event.get("body")
    if isinstance(body, str):
        try:
            payload = json.loads(body or "{}")
        except json.JSONDecodeError as exc:
            raise InvalidEventError("Invalid JSON in request body") from exc
        request = ReportRequestBody.model_validate(payload)
        return request.period, False

    raise InvalidEventError("Unknown event type")


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "body": json.dumps(body),
        "headers": dict(JSON_HEADERS),
    }


def _validation_details(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


async def run_report(
    settings: Settings, period: ReportPeriod, is_scheduled: bool
) -> ReportRunOutcome:
    service = build_service(settings)
    try:
        return await service.run(period, is_scheduled)
    finally:
        # The shared client is bound to this event loop.
        await close_http_client()


def handler(event: Dict[str, Any], context: Optional[Any] = None) -> Dict[str, Any]:
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger.error("cost_report_config_invalid", fields=exc.details.get("fields"))
        return _response(500, {"success": False, "error": "Internal server error"})
    setup_logging(settings)
    structlog.contextvars.clear_contextvars()
    request_id = getattr(context, "aws_request_id", None) or (
        (event.get("requestContext") or {}).get("requestId")
        if isinstance(event, dict)
        else None
    )
    if request_id:
        structlog.contextvars.bind_contextvars(request_id=request_id)

    try:
        period, is_scheduled = parse_event(event)
        logger.info(
            "cost_report_invocation",
            period=period.value,
            source="scheduled" if is_scheduled else "manual_api",
        )
        outcome = asyncio.run(run_report(settings, period, is_scheduled))
    except ValidationError as exc:
        logger.warning("cost_report_validation_failed", errors=exc.error_count())
        return _response(
            400,
            {
                "success": False,
                "error": "Validation failed",
                "details": _validation_details(exc),
            },
        )
    except CostReporterError as exc:
        if exc.status_code < 500:
            logger.warning("cost_report_request_rejected", code=exc.code, error=exc.message)
            return _response(400, {"success": False, "error": exc.message})
        logger.error("cost_report_failed", code=exc.code, error=exc.message)
        return _response(500, {"success": False, "error": "Internal server error"})
    except Exception as exc:
        logger.exception("cost_report_unexpected_error", error=str(exc))
        return _response(500, {"success": False, "error": "Internal server error"})

    return _response(
        200,
        {
            "success": True,
            "report": outcome.report.to_wire(),
            "storageLocation": outcome.storage_location,
            "webhookSent": outcome.webhook_sent,
            "webhookState": outcome.webhook_state.value,
        },
    )
