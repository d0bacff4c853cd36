import asyncio
import json
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cost_reporter.handler import InvalidEventError, handler, parse_event
from cost_reporter.modules.notifications.domain.webhook import DeliveryState
from cost_reporter.modules.reporting.domain.service import ReportRunOutcome
from cost_reporter.schemas.costs import RecordType, ReportPeriod
from cost_reporter.shared.core.exceptions import ReportStorageError, SourceFetchError


SCHEDULED_EVENT = {
    "source": "aws.events",
    "detail-type": "Scheduled Event",
    "detail": {"period": "month"},
}


def _api_event(body):
    return {"httpMethod": "POST", "body": body, "requestContext": {"requestId": "req-1"}}


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("cost_reporter.handler.setup_logging"):
        yield


@pytest.fixture
def run_report_mock(sample_report):
    outcome = ReportRunOutcome(
        report=sample_report,
        storage_location="s3://cost-reports/2026/09/01/monthly-2026-09-01-to-2026-10-01.json",
        webhook_state=DeliveryState.SUCCEEDED,
    )
    with patch("cost_reporter.handler.run_report", AsyncMock(return_value=outcome)) as mock:
        yield mock


def test_parse_scheduled_event():
    assert parse_event(SCHEDULED_EVENT) == (ReportPeriod.MONTH, True)


def test_parse_api_event():
    assert parse_event(_api_event('{"period": "week", "extra": 1}')) == (
        ReportPeriod.WEEK,
        False,
    )


@pytest.mark.parametrize("event", [{}, {"body": None}, {"source": "aws.s3"}, []])
def test_parse_unknown_event_shape(event):
    with pytest.raises(InvalidEventError, match="Unknown event type"):
        parse_event(event)


def test_parse_bad_json():
    with pytest.raises(InvalidEventError, match="Invalid JSON"):
        parse_event(_api_event("{not json"))


def test_scheduled_run_returns_report(run_report_mock, sample_report):
    response = handler(SCHEDULED_EVENT, SimpleNamespace(aws_request_id="lambda-1"))

    assert response["statusCode"] == 200
    assert response["headers"] == {"Content-Type": "application/json"}
    body = json.loads(response["body"])
    assert body["success"] is True
    assert body["report"] == sample_report.to_wire()
    assert body["storageLocation"].startswith("s3://cost-reports/")
    assert body["webhookSent"] is True
    assert body["webhookState"] == "succeeded"
    _, period, is_scheduled = run_report_mock.await_args.args
    assert period is ReportPeriod.MONTH
    assert is_scheduled is True


def test_api_run_is_not_scheduled(run_report_mock):
    response = handler(_api_event('{"period": "day"}'))

    assert response["statusCode"] == 200
    _, period, is_scheduled = run_report_mock.await_args.args
    assert (period, is_scheduled) == (ReportPeriod.DAY, False)


def test_invalid_period_is_a_validation_error(run_report_mock):
    response = handler(_api_event('{"period": "quarter"}'))

    assert response["statusCode"] == 400
    body = json.loads(response["body"])
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert body["details"][0]["field"] == "period"
    run_report_mock.assert_not_called()


def test_scheduled_event_with_bad_period(run_report_mock):
    event = {"source": "aws.events", "detail": {"period": "year"}}
    response = handler(event)

    assert response["statusCode"] == 400
    assert json.loads(response["body"])["details"][0]["field"] == "detail.period"


def test_bad_json_is_a_client_error(run_report_mock):
    response = handler(_api_event("{oops"))

    assert response["statusCode"] == 400
    assert json.loads(response["body"])["error"] == "Invalid JSON in request body"


@pytest.mark.parametrize(
    "error",
    [
        SourceFetchError("AWS Cost Explorer failure: AccessDenied"),
        ReportStorageError("S3 put_object failure"),
        RuntimeError("unexpected"),
    ],
)
def test_server_side_failures_are_opaque(error):
    with patch("cost_reporter.handler.run_report", AsyncMock(side_effect=error)):
        response = handler(SCHEDULED_EVENT)

    assert response["statusCode"] == 500
    assert json.loads(response["body"]) == {
        "success": False,
        "error": "Internal server error",
    }


def test_run_report_closes_http_client(sample_report):
    from cost_reporter.handler import run_report
    from cost_reporter.shared.core.config import get_settings

    service = AsyncMock()
    service.run.return_value = ReportRunOutcome(report=sample_report)
    with patch("cost_reporter.handler.build_service", return_value=service), patch(
        "cost_reporter.handler.close_http_client", AsyncMock()
    ) as close:
        outcome = asyncio.run(run_report(get_settings(), ReportPeriod.DAY, False))

    assert outcome.report is sample_report
    close.assert_awaited_once()
    assert outcome.report.date_range.start == date(2026, 9, 1)


def test_invalid_configuration_is_a_server_error(monkeypatch, run_report_mock):
    monkeypatch.setenv("WEBHOOK_BACKOFF_BASE_SECONDS", "-1")

    response = handler(SCHEDULED_EVENT)

    assert response["statusCode"] == 500
    assert json.loads(response["body"])["error"] == "Internal server error"
    run_report_mock.assert_not_called()


def test_insecure_webhook_in_production_still_returns_report(
    monkeypatch, billing_source_factory, record_factory
):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("TESTING", "false")
    monkeypatch.setenv("WEBHOOK_ENDPOINT", "http://example.com/hook")
    source = billing_source_factory(
        {RecordType.USAGE: [record_factory("EC2", "us-east-1", "4.20")]}
    )

    with patch(
        "cost_reporter.modules.reporting.domain.factory.CostExplorerSource",
        MagicMock(return_value=source),
    ), patch(
        "cost_reporter.modules.reporting.domain.factory.get_boto_session",
        MagicMock(),
    ):
        response = handler(_api_event('{"period": "day"}'))

    assert response["statusCode"] == 200
    body = json.loads(response["body"])
    assert body["success"] is True
    assert body["webhookSent"] is False
    assert body["webhookState"] == "rejected"
    assert body["report"]["totalUsageCost"]["amount"] == "4.20"
    assert len(source.calls) == 2
