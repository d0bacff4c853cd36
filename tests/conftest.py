"""
Global pytest fixtures for the cost reporter test suite.

Provides:
- Test environment isolation (settings cache, env vars)
- Deterministic fakes for the billing source, HTTP poster and sleep
- Report factories
"""
import os

# Set test environment BEFORE any cost_reporter imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ.pop("WEBHOOK_ENDPOINT", None)
os.environ.pop("REPORT_BUCKET_NAME", None)

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import structlog

from cost_reporter.schemas.costs import (
    DailyCostRecord,
    DateRange,
    RecordType,
    ReportPeriod,
)
from cost_reporter.shared.core.config import get_settings


@pytest.fixture(autouse=True)
def reset_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def make_record(
    service: Optional[str],
    region: Optional[str],
    amount: str,
    day: date = date(2026, 1, 1),
    unit: str = "USD",
) -> DailyCostRecord:
    return DailyCostRecord(
        record_date=day,
        service=service,
        region=region,
        amount=Decimal(amount),
        unit=unit,
    )


class FakeBillingSource:
    """Returns canned records per record type and remembers every call."""

    def __init__(
        self,
        records: Optional[Dict[RecordType, List[DailyCostRecord]]] = None,
        errors: Optional[Dict[RecordType, Exception]] = None,
    ):
        self.records = records or {}
        self.errors = errors or {}
        self.calls: List[tuple[DateRange, RecordType]] = []

    async def fetch_daily_records(
        self, date_range: DateRange, record_type: RecordType
    ) -> List[DailyCostRecord]:
        self.calls.append((date_range, record_type))
        if record_type in self.errors:
            raise self.errors[record_type]
        return list(self.records.get(record_type, []))


class FakeHttpClient:
    """Answers POSTs from a list of status codes or exceptions, in order."""

    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.requests: List[Dict[str, Any]] = []

    async def post(self, url: str, *, content: bytes, headers: Dict[str, str]) -> Any:
        self.requests.append({"url": url, "content": content, "headers": headers})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return MagicMock(status_code=outcome, text="" if outcome < 300 else "upstream error")


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def billing_source_factory():
    return FakeBillingSource


@pytest.fixture
def http_client_factory():
    return FakeHttpClient


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def sample_report():
    from cost_reporter.modules.reporting.domain.aggregator import CostAggregator
    from cost_reporter.modules.reporting.domain.assembler import assemble_report

    usage = CostAggregator.aggregate(
        [
            make_record("Amazon EC2", "us-east-1", "10.00"),
            make_record("Amazon S3", "us-east-1", "1.25"),
        ],
        RecordType.USAGE,
    )
    credits = CostAggregator.aggregate(
        [make_record("Amazon EC2", "us-east-1", "-2.00")], RecordType.CREDIT
    )
    return assemble_report(
        ReportPeriod.MONTH,
        DateRange(start=date(2026, 9, 1), end=date(2026, 10, 1)),
        usage,
        credits,
        generated_at=datetime(2026, 10, 1, 6, 0, tzinfo=timezone.utc),
    )
