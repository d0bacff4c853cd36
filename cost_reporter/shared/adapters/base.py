from typing import List, Protocol

from cost_reporter.schemas.costs import CostReport, DailyCostRecord, DateRange, RecordType


class BillingRecordSource(Protocol):
    """
    Anything that can return daily billing amounts for a window.

    Implementations raise SourceFetchError on any failure; callers never
    receive a partial list.
    """

    async def fetch_daily_records(
        self, date_range: DateRange, record_type: RecordType
    ) -> List[DailyCostRecord]:
        """Daily amounts per (service, region) for one record type."""
        ...


class ReportStore(Protocol):
    """Write-once sink for finished reports."""

    async def save(self, report: CostReport) -> str:
        """Persist the report and return its location."""
        ...
