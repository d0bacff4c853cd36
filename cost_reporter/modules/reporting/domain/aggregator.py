from decimal import Decimal
from typing import Iterable

import structlog

from cost_reporter.schemas.costs import (
    BreakdownItem,
    DailyCostRecord,
    Money,
    RecordType,
)

logger = structlog.get_logger()

UNKNOWN_DIMENSION = "Unknown"
# Service and region are free text; a plain concatenation could collide.
KEY_SEPARATOR = "\u0000"


def _dimension(value: str | None) -> str:
    if value is None:
        return UNKNOWN_DIMENSION
    value = value.strip()
    return value or UNKNOWN_DIMENSION


class CostAggregator:
    """Merges daily billing samples into one entry per (service, region)."""

    @staticmethod
    def aggregation_key(service: str, region: str) -> str:
        return f"{service}{KEY_SEPARATOR}{region}"

    @staticmethod
    def aggregate(
        records: Iterable[DailyCostRecord],
        record_type: RecordType = RecordType.USAGE,
    ) -> list[BreakdownItem]:
        """
        Sum daily records per (service, region) in Decimal.

        Output follows first-seen key order; callers sort for presentation.
        Each entry keeps the unit of the first record seen for its key.
        """
        sums: dict[str, Decimal] = {}
        meta: dict[str, tuple[str, str, str]] = {}
        record_count = 0

        for record in records:
            record_count += 1
            service = _dimension(record.service)
            region = _dimension(record.region)
            key = CostAggregator.aggregation_key(service, region)
            if key in sums:
                sums[key] += record.amount
            else:
                sums[key] = Decimal(record.amount)
                meta[key] = (service, region, record.unit)

        items = [
            BreakdownItem(
                service=meta[key][0],
                region=meta[key][1],
                record_type=record_type,
                cost=Money.exact(total, unit=meta[key][2]),
            )
            for key, total in sums.items()
        ]

        logger.debug(
            "cost_records_aggregated",
            record_type=record_type.value,
            records_in=record_count,
            items_out=len(items),
        )
        return items

    @staticmethod
    def sort_breakdown(items: Iterable[BreakdownItem]) -> list[BreakdownItem]:
        """Largest cost first, then service and region for stable output."""
        return sorted(
            items,
            key=lambda item: (-item.cost.value, item.service, item.region),
        )
