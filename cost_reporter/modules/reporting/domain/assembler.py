from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence, Union

import structlog

from cost_reporter.schemas.costs import (
    DEFAULT_CURRENCY,
    BreakdownItem,
    CostReport,
    DateRange,
    Money,
    RecordType,
    ReportPeriod,
    round_money,
)
from cost_reporter.modules.reporting.domain.periods import coerce_period

logger = structlog.get_logger()


def _tagged(
    items: Sequence[BreakdownItem], record_type: RecordType
) -> tuple[BreakdownItem, ...]:
    return tuple(
        item
        if item.record_type is record_type
        else item.model_copy(update={"record_type": record_type})
        for item in items
    )


def _unit_for(
    usage: Sequence[BreakdownItem], credits: Sequence[BreakdownItem], default: str
) -> str:
    return next((item.cost.unit for item in (*usage, *credits)), default)


def assemble_report(
    period: Union[ReportPeriod, str],
    date_range: DateRange,
    usage_items: Sequence[BreakdownItem],
    credit_items: Sequence[BreakdownItem],
    *,
    generated_at: Optional[datetime] = None,
    default_currency: str = DEFAULT_CURRENCY,
) -> CostReport:
    """
    Combine the usage and credit breakdowns into one CostReport.

    Totals are rounded to cents only here. Credits are summed as magnitudes
    whatever sign the source used, so the net may go negative.
    """
    usage = _tagged(usage_items, RecordType.USAGE)
    credits = _tagged(credit_items, RecordType.CREDIT)
    unit = _unit_for(usage, credits, default_currency)

    usage_total = round_money(sum((i.cost.value for i in usage), Decimal("0")))
    credits_total = round_money(
        sum((abs(i.cost.value) for i in credits), Decimal("0"))
    )
    net_total = round_money(usage_total - credits_total)

    report = CostReport(
        period=coerce_period(period),
        date_range=date_range,
        total_usage_cost=Money.rounded(usage_total, unit=unit),
        total_credits_applied=Money.rounded(credits_total, unit=unit),
        total_cost=Money.rounded(net_total, unit=unit),
        usage_breakdown=usage,
        credits_breakdown=credits,
        combined_breakdown=usage + credits,
        generated_at=generated_at or datetime.now(timezone.utc),
    )

    logger.info(
        "cost_report_assembled",
        period=report.period.value,
        start=str(date_range.start),
        end=str(date_range.end),
        usage_items=len(usage),
        credit_items=len(credits),
        total_cost=report.total_cost.amount,
    )
    return report
