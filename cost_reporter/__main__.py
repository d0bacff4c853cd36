"""
Run one cost report locally.

    python -m cost_reporter month
    python -m cost_reporter month --scheduled
"""

import argparse
import asyncio
import json
import sys
from typing import Optional, Sequence

from cost_reporter.handler import run_report
from cost_reporter.modules.reporting.domain.aggregator import CostAggregator
from cost_reporter.schemas.costs import ReportPeriod
from cost_reporter.shared.core.config import load_settings
from cost_reporter.shared.core.exceptions import CostReporterError
from cost_reporter.shared.core.logging import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cost_reporter", description="Generate a cost report and print it as JSON."
    )
    parser.add_argument(
        "period",
        choices=[p.value for p in ReportPeriod],
        help="Report period",
    )
    parser.add_argument(
        "--scheduled",
        action="store_true",
        help="Report on the previous full month instead of month-to-date",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=10,
        help="How many of the largest usage items to list (0 for none)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
        setup_logging(settings)
        outcome = asyncio.run(
            run_report(settings, ReportPeriod(args.period), args.scheduled)
        )
    except CostReporterError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1

    print(
        json.dumps(
            {
                "report": outcome.report.to_wire(),
                "storageLocation": outcome.storage_location,
                "webhookState": outcome.webhook_state.value,
                "webhookError": outcome.webhook_error,
                "largestUsageItems": [
                    item.model_dump(mode="json", by_alias=True)
                    for item in CostAggregator.sort_breakdown(
                        outcome.report.usage_breakdown
                    )[: max(args.top, 0)]
                ],
            },
            indent=2,
        )
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
