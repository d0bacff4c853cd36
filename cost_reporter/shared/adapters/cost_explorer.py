"""
AWS Cost Explorer billing source (Native Async)

Fetches daily cost amounts grouped by (SERVICE, REGION) for one RECORD_TYPE
and normalises them into DailyCostRecord values. Leverages aioboto3 for
non-blocking I/O.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import aioboto3
import structlog
import tenacity
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from cost_reporter.schemas.costs import (
    DEFAULT_CURRENCY,
    DailyCostRecord,
    DateRange,
    RecordType,
)
from cost_reporter.shared.adapters.aws_utils import DEFAULT_BOTO_CONFIG, get_boto_session
from cost_reporter.shared.core.exceptions import SourceFetchError

logger = structlog.get_logger()

# Safety limit to prevent infinite pagination loops
MAX_COST_EXPLORER_PAGES = 300

_TRANSIENT_ERRORS = (ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError)


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else None
    logger.debug(
        "cost_explorer_retrying",
        attempt=retry_state.attempt_number,
        wait_seconds=wait,
        error=str(exc) if exc else None,
    )


def parse_results_by_time(
    results_by_time: List[Dict[str, Any]],
    metric: str,
    default_unit: str = DEFAULT_CURRENCY,
) -> List[DailyCostRecord]:
    """Flatten every day's groups; keys are [service, region]."""
    records: List[DailyCostRecord] = []
    for result in results_by_time:
        day = date.fromisoformat(result["TimePeriod"]["Start"])
        for group in result.get("Groups", []):
            keys = group.get("Keys") or []
            metric_value = group.get("Metrics", {}).get(metric, {})
            try:
                amount = Decimal(str(metric_value.get("Amount", "0")))
            except InvalidOperation as exc:
                raise SourceFetchError(
                    f"Cost Explorer returned a non-decimal amount for {metric}",
                    details={"keys": keys, "amount": metric_value.get("Amount")},
                ) from exc
            records.append(
                DailyCostRecord(
                    record_date=day,
                    service=keys[0] if len(keys) > 0 else None,
                    region=keys[1] if len(keys) > 1 else None,
                    amount=amount,
                    unit=metric_value.get("Unit") or default_unit,
                )
            )
    return records


class CostExplorerSource:
    """
    BillingRecordSource backed by AWS Cost Explorer GetCostAndUsage.
    """

    def __init__(
        self,
        session: Optional[aioboto3.Session] = None,
        *,
        region: str = "us-east-1",
        metric: str = "UnblendedCost",
        default_unit: str = DEFAULT_CURRENCY,
        max_pages: int = MAX_COST_EXPLORER_PAGES,
        retry_wait: Optional[tenacity.wait.wait_base] = None,
    ):
        self.session = session or get_boto_session()
        self.region = region
        self.metric = metric
        self.default_unit = default_unit
        self.max_pages = max_pages
        self._retry_wait = retry_wait or tenacity.wait_exponential(
            multiplier=1, min=2, max=10
        )

    def _request_params(
        self, date_range: DateRange, record_type: RecordType
    ) -> Dict[str, Any]:
        return {
            "TimePeriod": {
                "Start": date_range.start.isoformat(),
                "End": date_range.end.isoformat(),
            },
            "Granularity": "DAILY",
            "Metrics": [self.metric],
            "GroupBy": [
                {"Type": "DIMENSION", "Key": "SERVICE"},
                {"Type": "DIMENSION", "Key": "REGION"},
            ],
            "Filter": {
                "Dimensions": {"Key": "RECORD_TYPE", "Values": [record_type.value]}
            },
        }

    async def _fetch_pages(
        self, date_range: DateRange, record_type: RecordType
    ) -> List[DailyCostRecord]:
        records: List[DailyCostRecord] = []
        request_params = self._request_params(date_range, record_type)

        async with self.session.client(
            "ce", region_name=self.region, config=DEFAULT_BOTO_CONFIG
        ) as client:
            pages_fetched = 0
            response: Dict[str, Any] = {}
            while pages_fetched < self.max_pages:
                response = await client.get_cost_and_usage(**request_params)
                records.extend(
                    parse_results_by_time(
                        response.get("ResultsByTime", []),
                        self.metric,
                        self.default_unit,
                    )
                )
                pages_fetched += 1
                if "NextPageToken" in response:
                    request_params["NextPageToken"] = response["NextPageToken"]
                else:
                    break

            if pages_fetched >= self.max_pages and "NextPageToken" in response:
                # A truncated result would silently understate totals.
                raise SourceFetchError(
                    "Cost Explorer page limit reached before results were complete",
                    code="page_limit_reached",
                    details={"pages": pages_fetched, "record_type": record_type.value},
                )
        return records

    async def fetch_daily_records(
        self, date_range: DateRange, record_type: RecordType
    ) -> List[DailyCostRecord]:
        """Fetch one record type for the window, retrying transient network errors."""
        if date_range.start >= date_range.end:
            logger.info(
                "cost_explorer_empty_range_skipped",
                start=str(date_range.start),
                record_type=record_type.value,
            )
            return []

        retrying = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception_type(_TRANSIENT_ERRORS),
            wait=self._retry_wait,
            stop=tenacity.stop_after_attempt(4),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    records = await self._fetch_pages(date_range, record_type)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(
                "cost_explorer_fetch_failed",
                record_type=record_type.value,
                error_code=error_code,
                error=str(e),
            )
            raise SourceFetchError(
                f"AWS Cost Explorer failure: {str(e)}",
                details={"aws_error_code": error_code, "record_type": record_type.value},
            ) from e
        except BotoCoreError as e:
            logger.error(
                "cost_explorer_fetch_failed",
                record_type=record_type.value,
                error=str(e),
            )
            raise SourceFetchError(
                f"AWS Cost Explorer failure: {str(e)}",
                details={"record_type": record_type.value},
            ) from e

        logger.info(
            "cost_explorer_records_fetched",
            record_type=record_type.value,
            start=str(date_range.start),
            end=str(date_range.end),
            records=len(records),
        )
        return records
