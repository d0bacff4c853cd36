"""
S3 report store.

Writes each finished report once, as pretty-printed JSON, under a key
derived from its period and date range.
"""

import json
from typing import Optional

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from cost_reporter.schemas.costs import CostReport, ReportPeriod
from cost_reporter.shared.adapters.aws_utils import DEFAULT_BOTO_CONFIG, get_boto_session
from cost_reporter.shared.core.exceptions import ReportStorageError

logger = structlog.get_logger()


def generate_report_key(report: CostReport) -> str:
    """
    YYYY/MM/DD/<name>.json, dated by the report's start date.

    daily-<start>.json, weekly-<start>-to-<end>.json, monthly-<start>-to-<end>.json
    """
    start = report.date_range.start
    end = report.date_range.end
    if report.period is ReportPeriod.DAY:
        filename = f"daily-{start.isoformat()}.json"
    elif report.period is ReportPeriod.WEEK:
        filename = f"weekly-{start.isoformat()}-to-{end.isoformat()}.json"
    else:
        filename = f"monthly-{start.isoformat()}-to-{end.isoformat()}.json"
    return f"{start.year:04d}/{start.month:02d}/{start.day:02d}/{filename}"


def report_metadata(report: CostReport) -> dict[str, str]:
    return {
        "period": report.period.value,
        "startDate": report.date_range.start.isoformat(),
        "endDate": report.date_range.end.isoformat(),
        "totalUsageCost": report.total_usage_cost.amount,
        "totalCreditsApplied": report.total_credits_applied.amount,
        "totalCost": report.total_cost.amount,
    }


class S3ReportStore:
    def __init__(
        self,
        bucket: str,
        session: Optional[aioboto3.Session] = None,
        *,
        region: Optional[str] = None,
    ):
        if not bucket:
            raise ValueError("bucket must not be empty")
        self.bucket = bucket
        self.session = session or get_boto_session()
        self.region = region

    async def save(self, report: CostReport) -> str:
        key = generate_report_key(report)
        body = json.dumps(report.to_wire(), indent=2)
        logger.info("report_store_saving", bucket=self.bucket, key=key)

        try:
            async with self.session.client(
                "s3", region_name=self.region, config=DEFAULT_BOTO_CONFIG
            ) as s3:
                await s3.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body.encode("utf-8"),
                    ContentType="application/json",
                    Metadata=report_metadata(report),
                )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(
                "report_store_save_failed",
                bucket=self.bucket,
                key=key,
                error_code=error_code,
                error=str(e),
            )
            raise ReportStorageError(
                f"S3 put_object failure: {str(e)}",
                details={"bucket": self.bucket, "key": key, "aws_error_code": error_code},
            ) from e
        except BotoCoreError as e:
            logger.error(
                "report_store_save_failed", bucket=self.bucket, key=key, error=str(e)
            )
            raise ReportStorageError(
                f"S3 put_object failure: {str(e)}",
                details={"bucket": self.bucket, "key": key},
            ) from e

        return f"s3://{self.bucket}/{key}"
