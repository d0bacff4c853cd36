from typing import Optional, Dict, Any


class CostReporterError(Exception):
    """Base exception for all cost reporter errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class InvalidPeriodError(CostReporterError):
    """Raised when a report period outside day/week/month is requested."""
    def __init__(self, period: Any):
        super().__init__(
            f"Period must be one of: day, week, month (got {period!r})",
            code="invalid_period",
            status_code=400,
            details={"period": str(period)},
        )


class SourceFetchError(CostReporterError):
    """Raised when the billing record source cannot return data."""
    def __init__(self, message: str, code: str = "source_fetch_failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=502, details=details)


class ReportStorageError(CostReporterError):
    """Raised when a finished report cannot be written to the report store."""
    def __init__(self, message: str, code: str = "storage_failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=502, details=details)


class WebhookRejectedError(CostReporterError):
    """Raised when a webhook URL fails scheme or SSRF validation."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="webhook_rejected", status_code=400, details=details)


class DeliveryFailedError(CostReporterError):
    """Raised when every webhook delivery attempt has failed."""
    def __init__(self, last_error: str, attempts: int, host: Optional[str] = None):
        super().__init__(
            f"Failed to deliver webhook after {attempts} attempts: {last_error}",
            code="delivery_failed",
            status_code=502,
            details={"attempts": attempts, "host": host},
        )
        self.last_error = last_error
        self.attempts = attempts


class ConfigurationError(CostReporterError):
    """Raised when application configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=500, details=details)
