from functools import lru_cache
from typing import Optional

from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cost_reporter.shared.core.exceptions import ConfigurationError

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"
ENV_LOCAL = "local"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


def load_settings() -> "Settings":
    """get_settings() for entry points: invalid config raises ConfigurationError."""
    try:
        return get_settings()
    except ValidationError as exc:
        raise ConfigurationError(
            "Invalid configuration",
            details={
                "fields": [
                    ".".join(str(part) for part in err["loc"]) or "settings"
                    for err in exc.errors()
                ]
            },
        ) from exc


class Settings(BaseSettings):
    """
    Main configuration for the cost reporter.
    Uses Pydantic-Settings for environment variable parsing from .env.

    Built once at the entry point and passed down; domain code never reads
    the environment itself.
    """

    APP_NAME: str = "cost-reporter"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False

    # AWS
    AWS_REGION: str = "us-east-1"
    # Cost Explorer is a global API served from us-east-1.
    COST_EXPLORER_REGION: str = "us-east-1"
    COST_METRIC: str = "UnblendedCost"
    COST_EXPLORER_MAX_PAGES: int = 300
    REPORT_CURRENCY: str = "USD"

    # Report storage (optional; unset disables the S3 sink)
    REPORT_BUCKET_NAME: Optional[str] = None

    # Webhook delivery (optional; unset skips delivery)
    WEBHOOK_ENDPOINT: Optional[str] = None
    WEBHOOK_MAX_ATTEMPTS: int = 3
    WEBHOOK_BACKOFF_BASE_SECONDS: float = 2.0
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    # Resolve non-literal hostnames and apply the private-range checks to
    # every returned address. Off by default: see DESIGN.md.
    WEBHOOK_RESOLVE_HOSTNAMES: bool = False

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Centralized validation orchestrator."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )

        self._validate_webhook_config()
        self._validate_cost_explorer_config()
        return self

    def _validate_webhook_config(self) -> None:
        if self.WEBHOOK_MAX_ATTEMPTS < 1:
            raise ValueError("WEBHOOK_MAX_ATTEMPTS must be at least 1.")
        if self.WEBHOOK_BACKOFF_BASE_SECONDS <= 0:
            raise ValueError("WEBHOOK_BACKOFF_BASE_SECONDS must be positive.")
        if self.WEBHOOK_TIMEOUT_SECONDS <= 0:
            raise ValueError("WEBHOOK_TIMEOUT_SECONDS must be positive.")

    def _validate_cost_explorer_config(self) -> None:
        if self.COST_EXPLORER_MAX_PAGES < 1:
            raise ValueError("COST_EXPLORER_MAX_PAGES must be at least 1.")
        if not self.REPORT_CURRENCY.strip():
            raise ValueError("REPORT_CURRENCY must not be empty.")

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @property
    def is_production(self) -> bool:
        """True only when ENVIRONMENT is explicitly set to 'production'."""
        return self.ENVIRONMENT == ENV_PRODUCTION
