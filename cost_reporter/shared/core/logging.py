import logging
import re
import sys
from typing import Any, Optional, cast
from urllib.parse import urlparse

import structlog

from cost_reporter.shared.core.config import Settings, get_settings

_SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "authorization",
    "api_key",
    "apikey",
    "access_token",
    "aws_secret_access_key",
    "aws_session_token",
}
_SENSITIVE_SUFFIXES = ("_token", "_secret", "_password", "_key")
_URL_FIELDS = {"url", "endpoint", "webhook_url", "webhook_endpoint"}
_URL_IN_TEXT = re.compile(r"https?://[^\s\"']+")


def _host_only(url: str) -> str:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return "[URL_REDACTED]"
    return host or "[URL_REDACTED]"


def sensitive_data_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Redact credentials and reduce URLs to their host before rendering.

    Webhook URLs may carry secrets in the path or query string, so only the
    destination host is ever allowed into a log line.
    """

    def is_sensitive_key(key: Any) -> bool:
        key_norm = str(key).lower().strip().replace("-", "_")
        if key_norm in _SENSITIVE_FIELDS:
            return True
        return key_norm.endswith(_SENSITIVE_SUFFIXES)

    def redact_text(text: str) -> str:
        return _URL_IN_TEXT.sub(lambda m: _host_only(m.group(0)), text)

    def redact_recursive(key: Any, data: Any) -> Any:
        if is_sensitive_key(key):
            return "[REDACTED]"
        if isinstance(data, dict):
            return {k: redact_recursive(k, v) for k, v in data.items()}
        if isinstance(data, list):
            return [redact_recursive(None, item) for item in data]
        if isinstance(data, str):
            if str(key).lower() in _URL_FIELDS:
                return _host_only(data)
            return redact_text(data)
        return data

    return {k: redact_recursive(k, v) for k, v in event_dict.items()}


def _renderer_chain(debug: bool) -> list[Any]:
    if debug:
        return [structlog.dev.ConsoleRenderer()]
    return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog for one process.

    One level governs both structlog events and the stdlib loggers used by
    botocore and httpx: DEBUG when settings.DEBUG is on, INFO otherwise.
    """
    settings = settings or get_settings()
    min_level = logging.DEBUG if settings.DEBUG else logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        sensitive_data_redactor,
        *_renderer_chain(settings.DEBUG),
    ]

    structlog.configure(
        processors=cast(Any, processors),
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=min_level)
