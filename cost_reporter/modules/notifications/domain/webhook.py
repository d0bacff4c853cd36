"""
Webhook delivery for finished cost reports.

The endpoint comes from configuration that an operator (or attacker) can
influence, so the URL is validated before any request is made: HTTPS only,
no loopback, no private or link-local IPv4 literals. Delivery is a bounded
sequence of POST attempts with exponential backoff between them.
"""

from __future__ import annotations

import asyncio
import ipaddress
import json
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol
from urllib.parse import urlparse

import httpx
import structlog
import tenacity

from cost_reporter.schemas.costs import CostReport
from cost_reporter.shared.core.exceptions import (
    DeliveryFailedError,
    WebhookRejectedError,
)

logger = structlog.get_logger()

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_SECONDS = 2.0

_LOCAL_HOSTNAMES = {"localhost"}
_BLOCKED_IPV4_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "127.0.0.0/8",
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "169.254.0.0/16",
    )
)


class HttpPoster(Protocol):
    """The slice of httpx.AsyncClient the deliverer needs."""

    async def post(self, url: str, *, content: bytes, headers: dict[str, str]) -> Any:
        ...


class DeliveryState(str, Enum):
    SKIPPED = "skipped"
    REJECTED = "rejected"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    state: DeliveryState
    attempts: int
    status_code: Optional[int] = None
    host: Optional[str] = None


class WebhookAttemptError(Exception):
    """A single delivery attempt got a non-2xx answer."""

    def __init__(self, status_code: int, body: str = ""):
        message = f"Webhook request failed with status {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)
        self.status_code = status_code


_RETRYABLE = (WebhookAttemptError, httpx.HTTPError, OSError, asyncio.TimeoutError)


def _is_blocked_address(host: str) -> bool:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    if ip.is_loopback:
        return True
    if isinstance(ip, ipaddress.IPv6Address):
        if ip.ipv4_mapped is None:
            return False
        ip = ip.ipv4_mapped
    return any(ip in network for network in _BLOCKED_IPV4_NETWORKS)


def validate_webhook_url(url: str) -> str:
    """
    Reject URLs that could reach internal infrastructure.

    Returns the normalised hostname. Hostnames that are not IP literals are
    not resolved here; see WebhookDeliverer(resolve_hostnames=True).
    """
    try:
        parsed = urlparse(url)
        # Accessing .port validates it.
        parsed.port
    except (ValueError, TypeError) as exc:
        raise WebhookRejectedError("Webhook URL could not be parsed") from exc

    if parsed.scheme.lower() != "https":
        raise WebhookRejectedError("Webhook URL must use HTTPS")
    if not parsed.hostname:
        raise WebhookRejectedError("Webhook URL must include a host")
    if parsed.username or parsed.password:
        raise WebhookRejectedError("Webhook URL must not include credentials")

    host = parsed.hostname.lower().rstrip(".")
    if host in _LOCAL_HOSTNAMES:
        raise WebhookRejectedError(
            "Webhook URL must not target local hostnames", details={"host": host}
        )
    if _is_blocked_address(host):
        raise WebhookRejectedError(
            "Webhook URL must not target loopback, private or link-local addresses",
            details={"host": host},
        )
    return host


async def _resolve_addresses(host: str) -> set[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return {str(info[4][0]) for info in infos}


class WebhookDeliverer:
    """
    POSTs a CostReport to one HTTPS endpoint, retrying failed attempts.

    Attempts are strictly sequential. The wait before attempt n+1 is
    backoff_base ** n seconds (2s then 4s with the defaults).
    """

    def __init__(
        self,
        client: HttpPoster,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        resolve_hostnames: bool = False,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self._sleep = sleep
        self.resolve_hostnames = resolve_hostnames

    async def validate(self, endpoint: str) -> str:
        host = validate_webhook_url(endpoint)
        if not self.resolve_hostnames:
            return host
        try:
            addresses = await _resolve_addresses(host)
        except OSError as exc:
            raise WebhookRejectedError(
                "Webhook host could not be resolved", details={"host": host}
            ) from exc
        if any(_is_blocked_address(addr) for addr in addresses):
            raise WebhookRejectedError(
                "Webhook host resolves to a loopback, private or link-local address",
                details={"host": host},
            )
        return host

    def _before_sleep(self, host: str) -> Callable[[tenacity.RetryCallState], None]:
        def _log(retry_state: tenacity.RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            wait = retry_state.next_action.sleep if retry_state.next_action else None
            logger.warning(
                "webhook_delivery_attempt_failed",
                host=host,
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                retry_in_seconds=wait,
                error=str(exc) if exc else None,
                error_type=type(exc).__name__ if exc else None,
            )

        return _log

    async def _post_once(self, endpoint: str, body: bytes) -> int:
        response = await self.client.post(
            endpoint,
            content=body,
            headers={"Content-Type": "application/json"},
        )
        status_code = int(response.status_code)
        if not 200 <= status_code < 300:
            raise WebhookAttemptError(status_code, str(response.text or "")[:200])
        return status_code

    async def deliver(self, endpoint: str, report: CostReport) -> DeliveryResult:
        """
        Validate the endpoint, then POST the report as JSON.

        Raises WebhookRejectedError before any network call when the URL is
        not allowed, and DeliveryFailedError once every attempt has failed.
        """
        host = await self.validate(endpoint)
        body = json.dumps(report.to_wire(), separators=(",", ":")).encode("utf-8")

        retrying = tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(self.max_attempts),
            wait=tenacity.wait_exponential(
                multiplier=self.backoff_base_seconds,
                exp_base=self.backoff_base_seconds,
            ),
            retry=tenacity.retry_if_exception_type(_RETRYABLE),
            sleep=self._sleep,
            before_sleep=self._before_sleep(host),
            reraise=True,
        )

        attempts = 0
        status_code: Optional[int] = None
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    logger.info(
                        "webhook_delivery_attempt",
                        host=host,
                        attempt=attempts,
                        max_attempts=self.max_attempts,
                    )
                    status_code = await self._post_once(endpoint, body)
        except _RETRYABLE as exc:
            last_error = str(exc) or type(exc).__name__
            logger.error(
                "webhook_delivery_failed",
                host=host,
                attempts=attempts,
                error=last_error,
                error_type=type(exc).__name__,
            )
            raise DeliveryFailedError(last_error, attempts, host=host) from exc

        logger.info(
            "webhook_delivered", host=host, attempts=attempts, status_code=status_code
        )
        return DeliveryResult(
            state=DeliveryState.SUCCEEDED,
            attempts=attempts,
            status_code=status_code,
            host=host,
        )
