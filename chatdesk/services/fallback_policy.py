"""
services/fallback_policy.py
---------------------------
Retry-then-degrade policy for calls to the external AI workflow.

Only transport-level failures are handled here: timeouts, refused
connections, DNS errors, other network errors, memory/size blow-ups and
upstream 5xx gateway answers. A payload that arrives but makes no sense is
not a transport failure; it goes through the response normaliser instead.

Attempts: 1 + max_retries, sleeping backoff_seconds * 2**n in between
(1s, 2s, 4s, ... by default). When the last attempt fails the user gets a
message chosen for the failure category and the reply is flagged
is_fallback_mode so the client can send isRetry on the next turn.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from chatdesk.core.config import settings
from chatdesk.core.errors import TransportFailure
from chatdesk.core.logging import get_logger
from chatdesk.services.response_normalizer import NormalizedResponse

logger = get_logger(__name__)


class FailureCategory(str, Enum):
    timeout = "timeout"
    connection_refused = "connection_refused"
    dns = "dns"
    network = "network"
    payload_too_large = "payload_too_large"


FALLBACK_TEMPLATES: dict[FailureCategory, str] = {
    FailureCategory.timeout: (
        "I apologize, but your question is taking longer than expected to process. "
        "Please try rephrasing your question to be more specific or breaking it "
        "down into smaller parts."
    ),
    FailureCategory.connection_refused: (
        "I'm sorry, but the AI service is temporarily unavailable. I've saved your "
        "message; please try again in a few minutes."
    ),
    FailureCategory.dns: (
        "I'm sorry, but I can't reach the AI service right now. Please try again "
        "later or contact support if the problem persists."
    ),
    FailureCategory.network: (
        "I'm sorry, but I'm having trouble connecting to the AI service. Please "
        "try again in a moment."
    ),
    FailureCategory.payload_too_large: (
        "I apologize, but your request is too complex for me to process. Please "
        "try breaking it down into smaller, more specific questions."
    ),
}

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "temporary failure in name resolution",
    "no address associated",
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    backoff_seconds: float = 1.0

    @property
    def max_attempts(self) -> int:
        return max(self.max_retries, 0) + 1

    def delay_for(self, attempt: int) -> float:
        """Sleep before retry number `attempt` (1-based)."""
        return self.backoff_seconds * (2 ** (attempt - 1))


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.CHAT_WORKFLOW_MAX_RETRIES,
        backoff_seconds=settings.CHAT_WORKFLOW_BACKOFF_SECONDS,
    )


@dataclass(frozen=True)
class CallOutcome:
    value: Any
    attempts: int
    fallback: NormalizedResponse | None = None
    category: FailureCategory | None = None

    @property
    def degraded(self) -> bool:
        return self.fallback is not None


def is_transport_failure(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TransportError, TimeoutError, OSError, MemoryError)):
        return True
    if isinstance(exc, TransportFailure):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def categorize_failure(exc: BaseException) -> FailureCategory:
    message = str(exc).lower()
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)) or "timeout" in message:
        return FailureCategory.timeout
    if isinstance(exc, MemoryError) or "memory" in message:
        return FailureCategory.payload_too_large
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 413:
        return FailureCategory.payload_too_large
    if any(marker in message for marker in _DNS_MARKERS):
        return FailureCategory.dns
    if isinstance(exc, ConnectionRefusedError) or "refused" in message:
        return FailureCategory.connection_refused
    return FailureCategory.network


def fallback_for(category: FailureCategory) -> NormalizedResponse:
    return NormalizedResponse(content=FALLBACK_TEMPLATES[category], is_fallback_mode=True)


async def call_with_fallback(
    call: Callable[[], Awaitable[Any]],
    *,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> CallOutcome:
    """
    Run `call` under the retry policy.

    Non-transport exceptions propagate unchanged on the first occurrence.
    """
    policy = policy or default_retry_policy()
    attempt = 1
    while True:
        try:
            value = await call()
            return CallOutcome(value=value, attempts=attempt)
        except Exception as exc:  # noqa: BLE001 - filtered just below
            if not is_transport_failure(exc):
                raise
            category = categorize_failure(exc)
            if attempt >= policy.max_attempts:
                logger.error(
                    "Workflow call exhausted retries",
                    attempts=attempt,
                    category=category.value,
                    error=str(exc),
                )
                return CallOutcome(
                    value=None,
                    attempts=attempt,
                    fallback=fallback_for(category),
                    category=category,
                )
            delay = policy.delay_for(attempt)
            logger.warning(
                "Workflow call failed, retrying",
                attempt=attempt,
                category=category.value,
                delay_seconds=delay,
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1
