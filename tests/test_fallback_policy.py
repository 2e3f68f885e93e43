from __future__ import annotations

import httpx
import pytest

from chatdesk.core.errors import TransportFailure
from chatdesk.services.fallback_policy import (
    FALLBACK_TEMPLATES,
    FailureCategory,
    RetryPolicy,
    call_with_fallback,
    categorize_failure,
    is_transport_failure,
)


class _Sleeps:
    # Records requested delays instead of sleeping.
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _failing(exc: Exception, succeed_after: int | None = None):
    calls = {"count": 0}

    async def call():
        calls["count"] += 1
        if succeed_after is not None and calls["count"] > succeed_after:
            return "ok"
        raise exc

    return call, calls


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "http://workflow.test")
    return httpx.HTTPStatusError(
        "upstream", request=request, response=httpx.Response(code, request=request)
    )


async def test_exhausted_retries_make_exactly_max_retries_plus_one_attempts() -> None:
    call, calls = _failing(httpx.ConnectError("Connection refused"))
    sleeps = _Sleeps()

    outcome = await call_with_fallback(
        call, policy=RetryPolicy(max_retries=2, backoff_seconds=1.0), sleep=sleeps
    )

    assert calls["count"] == 3
    assert outcome.attempts == 3
    assert outcome.degraded
    assert outcome.category is FailureCategory.connection_refused
    assert outcome.fallback.content == FALLBACK_TEMPLATES[FailureCategory.connection_refused]
    assert outcome.fallback.is_fallback_mode is True
    assert sleeps.delays == [1.0, 2.0]


async def test_zero_retries_means_one_attempt() -> None:
    call, calls = _failing(httpx.ReadTimeout("timed out"))

    outcome = await call_with_fallback(call, policy=RetryPolicy(max_retries=0), sleep=_Sleeps())

    assert calls["count"] == 1
    assert outcome.category is FailureCategory.timeout


async def test_recovers_on_a_later_attempt() -> None:
    call, calls = _failing(httpx.ConnectError("reset"), succeed_after=1)

    outcome = await call_with_fallback(call, policy=RetryPolicy(max_retries=2), sleep=_Sleeps())

    assert outcome.value == "ok"
    assert outcome.attempts == 2
    assert not outcome.degraded


async def test_upstream_5xx_is_retried() -> None:
    call, calls = _failing(_status_error(502))

    outcome = await call_with_fallback(call, policy=RetryPolicy(max_retries=1), sleep=_Sleeps())

    assert calls["count"] == 2
    assert outcome.degraded


async def test_non_transport_errors_propagate_immediately() -> None:
    call, calls = _failing(ValueError("bug"))

    with pytest.raises(ValueError):
        await call_with_fallback(call, policy=RetryPolicy(max_retries=2), sleep=_Sleeps())

    assert calls["count"] == 1


def test_client_errors_are_not_transport_failures() -> None:
    assert not is_transport_failure(_status_error(404))
    assert is_transport_failure(_status_error(503))
    assert is_transport_failure(TransportFailure("Workflow answered 502 Bad Gateway"))


@pytest.mark.parametrize(
    ("exc", "category"),
    [
        (httpx.ReadTimeout("read timed out"), FailureCategory.timeout),
        (TimeoutError(), FailureCategory.timeout),
        (OSError("getaddrinfo failed"), FailureCategory.dns),
        (ConnectionRefusedError("no"), FailureCategory.connection_refused),
        (MemoryError(), FailureCategory.payload_too_large),
        (httpx.RemoteProtocolError("peer closed connection"), FailureCategory.network),
        (TransportFailure("Workflow answered 504 Gateway Timeout"), FailureCategory.timeout),
    ],
)
def test_categorize_failure(exc, category) -> None:
    assert categorize_failure(exc) is category
