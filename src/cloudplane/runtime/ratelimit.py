"""
Rate-limit directives and caller-level retry helpers.

A 429 response is converted into a :class:`RateLimitDirective` describing the
client's quota and how long it must wait. The runtime itself never retries a
rate-limited call outside the poller; callers that want automatic retries wrap
their operation with :func:`retry_transient`, which is built on tenacity and
honours the directive's wait instead of a blind exponential schedule.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping, Optional

import httpx
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from ..core.logging import get_logger, log_event
from ..errors import RateLimitedError, TransientError

# https://docs.digitalocean.com/reference/api/digitalocean/#section/Introduction/Rate-Limit
# 5,000 requests per hour and 250 per minute.
RATE_LIMIT_WINDOW_FACTOR = 20
LIMIT_HEADER = "ratelimit-limit"
RESET_HEADER = "ratelimit-reset"
RETRY_AFTER_HEADER = "retry-after"

_logger = get_logger(__name__)


class MissingRateLimitHeader(ValueError):
    """Raised when a 429 response does not state the client's hourly quota."""


def _body_mapping(response: httpx.Response) -> Mapping[str, Any]:
    if not response.content:
        return {}
    try:
        body = response.json()
    except (ValueError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, Mapping) else {}


def _lookup(response: httpx.Response, body: Mapping[str, Any], key: str) -> Any:
    value = response.headers.get(key)
    if value is not None:
        return value
    return body.get(key)


def _parse_epoch(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _parse_retry_after(value: Optional[str], observed_at: datetime) -> timedelta:
    if not value:
        return timedelta(0)
    value = value.strip()
    if value.isdigit():
        return timedelta(seconds=int(value))
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return timedelta(0)
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(when - observed_at, timedelta(0))


@dataclass(frozen=True, slots=True)
class RateLimitDirective:
    """
    Structured wait instruction derived from a 429 response.

    Attributes
    ----------
    requests_per_minute:
        Per-minute quota, derived from the hourly quota.
    requests_per_hour:
        Hourly quota reported by the server.
    reset_at:
        Instant at which the quota window resets.
    retry_after:
        Delay requested by the ``Retry-After`` header, zero when absent.
    observed_at:
        Instant the response was classified.
    """

    requests_per_minute: int
    requests_per_hour: int
    reset_at: datetime
    retry_after: timedelta
    observed_at: datetime

    @classmethod
    def from_response(cls, response: httpx.Response, *, now: Optional[datetime] = None) -> "RateLimitDirective":
        observed_at = now or datetime.now(UTC)
        body = _body_mapping(response)
        raw_limit = _lookup(response, body, LIMIT_HEADER)
        if raw_limit is None:
            raise MissingRateLimitHeader(f"429 response lacks the {LIMIT_HEADER} header")
        try:
            requests_per_hour = int(raw_limit)
        except (TypeError, ValueError) as exc:
            raise MissingRateLimitHeader(f"{LIMIT_HEADER} is not an integer: {raw_limit!r}") from exc
        reset_at = _parse_epoch(_lookup(response, body, RESET_HEADER)) or observed_at
        return cls(
            requests_per_minute=requests_per_hour // RATE_LIMIT_WINDOW_FACTOR,
            requests_per_hour=requests_per_hour,
            reset_at=reset_at,
            retry_after=_parse_retry_after(response.headers.get(RETRY_AFTER_HEADER), observed_at),
            observed_at=observed_at,
        )

    def sleep_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds the client should wait before its next request; never negative."""

        current = now or datetime.now(UTC)
        if self.retry_after > timedelta(0):
            remaining = (self.observed_at + self.retry_after - current).total_seconds()
            if remaining > 0:
                return remaining
        return max((self.reset_at - current).total_seconds(), 0.0)


class wait_for_rate_limit(wait_base):
    """
    tenacity wait strategy that honours :class:`RateLimitedError` directives.

    Any other failure is delegated to ``fallback``.
    """

    def __init__(self, fallback: wait_base) -> None:
        self.fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            if isinstance(exc, RateLimitedError):
                return exc.directive.sleep_seconds()
        return self.fallback(retry_state)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None and outcome.failed else None
    delay = retry_state.next_action.sleep if retry_state.next_action is not None else None
    log_event(
        _logger,
        "Transient failure; retrying",
        level=logging.WARNING,
        attempt=retry_state.attempt_number,
        delay=delay,
        error=str(error) if error else None,
    )


def retry_transient(
    *,
    attempts: int = 3,
    initial: float = 1.0,
    maximum: float = 30.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator retrying :class:`~cloudplane.errors.TransientError` failures.

    Rate-limited calls wait as long as the server asks; I/O failures back off
    exponentially between ``initial`` and ``maximum`` seconds. Terminal errors
    propagate immediately, and the last transient error is re-raised once
    ``attempts`` is exhausted.
    """

    return retry(
        retry=retry_if_exception_type(TransientError),
        wait=wait_for_rate_limit(wait_exponential(multiplier=initial, min=initial, max=maximum)),
        stop=stop_after_attempt(attempts),
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
