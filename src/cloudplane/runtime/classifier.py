"""
Interpretation of raw HTTP responses.

:func:`classify` maps every response onto exactly one outcome. Higher-level
operations then decide whether an outcome is a value (success, absence) or a
failure, typically through :func:`unwrap`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from ..errors import (
    AccessDeniedError,
    ControlPlaneError,
    RateLimitedError,
    UnexpectedResponseError,
    ValidationConflictError,
)
from .ratelimit import MissingRateLimitHeader, RateLimitDirective
from .transport import describe_request, describe_response, request_of


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except (ValueError, UnicodeDecodeError):
        return response.text


def _message(response: httpx.Response) -> str:
    body = _decode_body(response)
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str):
            return message
    if isinstance(body, str):
        return body
    return httpx.codes.get_reason_phrase(response.status_code)


@dataclass(frozen=True, slots=True)
class Success:
    body: Any

    def to_error(self) -> Optional[ControlPlaneError]:
        return None


@dataclass(frozen=True, slots=True)
class NotFound:
    def to_error(self) -> Optional[ControlPlaneError]:
        return None


@dataclass(frozen=True, slots=True)
class AccessDenied:
    message: str

    def to_error(self) -> ControlPlaneError:
        return AccessDeniedError(self.message)


@dataclass(frozen=True, slots=True)
class RateLimited:
    directive: RateLimitDirective

    def to_error(self) -> ControlPlaneError:
        return RateLimitedError(self.directive)


@dataclass(frozen=True, slots=True)
class ValidationConflict:
    message: str

    def to_error(self) -> ControlPlaneError:
        return ValidationConflictError(self.message)


@dataclass(frozen=True, slots=True)
class Fatal:
    """A response the runtime cannot interpret; keeps both sides of the exchange."""

    response: httpx.Response
    request: Optional[httpx.Request]
    reason: str = "Unexpected response"

    def request_dump(self) -> str:
        return describe_request(self.request) if self.request is not None else ""

    def response_dump(self) -> str:
        return describe_response(self.response)

    def diagnostic(self) -> str:
        text = f"Unexpected response: {self.response_dump()}"
        if self.request is not None:
            text = f"{text}\nRequest: {self.request_dump()}"
        return text

    def to_error(self) -> ControlPlaneError:
        return UnexpectedResponseError(self.reason, request_dump=self.request_dump(), response_dump=self.response_dump())


Outcome = Union[Success, NotFound, AccessDenied, RateLimited, ValidationConflict, Fatal]


def classify(response: httpx.Response) -> Outcome:
    """Map ``response`` onto exactly one :data:`Outcome`."""

    status = response.status_code
    if httpx.codes.is_success(status):
        return Success(_decode_body(response))
    if status == httpx.codes.NOT_FOUND:
        return NotFound()
    if status in (httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN):
        return AccessDenied(_message(response))
    if status == httpx.codes.TOO_MANY_REQUESTS:
        try:
            return RateLimited(RateLimitDirective.from_response(response))
        except MissingRateLimitHeader as exc:
            return Fatal(response, request_of(response), reason=str(exc))
    if status == httpx.codes.UNPROCESSABLE_ENTITY:
        return ValidationConflict(_message(response))
    return Fatal(response, request_of(response))


def expect(response: httpx.Response, *statuses: int) -> Outcome:
    """
    Classify ``response``, treating any 2xx status outside ``statuses`` as fatal.

    With no ``statuses`` this is identical to :func:`classify`.
    """

    outcome = classify(response)
    if isinstance(outcome, Success) and statuses and response.status_code not in statuses:
        return Fatal(response, request_of(response), reason=f"Expected HTTP {', '.join(map(str, statuses))}")
    return outcome


def unwrap(outcome: Outcome) -> Any:
    """
    Return the body of a successful outcome, ``None`` for absence, or raise.

    Raises
    ------
    AccessDeniedError, RateLimitedError, ValidationConflictError, UnexpectedResponseError
        For the corresponding failure outcomes.
    """

    if isinstance(outcome, Success):
        return outcome.body
    if isinstance(outcome, NotFound):
        return None
    raise outcome.to_error()
