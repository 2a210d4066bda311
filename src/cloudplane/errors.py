"""
Exception hierarchy shared by every runtime component.

Failures fall into three families:

* :class:`TransientError` subclasses (network I/O, rate limiting) may succeed
  if the caller retries later.
* Terminal errors (:class:`AccessDeniedError`, :class:`ValidationConflictError`)
  carry the server's explanation and are never retried.
* :class:`UnexpectedResponseError` marks a response the runtime does not know
  how to interpret. It carries a dump of the request and response.

Absence of a resource is reported as ``None`` by lookups, not as an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .runtime.ratelimit import RateLimitDirective


class ControlPlaneError(RuntimeError):
    """Base class for every error raised by the runtime."""


class SessionError(ControlPlaneError):
    """Raised when a session cannot be used to issue requests."""


class SessionClosedError(SessionError):
    """Raised when an operation is invoked after :meth:`Session.close`."""


class NotAuthenticatedError(SessionError):
    """Raised when a request is built before :meth:`Session.login`."""


class TransientError(ControlPlaneError):
    """Failure that may succeed if retried after a delay."""


class TransportIOError(TransientError):
    """Raised when a request could not be delivered or its response could not be read."""


class RateLimitedError(TransientError):
    """Raised when the server rejects a request because the client exceeded its quota."""

    def __init__(self, directive: "RateLimitDirective") -> None:
        super().__init__(f"The client must wait {directive.sleep_seconds():.1f}s to make another request")
        self.directive = directive


class AccessDeniedError(ControlPlaneError):
    """Raised when the credential is rejected or lacks the required scope."""


class ValidationConflictError(ControlPlaneError):
    """Raised when the server rejects a request body (HTTP 422)."""


class ResourceNotFoundError(ControlPlaneError):
    """Raised when a resource disappears while a caller is waiting on it."""


class UnexpectedResponseError(ControlPlaneError):
    """
    Raised for responses the runtime cannot interpret.

    These indicate a client bug or an undocumented server change, so the full
    request and response are kept for diagnosis.
    """

    def __init__(self, message: str, *, request_dump: str = "", response_dump: str = "") -> None:
        details = message
        if response_dump:
            details = f"{details}\nUnexpected response: {response_dump}"
        if request_dump:
            details = f"{details}\nRequest: {request_dump}"
        super().__init__(details)
        self.request_dump = request_dump
        self.response_dump = response_dump


class PageMappingError(ControlPlaneError):
    """Raised when a response body does not have the shape a mapper expects."""

    def __init__(self, message: str, *, body: Any) -> None:
        super().__init__(message)
        self.body = body


class OperationTimeoutError(ControlPlaneError, TimeoutError):
    """Raised when a wait does not converge before its deadline."""

    def __init__(self, message: str, *, timeout: float, last_snapshot: Optional[Any] = None) -> None:
        super().__init__(message)
        self.timeout = timeout
        self.last_snapshot = last_snapshot


class OperationCancelledError(ControlPlaneError):
    """Raised when a caller cancels a wait that is still in progress."""
