"""
Client runtime for a rate-limited, eventually-consistent cloud control plane.

Resource modules build on a handful of primitives:

* :class:`Session` holds the credential and the HTTP connection pool.
* :class:`Transport` sends requests and renders them for diagnostics.
* :func:`classify` interprets responses; :func:`unwrap` turns outcomes into
  values or exceptions.
* :func:`collect_all` and :func:`find_first` walk paginated listings.
* :func:`create_or_detect_conflict` makes creation idempotent by name.
* :class:`Poller` waits for asynchronous state transitions.
"""

from .config import BackoffSettings, RuntimeSettings, load_settings, resolve_access_token
from .core import Session, configure_logging, get_logger
from .errors import (
    AccessDeniedError,
    ControlPlaneError,
    NotAuthenticatedError,
    OperationCancelledError,
    OperationTimeoutError,
    PageMappingError,
    RateLimitedError,
    ResourceNotFoundError,
    SessionClosedError,
    SessionError,
    TransientError,
    TransportIOError,
    UnexpectedResponseError,
    ValidationConflictError,
)
from .runtime import (
    CreateResult,
    Poller,
    RateLimitDirective,
    Transport,
    classify,
    collect_all,
    create_or_detect_conflict,
    destroy_resource,
    find_first,
    get_resource,
    message_equals,
    retry_transient,
    unwrap,
)

__all__ = [
    "AccessDeniedError",
    "BackoffSettings",
    "ControlPlaneError",
    "CreateResult",
    "NotAuthenticatedError",
    "OperationCancelledError",
    "OperationTimeoutError",
    "PageMappingError",
    "Poller",
    "RateLimitDirective",
    "RateLimitedError",
    "ResourceNotFoundError",
    "RuntimeSettings",
    "Session",
    "SessionClosedError",
    "SessionError",
    "TransientError",
    "Transport",
    "TransportIOError",
    "UnexpectedResponseError",
    "ValidationConflictError",
    "classify",
    "collect_all",
    "configure_logging",
    "create_or_detect_conflict",
    "destroy_resource",
    "find_first",
    "get_logger",
    "get_resource",
    "load_settings",
    "message_equals",
    "resolve_access_token",
    "retry_transient",
    "unwrap",
]
