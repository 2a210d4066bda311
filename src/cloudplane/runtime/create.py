"""
Idempotent resource creation.

Creating a resource whose name is already taken fails with HTTP 422 and a
fixed, resource-specific message. Because 422 also covers every other
validation failure, the collision is recognised by exact message equality.
Instead of an error the caller then receives the existing resource, wrapped in
a :class:`CreateResult` that says it was not created by this call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

import httpx

from ..core.logging import get_logger, log_event
from ..errors import UnexpectedResponseError
from .base import ConflictPredicate, Creatable
from .classifier import Fatal, NotFound, Success, ValidationConflict, classify, unwrap
from .transport import Transport, format_exchange

T = TypeVar("T")

_logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CreateResult(Generic[T]):
    """
    Outcome of a create call: the new resource or the one it collided with.

    Attributes
    ----------
    resource:
        The created or conflicting resource. Never ``None``.
    created:
        ``True`` if this call created ``resource``.
    """

    resource: T
    created: bool

    def __post_init__(self) -> None:
        if self.resource is None:
            raise ValueError("CreateResult requires a resource")

    @classmethod
    def success(cls, resource: T) -> "CreateResult[T]":
        return cls(resource=resource, created=True)

    @classmethod
    def conflicted_with(cls, resource: T) -> "CreateResult[T]":
        return cls(resource=resource, created=False)

    @property
    def conflicted(self) -> bool:
        return not self.created

    def __repr__(self) -> str:
        label = "Created" if self.created else "ConflictedWith"
        return f"CreateResult.{label}({self.resource!r})"


def message_equals(expected: str) -> ConflictPredicate:
    """Return a predicate matching exactly ``expected``, e.g. ``"a cluster with this name already exists"``."""

    def _matches(message: str) -> bool:
        return message == expected

    return _matches


def create_or_detect_conflict(
    transport: Transport,
    request: httpx.Request,
    *,
    parse_created: Callable[[Any], T],
    is_conflict: ConflictPredicate,
    find_conflict: Callable[[], Optional[T]],
) -> CreateResult[T]:
    """
    Send ``request`` once and report either the new or the conflicting resource.

    Parameters
    ----------
    transport:
        Transport used to send ``request``.
    request:
        The create request, built with :meth:`Transport.create_request`.
    parse_created:
        Maps the body of a successful response to the new resource.
    is_conflict:
        Decides whether a 422 message reports a naming collision.
    find_conflict:
        Looks up the resource that caused the collision, usually via
        :func:`~cloudplane.runtime.pagination.find_first`.

    Raises
    ------
    UnexpectedResponseError
        If the server reports a collision but the conflicting resource cannot
        be found, or if the response cannot be interpreted.
    ValidationConflictError
        If the server rejects the request for any other validation reason.
    """

    response = transport.send(request)
    outcome = classify(response)
    if isinstance(outcome, Success):
        return CreateResult.success(parse_created(outcome.body))
    if isinstance(outcome, ValidationConflict) and is_conflict(outcome.message):
        log_event(_logger, "Create conflicted with an existing resource", url=str(request.url), reason=outcome.message)
        conflict = find_conflict()
        if conflict is not None:
            return CreateResult.conflicted_with(conflict)
        request_dump, response_dump = format_exchange(response)
        raise UnexpectedResponseError(
            f"Server reported {outcome.message!r} but no conflicting resource was found",
            request_dump=request_dump,
            response_dump=response_dump,
        )
    if isinstance(outcome, NotFound):
        outcome = Fatal(response, request)
    unwrap(outcome)
    request_dump, response_dump = format_exchange(response)
    raise UnexpectedResponseError(
        f"Create returned HTTP {response.status_code} without a resource",
        request_dump=request_dump,
        response_dump=response_dump,
    )


def create_resource(
    transport: Transport,
    kind: Creatable[T],
    request: httpx.Request,
    find_conflict: Callable[[], Optional[T]],
) -> CreateResult[T]:
    """Run :func:`create_or_detect_conflict` for a :class:`~cloudplane.runtime.base.Creatable` type."""

    return create_or_detect_conflict(
        transport,
        request,
        parse_created=kind.parse_created,
        is_conflict=message_equals(kind.conflict_message),
        find_conflict=find_conflict,
    )
