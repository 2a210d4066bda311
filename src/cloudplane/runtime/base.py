"""
Capability protocols implemented by resource collaborators.

The runtime never inspects concrete resource types. A resource module plugs
into it by providing one or more of these narrow capabilities, each of which
maps onto a single runtime primitive:

* :class:`Listable` feeds the pagination iterator,
* :class:`Creatable` feeds the idempotent create protocol,
* :class:`Refetchable` feeds the long-running-operation poller.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

PageMapper = Callable[[Any], Sequence[T]]
"""Maps one page body to the elements it contains, in server order."""

MatchMapper = Callable[[Any], Optional[T]]
"""Maps one page body to the matching element, or ``None`` if the page has no match."""

ConflictPredicate = Callable[[str], bool]
"""Decides whether a 422 message reports a naming collision."""


class Listable(Protocol[T_co]):
    """A resource type whose instances can be enumerated page by page."""

    list_path: str

    def map_page(self, body: Any) -> Sequence[T_co]:
        """Convert one page body into resources."""


class Creatable(Protocol[T_co]):
    """A resource type that reports name collisions with a fixed server message."""

    conflict_message: str

    def parse_created(self, body: Any) -> T_co:
        """Convert the body of a successful create response into a resource."""


class Refetchable(Protocol[T_co]):
    """A resource whose latest server-side snapshot can be fetched on demand."""

    def refetch(self) -> Optional[T_co]:
        """Return the current snapshot, or ``None`` if the resource no longer exists."""
