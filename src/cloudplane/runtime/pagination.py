"""
Cursor-following pagination.

List endpoints return at most ``per_page`` elements plus a ``links.pages.next``
URL when more results exist
(https://docs.digitalocean.com/reference/api/intro/#links--pagination). Pages
are requested one at a time, in server order, and each cursor is followed at
most once.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, List, Mapping, Optional, Sequence, TypeVar

import httpx

from ..core.logging import get_logger, log_event
from ..errors import PageMappingError, UnexpectedResponseError
from .base import Listable, MatchMapper, PageMapper
from .classifier import Fatal, NotFound, classify, unwrap
from .transport import Transport, format_exchange, pretty_body

T = TypeVar("T")

_logger = get_logger(__name__)


def next_page(body: Any) -> Optional[str]:
    """Return the URL of the next page, or ``None`` if ``body`` is the last page."""

    if not isinstance(body, Mapping):
        return None
    links = body.get("links")
    if not isinstance(links, Mapping):
        return None
    pages = links.get("pages")
    if not isinstance(pages, Mapping):
        return None
    cursor = pages.get("next")
    return cursor if isinstance(cursor, str) and cursor else None


def _request_page(transport: Transport, target: str, params: Mapping[str, Any]) -> tuple[httpx.Response, Any]:
    query = dict(params)
    query["per_page"] = transport.page_size
    request = transport.create_request(target, params=query)
    response = transport.send(request)
    outcome = classify(response)
    if isinstance(outcome, NotFound):
        # A listing endpoint always exists; a 404 means the path is wrong.
        outcome = Fatal(response, request, reason=f"Listing endpoint not found: {target}")
    return response, unwrap(outcome)


def iter_pages(transport: Transport, start: str, params: Optional[Mapping[str, Any]] = None) -> Iterator[Any]:
    """
    Yield raw page bodies, starting at ``start``, until the last page.

    Nothing is requested until the generator is advanced, and pages are
    fetched lazily, so abandoning the iteration stops further requests.

    Raises
    ------
    UnexpectedResponseError
        If a page links to a cursor that was already followed.
    """

    target: Optional[str] = start
    followed: set[str] = set()
    page = 0
    while target is not None:
        page += 1
        followed.add(target)
        log_event(_logger, "Fetching page", url=target, page=page)
        response, body = _request_page(transport, target, params or {})
        yield body
        target = next_page(body)
        if target is not None and target in followed:
            request_dump, response_dump = format_exchange(response)
            raise UnexpectedResponseError(
                f"Page {page} links back to {target}, which was already fetched",
                request_dump=request_dump,
                response_dump=response_dump,
            )


def _map_page(mapper: PageMapper[T] | MatchMapper[T], body: Any, page: int) -> Any:
    try:
        return mapper(body)
    except Exception as exc:
        log_event(_logger, f"Response body:\n{pretty_body(body)}", level=logging.WARNING, page=page, exc_info=exc)
        raise PageMappingError(f"Failed to map page {page}: {exc}", body=body) from exc


def collect_all(
    transport: Transport,
    start: str,
    params: Optional[Mapping[str, Any]],
    mapper: PageMapper[T],
) -> List[T]:
    """
    Return every element of a paginated collection.

    Pages are concatenated in fetch order and elements keep the order the
    server returned them in.
    """

    elements: List[T] = []
    for page, body in enumerate(iter_pages(transport, start, params), start=1):
        mapped: Sequence[T] = _map_page(mapper, body, page)
        elements.extend(mapped)
    return elements


def find_first(
    transport: Transport,
    start: str,
    params: Optional[Mapping[str, Any]],
    mapper: MatchMapper[T],
) -> Optional[T]:
    """
    Return the first element ``mapper`` finds, or ``None``.

    Iteration stops at the first page on which ``mapper`` returns a value;
    later pages are never requested.
    """

    for page, body in enumerate(iter_pages(transport, start, params), start=1):
        match = _map_page(mapper, body, page)
        if match is not None:
            return match
    return None


def list_resources(transport: Transport, kind: Listable[T], params: Optional[Mapping[str, Any]] = None) -> List[T]:
    """Collect every instance of a :class:`~cloudplane.runtime.base.Listable` resource type."""

    return collect_all(transport, kind.list_path, params, kind.map_page)
