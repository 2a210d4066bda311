"""
Single-resource lookups and deletions.

A missing resource is an ordinary answer to a lookup, so :func:`get_resource`
returns ``None`` on 404 and :func:`destroy_resource` treats 404 as "already
gone". Everything else goes through the classifier.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

from ..core.logging import get_logger, log_event
from ..errors import PageMappingError
from .classifier import NotFound, classify, unwrap
from .transport import Transport, pretty_body

T = TypeVar("T")

_logger = get_logger(__name__)


def get_resource(transport: Transport, target: str, mapper: Callable[[Any], T]) -> Optional[T]:
    """Fetch and map a single resource; ``None`` if the server reports 404."""

    request = transport.create_request(target)
    body = unwrap(classify(transport.send(request)))
    if body is None:
        return None
    try:
        return mapper(body)
    except Exception as exc:
        log_event(_logger, f"Response body:\n{pretty_body(body)}", level=logging.WARNING, url=target, exc_info=exc)
        raise PageMappingError(f"Failed to map resource at {target}: {exc}", body=body) from exc


def destroy_resource(transport: Transport, target: str) -> bool:
    """
    Delete the resource at ``target``.

    Returns ``True`` if the server deleted it and ``False`` if it did not exist.
    """

    request = transport.create_request(target, method="DELETE")
    outcome = classify(transport.send(request))
    if isinstance(outcome, NotFound):
        log_event(_logger, "Resource was already deleted", url=target)
        return False
    unwrap(outcome)
    return True
