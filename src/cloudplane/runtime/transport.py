"""
HTTP transport shared by every runtime operation.

The transport builds authenticated requests, makes their bodies replayable,
sends them through the session's pooled :class:`httpx.Client` and renders
requests and responses as diagnostic strings. It keeps no resource-specific
state and never retries on its own: transient failures are surfaced as
:class:`~cloudplane.errors.TransportIOError` so the caller can decide.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import Any, Mapping, Optional

import httpx

from ..core.logging import get_logger, log_event
from ..core.session import Session
from ..errors import TransportIOError, UnexpectedResponseError

# Bodies of any other type are summarised as "[<N> bytes]" in diagnostics.
TEXTUAL_CONTENT_TYPES = frozenset(
    {
        "text/plain",
        "text/html",
        "text/css",
        "application/javascript",
        "text/javascript",
        "application/json",
        "application/xml",
        "text/xml",
        "text/csv",
        "text/markdown",
        "application/x-yaml",
        "application/rtf",
        "application/pdf",
        "text/sgml",
        "application/xhtml+xml",
        "application/ld+json",
    }
)
_MASKED_HEADERS = frozenset({"authorization"})


def make_replayable(request: httpx.Request) -> httpx.Request:
    """
    Buffer the body of ``request`` in memory so it can be read more than once.

    Streaming bodies are consumed once and replaced by their bytes, which
    lets logging and any retry send exactly what the caller supplied.
    """

    request.read()
    return request


def _media_type(headers: httpx.Headers) -> Optional[str]:
    value = headers.get("content-type")
    if not value:
        return None
    return value.split(";", 1)[0].strip().lower()


def _render_body(content: bytes, headers: httpx.Headers) -> str:
    if not content:
        return ""
    media_type = _media_type(headers)
    if media_type is not None and media_type not in TEXTUAL_CONTENT_TYPES:
        return f"[{len(content)} bytes]"
    return content.decode("utf-8", errors="replace")


def _render_headers(headers: httpx.Headers, *, prefix: str = "") -> list[str]:
    lines = []
    for name, value in headers.multi_items():
        if name.lower() in _MASKED_HEADERS:
            scheme = value.split(" ", 1)[0] if " " in value else ""
            value = f"{scheme} ***".strip()
        lines.append(f"{prefix}{name}: {value}")
    return lines


@dataclass(slots=True)
class Transport:
    """
    Sends requests on behalf of a :class:`~cloudplane.core.session.Session`.

    Parameters
    ----------
    session:
        Open session supplying the credential and the HTTP client.
    """

    session: Session
    logger: LoggerAdapter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @property
    def page_size(self) -> int:
        return self.session.settings.page_size

    def create_request(
        self,
        target: str,
        body: Any = None,
        *,
        method: str = "GET",
        params: Optional[Mapping[str, Any]] = None,
        content_type: Optional[str] = None,
    ) -> httpx.Request:
        """
        Build an authenticated request.

        Parameters
        ----------
        target:
            Absolute URL or a path relative to the configured ``base_url``.
        body:
            Optional body. Mappings and lists are JSON-encoded; ``bytes``,
            ``str`` and iterables of ``bytes`` are sent as-is.
        method:
            HTTP method.
        params:
            Query parameters merged into ``target``. Parameters already in
            ``target`` are kept unless ``params`` names the same key.
        content_type:
            Content type of a raw body.
        """

        headers = {"Authorization": self.session.authorization_header()}
        client = self.session.http_client
        # ``target`` may be a cursor URL whose query already holds ``page``.
        url = httpx.URL(target)
        if params:
            url = url.copy_merge_params(params)
        if body is None:
            return client.build_request(method, url, headers=headers)
        if isinstance(body, (Mapping, list)):
            return client.build_request(method, url, headers=headers, json=body)
        if content_type:
            headers["Content-Type"] = content_type
        return client.build_request(method, url, headers=headers, content=body)

    def send(self, request: httpx.Request) -> httpx.Response:
        """
        Send ``request`` and return the fully-read response.

        Raises
        ------
        SessionClosedError
            If the session was closed.
        TransportIOError
            If the request timed out or the connection failed.
        """

        client = self.session.http_client
        make_replayable(request)
        log_event(self.logger, "HTTP request", method=request.method, url=str(request.url))
        try:
            response = client.send(request)
        except httpx.TransportError as exc:
            log_event(self.logger, "HTTP transport failure", level=logging.WARNING, method=request.method, url=str(request.url), error=str(exc))
            raise TransportIOError(f"{type(exc).__name__} while calling {request.method} {request.url}: {exc}") from exc
        log_event(self.logger, "HTTP response", method=request.method, url=str(request.url), status_code=response.status_code)
        return response

    def read_json(self, response: httpx.Response) -> Any:
        """Decode the JSON body of ``response``; ``None`` when the body is empty."""

        if not response.content:
            return None
        try:
            return response.json()
        except (ValueError, UnicodeDecodeError) as exc:
            request_dump, response_dump = format_exchange(response)
            raise UnexpectedResponseError(f"Response body is not valid JSON: {exc}", request_dump=request_dump, response_dump=response_dump) from exc

    def describe_request(self, request: httpx.Request) -> str:
        return describe_request(request)

    def describe_response(self, response: httpx.Response) -> str:
        return describe_response(response)


def request_of(response: httpx.Response) -> Optional[httpx.Request]:
    """Return the request that produced ``response``, or ``None`` for a detached response."""

    try:
        return response.request
    except RuntimeError:
        return None


def describe_request(request: httpx.Request) -> str:
    """
    Render ``request`` for diagnostics.

    Every line starts with ``"< "``. The credential is masked and non-textual
    bodies are summarised by their size.
    """

    lines = [f"< HTTP {request.method} {request.url}"]
    header_lines = _render_headers(request.headers, prefix="< ")
    if header_lines:
        lines.append("<")
        lines.extend(header_lines)
    body = _render_body(make_replayable(request).content, request.headers)
    if body:
        lines.append("<")
        lines.extend(f"< {line}" for line in body.splitlines())
    return "\n".join(lines) + "\n"


def describe_response(response: httpx.Response) -> str:
    """Render the status line, headers and body of ``response``."""

    reason = response.reason_phrase or httpx.codes.get_reason_phrase(response.status_code)
    lines = [f'{response.http_version} {response.status_code} ("{reason}")']
    lines.extend(_render_headers(response.headers))
    body = _render_body(response.content, response.headers)
    if body:
        lines.append("")
        lines.append(body)
    return "\n".join(lines)


def format_exchange(response: httpx.Response) -> tuple[str, str]:
    """Return ``(request_dump, response_dump)`` for ``response``."""

    request = request_of(response)
    request_dump = describe_request(request) if request is not None else ""
    return request_dump, describe_response(response)


def pretty_body(body: Any) -> str:
    """Indent a decoded JSON body for log output."""

    try:
        return json.dumps(body, indent=2, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(body)
