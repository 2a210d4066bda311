"""
Session object carrying the state every runtime operation needs.

A :class:`Session` replaces process-wide client state: it owns the bearer
credential, the pooled :class:`httpx.Client` and the open/closed flag. Every
runtime call receives its session explicitly (usually through a
:class:`~cloudplane.runtime.transport.Transport`) and checks that it is still
open before doing any work.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from logging import LoggerAdapter
from types import TracebackType
from typing import Optional

import httpx

from ..config import RuntimeSettings
from ..errors import NotAuthenticatedError, SessionClosedError
from .logging import get_logger


@dataclass(slots=True)
class Session:
    """
    Authenticated connection to the control plane.

    Parameters
    ----------
    settings:
        Connection parameters. Defaults to :class:`RuntimeSettings`.
    access_token:
        Optional bearer token. Equivalent to calling :meth:`login`.
    http_transport:
        Optional :class:`httpx.BaseTransport` used by the underlying client,
        e.g. :class:`httpx.MockTransport` in tests.
    """

    settings: RuntimeSettings = field(default_factory=RuntimeSettings)
    access_token: Optional[str] = field(default=None, repr=False)
    http_transport: Optional[httpx.BaseTransport] = field(default=None, repr=False)
    logger: LoggerAdapter = field(init=False, repr=False)
    _client: Optional[httpx.Client] = field(default=None, init=False, repr=False)
    _closed: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}", extra={"base_url": self.settings.base_url})
        if self.access_token is not None:
            self.login(self.access_token)

    def login(self, access_token: str) -> "Session":
        """
        Attach the bearer credential used by all subsequent requests.

        The credential is not meant to change while requests are in flight.
        """

        self.ensure_open()
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token may not be empty")
        if access_token != access_token.strip():
            raise ValueError("access_token may not contain leading or trailing whitespace")
        self.access_token = access_token
        return self

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        """Raise :class:`SessionClosedError` if :meth:`close` was called."""

        if self._closed:
            raise SessionClosedError("session was closed")

    def authorization_header(self) -> str:
        self.ensure_open()
        if not self.access_token:
            raise NotAuthenticatedError("no access token; call Session.login() first")
        return f"Bearer {self.access_token}"

    @property
    def http_client(self) -> httpx.Client:
        """Lazily created HTTP client shared by all requests of this session."""

        with self._lock:
            self.ensure_open()
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self.settings.base_url,
                    timeout=self.settings.timeout,
                    transport=self.http_transport,
                    follow_redirects=True,
                )
            return self._client

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            client, self._client = self._client, None
        if client is not None:
            client.close()
        self.logger.debug("Session closed")

    def __enter__(self) -> "Session":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()
