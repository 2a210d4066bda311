"""
Logging helpers for the control plane runtime.

Runtime modules obtain loggers through :func:`get_logger` and attach structured
fields (HTTP method, resource name, poll state, ...) with :func:`log_event` or
:func:`log_progress`. The fields are rendered as ``key=value`` pairs after the
message by :class:`StructuredLogFormatter`, so operators can grep long waits
without parsing free text.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from copy import copy
from logging import Logger, LoggerAdapter
from typing import Any, Iterable, Mapping, MutableMapping, Optional, Sequence

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LEVEL = "INFO"
_ENV_LEVEL = "CLOUDPLANE_LOG_LEVEL"
_ENV_COLOR = "CLOUDPLANE_LOG_COLOR"
_FOCUS_KEYS: Sequence[str] = (
    "phase",
    "status",
    "resource",
    "state",
    "target",
    "method",
    "url",
    "status_code",
    "page",
    "attempt",
    "delay",
    "time_left",
)

_LEVEL_STYLES = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[95m",
}
_RESET = "\033[0m"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_configured = False


def _resolve_level(level: Optional[int | str]) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv(_ENV_LEVEL) or DEFAULT_LEVEL).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _wants_color(stream: Any) -> bool:
    preference = (os.getenv(_ENV_COLOR) or "auto").strip().lower()
    if preference in {"1", "true", "yes", "on"}:
        return True
    if preference in {"0", "false", "no", "off"}:
        return False
    return hasattr(stream, "isatty") and bool(stream.isatty())


def _structured_fields(record: logging.LogRecord) -> Iterable[tuple[str, Any]]:
    fields = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS and not key.startswith("_") and value is not None}
    for key in _FOCUS_KEYS:
        if key in fields:
            yield key, fields.pop(key)
    for key in sorted(fields):
        yield key, fields[key]


def _render_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return "[" + ", ".join(_render_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        try:
            return json.dumps(value, ensure_ascii=False, default=str)
        except TypeError:
            return repr(dict(value))
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Formatter that appends structured fields and optionally colours the level."""

    def __init__(self, *, use_color: bool = False) -> None:
        super().__init__(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        working = copy(record)
        if self.use_color:
            style = _LEVEL_STYLES.get(working.levelname.upper())
            if style:
                working.levelname = f"{style}{working.levelname}{_RESET}"
        base = super().format(working)
        fields = " ".join(f"{key}={_render_value(value)}" for key, value in _structured_fields(record))
        return f"{base} | {fields}" if fields else base


def configure_logging(level: Optional[int | str] = None, *, force: bool = False) -> None:
    """
    Install a stderr handler with :class:`StructuredLogFormatter` on the root logger.

    Parameters
    ----------
    level:
        Optional level override. Falls back to ``CLOUDPLANE_LOG_LEVEL`` or ``INFO``.
    force:
        Reinstall the handler even if logging was configured before.
    """

    global _configured
    if _configured and not force:
        return
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(_resolve_level(level))
    handler.setFormatter(StructuredLogFormatter(use_color=_wants_color(handler.stream)))
    logging.basicConfig(level=_resolve_level(level), handlers=[handler], force=force)
    _configured = True


def get_logger(
    name: str,
    *,
    level: Optional[int | str] = None,
    extra: Optional[Mapping[str, object]] = None,
) -> LoggerAdapter:
    """
    Return a :class:`logging.LoggerAdapter` bound to ``extra``.

    Parameters
    ----------
    name:
        Logger namespace, typically ``__name__``.
    level:
        Optional per-logger level override.
    extra:
        Structured fields recorded with every entry of this adapter.
    """

    configure_logging()
    base: Logger = logging.getLogger(name)
    if level is not None:
        base.setLevel(_resolve_level(level))
    bound = {key: value for key, value in (extra or {}).items() if value is not None}
    return LoggerAdapter(base, bound)


def log_event(
    logger: LoggerAdapter | Logger,
    message: str,
    *,
    level: int = logging.DEBUG,
    exc_info: Any = None,
    **fields: object,
) -> None:
    """
    Emit ``message`` with ``fields`` as structured extras.

    ``LoggerAdapter`` replaces per-call ``extra`` with its own mapping, so the
    adapter's fields and the call's fields are merged here before logging.
    """

    payload: MutableMapping[str, object] = {}
    target = logger
    if isinstance(logger, LoggerAdapter):
        if isinstance(logger.extra, Mapping):
            payload.update(logger.extra)
        target = logger.logger
    payload.update({key: value for key, value in fields.items() if value is not None})
    target.log(level, message, extra=dict(payload) or None, exc_info=exc_info)


def log_progress(
    logger: LoggerAdapter | Logger,
    message: str,
    *,
    phase: Optional[str] = None,
    status: Optional[str] = None,
    level: int = logging.INFO,
    extra: Optional[Mapping[str, object]] = None,
) -> None:
    """Emit an operator-facing progress notice tagged with ``phase`` and ``status``."""

    fields = dict(extra or {})
    log_event(logger, message, level=level, phase=phase, status=status, **fields)
