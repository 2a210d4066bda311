"""
Runtime settings and credential lookup for the control plane client.

Settings are plain dataclasses so callers can build them in code. For
convenience :func:`load_settings` also reads a ``[cloudplane]`` table from
``.secrets/secret.toml``. The lookup order is:

1. Explicit ``CLOUDPLANE_SECRETS_PATH`` environment variable.
2. ``.secrets/secret.toml`` relative to the current working directory.
3. ``.secrets/secrets.toml`` relative to the current working directory.

Individual values may be overridden with ``CLOUDPLANE_ACCESS_TOKEN``,
``CLOUDPLANE_BASE_URL`` and ``CLOUDPLANE_TIMEOUT``.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

DEFAULT_BASE_URL = "https://api.digitalocean.com"
DEFAULT_TIMEOUT = 30.0
# https://docs.digitalocean.com/reference/api/intro/#links--pagination
MAX_PAGE_SIZE = 200
DEFAULT_PROGRESS_INTERVAL = 2.0

_ENV_SECRETS_PATH = "CLOUDPLANE_SECRETS_PATH"
_ENV_ACCESS_TOKEN = "CLOUDPLANE_ACCESS_TOKEN"
_ENV_BASE_URL = "CLOUDPLANE_BASE_URL"
_ENV_TIMEOUT = "CLOUDPLANE_TIMEOUT"
_SECTION = "cloudplane"


@dataclass(frozen=True, slots=True)
class BackoffSettings:
    """
    Delay schedule used between polls of a long-running operation.

    Attributes
    ----------
    initial:
        First delay in seconds. Also the floor of the schedule.
    maximum:
        Ceiling in seconds. Delays never grow past this value.
    factor:
        Multiplier applied to the delay after every poll.
    """

    initial: float = 3.0
    maximum: float = 30.0
    factor: float = 2.0

    def __post_init__(self) -> None:
        if self.initial <= 0:
            raise ValueError(f"initial delay must be positive, got {self.initial}")
        if self.maximum < self.initial:
            raise ValueError(f"maximum delay ({self.maximum}) must not be less than the initial delay ({self.initial})")
        if self.factor < 1:
            raise ValueError(f"growth factor must be at least 1, got {self.factor}")


@dataclass(frozen=True, slots=True)
class RuntimeSettings:
    """
    Connection and pacing parameters shared by every runtime operation.

    Attributes
    ----------
    base_url:
        Protocol, host and port of the REST API server.
    timeout:
        Per-request network timeout in seconds.
    page_size:
        Value of the ``per_page`` parameter attached to list requests.
    progress_interval:
        Minimum number of seconds between two progress notices of a poller.
    backoff:
        Poll delay schedule.
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    page_size: int = MAX_PAGE_SIZE
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL
    backoff: BackoffSettings = field(default_factory=BackoffSettings)

    def __post_init__(self) -> None:
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {self.page_size}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


def _candidate_paths() -> Iterable[Path]:
    env_override = os.getenv(_ENV_SECRETS_PATH)
    if env_override:
        yield Path(env_override).expanduser()
    secrets_dir = Path.cwd() / ".secrets"
    for filename in ("secret.toml", "secrets.toml"):
        yield secrets_dir / filename


def _load_section() -> tuple[Optional[Path], Dict[str, object]]:
    for path in _candidate_paths():
        if not path.is_file():
            continue
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
        section = raw.get(_SECTION, {})
        return path, dict(section) if isinstance(section, Mapping) else {}
    return None, {}


def _coerce_float(value: object, *, key: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be a number, got {value!r}") from exc


def _first_set(*values: Optional[float], default: float) -> float:
    for value in values:
        if value is not None:
            return value
    return default


def _backoff_from(section: Mapping[str, object]) -> BackoffSettings:
    raw = section.get("backoff")
    if not isinstance(raw, Mapping):
        return BackoffSettings()
    defaults = BackoffSettings()
    return BackoffSettings(
        initial=_first_set(_coerce_float(raw.get("initial"), key="backoff.initial"), default=defaults.initial),
        maximum=_first_set(_coerce_float(raw.get("maximum"), key="backoff.maximum"), default=defaults.maximum),
        factor=_first_set(_coerce_float(raw.get("factor"), key="backoff.factor"), default=defaults.factor),
    )


def load_settings(strict: bool = False) -> RuntimeSettings:
    """
    Build :class:`RuntimeSettings` from the secrets file and environment.

    Parameters
    ----------
    strict:
        When ``True`` a missing secrets file raises ``FileNotFoundError``.
        Otherwise defaults are used.
    """

    path, section = _load_section()
    if path is None and strict:
        raise FileNotFoundError(f"No secrets file found. Configure {_ENV_SECRETS_PATH} or .secrets/secret.toml.")

    base_url = os.getenv(_ENV_BASE_URL) or section.get("base_url") or DEFAULT_BASE_URL
    timeout = _first_set(
        _coerce_float(os.getenv(_ENV_TIMEOUT), key=_ENV_TIMEOUT),
        _coerce_float(section.get("timeout"), key="timeout"),
        default=DEFAULT_TIMEOUT,
    )
    page_size = section.get("page_size", MAX_PAGE_SIZE)
    progress = _first_set(_coerce_float(section.get("progress_interval"), key="progress_interval"), default=DEFAULT_PROGRESS_INTERVAL)
    return RuntimeSettings(
        base_url=str(base_url).rstrip("/"),
        timeout=timeout,
        page_size=int(page_size),  # type: ignore[arg-type]
        progress_interval=progress,
        backoff=_backoff_from(section),
    )


def resolve_access_token() -> Optional[str]:
    """Return the bearer token from ``CLOUDPLANE_ACCESS_TOKEN`` or the secrets file."""

    token = os.getenv(_ENV_ACCESS_TOKEN)
    if token:
        return token.strip()
    _, section = _load_section()
    value = section.get("access_token")
    return value.strip() if isinstance(value, str) and value.strip() else None
