"""
Bounded polling for asynchronous server-side state transitions.

Provisioning a cluster or renaming a droplet returns before the work is done.
:class:`Poller` re-fetches the resource until its state matches a target, the
resource disappears, or an end-to-end deadline passes. Delays between polls
grow geometrically up to a ceiling, and a progress notice is logged at a
fixed cadence independent of the delay so operators can follow waits that
legitimately take minutes.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from logging import LoggerAdapter
from typing import Any, Callable, Generic, Optional, TypeVar, cast

from ..config import DEFAULT_PROGRESS_INTERVAL, BackoffSettings, RuntimeSettings
from ..core.logging import get_logger, log_progress
from ..errors import OperationCancelledError, OperationTimeoutError, RateLimitedError, ResourceNotFoundError, TransientError
from .base import Refetchable

T = TypeVar("T")


class PollStatus(str, Enum):
    POLLING = "polling"
    CONVERGED = "converged"
    TIMED_OUT = "timed_out"
    PERMANENTLY_ABSENT = "permanently_absent"


@dataclass(slots=True)
class BackoffDelay:
    """Delay schedule: ``initial``, then multiplied by ``factor`` per step, never above ``maximum``."""

    settings: BackoffSettings
    current: float = field(init=False)

    def __post_init__(self) -> None:
        self.current = self.settings.initial

    def next(self) -> float:
        """Return the delay to use now and advance the schedule."""

        delay = self.current
        self.current = min(self.current * self.settings.factor, self.settings.maximum)
        return delay


@dataclass(slots=True)
class PollState(Generic[T]):
    """Per-wait mutable state; discarded once the wait terminates."""

    deadline: float
    delay: BackoffDelay
    status: PollStatus = PollStatus.POLLING
    snapshot: Optional[T] = None
    iterations: int = 0
    last_failure: Optional[TransientError] = None
    last_progress: Optional[float] = None

    def time_left(self, now: float) -> float:
        return self.deadline - now


@dataclass(slots=True)
class Poller:
    """
    Waits for a resource to reach a desired state.

    Parameters
    ----------
    backoff:
        Delay schedule between polls.
    progress_interval:
        Minimum seconds between two progress notices.
    cancel_event:
        Optional event; setting it aborts the wait before the next refetch or
        during the current sleep.
    clock:
        Monotonic time source in seconds.
    sleep:
        Sleep function used when no ``cancel_event`` is configured.
    """

    backoff: BackoffSettings = field(default_factory=BackoffSettings)
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL
    cancel_event: Optional[threading.Event] = None
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    logger: LoggerAdapter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @classmethod
    def from_settings(cls, settings: RuntimeSettings, **overrides: Any) -> "Poller":
        options: dict[str, Any] = {"backoff": settings.backoff, "progress_interval": settings.progress_interval}
        options.update(overrides)
        return cls(**options)

    def wait_for(
        self,
        refetch: Callable[[], Optional[T]],
        condition: Callable[[T], bool],
        *,
        timeout: float,
        resource: str,
        target: str,
        state_of: Callable[[T], Any] = str,
        absent_ok: bool = False,
    ) -> Optional[T]:
        """
        Poll ``refetch`` until ``condition`` holds for the returned snapshot.

        Parameters
        ----------
        refetch:
            Returns the current snapshot, or ``None`` if the resource is gone.
        condition:
            Target predicate over a snapshot.
        timeout:
            Maximum number of seconds to wait, measured from this call.
        resource:
            Name of the resource, used in progress notices and errors.
        target:
            Human-readable description of the desired state.
        state_of:
            Extracts the displayable state from a snapshot.
        absent_ok:
            Treat disappearance of the resource as convergence, e.g. when
            waiting for a deletion.

        Returns
        -------
        The converged snapshot, or ``None`` if ``absent_ok`` and the resource
        is gone.

        Raises
        ------
        ResourceNotFoundError
            If the resource disappears and ``absent_ok`` is ``False``.
        OperationTimeoutError
            If the deadline passes first.
        OperationCancelledError
            If ``cancel_event`` is set.
        """

        state: PollState[T] = PollState(deadline=self.clock() + timeout, delay=BackoffDelay(self.backoff))
        while True:
            self._check_cancelled(resource)
            state.iterations += 1
            try:
                snapshot = refetch()
            except TransientError as exc:
                state.last_failure = exc
            else:
                state.last_failure = None
                if snapshot is None:
                    if absent_ok:
                        state.status = PollStatus.CONVERGED
                        self._report_converged(state, resource, "deleted")
                        return None
                    state.status = PollStatus.PERMANENTLY_ABSENT
                    raise ResourceNotFoundError(f"{resource} no longer exists")
                state.snapshot = snapshot
                if condition(snapshot):
                    state.status = PollStatus.CONVERGED
                    self._report_converged(state, resource, target)
                    return snapshot

            now = self.clock()
            if state.time_left(now) <= 0:
                state.status = PollStatus.TIMED_OUT
                last = state_of(state.snapshot) if state.snapshot is not None else "unknown"
                raise OperationTimeoutError(
                    f"Operation failed after {timeout}s: {resource} is {last}, expected {target}",
                    timeout=timeout,
                    last_snapshot=state.snapshot,
                ) from state.last_failure
            self._report_progress(state, now, resource, target, state_of)

            delay = state.delay.next()
            if isinstance(state.last_failure, RateLimitedError):
                delay = max(delay, state.last_failure.directive.sleep_seconds())
            self._pause(min(delay, state.time_left(now)), resource)

    def wait_for_absence(
        self,
        refetch: Callable[[], Optional[T]],
        *,
        timeout: float,
        resource: str,
        state_of: Callable[[T], Any] = str,
    ) -> None:
        """Poll until ``refetch`` reports that the resource no longer exists."""

        self.wait_for(refetch, lambda _: False, timeout=timeout, resource=resource, target="deleted", state_of=state_of, absent_ok=True)

    def wait_until(
        self,
        resource: Refetchable[T],
        condition: Callable[[T], bool],
        *,
        timeout: float,
        name: str,
        target: str,
        state_of: Callable[[T], Any] = str,
    ) -> T:
        """Poll a :class:`~cloudplane.runtime.base.Refetchable` resource that must keep existing."""

        snapshot = self.wait_for(resource.refetch, condition, timeout=timeout, resource=name, target=target, state_of=state_of)
        return cast(T, snapshot)

    def _check_cancelled(self, resource: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelledError(f"Wait for {resource} was cancelled")

    def _pause(self, seconds: float, resource: str) -> None:
        if seconds <= 0:
            return
        if self.cancel_event is None:
            self.sleep(seconds)
            return
        if self.cancel_event.wait(seconds):
            raise OperationCancelledError(f"Wait for {resource} was cancelled")

    def _report_progress(
        self,
        state: PollState[T],
        now: float,
        resource: str,
        target: str,
        state_of: Callable[[T], Any],
    ) -> None:
        if state.last_progress is not None and now - state.last_progress < self.progress_interval:
            return
        state.last_progress = now
        extra = {"resource": resource, "target": target, "time_left": state.time_left(now)}
        if state.last_failure is not None:
            log_progress(
                self.logger,
                f"Waiting for {resource} to reach {target}; last refetch failed: {state.last_failure}",
                phase="poll",
                status=state.status.value,
                level=logging.WARNING,
                extra=extra,
            )
            return
        current = state_of(state.snapshot) if state.snapshot is not None else "unknown"
        extra["state"] = current
        log_progress(
            self.logger,
            f"Waiting for the status of {resource} to change from {current} to {target}",
            phase="poll",
            status=state.status.value,
            extra=extra,
        )

    def _report_converged(self, state: PollState[T], resource: str, target: str) -> None:
        if state.last_progress is None:
            return
        log_progress(self.logger, f"The status of {resource} is {target}", phase="poll", status=state.status.value, extra={"resource": resource})
