"""
Injected time sources and the shared component base.

The core never reads the wall clock: components receive a time provider
and every time-dependent operation accepts an explicit override.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from vestflow.core.exceptions import VestingError, get_error_context
from vestflow.core.metrics import VestingMetrics

TimeProvider = Callable[[], int]


class ManualClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start_time: int = 0):
        self.current_time = start_time

    def now(self) -> int:
        return self.current_time

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards.")
        self.current_time += seconds
        return self.current_time

    def set(self, timestamp: int) -> None:
        self.current_time = timestamp


def system_time() -> int:
    """Wall-clock seconds since the epoch, for the CLI layer only."""
    return int(time.time())


class TimedComponent:
    """Base for components that read injected time and report rejections."""

    def __init__(
        self,
        time_provider: TimeProvider,
        metrics: VestingMetrics | None,
        logger: logging.Logger,
    ):
        if time_provider is None:
            raise ValueError("A time provider is required.")
        self._time_provider = time_provider
        self.metrics = metrics or VestingMetrics()
        self.logger = logger

    def _now(self, current_time: int | None = None) -> int:
        if current_time is None:
            timestamp = self._time_provider()
            source = "time_provider"
        else:
            timestamp = current_time
            source = "current_time"
        if isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
            raise ValueError(f"{source} must be a non-negative integer timestamp, got {timestamp!r}")
        return timestamp

    def _reject(self, operation: str, exc: VestingError) -> VestingError:
        """Log and count a rejected operation; returns exc for raising."""
        self.logger.warning(
            "%s rejected: %s",
            operation,
            exc.message,
            extra={"event": f"{operation}.rejected", **get_error_context(exc)},
        )
        self.metrics.record_rejection(operation, exc)
        return exc
