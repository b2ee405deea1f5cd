"""Time sources for token derivation.

Everything time-based in the client depends on an injected ``Clock`` rather
than calling ``time.time()`` directly, so tests can pin the current second.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Callable protocol returning *seconds* since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    return time.time()


class TimestampSource:
    """Hands out whole-second timestamps that strictly increase per instance.

    When the wall clock has not moved past the last issued value, the next
    value is ``last + 1``. The read-compare-write runs under a lock private to
    this instance, separate from the token cache lock.
    """

    def __init__(self, clock: Clock = default_clock, *, logger: logging.Logger | None = None) -> None:
        self._clock = clock
        self._log = logger or logging.getLogger("zentao_client.clock")
        self._lock = threading.Lock()
        self._last = 0

    @property
    def last(self) -> int:
        with self._lock:
            return self._last

    def now(self) -> int:
        """Current wall-clock second, without touching the issued sequence."""
        return int(self._clock())

    def next(self) -> int:
        with self._lock:
            wall = int(self._clock())
            issued = wall
            if issued <= self._last:
                issued = self._last + 1
                self._log.debug(
                    "timestamp collision wall=%s last=%s issued=%s", wall, self._last, issued
                )
            self._last = issued
            return issued
