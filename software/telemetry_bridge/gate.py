"""Per-sink throttle + dedup gate.

Each sink owns one :class:`ThrottleGate`.  The gate remembers the last
value it let through for every key and when, and answers one question:
should this candidate value go out now?

Checks run in this order:

1. zero suppression (only when the caller says zeros are not allowed);
2. first sighting of a key always passes;
3. inside the broadcast interval nothing passes, changed or not, and the
   stored value is left alone;
4. after the interval an unchanged value is still dropped.

A value that flips and flips back inside one interval is never seen.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable, Dict, Tuple, Union

FALLBACK_INTERVAL = 0.5

RateSource = Union[Callable[[], float], object]


def is_numeric_zero(value) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and value == 0


def values_equal(old, new, tolerance: float | None = None) -> bool:
    if tolerance is not None and isinstance(old, float) and isinstance(new, float):
        if math.isnan(old) and math.isnan(new):
            return True
        return abs(old - new) < tolerance
    return type(old) is type(new) and old == new


class ThrottleGate:
    """Decide whether a ``(key, value)`` candidate is emitted.

    ``rate_source`` is either a callable returning the broadcast rate in Hz
    or any object with a ``broadcast_rate_hz`` attribute (the live config).
    It is read on every call so config edits apply immediately.
    """

    def __init__(self, rate_source: RateSource, *, clock: Callable[[], float] = time.monotonic):
        self._rate_source = rate_source
        self._clock = clock
        self._last: Dict[str, Tuple[float, object]] = {}
        self._lock = threading.Lock()

    def _rate_hz(self) -> float:
        if callable(self._rate_source):
            return self._rate_source()
        return getattr(self._rate_source, "broadcast_rate_hz", 0)

    def interval(self) -> float:
        rate = self._rate_hz()
        if rate and rate > 0:
            return 1.0 / rate
        return FALLBACK_INTERVAL

    def admit(
        self,
        key: str,
        value,
        *,
        tolerance: float | None = None,
        allow_zero: bool = True,
    ) -> bool:
        if not allow_zero and is_numeric_zero(value):
            return False
        now = self._clock()
        interval = self.interval()
        with self._lock:
            entry = self._last.get(key)
            if entry is not None:
                last_time, last_value = entry
                if now - last_time < interval:
                    return False
                if values_equal(last_value, value, tolerance):
                    return False
            self._last[key] = (now, value)
        return True

    def last(self, key: str):
        """Return the stored ``(timestamp, value)`` for ``key`` or ``None``."""

        with self._lock:
            return self._last.get(key)

    def clear(self) -> None:
        with self._lock:
            self._last.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last)
