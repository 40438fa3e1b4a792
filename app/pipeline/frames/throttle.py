"""Frame rate limiter for incoming sensor frames."""

from __future__ import annotations

from typing import Optional

from contracts import seconds_to_nanos


class FrameThrottle:
    """Admit a frame only when at least ``min_interval_s`` has passed since
    the last admitted one.

    Rejected frames are dropped, never queued. Timestamps are compared in
    integer nanoseconds so evenly spaced sources are admitted on exact
    multiples of the interval.
    """

    def __init__(self, min_interval_s: float):
        if min_interval_s < 0:
            raise ValueError(f"min_interval_s must be >= 0, got {min_interval_s}")
        self._interval_ns = seconds_to_nanos(min_interval_s)
        self._last_admitted_ns: Optional[int] = None
        self.admitted = 0
        self.rejected = 0

    @property
    def min_interval_s(self) -> float:
        return self._interval_ns / 1e9

    @property
    def last_admitted_ns(self) -> Optional[int]:
        return self._last_admitted_ns

    def admit(self, timestamp_s: float) -> bool:
        """Decide whether the frame with this timestamp is accepted."""
        timestamp_ns = seconds_to_nanos(timestamp_s)
        if (
            self._last_admitted_ns is not None
            and timestamp_ns - self._last_admitted_ns < self._interval_ns
        ):
            self.rejected += 1
            return False

        self._last_admitted_ns = timestamp_ns
        self.admitted += 1
        return True

    def reset(self) -> None:
        self._last_admitted_ns = None
        self.admitted = 0
        self.rejected = 0
