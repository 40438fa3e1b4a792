"""Composite progress over the archive and upload phases."""

from __future__ import annotations

import threading
from typing import Callable, Optional

ARCHIVE_PHASE = "archive"
UPLOAD_PHASE = "upload"

CompositeListener = Callable[[str, float, float], None]


class CompositeProgress:
    """Maps per-phase progress onto one bar.

    Archiving covers ``[0, archive_share]`` and uploading covers
    ``[archive_share, 1]``. The composite value never decreases; updates
    that would move it backwards are clamped.
    """

    def __init__(self, archive_share: float = 0.2, listener: Optional[CompositeListener] = None):
        if not 0.0 <= archive_share <= 1.0:
            raise ValueError(f"archive_share must be within [0, 1], got {archive_share}")
        self._archive_share = archive_share
        self._listener = listener
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def overall(self, phase: str, fraction: float) -> float:
        """Composite value for ``fraction`` of ``phase``, without recording it."""
        fraction = min(max(fraction, 0.0), 1.0)
        if phase == ARCHIVE_PHASE:
            return fraction * self._archive_share
        if phase == UPLOAD_PHASE:
            if fraction >= 1.0:
                return 1.0
            return self._archive_share + fraction * (1.0 - self._archive_share)
        raise ValueError(f"Unknown progress phase: {phase}")

    def update(self, phase: str, fraction: float) -> float:
        overall = self.overall(phase, fraction)
        with self._lock:
            overall = max(overall, self._value)
            self._value = overall
        if self._listener is not None:
            self._listener(phase, min(max(fraction, 0.0), 1.0), overall)
        return overall

    def archive(self, fraction: float) -> float:
        return self.update(ARCHIVE_PHASE, fraction)

    def upload(self, fraction: float) -> float:
        return self.update(UPLOAD_PHASE, fraction)

    def reset(self) -> None:
        with self._lock:
            self._value = 0.0


__all__ = ["ARCHIVE_PHASE", "UPLOAD_PHASE", "CompositeProgress"]
