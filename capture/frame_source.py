"""Frame source abstraction for the sensing subsystems that feed a session."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from contracts import FrameEvent


@dataclass(frozen=True)
class SourceStats:
    frames_delivered: int
    rate_hz: float
    pixel_format: str


class FrameSource(ABC):
    @abstractmethod
    def open(self) -> None:
        """Start delivering frames."""

    @abstractmethod
    def read_frame(self) -> Optional[FrameEvent]:
        """Next frame, or None once the source is exhausted."""

    @abstractmethod
    def get_stats(self) -> SourceStats:
        """Return source diagnostics."""

    @abstractmethod
    def close(self) -> None:
        """Stop the source."""
