"""Core data contracts for frame capture, transform and session logging."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple

Matrix3 = Tuple[Tuple[float, float, float], Tuple[float, float, float], Tuple[float, float, float]]
Vector3 = Tuple[float, float, float]

NANOS_PER_SECOND = 1_000_000_000


def seconds_to_nanos(timestamp_s: float) -> int:
    """Convert a monotonic timestamp in seconds to integer nanoseconds."""
    return int(round(timestamp_s * NANOS_PER_SECOND))


@dataclass(frozen=True)
class FrameEvent:
    """One sample delivered by the external sensing subsystem.

    ``image`` is a NumPy buffer whose layout is described by ``pixel_format``
    ("BGR", "RGB", "BGRA", "GRAY" or "NV12"). ``intrinsics`` is expressed in
    pixels of the ``native_width`` x ``native_height`` image.
    """

    timestamp_s: float
    camera_to_world: Any
    image: Any
    pixel_format: str
    intrinsics: Any
    native_width: int
    native_height: int

    @property
    def timestamp_ns(self) -> int:
        return seconds_to_nanos(self.timestamp_s)


@dataclass(frozen=True)
class PoseRecord:
    timestamp_ns: int
    rotation: Matrix3
    translation: Vector3


@dataclass(frozen=True)
class IntrinsicsRecord:
    fx: float
    fy: float
    cx: float
    cy: float
    width: int
    height: int


@dataclass(frozen=True)
class TransformedFrame:
    """Output of the transform stage for one accepted frame."""

    timestamp_ns: int
    pose: PoseRecord
    image_bytes: bytes
    intrinsics: IntrinsicsRecord
    width: int
    height: int


class SessionState(Enum):
    """Lifecycle states of a recording-and-dispatch run."""

    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    ARCHIVING = "archiving"
    UPLOADING = "uploading"
    ERROR = "error"
