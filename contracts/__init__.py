"""Shared data contracts for session capture."""

from .types import (
    FrameEvent,
    IntrinsicsRecord,
    PoseRecord,
    SessionState,
    TransformedFrame,
    seconds_to_nanos,
)

__all__ = [
    "FrameEvent",
    "IntrinsicsRecord",
    "PoseRecord",
    "SessionState",
    "TransformedFrame",
    "seconds_to_nanos",
]
