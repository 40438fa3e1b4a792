"""Capture module."""

from .frame_source import FrameSource, SourceStats
from .simulated_source import SimulatedFrameSource

__all__ = ["FrameSource", "SimulatedFrameSource", "SourceStats"]
