"""Frame admission and per-frame transform."""

from .frame_transform import FrameTransformer
from .throttle import FrameThrottle

__all__ = ["FrameThrottle", "FrameTransformer"]
