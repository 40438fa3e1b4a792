"""Simulated frame source for pipeline testing and the ``simulate`` command."""

from __future__ import annotations

import math
import time
from typing import Iterator, Optional

import numpy as np

from contracts import FrameEvent

from .frame_source import FrameSource, SourceStats


class SimulatedFrameSource(FrameSource):
    """Deterministic frames on a fixed clock.

    The camera orbits the origin at ``radius_m`` while looking at it, so
    consecutive poses differ in both rotation and translation. Images carry
    a moving gradient so encoded sizes vary from frame to frame.
    """

    def __init__(
        self,
        width: int = 1920,
        height: int = 1440,
        rate_hz: float = 60.0,
        pixel_format: str = "BGR",
        max_frames: Optional[int] = None,
        start_s: float = 0.0,
        realtime: bool = False,
        radius_m: float = 1.5,
    ) -> None:
        if pixel_format not in ("BGR", "NV12"):
            raise ValueError(f"Unsupported simulated pixel format: {pixel_format}")
        if pixel_format == "NV12" and (width % 2 or height % 2):
            raise ValueError("NV12 frames need even dimensions")
        self._width = width
        self._height = height
        self._rate_hz = rate_hz
        self._pixfmt = pixel_format
        self._max_frames = max_frames
        self._start_s = start_s
        self._realtime = realtime
        self._radius = radius_m
        self._frame_index = 0
        self._opened = False
        self._last_frame_time = time.monotonic()

        focal = 0.75 * max(width, height)
        self._intrinsics = np.array(
            [[focal, 0.0, width / 2.0], [0.0, focal, height / 2.0], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    @property
    def intrinsics(self) -> np.ndarray:
        return self._intrinsics.copy()

    def open(self) -> None:
        self._opened = True
        self._last_frame_time = time.monotonic()

    def read_frame(self) -> Optional[FrameEvent]:
        if not self._opened:
            raise RuntimeError("Simulated source is not open")
        if self._max_frames is not None and self._frame_index >= self._max_frames:
            return None

        if self._realtime and self._rate_hz > 0:
            target_delay = 1.0 / self._rate_hz
            elapsed = time.monotonic() - self._last_frame_time
            if elapsed < target_delay:
                time.sleep(target_delay - elapsed)
            self._last_frame_time = time.monotonic()

        index = self._frame_index
        self._frame_index += 1
        # Integer nanosecond clock so frame spacing is exact
        period_ns = int(round(1e9 / self._rate_hz))
        timestamp_s = self._start_s + index * period_ns / 1e9

        return FrameEvent(
            timestamp_s=timestamp_s,
            camera_to_world=self.pose_at(index),
            image=self._render(index),
            pixel_format=self._pixfmt,
            intrinsics=self.intrinsics,
            native_width=self._width,
            native_height=self._height,
        )

    def __iter__(self) -> Iterator[FrameEvent]:
        if not self._opened:
            self.open()
        while True:
            event = self.read_frame()
            if event is None:
                return
            yield event

    def pose_at(self, index: int) -> np.ndarray:
        """4x4 camera-to-world transform for frame ``index``."""
        angle = 2.0 * math.pi * index / max(self._rate_hz * 10.0, 1.0)
        position = np.array([self._radius * math.cos(angle), 0.2, self._radius * math.sin(angle)])

        # Camera looks down its -Z axis towards the origin
        back = position / np.linalg.norm(position)
        right = np.cross([0.0, 1.0, 0.0], back)
        right /= np.linalg.norm(right)
        up = np.cross(back, right)

        transform = np.eye(4, dtype=np.float64)
        transform[:3, 0] = right
        transform[:3, 1] = up
        transform[:3, 2] = back
        transform[:3, 3] = position
        return transform

    def _render(self, index: int) -> np.ndarray:
        shift = (index * 4) % 256
        row = ((np.arange(self._width, dtype=np.uint16) + shift) % 256).astype(np.uint8)
        luma = np.broadcast_to(row, (self._height, self._width))

        if self._pixfmt == "NV12":
            chroma = np.full((self._height // 2, self._width), 128, dtype=np.uint8)
            return np.vstack([luma, chroma])

        image = np.empty((self._height, self._width, 3), dtype=np.uint8)
        image[:, :, 0] = luma
        image[:, :, 1] = 30
        image[:, :, 2] = (index * 3) % 256
        return image

    def get_stats(self) -> SourceStats:
        return SourceStats(
            frames_delivered=self._frame_index,
            rate_hz=float(self._rate_hz),
            pixel_format=self._pixfmt,
        )

    def close(self) -> None:
        self._opened = False
