"""Tests for the simulated frame source."""

from __future__ import annotations

import numpy as np
import pytest

from app.pipeline.frames.pose_encoding import pose_from_transform
from capture import SimulatedFrameSource


class TestSimulatedFrameSource:

    def test_bounded_iteration(self):
        frames = list(SimulatedFrameSource(width=64, height=48, max_frames=5))
        assert len(frames) == 5

    def test_exact_frame_spacing(self):
        frames = list(SimulatedFrameSource(width=64, height=48, rate_hz=50.0, max_frames=4))
        assert [f.timestamp_ns for f in frames] == [0, 20_000_000, 40_000_000, 60_000_000]

    def test_bgr_frames(self):
        frame = next(iter(SimulatedFrameSource(width=64, height=48, max_frames=1)))

        assert frame.pixel_format == "BGR"
        assert frame.image.shape == (48, 64, 3)
        assert (frame.native_width, frame.native_height) == (64, 48)
        assert frame.intrinsics[0, 2] == 32.0

    def test_nv12_frames(self):
        frame = next(iter(SimulatedFrameSource(width=64, height=48, pixel_format="NV12", max_frames=1)))
        assert frame.image.shape == (72, 64)

    def test_poses_are_rigid_transforms(self):
        source = SimulatedFrameSource(width=64, height=48)
        for index in (0, 7, 123):
            transform = source.pose_at(index)
            rotation = transform[:3, :3]
            np.testing.assert_allclose(rotation @ rotation.T, np.eye(3), atol=1e-9)
            assert np.linalg.det(rotation) == pytest.approx(1.0)
            pose_from_transform(index, transform)

    def test_poses_change_between_frames(self):
        source = SimulatedFrameSource(width=64, height=48)
        assert not np.allclose(source.pose_at(0), source.pose_at(1))

    def test_read_requires_open(self):
        with pytest.raises(RuntimeError):
            SimulatedFrameSource().read_frame()

    def test_stats(self):
        source = SimulatedFrameSource(width=64, height=48, rate_hz=30.0, max_frames=3)
        list(source)
        stats = source.get_stats()
        assert stats.frames_delivered == 3
        assert stats.rate_hz == 30.0

    @pytest.mark.parametrize("kwargs", [{"pixel_format": "YUYV"}, {"pixel_format": "NV12", "width": 63}])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValueError):
            SimulatedFrameSource(**kwargs)
