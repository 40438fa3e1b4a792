"""Tests for pose log line encoding and parsing."""

from __future__ import annotations

import math

import numpy as np
import pytest

from app.pipeline.frames.pose_encoding import (
    encode_pose,
    iter_pose_lines,
    parse_pose,
    pose_from_transform,
    rotation_to_vector,
    vector_to_rotation,
)
from configs.settings import PoseEncoding


def make_transform(angle: float = 0.3, translation=(0.5, -1.25, 2.0)) -> np.ndarray:
    """Rotation about Y followed by a translation."""
    c, s = math.cos(angle), math.sin(angle)
    transform = np.eye(4)
    transform[:3, :3] = [[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]]
    transform[:3, 3] = translation
    return transform


class TestPoseFromTransform:

    def test_splits_rotation_and_translation(self):
        transform = make_transform()
        pose = pose_from_transform(42, transform)

        assert pose.timestamp_ns == 42
        np.testing.assert_allclose(pose.rotation, transform[:3, :3])
        assert pose.translation == (0.5, -1.25, 2.0)

    def test_accepts_3x4(self):
        pose = pose_from_transform(1, make_transform()[:3, :])
        assert len(pose.rotation) == 3

    @pytest.mark.parametrize("bad", [np.eye(3), np.zeros((2, 4))])
    def test_rejects_wrong_shape(self, bad):
        with pytest.raises(ValueError, match="4x4"):
            pose_from_transform(1, bad)

    def test_rejects_non_finite(self):
        transform = make_transform()
        transform[0, 3] = np.nan
        with pytest.raises(ValueError, match="non-finite"):
            pose_from_transform(1, transform)


class TestMatrixEncoding:

    def test_line_layout(self):
        pose = pose_from_transform(1700000000123456789, make_transform(0.0, (1.0, 2.0, 3.0)))
        line = encode_pose(pose, PoseEncoding.MATRIX_12)

        assert line.endswith("\n")
        fields = line.split()
        assert fields[0] == "1700000000123456789"
        assert len(fields) == 13
        # Row-major [R|t]: each row is three rotation values then one translation value
        assert fields[1:5] == ["1.000000", "0.000000", "0.000000", "1.000000"]
        assert fields[5:9] == ["0.000000", "1.000000", "0.000000", "2.000000"]
        assert fields[9:13] == ["0.000000", "0.000000", "1.000000", "3.000000"]

    def test_parse_recovers_pose(self):
        pose = pose_from_transform(99, make_transform())
        parsed = parse_pose(encode_pose(pose, PoseEncoding.MATRIX_12), PoseEncoding.MATRIX_12)

        assert parsed.timestamp_ns == 99
        np.testing.assert_allclose(parsed.rotation, pose.rotation, atol=1e-5)
        np.testing.assert_allclose(parsed.translation, pose.translation, atol=1e-5)

    def test_parse_rejects_short_line(self):
        with pytest.raises(ValueError, match="Expected 13 fields"):
            parse_pose("1 2 3", PoseEncoding.MATRIX_12)


class TestRotationVectorEncoding:

    def test_line_has_seven_fields(self):
        pose = pose_from_transform(7, make_transform())
        fields = encode_pose(pose, PoseEncoding.ROTVEC_7).split()

        assert len(fields) == 7
        # Rotation of 0.3 rad about Y
        assert float(fields[1]) == pytest.approx(0.0, abs=1e-6)
        assert float(fields[2]) == pytest.approx(0.3, abs=1e-6)
        assert float(fields[3]) == pytest.approx(0.0, abs=1e-6)

    def test_parse_recovers_rotation_matrix(self):
        pose = pose_from_transform(7, make_transform(1.1))
        parsed = parse_pose(encode_pose(pose, PoseEncoding.ROTVEC_7), PoseEncoding.ROTVEC_7)

        np.testing.assert_allclose(parsed.rotation, pose.rotation, atol=1e-5)
        np.testing.assert_allclose(parsed.translation, pose.translation, atol=1e-5)

    def test_vector_helpers_are_inverse(self):
        rotation = make_transform(-0.7)[:3, :3]
        np.testing.assert_allclose(vector_to_rotation(rotation_to_vector(rotation)), rotation, atol=1e-9)


def test_iter_pose_lines_skips_comments_and_blanks():
    pose = pose_from_transform(5, make_transform())
    lines = ["# Created at 2026-01-19 14:03:27\n", "\n", encode_pose(pose, PoseEncoding.MATRIX_12)]

    records = list(iter_pose_lines(lines, PoseEncoding.MATRIX_12))

    assert [r.timestamp_ns for r in records] == [5]
