"""Tests for loading sessions kept on disk."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import numpy as np
import pytest

from app.pipeline.frames.pose_encoding import pose_from_transform
from app.pipeline.recording.session_writer import SessionLogWriter
from app.review import SessionLoader, parse_intrinsics_line
from configs.settings import IntrinsicsGranularity, PoseEncoding, SessionFormatConfig, StorageConfig
from contracts import IntrinsicsRecord

INTRINSICS = IntrinsicsRecord(fx=500.0, fy=501.0, cx=240.0, cy=320.0, width=480, height=640)


def write_session(storage: StorageConfig, session_format: SessionFormatConfig, started_at: datetime, count: int = 3):
    writer = SessionLogWriter(storage, session_format)
    session = writer.begin_session(started_at)
    for ns in range(1, count + 1):
        writer.append_pose(pose_from_transform(ns * 1000, np.eye(4)))
        writer.write_image(ns * 1000, b"\xff\xd8")
        writer.write_intrinsics(ns * 1000, INTRINSICS)
    writer.finalize()
    return session


@pytest.fixture
def storage(tmp_path: Path) -> StorageConfig:
    return StorageConfig(root_dir=str(tmp_path / "sessions"), pose_batch_size=2, min_free_mb=0)


class TestParseIntrinsicsLine:

    def test_space_separated(self):
        assert parse_intrinsics_line("500.0 501.0 240.0 320.0 480 640\n") == INTRINSICS

    def test_comma_separated(self):
        assert parse_intrinsics_line("500.0, 501.0, 240.0, 320.0, 480, 640") == INTRINSICS

    def test_wrong_field_count(self):
        with pytest.raises(ValueError, match="Expected 6"):
            parse_intrinsics_line("1 2 3")


class TestSessionLoader:

    def test_available_sessions_newest_first(self, storage):
        older = write_session(storage, SessionFormatConfig(), datetime(2026, 1, 18, 9, 0, 0))
        newer = write_session(storage, SessionFormatConfig(), datetime(2026, 1, 19, 9, 0, 0))
        (Path(storage.root_dir) / "unrelated").mkdir()

        sessions = SessionLoader(storage).get_available_sessions()

        assert sessions == [newer.root_dir, older.root_dir]

    def test_missing_root(self, tmp_path, storage):
        assert SessionLoader(storage).get_available_sessions(tmp_path / "nowhere") == []

    def test_load_per_frame_session(self, storage):
        session = write_session(storage, SessionFormatConfig(), datetime(2026, 1, 19, 9, 0, 0))

        loaded = SessionLoader(storage).load_session(session.root_dir)

        assert loaded.frame_count == 3
        assert [p.timestamp_ns for p in loaded.poses] == [1000, 2000, 3000]
        assert sorted(loaded.images) == [1000, 2000, 3000]
        assert loaded.intrinsics[2000] == INTRINSICS
        assert loaded.session_intrinsics is None
        assert loaded.orphan_images() == []
        assert loaded.poses_without_images() == []

    def test_load_per_session_intrinsics(self, storage):
        session_format = SessionFormatConfig(intrinsics_granularity=IntrinsicsGranularity.PER_SESSION)
        session = write_session(storage, session_format, datetime(2026, 1, 19, 9, 0, 0))

        loaded = SessionLoader(storage).load_session(session.root_dir)

        assert loaded.intrinsics == {}
        assert loaded.session_intrinsics == INTRINSICS

    def test_rotation_vector_log(self, storage):
        session_format = SessionFormatConfig(pose_encoding=PoseEncoding.ROTVEC_7)
        session = write_session(storage, session_format, datetime(2026, 1, 19, 9, 0, 0))

        loaded = SessionLoader(storage, PoseEncoding.ROTVEC_7).load_session(session.root_dir)

        assert loaded.frame_count == 3
        np.testing.assert_allclose(loaded.poses[0].rotation, np.eye(3), atol=1e-6)

    def test_unreadable_lines_counted(self, storage):
        session = write_session(storage, SessionFormatConfig(), datetime(2026, 1, 19, 9, 0, 0))
        with session.pose_log_path.open("a") as f:
            f.write("garbage line\n")

        loaded = SessionLoader(storage).load_session(session.root_dir)

        assert loaded.frame_count == 3
        assert loaded.unreadable_lines == 1

    def test_missing_image_detected(self, storage):
        session = write_session(storage, SessionFormatConfig(), datetime(2026, 1, 19, 9, 0, 0))
        (session.image_dir / "2000.jpg").unlink()

        loaded = SessionLoader(storage).load_session(session.root_dir)

        assert loaded.poses_without_images() == [2000]

    def test_validate_session(self, tmp_path, storage):
        loader = SessionLoader(storage)
        assert loader.validate_session(tmp_path / "missing")[0] is False

        incomplete = tmp_path / "arkit_session_x"
        incomplete.mkdir()
        is_valid, error = loader.validate_session(incomplete)
        assert not is_valid
        assert "ARKit_camera_pose.txt" in error

    def test_load_invalid_session_raises(self, tmp_path, storage):
        with pytest.raises(ValueError, match="Invalid session"):
            SessionLoader(storage).load_session(tmp_path)

    def test_custom_layout_names(self, tmp_path):
        storage = StorageConfig(
            root_dir=str(tmp_path / "scans"),
            session_prefix="scan",
            image_dir="rgb",
            pose_log_name="poses.txt",
            min_free_mb=0,
        )
        session = write_session(storage, SessionFormatConfig(), datetime(2026, 1, 19, 9, 0, 0))

        loader = SessionLoader(storage)
        assert loader.get_available_sessions() == [session.root_dir]
        assert loader.load_session(session.root_dir).frame_count == 3
