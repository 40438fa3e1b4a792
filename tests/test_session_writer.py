"""Unit tests for the session log writer."""

import shutil
import tempfile
import unittest
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from unittest.mock import Mock, patch

import numpy as np

from app.events import ErrorCategory, get_error_bus
from app.pipeline.frames.pose_encoding import pose_from_transform
from app.pipeline.recording.session_writer import SessionLogWriter
from configs.settings import IntrinsicsGranularity, SessionFormatConfig, StorageConfig
from contracts import IntrinsicsRecord
from exceptions import DirectoryCreationError, SessionStateError

STARTED_AT = datetime(2026, 1, 19, 14, 3, 27)
INTRINSICS = IntrinsicsRecord(fx=496.5, fy=500.0, cx=246.25, cy=316.75, width=480, height=640)


def make_pose(ns: int):
    transform = np.eye(4)
    transform[:3, 3] = (ns * 0.001, 0.0, 1.0)
    return pose_from_transform(ns, transform)


def data_lines(path: Path) -> list:
    return [line for line in path.read_text(encoding="utf-8").splitlines() if not line.startswith("#")]


class SessionWriterTestCase(unittest.TestCase):
    """Temp directory and writer factory shared by the writer tests."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.storage = StorageConfig(root_dir=str(self.temp_dir / "sessions"), pose_batch_size=3, min_free_mb=0)
        self.session_format = SessionFormatConfig()
        get_error_bus().clear_history()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        get_error_bus().clear_history()

    def make_writer(self, **format_overrides) -> SessionLogWriter:
        session_format = replace(self.session_format, **format_overrides)
        return SessionLogWriter(self.storage, session_format)


class TestSessionLayout(SessionWriterTestCase):

    def test_directory_tree_created(self):
        writer = self.make_writer()
        session = writer.begin_session(STARTED_AT)

        self.assertEqual(session.root_dir.name, "arkit_session_2026-01-19_14-03-27")
        self.assertEqual(session.session_id, "2026-01-19_14-03-27")
        self.assertTrue(session.image_dir.is_dir())
        self.assertEqual(session.image_dir.name, "color")
        self.assertTrue(session.intrinsics_dir.is_dir())
        self.assertEqual(session.pose_log_path.name, "ARKit_camera_pose.txt")
        self.assertIsNone(session.intrinsics_log_path)
        writer.finalize()

    def test_pose_log_starts_with_creation_header(self):
        writer = self.make_writer()
        session = writer.begin_session(STARTED_AT)
        writer.finalize()

        first_line = session.pose_log_path.read_text(encoding="utf-8").splitlines()[0]
        self.assertEqual(first_line, "# Created at 2026-01-19 14:03:27")

    def test_same_second_gets_suffix(self):
        first = self.make_writer().begin_session(STARTED_AT)
        second = self.make_writer().begin_session(STARTED_AT)

        self.assertNotEqual(first.root_dir, second.root_dir)
        self.assertEqual(second.root_dir.name, "arkit_session_2026-01-19_14-03-27-1")

    def test_second_begin_on_same_writer_rejected(self):
        writer = self.make_writer()
        writer.begin_session(STARTED_AT)
        with self.assertRaises(SessionStateError):
            writer.begin_session(STARTED_AT)

    def test_unwritable_root_raises_directory_creation_error(self):
        blocker = self.temp_dir / "sessions"
        blocker.write_text("not a directory")

        with self.assertRaises(DirectoryCreationError) as ctx:
            self.make_writer().begin_session(STARTED_AT)
        self.assertIsNotNone(ctx.exception.path)

    def test_partial_failure_removes_reserved_directory(self):
        # Pose log cannot be opened after the directories were created
        self.storage = replace(self.storage, pose_log_name="missing/ARKit_camera_pose.txt")

        with self.assertRaises(DirectoryCreationError):
            self.make_writer().begin_session(STARTED_AT)
        self.assertEqual(list(Path(self.storage.root_dir).iterdir()), [])

    @patch("app.pipeline.recording.session_writer.shutil.disk_usage")
    def test_low_disk_space_reported_but_session_created(self, mock_disk_usage):
        mock_disk_usage.return_value = Mock(free=100 * 1024 ** 2)
        self.storage = replace(self.storage, min_free_mb=500)

        session = self.make_writer().begin_session(STARTED_AT)

        self.assertTrue(session.root_dir.is_dir())
        history = get_error_bus().get_history(ErrorCategory.DISK_SPACE)
        self.assertEqual(len(history), 1)
        self.assertIn("Low disk space", history[0].message)


class TestPoseBatching(SessionWriterTestCase):

    def test_flush_when_batch_full(self):
        writer = self.make_writer()
        session = writer.begin_session(STARTED_AT)

        flushed = [writer.append_pose(make_pose(ns)) for ns in range(1, 8)]

        self.assertEqual(flushed, [False, False, True, False, False, True, False])
        self.assertEqual(writer.flush_count, 2)
        self.assertEqual(writer.pending_poses, 1)
        self.assertEqual(len(data_lines(session.pose_log_path)), 6)

    def test_finalize_flushes_remainder_once(self):
        writer = self.make_writer()
        session = writer.begin_session(STARTED_AT)
        for ns in range(1, 8):
            writer.append_pose(make_pose(ns))

        writer.finalize()
        writer.finalize()

        lines = data_lines(session.pose_log_path)
        self.assertEqual([int(line.split()[0]) for line in lines], list(range(1, 8)))
        self.assertEqual(writer.flush_count, 3)
        self.assertEqual(writer.poses_written, 7)
        self.assertTrue(writer.is_finalized)

    def test_append_after_finalize_rejected(self):
        writer = self.make_writer()
        writer.begin_session(STARTED_AT)
        writer.finalize()

        with self.assertRaises(SessionStateError):
            writer.append_pose(make_pose(1))

    def test_failed_flush_discards_batch_and_reports(self):
        writer = self.make_writer()
        writer.begin_session(STARTED_AT)
        writer.append_pose(make_pose(1))
        writer.append_pose(make_pose(2))

        real_handle = writer._pose_handle
        failing = Mock()
        failing.write.side_effect = OSError("disk full")
        writer._pose_handle = failing
        writer.flush()
        writer._pose_handle = real_handle

        self.assertEqual(writer.pending_poses, 0)
        self.assertEqual(writer.poses_lost, 2)
        self.assertEqual(writer.flush_count, 0)
        history = get_error_bus().get_history(ErrorCategory.RECORDING)
        self.assertEqual(len(history), 1)
        self.assertIn("2 records lost", history[0].message)
        writer.finalize()


class TestFrameArtifacts(SessionWriterTestCase):

    def test_image_named_by_timestamp(self):
        writer = self.make_writer()
        session = writer.begin_session(STARTED_AT)

        path = writer.write_image(1700000000123456789, b"\xff\xd8jpeg")

        self.assertEqual(path, session.image_dir / "1700000000123456789.jpg")
        self.assertEqual(path.read_bytes(), b"\xff\xd8jpeg")
        self.assertEqual(writer.images_written, 1)

    def test_per_frame_intrinsics_file(self):
        writer = self.make_writer()
        session = writer.begin_session(STARTED_AT)

        path = writer.write_intrinsics(42, INTRINSICS)

        self.assertEqual(path, session.intrinsics_dir / "42.txt")
        self.assertEqual(path.read_text(encoding="utf-8"), "496.500000 500.000000 246.250000 316.750000 480 640\n")

    def test_per_session_intrinsics_written_once(self):
        writer = self.make_writer(intrinsics_granularity=IntrinsicsGranularity.PER_SESSION)
        session = writer.begin_session(STARTED_AT)

        self.assertIsNone(session.intrinsics_dir)
        self.assertEqual(writer.write_intrinsics(1, INTRINSICS), session.intrinsics_log_path)
        self.assertIsNone(writer.write_intrinsics(2, replace(INTRINSICS, fx=1.0)))
        writer.finalize()

        lines = session.intrinsics_log_path.read_text(encoding="utf-8").splitlines()
        self.assertEqual(lines[0], "# Created at 2026-01-19 14:03:27")
        self.assertEqual(lines[1], "fx, fy, ox, oy, width, height")
        self.assertEqual(lines[2:], ["496.500000, 500.000000, 246.250000, 316.750000, 480, 640"])

    def test_image_write_failure_is_reported_not_raised(self):
        writer = self.make_writer()
        session = writer.begin_session(STARTED_AT)
        shutil.rmtree(session.image_dir)

        self.assertIsNone(writer.write_image(5, b"data"))
        self.assertEqual(writer.write_failures, 1)
        self.assertEqual(len(get_error_bus().get_history(ErrorCategory.RECORDING)), 1)

        # Pose logging is unaffected
        writer.append_pose(make_pose(5))
        writer.finalize()
        self.assertEqual(writer.poses_written, 1)


if __name__ == "__main__":
    unittest.main()
