"""Session loader for inspecting sessions kept on disk."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from app.pipeline.frames.pose_encoding import COMMENT_PREFIX, parse_pose
from configs.settings import PoseEncoding, StorageConfig
from contracts import IntrinsicsRecord, PoseRecord
from log_config.logger import get_logger

logger = get_logger(__name__)

IMAGE_SUFFIXES = (".jpg", ".png")


def parse_intrinsics_line(line: str) -> IntrinsicsRecord:
    """Parse ``fx fy cx cy width height``, space or comma separated.

    Raises:
        ValueError: If the line does not hold six values
    """
    values = line.replace(",", " ").split()
    if len(values) != 6:
        raise ValueError(f"Expected 6 intrinsics values, got {len(values)}: {line.strip()!r}")
    fx, fy, cx, cy = (float(v) for v in values[:4])
    return IntrinsicsRecord(fx=fx, fy=fy, cx=cx, cy=cy, width=int(values[4]), height=int(values[5]))


@dataclass
class LoadedSession:
    """Represents a session read back from disk.

    Attributes:
        session_id: Directory name
        session_dir: Path to session directory
        poses: Pose records in log order
        images: Image path per nanosecond timestamp
        intrinsics: Per-frame intrinsics per nanosecond timestamp
        session_intrinsics: Session-level intrinsics, if recorded that way
        unreadable_lines: Pose log lines that could not be parsed
    """
    session_id: str
    session_dir: Path
    poses: List[PoseRecord]
    images: Dict[int, Path]
    intrinsics: Dict[int, IntrinsicsRecord] = field(default_factory=dict)
    session_intrinsics: Optional[IntrinsicsRecord] = None
    unreadable_lines: int = 0

    @property
    def frame_count(self) -> int:
        return len(self.poses)

    def orphan_images(self) -> List[int]:
        """Image timestamps with no pose record."""
        pose_keys = {p.timestamp_ns for p in self.poses}
        return sorted(ns for ns in self.images if ns not in pose_keys)

    def poses_without_images(self) -> List[int]:
        return sorted(p.timestamp_ns for p in self.poses if p.timestamp_ns not in self.images)


class SessionLoader:
    """Loads sessions left on disk, typically after a failed upload.

    Parses the session directory layout written by the session log writer
    and checks that poses, images and intrinsics line up by timestamp.
    """

    def __init__(self, storage: StorageConfig, pose_encoding: PoseEncoding = PoseEncoding.MATRIX_12):
        self._storage = storage
        self._encoding = pose_encoding

    def get_available_sessions(self, root_dir: Optional[Path] = None) -> List[Path]:
        """Scan the storage root for session directories.

        Returns:
            Session directory paths, newest first
        """
        root = Path(root_dir or self._storage.root_dir)
        if not root.exists():
            logger.warning(f"Session root does not exist: {root}")
            return []

        prefix = f"{self._storage.session_prefix}_"
        sessions = [
            item for item in root.iterdir()
            if item.is_dir() and item.name.startswith(prefix)
            and (item / self._storage.pose_log_name).exists()
        ]
        # Names embed the creation timestamp
        sessions.sort(key=lambda p: p.name, reverse=True)

        logger.info(f"Found {len(sessions)} sessions in {root}")
        return sessions

    def validate_session(self, session_dir: Path) -> Tuple[bool, str]:
        """Validate that a session directory has the expected layout.

        Returns:
            Tuple of (is_valid, error_message)
        """
        session_dir = Path(session_dir)
        if not session_dir.exists():
            return False, f"Session directory does not exist: {session_dir}"
        if not session_dir.is_dir():
            return False, f"Path is not a directory: {session_dir}"

        missing = [
            name for name in (self._storage.pose_log_name, self._storage.image_dir)
            if not (session_dir / name).exists()
        ]
        if missing:
            return False, f"Missing required files: {', '.join(missing)}"

        logger.debug(f"Session validation passed: {session_dir}")
        return True, ""

    def load_session(self, session_dir: Path) -> LoadedSession:
        """Load poses, image paths and intrinsics of one session.

        Raises:
            ValueError: If the session directory is invalid
        """
        session_dir = Path(session_dir)
        logger.info(f"Loading session from {session_dir}")

        is_valid, error_msg = self.validate_session(session_dir)
        if not is_valid:
            raise ValueError(f"Invalid session: {error_msg}")

        poses, unreadable = self._load_poses(session_dir / self._storage.pose_log_name)
        images = self._index_files(session_dir / self._storage.image_dir, IMAGE_SUFFIXES)

        intrinsics: Dict[int, IntrinsicsRecord] = {}
        intrinsics_dir = session_dir / self._storage.intrinsics_dir
        if intrinsics_dir.is_dir():
            for ns, path in self._index_files(intrinsics_dir, (".txt",)).items():
                try:
                    intrinsics[ns] = parse_intrinsics_line(path.read_text(encoding="utf-8"))
                except ValueError as e:
                    logger.warning(f"Skipping unreadable intrinsics file {path}: {e}")

        session_intrinsics = self._load_session_intrinsics(session_dir / self._storage.intrinsics_log_name)

        loaded = LoadedSession(
            session_id=session_dir.name,
            session_dir=session_dir,
            poses=poses,
            images=images,
            intrinsics=intrinsics,
            session_intrinsics=session_intrinsics,
            unreadable_lines=unreadable,
        )
        logger.info(
            f"Loaded session {loaded.session_id}: {len(poses)} poses, {len(images)} images, "
            f"{len(intrinsics)} intrinsics files"
        )
        return loaded

    def _load_poses(self, pose_log: Path) -> Tuple[List[PoseRecord], int]:
        poses: List[PoseRecord] = []
        unreadable = 0
        for line in pose_log.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith(COMMENT_PREFIX):
                continue
            try:
                poses.append(parse_pose(stripped, self._encoding))
            except ValueError as e:
                unreadable += 1
                logger.warning(f"Unreadable pose line in {pose_log}: {e}")
        return poses, unreadable

    @staticmethod
    def _index_files(directory: Path, suffixes: Tuple[str, ...]) -> Dict[int, Path]:
        index: Dict[int, Path] = {}
        if not directory.is_dir():
            return index
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() in suffixes and path.stem.isdigit():
                index[int(path.stem)] = path
        return index

    @staticmethod
    def _load_session_intrinsics(path: Path) -> Optional[IntrinsicsRecord]:
        if not path.exists():
            return None
        for line in path.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith(COMMENT_PREFIX) or stripped.startswith("fx"):
                continue
            return parse_intrinsics_line(stripped)
        return None


__all__ = ["LoadedSession", "SessionLoader", "parse_intrinsics_line"]
