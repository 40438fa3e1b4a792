"""Session log writer: on-disk layout, batched pose log and per-frame artifacts.

Layout of one session::

    <root_dir>/<prefix>_<YYYY-mm-dd_HH-MM-SS>/
        <pose_log_name>              append-only pose log
        <image_dir>/<ns>.jpg|.png    one image per accepted frame
        <intrinsics_dir>/<ns>.txt    per-frame intrinsics (per_frame granularity)
        <intrinsics_log_name>        single intrinsics line (per_session granularity)

Directory names, file names and the nanosecond timestamp keys are read by
server-side processing and must stay stable.

All methods are meant to be called from a single worker thread; the writer
does no locking of its own.
"""

from __future__ import annotations

import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, List, Optional, Tuple

from app.events import ErrorCategory, ErrorSeverity, publish_error
from app.pipeline.frames.pose_encoding import encode_pose
from configs.settings import IntrinsicsGranularity, SessionFormatConfig, StorageConfig
from contracts import IntrinsicsRecord, PoseRecord
from contracts.versioning import created_header
from exceptions import DirectoryCreationError, FileWriteError, SessionStateError
from log_config.logger import get_logger

logger = get_logger(__name__)

SESSION_TIME_FORMAT = "%Y-%m-%d_%H-%M-%S"
HEADER_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
SESSION_INTRINSICS_HEADER = "fx, fy, ox, oy, width, height\n"


def format_intrinsics_line(record: IntrinsicsRecord) -> str:
    """Per-frame intrinsics file body: ``fx fy cx cy width height``."""
    return f"{record.fx:.6f} {record.fy:.6f} {record.cx:.6f} {record.cy:.6f} {record.width:d} {record.height:d}\n"


def format_session_intrinsics_line(record: IntrinsicsRecord) -> str:
    return f"{record.fx:.6f}, {record.fy:.6f}, {record.cx:.6f}, {record.cy:.6f}, {record.width:d}, {record.height:d}\n"


@dataclass
class Session:
    """One recording interval and the files it owns.

    Attributes:
        session_id: Creation timestamp string, also the directory suffix
        root_dir: Session directory
        image_dir: Directory receiving one image per accepted frame
        pose_log_path: Append-only pose log
        intrinsics_dir: Per-frame intrinsics directory (per_frame only)
        intrinsics_log_path: Session-level intrinsics file (per_session only)
        created_at: Wall-clock creation time
    """
    session_id: str
    root_dir: Path
    image_dir: Path
    pose_log_path: Path
    intrinsics_dir: Optional[Path] = None
    intrinsics_log_path: Optional[Path] = None
    created_at: datetime = field(default_factory=datetime.now)


class SessionLogWriter:
    """Owns every on-disk artifact of one session.

    Pose records are kept in memory and appended to the pose log in batches
    of ``storage.pose_batch_size``; a crash loses at most one batch.
    Image and intrinsics writes are independent files and a failure there
    only costs that frame's artifact.
    """

    def __init__(self, storage: StorageConfig, session_format: SessionFormatConfig):
        self._storage = storage
        self._format = session_format
        self._session: Optional[Session] = None
        self._pose_handle: Optional[IO[str]] = None
        self._intrinsics_handle: Optional[IO[str]] = None
        self._batch: List[str] = []
        self._finalized = False
        self._session_intrinsics_written = False

        # Counters
        self.flush_count = 0
        self.poses_written = 0
        self.poses_lost = 0
        self.images_written = 0
        self.write_failures = 0

    # ------------------------------------------------------------------
    # Session creation
    # ------------------------------------------------------------------
    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def pending_poses(self) -> int:
        return len(self._batch)

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    def begin_session(self, started_at: Optional[datetime] = None) -> Session:
        """Create the session directory tree and open its log files.

        Raises:
            SessionStateError: If this writer already owns a session
            DirectoryCreationError: If any directory or log file cannot be created
        """
        if self._session is not None:
            raise SessionStateError(f"Writer already owns session {self._session.session_id}")

        started_at = started_at or datetime.now()
        root = Path(self._storage.root_dir)
        granularity = self._format.intrinsics_granularity
        session_dir: Optional[Path] = None

        try:
            root.mkdir(parents=True, exist_ok=True)
            self._check_disk_space(root)
            session_id, session_dir = self._reserve_directory(root, started_at)

            session = Session(
                session_id=session_id,
                root_dir=session_dir,
                image_dir=session_dir / self._storage.image_dir,
                pose_log_path=session_dir / self._storage.pose_log_name,
                created_at=started_at,
            )
            session.image_dir.mkdir()
            if granularity is IntrinsicsGranularity.PER_FRAME:
                session.intrinsics_dir = session_dir / self._storage.intrinsics_dir
                session.intrinsics_dir.mkdir()

            header = created_header(started_at.strftime(HEADER_TIME_FORMAT))
            self._pose_handle = session.pose_log_path.open("a", encoding="utf-8")
            self._pose_handle.write(header)
            self._pose_handle.flush()

            if granularity is IntrinsicsGranularity.PER_SESSION:
                session.intrinsics_log_path = session_dir / self._storage.intrinsics_log_name
                self._intrinsics_handle = session.intrinsics_log_path.open("a", encoding="utf-8")
                self._intrinsics_handle.write(header + SESSION_INTRINSICS_HEADER)
                self._intrinsics_handle.flush()
        except OSError as e:
            self._close_handles()
            logger.error(f"Failed to create session directory under {root}: {e}")
            if session_dir is not None:
                self._remove_partial_session(session_dir)
            raise DirectoryCreationError("Failed to create session directory.", path=session_dir or root) from e

        self._session = session
        logger.info(f"Session recording started: {session.root_dir}")
        return session

    @staticmethod
    def _remove_partial_session(session_dir: Path) -> None:
        try:
            shutil.rmtree(session_dir)
        except OSError as cleanup_error:
            logger.warning(f"Failed to remove partial session {session_dir}: {cleanup_error}")

    def _reserve_directory(self, root: Path, started_at: datetime) -> Tuple[str, Path]:
        stamp = started_at.strftime(SESSION_TIME_FORMAT)
        for attempt in range(100):
            session_id = stamp if attempt == 0 else f"{stamp}-{attempt}"
            session_dir = root / f"{self._storage.session_prefix}_{session_id}"
            try:
                session_dir.mkdir()
                return session_id, session_dir
            except FileExistsError:
                continue
        raise FileExistsError(f"No free session directory name for {stamp} under {root}")

    def _check_disk_space(self, root: Path) -> None:
        free_mb = shutil.disk_usage(root).free / (1024 ** 2)
        if free_mb < self._storage.min_free_mb:
            logger.warning(
                f"Low disk space: {free_mb:.0f}MB available on {root} "
                f"(recommended: {self._storage.min_free_mb:.0f}MB)"
            )
            publish_error(
                category=ErrorCategory.DISK_SPACE,
                severity=ErrorSeverity.WARNING,
                message=f"Low disk space: {free_mb:.0f}MB remaining",
                source="SessionLogWriter.begin_session",
                free_mb=free_mb,
            )

    # ------------------------------------------------------------------
    # Pose batching
    # ------------------------------------------------------------------
    def append_pose(self, record: PoseRecord) -> bool:
        """Buffer one pose record, flushing when the batch is full.

        Returns:
            True if this call triggered a flush
        """
        self._require_open()
        self._batch.append(encode_pose(record, self._format.pose_encoding))
        if len(self._batch) >= self._storage.pose_batch_size:
            self.flush()
            return True
        return False

    def flush(self) -> None:
        """Append the buffered batch to the pose log and clear it.

        A failed write is reported and the batch is discarded so memory stays
        bounded; the bytes already in the log are never rewritten.
        """
        if not self._batch or self._pose_handle is None:
            return

        batch, self._batch = self._batch, []
        try:
            self._pose_handle.write("".join(batch))
            self._pose_handle.flush()
        except OSError as e:
            self.poses_lost += len(batch)
            self.write_failures += 1
            publish_error(
                category=ErrorCategory.RECORDING,
                severity=ErrorSeverity.ERROR,
                message=f"Pose log flush failed, {len(batch)} records lost",
                source="SessionLogWriter.flush",
                exception=e,
                path=str(self._session.pose_log_path) if self._session else None,
            )
            return

        self.flush_count += 1
        self.poses_written += len(batch)
        logger.debug(f"Flushed {len(batch)} pose records (flush #{self.flush_count})")

    # ------------------------------------------------------------------
    # Per-frame artifacts
    # ------------------------------------------------------------------
    def write_image(self, timestamp_ns: int, data: bytes) -> Optional[Path]:
        """Write one encoded image named by its nanosecond timestamp.

        Returns:
            Path written, or None if the write failed
        """
        session = self._require_open()
        path = session.image_dir / f"{timestamp_ns:d}{self._format.image_format.extension}"
        if self._write_artifact(path, data, "SessionLogWriter.write_image"):
            self.images_written += 1
            return path
        return None

    def write_intrinsics(self, timestamp_ns: int, record: IntrinsicsRecord) -> Optional[Path]:
        """Write intrinsics for one frame according to the configured granularity.

        Per-session granularity writes a single line for the first frame and
        ignores the rest.

        Returns:
            Path written, or None if nothing was written
        """
        session = self._require_open()

        if session.intrinsics_dir is not None:
            path = session.intrinsics_dir / f"{timestamp_ns:d}.txt"
            if self._write_artifact(path, format_intrinsics_line(record).encode("utf-8"),
                                    "SessionLogWriter.write_intrinsics"):
                return path
            return None

        if self._session_intrinsics_written or self._intrinsics_handle is None:
            return None
        try:
            self._intrinsics_handle.write(format_session_intrinsics_line(record))
            self._intrinsics_handle.flush()
        except OSError as e:
            self._report_write_failure(session.intrinsics_log_path, e, "SessionLogWriter.write_intrinsics")
            return None
        self._session_intrinsics_written = True
        return session.intrinsics_log_path

    def _write_artifact(self, path: Path, data: bytes, source: str) -> bool:
        try:
            path.write_bytes(data)
        except OSError as e:
            self._report_write_failure(path, e, source)
            return False
        return True

    def _report_write_failure(self, path: Optional[Path], error: OSError, source: str) -> None:
        self.write_failures += 1
        failure = FileWriteError(f"Failed to write {path}: {error}", path=path)
        publish_error(
            category=ErrorCategory.RECORDING,
            severity=ErrorSeverity.CRITICAL if self.write_failures >= 10 else ErrorSeverity.WARNING,
            message=str(failure),
            source=source,
            exception=error,
            total_failures=self.write_failures,
        )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------
    def finalize(self) -> None:
        """Flush the remaining batch and close every handle.

        Safe to call more than once; later calls do nothing.
        """
        if self._finalized:
            return
        self._finalized = True

        started = time.perf_counter()
        try:
            self.flush()
        finally:
            self._close_handles()

        if self._session is not None:
            logger.info(
                f"Session {self._session.session_id} finalized: {self.poses_written} poses, "
                f"{self.images_written} images, {self.write_failures} write failures "
                f"({(time.perf_counter() - started) * 1000.0:.1f}ms)"
            )

    def _close_handles(self) -> None:
        for attr in ("_pose_handle", "_intrinsics_handle"):
            handle = getattr(self, attr)
            if handle is None:
                continue
            setattr(self, attr, None)
            try:
                handle.close()
            except OSError as e:
                logger.error(f"Failed to close {getattr(handle, 'name', handle)}: {e}")

    def _require_open(self) -> Session:
        if self._session is None or self._finalized:
            raise SessionStateError("No open session")
        return self._session


__all__ = ["Session", "SessionLogWriter", "format_intrinsics_line", "format_session_intrinsics_line"]
