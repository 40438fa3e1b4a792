"""SessionService implementation with EventBus integration.

Drives one session through its lifecycle:

    IDLE -> RECORDING -> FINALIZING -> ARCHIVING -> UPLOADING -> IDLE
                                           |            |
                                           +--> ERROR --+--> IDLE

Frame transform, session file I/O, archiving and uploading all run on a
single background worker, so jobs execute strictly in submission order: every
accepted frame is written before the finalize job of its session runs.
"""

from __future__ import annotations

import shutil
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from app.events import ErrorCategory, ErrorSeverity, publish_error
from app.events.event_bus import EventBus
from app.events.event_types import (
    SessionCompletedEvent,
    SessionFailedEvent,
    SessionProgressEvent,
    SessionStateChangedEvent,
)
from app.pipeline.dispatch import ArchiveUploader, CompositeProgress, SessionArchiver
from app.pipeline.frames import FrameThrottle, FrameTransformer
from app.pipeline.recording.session_writer import Session, SessionLogWriter
from app.services.session.interface import SessionOutcome, SessionService, StatusSnapshot, format_elapsed
from configs.settings import AppConfig
from contracts import FrameEvent, SessionState
from exceptions import (
    ArchiveError,
    DirectoryCreationError,
    FrameDecodeError,
    SessionStateError,
    UploadError,
)
from log_config.logger import get_logger

logger = get_logger(__name__)

MSG_READY = "Ready to Record"
MSG_FINALIZING = "Processing data..."
MSG_ARCHIVING = "Zipping files..."
MSG_UPLOADING = "Uploading to server..."
MSG_COMPLETE = "Upload Complete!"
MSG_FAILED = "Upload Failed"
MSG_SAVED = "Session saved for later upload"


class SessionLifecycleController(SessionService):
    """Session lifecycle controller.

    Features:
    - Time-based frame throttling on the caller's thread
    - Serialized transform and file writes on the capture/IO worker
    - Archive and upload dispatch after stop, with composite progress
    - Session data kept on disk whenever dispatch fails

    Thread Safety:
        - All public methods are thread-safe
        - ``submit_frame`` never blocks on disk or network I/O
        - EventBus handlers run on the worker thread
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: Optional[EventBus] = None,
        archiver: Optional[SessionArchiver] = None,
        uploader: Optional[ArchiveUploader] = None,
        endpoint: Optional[str] = None,
    ):
        """Initialize the controller.

        Args:
            config: Application configuration
            event_bus: EventBus for lifecycle events (a private one by default)
            archiver: Session archiver (built from config by default)
            uploader: Archive uploader (built from config by default)
            endpoint: Upload URL overriding ``config.upload.endpoint``
        """
        self._config = config
        self._event_bus = event_bus or EventBus()
        self._archiver = archiver or SessionArchiver(config.upload.archive_dir)
        self._uploader = uploader or ArchiveUploader.from_config(
            config.upload, config.session_format.success_status
        )
        self._endpoint = endpoint or config.upload.endpoint

        self._transformer = FrameTransformer(config.capture, config.session_format)
        self._throttle = FrameThrottle(config.capture.min_interval_ms / 1000.0)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture-io")
        self._lock = threading.Lock()

        # Lifecycle state, guarded by _lock
        self._state = SessionState.IDLE
        self._starting = False
        self._closed = False
        self._message = MSG_READY
        self._last_error: Optional[str] = None
        self._progress = 0.0

        # Active session; the writer itself is only touched on the worker
        self._session: Optional[Session] = None
        self._writer: Optional[SessionLogWriter] = None
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None

        # Counters for the current session
        self._frames_recorded = 0
        self._frames_dropped = 0
        self._frames_failed = 0

        logger.info(f"SessionLifecycleController initialized (endpoint: {self._endpoint})")

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------
    def start(self) -> "Future[Session]":
        with self._lock:
            if self._closed:
                raise SessionStateError("Controller is shut down")
            if self._state is not SessionState.IDLE or self._starting:
                raise SessionStateError(f"Cannot start a session while {self._state.value}")
            self._starting = True
            return self._executor.submit(self._begin_session)

    def _begin_session(self) -> Session:
        writer = SessionLogWriter(self._config.storage, self._config.session_format)
        try:
            session = writer.begin_session()
        except DirectoryCreationError as e:
            with self._lock:
                self._starting = False
                self._last_error = str(e)
                self._message = str(e)
            publish_error(
                category=ErrorCategory.SESSION,
                severity=ErrorSeverity.ERROR,
                message=str(e),
                source="SessionLifecycleController.start",
                exception=e,
                path=str(e.path) if e.path else None,
            )
            self._event_bus.publish(SessionFailedEvent(session_id=None, stage="start", message=str(e)))
            raise

        with self._lock:
            self._starting = False
            closed = self._closed
            if not closed:
                self._session = session
                self._writer = writer
                self._throttle.reset()
                self._frames_recorded = 0
                self._frames_dropped = 0
                self._frames_failed = 0
                self._progress = 0.0
                self._last_error = None
                self._started_at = time.monotonic()
                self._stopped_at = None

        if closed:
            # Shut down while this start was queued; nothing will record into it
            writer.finalize()
            logger.info(f"Session {session.session_id} kept at {session.root_dir} for later upload")
            self._transition(SessionState.IDLE, MSG_SAVED)
            return session

        self._transition(SessionState.RECORDING, f"Recording: {format_elapsed(0)}")
        return session

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------
    def submit_frame(self, event: FrameEvent) -> bool:
        with self._lock:
            if self._state is not SessionState.RECORDING:
                return False
            if not self._throttle.admit(event.timestamp_s):
                self._frames_dropped += 1
                return False
            # Submitted under the lock so no frame can queue behind stop()
            self._executor.submit(self._record_frame, self._writer, event)
            return True

    def _record_frame(self, writer: SessionLogWriter, event: FrameEvent) -> None:
        try:
            self._write_frame(writer, event)
        except Exception as e:
            with self._lock:
                self._frames_failed += 1
            logger.exception(f"Unexpected failure recording frame at {event.timestamp_s:.6f}s")
            publish_error(
                category=ErrorCategory.RECORDING,
                severity=ErrorSeverity.ERROR,
                message=f"Frame could not be recorded: {e}",
                source="SessionLifecycleController.submit_frame",
                exception=e,
            )

    def _write_frame(self, writer: SessionLogWriter, event: FrameEvent) -> None:
        try:
            frame = self._transformer.transform(event)
        except FrameDecodeError as e:
            with self._lock:
                self._frames_failed += 1
            logger.warning(str(e))
            publish_error(
                category=ErrorCategory.TRANSFORM,
                severity=ErrorSeverity.WARNING,
                message=str(e),
                source="SessionLifecycleController.submit_frame",
                exception=e,
                timestamp_ns=e.timestamp_ns,
            )
            return

        try:
            writer.append_pose(frame.pose)
            writer.write_image(frame.timestamp_ns, frame.image_bytes)
            writer.write_intrinsics(frame.timestamp_ns, frame.intrinsics)
        except SessionStateError as e:
            logger.warning(f"Frame {frame.timestamp_ns} arrived after finalize: {e}")
            return

        with self._lock:
            self._frames_recorded += 1

    # ------------------------------------------------------------------
    # Stop and dispatch
    # ------------------------------------------------------------------
    def stop(self) -> "Future[SessionOutcome]":
        with self._lock:
            if self._closed:
                raise SessionStateError("Controller is shut down")
            if self._state is not SessionState.RECORDING:
                raise SessionStateError(f"No session is recording (state: {self._state.value})")
            self._state = SessionState.FINALIZING
            self._message = MSG_FINALIZING
            self._stopped_at = time.monotonic()
            return self._executor.submit(self._dispatch, self._writer, self._session)

    def _dispatch(self, writer: SessionLogWriter, session: Session) -> SessionOutcome:
        self._publish_state(SessionState.RECORDING, SessionState.FINALIZING, session.session_id, MSG_FINALIZING)
        writer.finalize()
        with self._lock:
            frames_recorded = self._frames_recorded

        progress = CompositeProgress(self._config.progress.archive_share, listener=self._on_progress)

        self._transition(SessionState.ARCHIVING, MSG_ARCHIVING)
        try:
            archive_path = self._archiver.archive(session.root_dir, progress.archive)
        except ArchiveError as e:
            return self._fail(session, "archive", e, frames_recorded)
        except Exception as e:
            logger.exception(f"Unexpected archive failure for session {session.session_id}")
            return self._fail(session, "archive", e, frames_recorded)

        self._transition(SessionState.UPLOADING, MSG_UPLOADING)
        try:
            result = self._uploader.upload(archive_path, self._endpoint, progress.upload)
        except UploadError as e:
            return self._fail(session, "upload", e, frames_recorded)
        except Exception as e:
            logger.exception(f"Unexpected upload failure for session {session.session_id}")
            return self._fail(session, "upload", e, frames_recorded)
        finally:
            self._discard_archive(archive_path)

        self._remove_session_dir(session.root_dir)
        with self._lock:
            self._progress = 1.0
            self._session = None
            self._writer = None
        self._transition(SessionState.IDLE, MSG_COMPLETE)
        self._event_bus.publish(
            SessionCompletedEvent(
                session_id=session.session_id,
                status_code=result.status_code,
                frames_recorded=frames_recorded,
            )
        )
        logger.info(f"Session {session.session_id} uploaded with HTTP {result.status_code}")
        return SessionOutcome(
            session_id=session.session_id,
            session_dir=session.root_dir,
            success=True,
            stage=None,
            message=MSG_COMPLETE,
            status_code=result.status_code,
            frames_recorded=frames_recorded,
        )

    def _fail(self, session: Session, stage: str, error: Exception, frames_recorded: int) -> SessionOutcome:
        message = str(error)
        with self._lock:
            self._last_error = message
        self._transition(SessionState.ERROR, message)

        publish_error(
            category=ErrorCategory.NETWORK if stage == "upload" else ErrorCategory.ARCHIVE,
            severity=ErrorSeverity.ERROR,
            message=message,
            source=f"SessionLifecycleController.{stage}",
            exception=error,
            session_dir=str(session.root_dir),
        )
        self._event_bus.publish(SessionFailedEvent(session_id=session.session_id, stage=stage, message=message))
        logger.error(f"Session {session.session_id} {stage} failed, data kept at {session.root_dir}: {message}")

        with self._lock:
            self._session = None
            self._writer = None
        self._transition(SessionState.IDLE, MSG_FAILED)
        return SessionOutcome(
            session_id=session.session_id,
            session_dir=session.root_dir,
            success=False,
            stage=stage,
            message=message,
            status_code=getattr(error, "status_code", None),
            frames_recorded=frames_recorded,
            error=error,
        )

    def _on_progress(self, phase: str, phase_progress: float, overall: float) -> None:
        with self._lock:
            self._progress = overall
        self._event_bus.publish(
            SessionProgressEvent(phase=phase, phase_progress=phase_progress, overall_progress=overall)
        )

    @staticmethod
    def _discard_archive(archive_path: Path) -> None:
        try:
            Path(archive_path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to delete archive {archive_path}: {e}")

    @staticmethod
    def _remove_session_dir(session_dir: Path) -> None:
        try:
            shutil.rmtree(session_dir)
        except OSError as e:
            # The server already has the data; a leftover directory is only clutter
            logger.error(f"Failed to delete session directory {session_dir}: {e}")
            publish_error(
                category=ErrorCategory.RECORDING,
                severity=ErrorSeverity.WARNING,
                message=f"Uploaded session was not removed: {e}",
                source="SessionLifecycleController._remove_session_dir",
                exception=e,
                session_dir=str(session_dir),
            )
        else:
            logger.info(f"Removed uploaded session {session_dir}")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def _transition(self, state: SessionState, message: str) -> None:
        with self._lock:
            previous = self._state
            self._state = state
            self._message = message
            session_id = self._session.session_id if self._session else None
        self._publish_state(previous, state, session_id, message)

    def _publish_state(
        self,
        previous: SessionState,
        state: SessionState,
        session_id: Optional[str],
        message: str,
    ) -> None:
        logger.info(f"Session state {previous.value} -> {state.value}: {message}")
        self._event_bus.publish(
            SessionStateChangedEvent(previous=previous, state=state, session_id=session_id, message=message)
        )

    def get_status(self) -> StatusSnapshot:
        with self._lock:
            elapsed = self._elapsed_locked()
            message = self._message
            if self._state is SessionState.RECORDING:
                message = f"Recording: {format_elapsed(elapsed)}"
            return StatusSnapshot(
                state=self._state,
                session_id=self._session.session_id if self._session else None,
                progress=self._progress,
                message=message,
                last_error=self._last_error,
                frames_recorded=self._frames_recorded,
                frames_dropped=self._frames_dropped,
                frames_failed=self._frames_failed,
                elapsed_s=elapsed,
            )

    def _elapsed_locked(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else time.monotonic()
        return end - self._started_at

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------
    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; a recording session is finalized but not uploaded."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._state is SessionState.RECORDING:
                self._state = SessionState.FINALIZING
                self._message = MSG_FINALIZING
                self._stopped_at = time.monotonic()
                self._executor.submit(self._finalize_only, self._writer, self._session)
        self._executor.shutdown(wait=wait)
        logger.info("SessionLifecycleController shut down")

    def _finalize_only(self, writer: SessionLogWriter, session: Session) -> None:
        self._publish_state(SessionState.RECORDING, SessionState.FINALIZING, session.session_id, MSG_FINALIZING)
        writer.finalize()
        logger.info(f"Session {session.session_id} kept at {session.root_dir} for later upload")
        with self._lock:
            self._session = None
            self._writer = None
        self._transition(SessionState.IDLE, MSG_SAVED)

    def __enter__(self) -> "SessionLifecycleController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)


__all__ = ["SessionLifecycleController"]
