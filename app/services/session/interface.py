"""SessionService interface for recording and dispatching capture sessions.

Responsibility: Own the session lifecycle from the first accepted frame to
the server acknowledging the uploaded archive.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.pipeline.recording.session_writer import Session
from contracts import FrameEvent, SessionState


def format_elapsed(seconds: float) -> str:
    """Elapsed time as ``MM:SS``."""
    total = max(int(seconds), 0)
    return f"{total // 60:02d}:{total % 60:02d}"


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time view of the controller for a UI layer.

    Attributes:
        state: Current lifecycle state
        session_id: Active session, if any
        progress: Composite archive/upload progress in [0, 1]
        message: Human-readable status line
        last_error: Message of the most recent session-level failure
        frames_recorded: Frames fully written in the current session
        frames_dropped: Frames rejected by the throttle
        frames_failed: Frames dropped by the transform stage
        elapsed_s: Recording time of the current session
    """
    state: SessionState
    session_id: Optional[str]
    progress: float
    message: str
    last_error: Optional[str]
    frames_recorded: int
    frames_dropped: int
    frames_failed: int
    elapsed_s: float

    @property
    def elapsed_label(self) -> str:
        return format_elapsed(self.elapsed_s)

    @property
    def is_busy(self) -> bool:
        return self.state not in (SessionState.IDLE, SessionState.RECORDING)


@dataclass(frozen=True)
class SessionOutcome:
    """Result of stopping a session.

    Attributes:
        session_id: Session that was dispatched
        session_dir: Session directory; removed when ``success`` is True
        success: True once the server accepted the archive
        stage: Failed stage ("archive" or "upload"), None on success
        message: Human-readable result
        status_code: HTTP status of the upload response, when one was received
        frames_recorded: Frames written during the session
        error: Exception that ended the dispatch, if any
    """
    session_id: str
    session_dir: Path
    success: bool
    stage: Optional[str]
    message: str
    status_code: Optional[int] = None
    frames_recorded: int = 0
    error: Optional[BaseException] = None


class SessionService(ABC):
    """Abstract interface for the session lifecycle.

    Thread-Safety:
        - All methods are thread-safe
        - File system and network work runs on one background worker
        - Events are published from that worker
    """

    @abstractmethod
    def start(self) -> "Future[Session]":
        """Begin a new session.

        Returns:
            Future resolving to the created Session, or raising
            DirectoryCreationError when the session cannot be created

        Raises:
            SessionStateError: If the controller is not idle
        """

    @abstractmethod
    def submit_frame(self, event: FrameEvent) -> bool:
        """Offer one frame to the active session.

        Returns:
            True if the frame was accepted for recording
        """

    @abstractmethod
    def stop(self) -> "Future[SessionOutcome]":
        """Stop recording, then archive and upload the session.

        Raises:
            SessionStateError: If no session is recording
        """

    @abstractmethod
    def get_status(self) -> StatusSnapshot:
        """Get a consistent snapshot of the controller state."""

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None:
        """Finalize any recording session and stop the background worker."""
