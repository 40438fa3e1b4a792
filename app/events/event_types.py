"""Event types published by the session lifecycle controller.

All events are immutable dataclasses that flow through the EventBus. They are
published from the capture/IO worker thread; a UI that needs its own thread
marshals them in its handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from contracts import SessionState


@dataclass(frozen=True)
class SessionStateChangedEvent:
    """Published on every lifecycle transition.

    Attributes:
        previous: State before the transition
        state: State after the transition
        session_id: Session the transition belongs to, if any
        message: Human-readable status line
    """
    previous: SessionState
    state: SessionState
    session_id: Optional[str]
    message: str


@dataclass(frozen=True)
class SessionProgressEvent:
    """Published while archiving and uploading.

    Attributes:
        phase: "archive" or "upload"
        phase_progress: Progress of the current phase in [0, 1]
        overall_progress: Composite progress of both phases in [0, 1]
    """
    phase: str
    phase_progress: float
    overall_progress: float


@dataclass(frozen=True)
class SessionCompletedEvent:
    """Published after the server acknowledged the archive and local data was removed."""
    session_id: str
    status_code: int
    frames_recorded: int


@dataclass(frozen=True)
class SessionFailedEvent:
    """Published when a session-level stage fails.

    Attributes:
        session_id: Failed session, None when the session could not be created
        stage: "start", "archive" or "upload"
        message: Human-readable failure description
    """
    session_id: Optional[str]
    stage: str
    message: str
