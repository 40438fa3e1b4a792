"""Session service module - Recording and dispatch of capture sessions.

This module provides the session lifecycle controller, its status snapshot
and the outcome returned when a session is stopped.
"""

from .interface import SessionOutcome, SessionService, StatusSnapshot
from .implementation import SessionLifecycleController

__all__ = ["SessionLifecycleController", "SessionOutcome", "SessionService", "StatusSnapshot"]
