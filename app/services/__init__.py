"""Service layer for the scene logger.

├── session/     - Session lifecycle: record, finalize, archive, upload

Each service module contains:
- interface.py: Abstract base class defining the contract
- implementation.py: Concrete implementation
"""

from .session import SessionLifecycleController, SessionOutcome, SessionService, StatusSnapshot

__all__ = [
    "SessionLifecycleController",
    "SessionOutcome",
    "SessionService",
    "StatusSnapshot",
]
