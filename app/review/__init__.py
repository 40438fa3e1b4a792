"""Inspection of sessions kept on disk."""

from .session_loader import LoadedSession, SessionLoader, parse_intrinsics_line

__all__ = ["LoadedSession", "SessionLoader", "parse_intrinsics_line"]
