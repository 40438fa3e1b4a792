"""Application version metadata for recorded sessions."""

from __future__ import annotations

APP_VERSION = "0.4.0"


def created_header(created_at: str) -> str:
    """Comment line written at the top of every session text log."""
    return f"# Created at {created_at}\n"
