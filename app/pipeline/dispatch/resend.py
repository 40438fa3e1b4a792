"""Dispatch of a session directory left on disk by an earlier failure."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, Optional

from app.pipeline.dispatch.archiver import SessionArchiver
from app.pipeline.dispatch.progress import CompositeProgress
from app.pipeline.dispatch.retry import RetryPolicy, call_with_retry
from app.pipeline.dispatch.uploader import ArchiveUploader, UploadResult
from log_config.logger import get_logger

logger = get_logger(__name__)


def resend_session(
    session_dir: Path,
    archiver: SessionArchiver,
    uploader: ArchiveUploader,
    endpoint: str,
    retry: Optional[RetryPolicy] = None,
    progress: Optional[CompositeProgress] = None,
    keep_local: bool = False,
    sleep: Optional[Callable[[float], None]] = None,
) -> UploadResult:
    """Archive and upload ``session_dir`` with retries.

    The archive is rebuilt once and deleted after the last attempt whatever
    the outcome. The session directory is removed only after the server
    accepted the upload, and only when ``keep_local`` is False.

    Raises:
        ArchiveError: If the archive cannot be created
        UploadError: If the final upload attempt fails
    """
    session_dir = Path(session_dir)
    progress = progress or CompositeProgress()
    archive_path = archiver.archive(session_dir, progress.archive)

    kwargs = {"sleep": sleep} if sleep is not None else {}
    try:
        result = call_with_retry(
            uploader.upload, retry or RetryPolicy(), archive_path, endpoint, progress.upload, **kwargs
        )
    finally:
        try:
            archive_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to delete archive {archive_path}: {e}")

    if not keep_local:
        shutil.rmtree(session_dir)
        logger.info(f"Removed uploaded session {session_dir}")
    return result


__all__ = ["resend_session"]
