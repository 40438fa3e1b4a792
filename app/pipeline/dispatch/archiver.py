"""Session archiving into a single zip file with progress reporting."""

from __future__ import annotations

import tempfile
import time
import zipfile
from pathlib import Path
from typing import Callable, List, Optional

from exceptions import ArchiveError
from log_config.logger import get_logger, log_performance

logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]


def _noop_progress(_: float) -> None:
    return None


class SessionArchiver:
    """Compresses a session directory tree into ``<archive_dir>/<name>.zip``.

    Entries are stored under the session directory's own name, so unpacking
    the archive recreates the session folder. Progress is reported per file,
    weighted by file size, is non-decreasing and ends at exactly 1.0.
    """

    def __init__(self, archive_dir: Optional[Path] = None, compression: int = zipfile.ZIP_DEFLATED):
        self._archive_dir = Path(archive_dir) if archive_dir else Path(tempfile.gettempdir())
        self._compression = compression

    def archive_path_for(self, session_dir: Path) -> Path:
        return self._archive_dir / f"{Path(session_dir).name}.zip"

    def archive(self, session_dir: Path, progress: Optional[ProgressCallback] = None) -> Path:
        """Archive ``session_dir``, replacing any existing archive at the target path.

        Args:
            session_dir: Session directory to archive
            progress: Called with fractional progress in [0, 1]

        Returns:
            Path of the created archive

        Raises:
            ArchiveError: If the directory is missing or the archive cannot be
                written; no partial archive is left behind
        """
        session_dir = Path(session_dir)
        report = progress or _noop_progress
        if not session_dir.is_dir():
            raise ArchiveError(f"Session directory not found: {session_dir}", session_dir=session_dir)

        archive_path = self.archive_path_for(session_dir)
        started = time.perf_counter()

        try:
            self._archive_dir.mkdir(parents=True, exist_ok=True)
            if archive_path.exists():
                archive_path.unlink()

            entries = self._collect_entries(session_dir)
            files = [p for p in entries if p.is_file()]
            total_bytes = sum(p.stat().st_size for p in files)
            base = session_dir.parent

            report(0.0)
            done_bytes = 0
            done_files = 0
            last = 0.0
            with zipfile.ZipFile(archive_path, "w", compression=self._compression) as zf:
                for entry in entries:
                    zf.write(entry, entry.relative_to(base).as_posix())
                    if not entry.is_file():
                        continue
                    done_files += 1
                    done_bytes += entry.stat().st_size
                    if total_bytes > 0:
                        fraction = done_bytes / total_bytes
                    else:
                        fraction = done_files / len(files)
                    # 1.0 is reserved for the closed archive
                    fraction = min(max(fraction, last), 0.999)
                    if fraction > last:
                        report(fraction)
                        last = fraction
        except Exception as e:
            self._remove_partial(archive_path)
            logger.error(f"Failed to create archive for {session_dir}: {e}")
            raise ArchiveError(f"Failed to create zip file: {e}", session_dir=session_dir) from e

        report(1.0)
        log_performance(f"archive {session_dir.name}", (time.perf_counter() - started) * 1000.0, threshold_ms=5000.0)
        logger.info(f"Archived {len(files)} files ({total_bytes} bytes) into {archive_path}")
        return archive_path

    @staticmethod
    def _collect_entries(session_dir: Path) -> List[Path]:
        """Session directory and everything below it, directories before their contents."""
        return [session_dir] + sorted(session_dir.rglob("*"))

    @staticmethod
    def _remove_partial(archive_path: Path) -> None:
        try:
            archive_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not remove partial archive {archive_path}: {e}")


__all__ = ["SessionArchiver", "ProgressCallback"]
