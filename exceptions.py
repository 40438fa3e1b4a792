"""Custom exception classes for the scene logger."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class SceneLoggerError(Exception):
    """Base exception for all scene logger errors."""

    pass


class ConfigError(SceneLoggerError):
    """Base exception for configuration errors."""

    pass


class InvalidConfigError(ConfigError):
    """Raised when configuration file is invalid or corrupted."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration fails schema validation."""

    def __init__(self, message: str, validation_errors: Optional[list] = None):
        self.validation_errors = validation_errors or []
        super().__init__(message)


class RecordingError(SceneLoggerError):
    """Base exception for recording-related errors."""

    pass


class DirectoryCreationError(RecordingError):
    """Raised when the session directory tree or its log files cannot be created."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(message)


class FileWriteError(RecordingError):
    """Raised when a single artifact write fails."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(message)


class SessionStateError(RecordingError):
    """Raised when a lifecycle command is issued in the wrong state."""

    pass


class FrameDecodeError(SceneLoggerError):
    """Raised when a frame cannot be decoded, resized or encoded."""

    def __init__(self, message: str, timestamp_ns: Optional[int] = None):
        self.timestamp_ns = timestamp_ns
        super().__init__(message)


class ArchiveError(SceneLoggerError):
    """Raised when a session directory cannot be archived."""

    def __init__(self, message: str, session_dir: Optional[Path] = None):
        self.session_dir = session_dir
        super().__init__(message)


class UploadError(SceneLoggerError):
    """Base exception for upload failures."""

    pass


class InvalidEndpointError(UploadError):
    """Raised when the upload endpoint is not a usable http(s) URL."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__("The server URL was invalid.")


class UploadFileError(UploadError):
    """Raised when the archive to upload cannot be read."""

    def __init__(self, path: Path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"File processing error: {cause}")


class NetworkError(UploadError):
    """Raised for connection-level failures other than timeouts."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Network error: {cause}")


class UploadTimeoutError(UploadError):
    """Raised when the request exceeds its configured timeout."""

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(
            "The connection timed out. Please check the server IP address "
            "and your Wi-Fi connection."
        )


class HTTPFailureError(UploadError):
    """Raised when the server answers with a status outside the success policy."""

    def __init__(self, status_code: int, server_message: Optional[str] = None):
        self.status_code = status_code
        self.server_message = server_message
        super().__init__(
            f"Upload failed with HTTP status {status_code}. "
            f"Server says: {server_message or 'No message'}"
        )
