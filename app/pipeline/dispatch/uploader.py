"""Multipart archive upload with send progress and failure classification."""

from __future__ import annotations

import http.client
import os
import socket
import time
import urllib.error
import urllib.request
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Optional
from urllib.parse import urlsplit

from configs.settings import SuccessStatusPolicy, UploadConfig
from exceptions import (
    HTTPFailureError,
    InvalidEndpointError,
    NetworkError,
    UploadFileError,
    UploadTimeoutError,
)
from log_config.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class UploadResult:
    status_code: int
    body: Optional[str]
    bytes_sent: int
    duration_s: float


def make_boundary() -> str:
    return f"Boundary-{uuid.uuid4()}"


def decode_body(data: Optional[bytes]) -> Optional[str]:
    """Response body as text, or None when empty or not valid UTF-8."""
    if not data:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def validate_endpoint(endpoint: str) -> str:
    try:
        parts = urlsplit(endpoint or "")
        hostname = parts.hostname
        parts.port  # raises on a malformed port
    except ValueError as e:
        raise InvalidEndpointError(endpoint) from e
    if parts.scheme not in ("http", "https") or not hostname:
        raise InvalidEndpointError(endpoint)
    return endpoint


class MultipartFileBody:
    """Readable ``multipart/form-data`` body holding exactly one file part.

    The file is streamed from disk in whatever block size the HTTP client
    asks for. ``on_sent`` receives the running byte count after each block.
    """

    def __init__(
        self,
        file_path: Path,
        boundary: str,
        field_name: str,
        content_type: str,
        on_sent: Optional[Callable[[int], None]] = None,
    ):
        self._file_path = Path(file_path)
        self._head = (
            f"\r\n--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{field_name}"; filename="{self._file_path.name}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        ).encode("utf-8")
        self._tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
        self._file_size = os.path.getsize(self._file_path)
        self.on_sent = on_sent
        self._file: Optional[BinaryIO] = None
        self._stage = 0  # 0 head, 1 file, 2 tail, 3 done
        self._offset = 0
        self.bytes_sent = 0

    def __len__(self) -> int:
        return len(self._head) + self._file_size + len(self._tail)

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self)
        chunk = self._next_chunk(size)
        if chunk:
            self.bytes_sent += len(chunk)
            if self.on_sent is not None:
                self.on_sent(self.bytes_sent)
        return chunk

    def _next_chunk(self, size: int) -> bytes:
        while self._stage < 3:
            if self._stage == 0:
                chunk = self._head[self._offset:self._offset + size]
                self._offset += len(chunk)
                if self._offset >= len(self._head):
                    self._stage, self._offset = 1, 0
                    self._file = self._file_path.open("rb")
                if chunk:
                    return chunk
            elif self._stage == 1:
                chunk = self._file.read(size)
                if chunk:
                    return chunk
                self.close()
                self._stage = 2
            else:
                chunk = self._tail[self._offset:self._offset + size]
                self._offset += len(chunk)
                if self._offset >= len(self._tail):
                    self._stage = 3
                if chunk:
                    return chunk
        return b""

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


class ArchiveUploader:
    """POSTs one archive as ``multipart/form-data`` to an endpoint.

    Send progress is ``bytes_sent / total_bytes``. While the body is on the
    wire only values below 1.0 are reported; 1.0 is reported once the
    response status satisfies the success policy.
    """

    def __init__(
        self,
        field_name: str = "file",
        content_type: str = "application/zip",
        timeout_s: float = 60.0,
        success_status: Optional[SuccessStatusPolicy] = None,
    ):
        self._field_name = field_name
        self._content_type = content_type
        self._timeout_s = timeout_s
        self._success = success_status or SuccessStatusPolicy()

    @classmethod
    def from_config(cls, upload: UploadConfig, success_status: SuccessStatusPolicy) -> "ArchiveUploader":
        return cls(
            field_name=upload.field_name,
            content_type=upload.content_type,
            timeout_s=upload.timeout_s,
            success_status=success_status,
        )

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def upload(
        self,
        file_path: Path,
        endpoint: str,
        progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """Upload ``file_path`` and return the server's answer.

        Raises:
            InvalidEndpointError: Endpoint is not an http(s) URL
            UploadFileError: Archive cannot be read
            UploadTimeoutError: No answer within the configured timeout
            NetworkError: Connection-level failure
            HTTPFailureError: Status outside the success policy
        """
        validate_endpoint(endpoint)
        file_path = Path(file_path)
        boundary = make_boundary()

        try:
            body = MultipartFileBody(file_path, boundary, self._field_name, self._content_type)
        except OSError as e:
            raise UploadFileError(file_path, e) from e
        total = len(body)

        if progress is not None:
            last_reported = [0.0]

            def on_sent(sent: int) -> None:
                fraction = min(max(sent / total, 0.0), 1.0)
                if last_reported[0] < fraction < 1.0:
                    last_reported[0] = fraction
                    progress(fraction)

            body.on_sent = on_sent

        request = urllib.request.Request(
            endpoint,
            data=body,
            method="POST",
            headers={
                "Content-Type": f"multipart/form-data; boundary={boundary}",
                "Content-Length": str(total),
            },
        )

        logger.info(f"Uploading {file_path.name} ({total} bytes) to {endpoint}")
        started = time.monotonic()
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_s) as response:
                status = response.status
                payload = response.read()
        except urllib.error.HTTPError as e:
            status = e.code
            try:
                payload = e.read()
            except OSError:
                payload = b""
            finally:
                e.close()
        except urllib.error.URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise UploadTimeoutError(self._timeout_s) from e
            raise NetworkError(e.reason if isinstance(e.reason, Exception) else e) from e
        except (socket.timeout, TimeoutError) as e:
            raise UploadTimeoutError(self._timeout_s) from e
        except (OSError, http.client.HTTPException) as e:
            raise NetworkError(e) from e
        finally:
            body.close()

        duration = time.monotonic() - started
        text = decode_body(payload)
        if not self._success.accepts(status):
            logger.error(f"Upload of {file_path.name} rejected with HTTP {status}: {text}")
            raise HTTPFailureError(status, text)

        if progress is not None:
            progress(1.0)
        logger.info(f"Upload of {file_path.name} accepted with HTTP {status} in {duration:.1f}s")
        return UploadResult(status_code=status, body=text, bytes_sent=body.bytes_sent, duration_s=duration)


__all__ = [
    "ArchiveUploader",
    "MultipartFileBody",
    "UploadResult",
    "decode_body",
    "make_boundary",
    "validate_endpoint",
]
