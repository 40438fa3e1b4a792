"""Shared fixtures: a local multipart upload server and test configuration."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from email.message import Message
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import List, Optional

import pytest

from app.events import get_error_bus
from configs.settings import AppConfig, SuccessStatusPolicy


@dataclass
class ReceivedUpload:
    path: str
    headers: Message
    body: bytes

    @property
    def boundary(self) -> bytes:
        content_type = self.headers["Content-Type"]
        return content_type.split("boundary=", 1)[1].encode("utf-8")

    def file_part(self) -> bytes:
        """Payload of the single file part."""
        parts = self.body.split(b"--" + self.boundary)
        part = parts[1]
        return part.split(b"\r\n\r\n", 1)[1][:-2]

    def part_headers(self) -> str:
        part = self.body.split(b"--" + self.boundary)[1]
        return part.split(b"\r\n\r\n", 1)[0].decode("utf-8")


@dataclass
class UploadServer:
    """Answers every POST with a fixed status and body."""

    url: str
    status: int = 200
    body: bytes = b"ok"
    delay_s: float = 0.0
    requests: List[ReceivedUpload] = field(default_factory=list)


def _make_handler(state: UploadServer):
    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length", "0"))
            data = self.rfile.read(length)
            state.requests.append(ReceivedUpload(self.path, self.headers, data))
            if state.delay_s:
                time.sleep(state.delay_s)
            self.send_response(state.status)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(state.body)))
            self.end_headers()
            self.wfile.write(state.body)

        def log_message(self, format, *args):
            return None

    return Handler


@pytest.fixture
def upload_server():
    state = UploadServer(url="")
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(state))
    state.url = f"http://127.0.0.1:{server.server_address[1]}/process-scene"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield state
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5.0)


@pytest.fixture
def error_bus():
    bus = get_error_bus()
    bus.clear_history()
    yield bus
    bus.clear_history()


def make_test_config(
    tmp_path: Path,
    endpoint: str = "http://127.0.0.1:9/process-scene",
    pose_batch_size: int = 40,
    success_status: Optional[SuccessStatusPolicy] = None,
    timeout_s: float = 5.0,
) -> AppConfig:
    """AppConfig writing under ``tmp_path`` with a small target size."""
    config = AppConfig()
    return replace(
        config,
        capture=replace(config.capture, target_long_edge_px=160),
        session_format=replace(
            config.session_format,
            success_status=success_status or config.session_format.success_status,
        ),
        storage=replace(
            config.storage,
            root_dir=str(tmp_path / "sessions"),
            pose_batch_size=pose_batch_size,
            min_free_mb=0.0,
        ),
        upload=replace(
            config.upload,
            endpoint=endpoint,
            timeout_s=timeout_s,
            archive_dir=str(tmp_path / "archives"),
        ),
    )


@pytest.fixture
def make_config(tmp_path):
    def _make(**kwargs) -> AppConfig:
        return make_test_config(tmp_path, **kwargs)

    return _make
