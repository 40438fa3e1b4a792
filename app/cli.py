"""Command-line interface for recording, inspecting and re-sending sessions."""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from app.events.event_types import SessionStateChangedEvent
from app.pipeline.dispatch import ArchiveUploader, CompositeProgress, RetryPolicy, SessionArchiver, resend_session
from app.review import SessionLoader
from app.services.session import SessionLifecycleController
from capture import SimulatedFrameSource
from configs.settings import AppConfig, default_config, load_config
from contracts.versioning import APP_VERSION
from exceptions import ArchiveError, ConfigError, DirectoryCreationError, UploadError
from log_config.logger import configure_file_logging, get_logger

logger = get_logger(__name__)


def _load(args) -> AppConfig:
    config = load_config(Path(args.config)) if args.config else default_config()
    if getattr(args, "endpoint", None):
        config = replace(config, upload=replace(config.upload, endpoint=args.endpoint))
    if getattr(args, "root", None):
        config = replace(config, storage=replace(config.storage, root_dir=args.root))
    return config


def simulate_command(args, config: AppConfig) -> int:
    """Record a simulated session, then archive and upload it.

    Args:
        args: Parsed command-line arguments
        config: Application configuration
    """
    source = SimulatedFrameSource(
        width=args.width,
        height=args.height,
        rate_hz=args.rate_hz,
        pixel_format=args.pixel_format,
        max_frames=args.frames,
        realtime=args.realtime,
    )

    with SessionLifecycleController(config) as controller:
        controller.event_bus.subscribe(
            SessionStateChangedEvent, lambda event: print(f"  [{event.state.value}] {event.message}")
        )
        try:
            session = controller.start().result()
        except DirectoryCreationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        print(f"Recording simulated session into {session.root_dir}")
        for event in source:
            controller.submit_frame(event)

        if args.no_upload:
            # Shutting down while recording finalizes without dispatching
            controller.shutdown(wait=True)
            status = controller.get_status()
            print(f"\nSession kept at {session.root_dir} ({status.frames_recorded} frames)")
            return 0

        outcome = controller.stop().result()

    status = controller.get_status()
    print(f"\n  Frames recorded: {outcome.frames_recorded}")
    print(f"  Frames throttled: {status.frames_dropped}")
    print(f"  Frames failed: {status.frames_failed}")
    if outcome.success:
        print(f"\n✓ Upload complete (HTTP {outcome.status_code})")
        return 0

    print(f"\nError: {outcome.message}", file=sys.stderr)
    print(f"Session kept at {outcome.session_dir}", file=sys.stderr)
    return 1


def upload_command(args, config: AppConfig) -> int:
    """Archive and upload a session that was kept on disk.

    Args:
        args: Parsed command-line arguments
        config: Application configuration
    """
    session_dir = Path(args.session)
    loader = SessionLoader(config.storage, config.session_format.pose_encoding)
    is_valid, error = loader.validate_session(session_dir)
    if not is_valid:
        print(f"Error: {error}", file=sys.stderr)
        return 1

    def show(phase: str, fraction: float, overall: float) -> None:
        print(f"\r  {phase:<8} {overall:6.1%}", end="", flush=True)

    print(f"Uploading {session_dir} to {config.upload.endpoint}")
    try:
        result = resend_session(
            session_dir,
            archiver=SessionArchiver(config.upload.archive_dir),
            uploader=ArchiveUploader.from_config(config.upload, config.session_format.success_status),
            endpoint=config.upload.endpoint,
            retry=RetryPolicy(max_attempts=args.attempts),
            progress=CompositeProgress(config.progress.archive_share, listener=show),
            keep_local=args.keep_local,
        )
    except (ArchiveError, UploadError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    print(f"\n\n✓ Upload complete (HTTP {result.status_code}, {result.bytes_sent} bytes in {result.duration_s:.1f}s)")
    if result.body:
        print(f"  Server says: {result.body}")
    return 0


def pending_command(args, config: AppConfig) -> int:
    """List sessions still on disk.

    Args:
        args: Parsed command-line arguments
        config: Application configuration
    """
    sessions = SessionLoader(config.storage).get_available_sessions()
    if not sessions:
        print("No pending sessions.")
        return 0

    print(f"Found {len(sessions)} pending session(s):")
    for session_dir in sessions:
        print(f"  - {session_dir}")
    return 0


def inspect_command(args, config: AppConfig) -> int:
    """Summarize the contents of one session directory.

    Args:
        args: Parsed command-line arguments
        config: Application configuration
    """
    loader = SessionLoader(config.storage, config.session_format.pose_encoding)
    try:
        session = loader.load_session(Path(args.session))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Session: {session.session_id}")
    print(f"  Poses: {session.frame_count}")
    print(f"  Images: {len(session.images)}")
    print(f"  Intrinsics files: {len(session.intrinsics)}")
    if session.session_intrinsics is not None:
        k = session.session_intrinsics
        print(f"  Session intrinsics: fx={k.fx:.2f} fy={k.fy:.2f} {k.width}x{k.height}")
    if session.unreadable_lines:
        print(f"  Unreadable pose lines: {session.unreadable_lines}")
    missing = session.poses_without_images()
    if missing:
        print(f"  Poses without images: {len(missing)}")
    orphans = session.orphan_images()
    if orphans:
        print(f"  Images without poses: {len(orphans)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scene-logger",
        description="Record pose-tagged image sessions and upload them for processing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Record 300 simulated frames and upload them
  scene-logger simulate --frames 300 --endpoint http://192.168.1.20:8080/process-scene

  # List sessions kept after a failed upload
  scene-logger pending

  # Re-send one of them
  scene-logger upload sessions/arkit_session_2026-01-19_14-03-27
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument("--config", help="Path to YAML configuration (default: configs/default.yaml)")
    parser.add_argument("--log-dir", help="Also write rotating log files to this directory")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    simulate_parser = subparsers.add_parser("simulate", help="Record a simulated session")
    simulate_parser.add_argument("--frames", type=int, default=300, help="Frames produced by the source")
    simulate_parser.add_argument("--rate-hz", type=float, default=60.0, help="Source frame rate")
    simulate_parser.add_argument("--width", type=int, default=1920)
    simulate_parser.add_argument("--height", type=int, default=1440)
    simulate_parser.add_argument("--pixel-format", choices=["BGR", "NV12"], default="BGR")
    simulate_parser.add_argument("--realtime", action="store_true", help="Pace frames at the source rate")
    simulate_parser.add_argument("--endpoint", help="Upload URL overriding the configuration")
    simulate_parser.add_argument("--root", help="Session root directory overriding the configuration")
    simulate_parser.add_argument("--no-upload", action="store_true", help="Keep the session on disk")

    upload_parser = subparsers.add_parser("upload", help="Upload a session kept on disk")
    upload_parser.add_argument("session", help="Path to session directory")
    upload_parser.add_argument("--endpoint", help="Upload URL overriding the configuration")
    upload_parser.add_argument("--attempts", type=int, default=3, help="Upload attempts on timeouts")
    upload_parser.add_argument("--keep-local", action="store_true", help="Keep the session after upload")

    pending_parser = subparsers.add_parser("pending", help="List sessions kept on disk")
    pending_parser.add_argument("--root", help="Session root directory overriding the configuration")

    inspect_parser = subparsers.add_parser("inspect", help="Summarize a session directory")
    inspect_parser.add_argument("session", help="Path to session directory")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.log_dir:
        configure_file_logging(Path(args.log_dir))

    try:
        config = _load(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    handlers = {
        "simulate": simulate_command,
        "upload": upload_command,
        "pending": pending_command,
        "inspect": inspect_command,
    }
    return handlers[args.command](args, config)


if __name__ == "__main__":
    sys.exit(main())
