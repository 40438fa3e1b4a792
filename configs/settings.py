"""Configuration loading for the scene logger."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from configs.validator import validate_config
from exceptions import ConfigError, InvalidConfigError
from log_config.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"


class PoseEncoding(Enum):
    """Text layout of one pose log line."""

    MATRIX_12 = "matrix_12"  # ns + row-major 3x4 [R|t]
    ROTVEC_7 = "rotvec_7"  # ns + rotation vector + translation


class OutputOrientation(Enum):
    """Rotation applied to the sensor-native image before resizing."""

    NATIVE = "native"
    ROTATE_90_CW = "rotate_90_cw"
    ROTATE_180 = "rotate_180"
    ROTATE_90_CCW = "rotate_90_ccw"


class ImageFormat(Enum):
    JPEG = "jpeg"
    PNG = "png"

    @property
    def extension(self) -> str:
        return ".jpg" if self is ImageFormat.JPEG else ".png"


class IntrinsicsGranularity(Enum):
    PER_FRAME = "per_frame"
    PER_SESSION = "per_session"


@dataclass(frozen=True)
class SuccessStatusPolicy:
    """Inclusive HTTP status range treated as a successful upload."""

    low: int = 200
    high: int = 299

    def accepts(self, status_code: int) -> bool:
        return self.low <= status_code <= self.high

    def describe(self) -> str:
        if self.low == self.high:
            return str(self.low)
        return f"{self.low}-{self.high}"

    @classmethod
    def parse(cls, value: Any) -> "SuccessStatusPolicy":
        """Build a policy from ``202``, ``"202"``, ``"200-299"`` or ``[200, 299]``."""
        if isinstance(value, bool):
            raise ValueError(f"Invalid success status: {value!r}")
        if isinstance(value, int):
            return cls(value, value)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            low, high = int(value[0]), int(value[1])
        elif isinstance(value, str):
            parts = value.split("-")
            if len(parts) == 1:
                low = high = int(parts[0])
            elif len(parts) == 2:
                low, high = int(parts[0]), int(parts[1])
            else:
                raise ValueError(f"Invalid success status: {value!r}")
        else:
            raise ValueError(f"Invalid success status: {value!r}")
        if not 100 <= low <= high <= 599:
            raise ValueError(f"Invalid success status range: {low}-{high}")
        return cls(low, high)


@dataclass(frozen=True)
class CaptureConfig:
    min_interval_ms: float = 100.0
    target_long_edge_px: int = 640
    jpeg_quality: int = 75
    png_compression: int = 3


@dataclass(frozen=True)
class SessionFormatConfig:
    pose_encoding: PoseEncoding = PoseEncoding.MATRIX_12
    output_orientation: OutputOrientation = OutputOrientation.ROTATE_90_CW
    image_format: ImageFormat = ImageFormat.JPEG
    intrinsics_granularity: IntrinsicsGranularity = IntrinsicsGranularity.PER_FRAME
    success_status: SuccessStatusPolicy = field(default_factory=SuccessStatusPolicy)


@dataclass(frozen=True)
class StorageConfig:
    root_dir: str = "sessions"
    session_prefix: str = "arkit_session"
    image_dir: str = "color"
    intrinsics_dir: str = "intrinsics"
    pose_log_name: str = "ARKit_camera_pose.txt"
    intrinsics_log_name: str = "ARKit_camera_intrinsics.txt"
    pose_batch_size: int = 100
    min_free_mb: float = 500.0


@dataclass(frozen=True)
class UploadConfig:
    endpoint: str = "http://127.0.0.1:8080/process-scene"
    timeout_s: float = 60.0
    field_name: str = "file"
    content_type: str = "application/zip"
    archive_dir: Optional[str] = None  # None = system temp dir


@dataclass(frozen=True)
class ProgressConfig:
    archive_share: float = 0.2  # Fraction of the bar spent on archiving


@dataclass(frozen=True)
class AppConfig:
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    session_format: SessionFormatConfig = field(default_factory=SessionFormatConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)


def config_from_dict(data: Optional[Dict[str, Any]]) -> AppConfig:
    """Validate a raw configuration mapping and build an AppConfig.

    Sections or keys that are absent keep their defaults.

    Raises:
        ConfigValidationError: If the mapping violates the schema
        InvalidConfigError: If values cannot be converted
    """
    data = data or {}
    validate_config(data)

    try:
        capture = CaptureConfig(**data.get("capture", {}))

        fmt_data = dict(data.get("session_format", {}))
        defaults = SessionFormatConfig()
        session_format = SessionFormatConfig(
            pose_encoding=PoseEncoding(fmt_data.get("pose_encoding", defaults.pose_encoding.value)),
            output_orientation=OutputOrientation(
                fmt_data.get("output_orientation", defaults.output_orientation.value)
            ),
            image_format=ImageFormat(fmt_data.get("image_format", defaults.image_format.value)),
            intrinsics_granularity=IntrinsicsGranularity(
                fmt_data.get("intrinsics_granularity", defaults.intrinsics_granularity.value)
            ),
            success_status=SuccessStatusPolicy.parse(fmt_data["success_status"])
            if "success_status" in fmt_data
            else defaults.success_status,
        )

        storage = StorageConfig(**data.get("storage", {}))
        upload = UploadConfig(**data.get("upload", {}))
        progress = ProgressConfig(**data.get("progress", {}))
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid configuration value: {e}")
        raise InvalidConfigError(f"Invalid configuration value: {e}") from e

    return AppConfig(
        capture=capture,
        session_format=session_format,
        storage=storage,
        upload=upload,
        progress=progress,
    )


def load_config(path: Path) -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to configuration file

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    path = Path(path)
    logger.info(f"Loading configuration from {path}")
    if not path.exists():
        raise InvalidConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML configuration: {e}")
        raise InvalidConfigError(f"Failed to parse configuration file: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise InvalidConfigError(f"Configuration root must be a mapping: {path}")

    config = config_from_dict(data)
    logger.info(
        f"Configuration loaded: every {config.capture.min_interval_ms:.0f}ms, "
        f"{config.session_format.pose_encoding.value} poses, "
        f"{config.session_format.output_orientation.value} images -> {config.upload.endpoint}"
    )
    return config


def default_config() -> AppConfig:
    """Load the shipped default.yaml, falling back to dataclass defaults."""
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return AppConfig()


__all__ = [
    "AppConfig",
    "CaptureConfig",
    "ConfigError",
    "ImageFormat",
    "IntrinsicsGranularity",
    "OutputOrientation",
    "PoseEncoding",
    "ProgressConfig",
    "SessionFormatConfig",
    "StorageConfig",
    "SuccessStatusPolicy",
    "UploadConfig",
    "config_from_dict",
    "default_config",
    "load_config",
]
