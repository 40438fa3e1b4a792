"""Configuration validation using JSON Schema."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import jsonschema
import yaml
from jsonschema import Draft7Validator

from exceptions import ConfigValidationError
from log_config.logger import get_logger

logger = get_logger(__name__)

_SUCCESS_STATUS = {
    "oneOf": [
        {"type": "integer", "minimum": 100, "maximum": 599},
        {"type": "string", "pattern": r"^[1-5][0-9]{2}(-[1-5][0-9]{2})?$"},
        {
            "type": "array",
            "items": {"type": "integer", "minimum": 100, "maximum": 599},
            "minItems": 2,
            "maxItems": 2,
        },
    ]
}

# JSON Schema for default.yaml configuration
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "capture": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "min_interval_ms": {"type": "number", "minimum": 0, "maximum": 10000},
                "target_long_edge_px": {"type": "integer", "minimum": 16, "maximum": 8192},
                "jpeg_quality": {"type": "integer", "minimum": 1, "maximum": 100},
                "png_compression": {"type": "integer", "minimum": 0, "maximum": 9},
            },
        },
        "session_format": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "pose_encoding": {"type": "string", "enum": ["matrix_12", "rotvec_7"]},
                "output_orientation": {
                    "type": "string",
                    "enum": ["native", "rotate_90_cw", "rotate_180", "rotate_90_ccw"],
                },
                "image_format": {"type": "string", "enum": ["jpeg", "png"]},
                "intrinsics_granularity": {"type": "string", "enum": ["per_frame", "per_session"]},
                "success_status": _SUCCESS_STATUS,
            },
        },
        "storage": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "root_dir": {"type": "string", "minLength": 1},
                "session_prefix": {"type": "string", "minLength": 1},
                "image_dir": {"type": "string", "minLength": 1},
                "intrinsics_dir": {"type": "string", "minLength": 1},
                "pose_log_name": {"type": "string", "minLength": 1},
                "intrinsics_log_name": {"type": "string", "minLength": 1},
                "pose_batch_size": {"type": "integer", "minimum": 1, "maximum": 100000},
                "min_free_mb": {"type": "number", "minimum": 0},
            },
        },
        "upload": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "endpoint": {"type": "string"},
                "timeout_s": {"type": "number", "exclusiveMinimum": 0, "maximum": 3600},
                "field_name": {"type": "string", "minLength": 1},
                "content_type": {"type": "string", "minLength": 1},
                "archive_dir": {"type": ["string", "null"]},
            },
        },
        "progress": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "archive_share": {"type": "number", "minimum": 0.0, "maximum": 1.0},
            },
        },
    },
}


def validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration against JSON Schema.

    Args:
        config: Configuration dictionary

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    try:
        validator = Draft7Validator(CONFIG_SCHEMA)
        errors = sorted(validator.iter_errors(config), key=lambda e: [str(p) for p in e.path])
    except jsonschema.exceptions.SchemaError as e:
        logger.error(f"Invalid schema: {e}")
        raise ConfigValidationError(f"Invalid schema definition: {e}") from e

    if errors:
        error_messages = []
        for error in errors:
            path = " -> ".join(str(p) for p in error.path) if error.path else "root"
            error_messages.append(f"{path}: {error.message}")

        logger.error(f"Configuration validation failed with {len(errors)} errors")
        for msg in error_messages:
            logger.error(f"  - {msg}")

        raise ConfigValidationError(
            f"Configuration validation failed with {len(errors)} error(s). See logs for details.",
            validation_errors=error_messages,
        )

    logger.debug("Configuration validation passed")


def validate_config_file(config_path: str) -> None:
    """Validate a YAML configuration file.

    Args:
        config_path: Path to configuration file

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigValidationError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        raise ConfigValidationError(f"Failed to parse configuration file: {e}") from e

    validate_config(config or {})


__all__ = ["validate_config", "validate_config_file", "CONFIG_SCHEMA"]
