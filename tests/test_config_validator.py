"""Unit tests for configuration schema validation."""

import tempfile
import unittest
from pathlib import Path

import yaml

from configs.settings import DEFAULT_CONFIG_PATH
from configs.validator import validate_config, validate_config_file
from exceptions import ConfigValidationError


class TestConfigValidator(unittest.TestCase):
    """Test JSON Schema validation of raw configuration mappings."""

    def test_shipped_default_passes(self):
        validate_config_file(str(DEFAULT_CONFIG_PATH))

    def test_empty_mapping_passes(self):
        validate_config({})

    def test_unknown_section_rejected(self):
        with self.assertRaises(ConfigValidationError):
            validate_config({"camera": {"width": 640}})

    def test_unknown_key_rejected(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            validate_config({"capture": {"fps": 30}})
        self.assertTrue(any("fps" in msg for msg in ctx.exception.validation_errors))

    def test_negative_interval_rejected(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            validate_config({"capture": {"min_interval_ms": -5}})
        self.assertTrue(any(msg.startswith("capture -> min_interval_ms") for msg in ctx.exception.validation_errors))

    def test_unknown_pose_encoding_rejected(self):
        with self.assertRaises(ConfigValidationError):
            validate_config({"session_format": {"pose_encoding": "quaternion"}})

    def test_batch_size_must_be_positive(self):
        with self.assertRaises(ConfigValidationError):
            validate_config({"storage": {"pose_batch_size": 0}})

    def test_success_status_forms(self):
        for value in (202, "202", "200-299", [200, 204]):
            validate_config({"session_format": {"success_status": value}})

        for value in ("2xx", 99, [200]):
            with self.assertRaises(ConfigValidationError):
                validate_config({"session_format": {"success_status": value}})

    def test_all_errors_reported(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            validate_config({"capture": {"jpeg_quality": 0}, "upload": {"timeout_s": 0}})
        self.assertEqual(len(ctx.exception.validation_errors), 2)

    def test_invalid_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "bad.yaml"
            path.write_text(yaml.safe_dump({"progress": {"archive_share": 2.0}}))
            with self.assertRaises(ConfigValidationError):
                validate_config_file(str(path))


if __name__ == "__main__":
    unittest.main()
