"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for the application config.
"""

import os
import shutil
import tempfile

import pytest
import yaml

from cost_ledger.config.loader import (
    AnomalyConfig,
    CollectorKind,
    DEFAULT_LOOKBACK_DAYS,
    DEFAULT_THRESHOLD_PERCENT,
    load_config,
    load_config_or_default,
)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_path = self._write_config({
            "database": {"path": "data/ledger.db", "timeout": 10},
            "anomaly": {"threshold_percent": 75, "lookback_days": 14},
            "logging": {"level": "DEBUG", "json": True},
            "services": {
                "chatgpt": {
                    "collector": "openai",
                    "credentials": {"apiKey": "OPENAI_ADMIN_KEY", "organizationId": "OPENAI_ORG_ID"},
                    "options": {"days": 14},
                },
                "aws": {
                    "collector": "file",
                    "options": {"path": "exports/aws.yaml"},
                },
            },
        })

        config = load_config(config_path)

        assert config.database.path == "data/ledger.db"
        assert config.database.timeout == 10.0
        assert config.anomaly.threshold_percent == 75.0
        assert config.anomaly.lookback_days == 14
        assert config.logging.level == "debug"
        assert config.logging.json is True

        chatgpt = config.services["chatgpt"]
        assert chatgpt.collector == CollectorKind.OPENAI
        assert chatgpt.credentials["apiKey"] == "OPENAI_ADMIN_KEY"
        assert chatgpt.options == {"days": 14}
        assert config.services["aws"].collector == CollectorKind.FILE

    def test_defaults_apply_to_missing_sections(self):
        config = load_config(self._write_config({"services": {}}))

        assert config.anomaly.threshold_percent == DEFAULT_THRESHOLD_PERCENT
        assert config.anomaly.lookback_days == DEFAULT_LOOKBACK_DAYS
        assert config.logging.level == "info"
        assert config.services == {}

    def test_empty_file_gives_defaults(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, 'w').close()

        assert load_config(config_path).anomaly.threshold_percent == DEFAULT_THRESHOLD_PERCENT

    def test_missing_file_raises_error(self):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(os.path.join(self.temp_dir, "nonexistent.yaml"))

    def test_missing_file_falls_back_to_defaults(self):
        config = load_config_or_default(os.path.join(self.temp_dir, "nonexistent.yaml"))

        assert config.services == {}

    def test_invalid_yaml_raises_error(self):
        config_path = os.path.join(self.temp_dir, "invalid.yaml")
        with open(config_path, 'w') as f:
            f.write("anomaly: [unclosed")

        with pytest.raises(yaml.YAMLError):
            load_config(config_path)

    def test_unknown_top_level_keys_raise_error(self):
        with pytest.raises(ValueError, match="Unknown keys in configuration"):
            load_config(self._write_config({"budget": {"daily": 100}}))

    def test_unknown_anomaly_keys_raise_error(self):
        with pytest.raises(ValueError, match="Unknown keys in anomaly"):
            load_config(self._write_config({"anomaly": {"threshhold_percent": 20}}))

    def test_negative_threshold_raises_error(self):
        with pytest.raises(ValueError, match="threshold_percent must be >= 0"):
            load_config(self._write_config({"anomaly": {"threshold_percent": -5}}))

    def test_lookback_shorter_than_baseline_raises_error(self):
        with pytest.raises(ValueError, match="lookback_days must be > 7"):
            load_config(self._write_config({"anomaly": {"lookback_days": 7}}))

    def test_non_numeric_threshold_raises_error(self):
        with pytest.raises(ValueError, match="must be a number"):
            load_config(self._write_config({"anomaly": {"threshold_percent": "high"}}))

    def test_invalid_log_level_raises_error(self):
        with pytest.raises(ValueError, match="logging level must be one of"):
            load_config(self._write_config({"logging": {"level": "verbose"}}))

    def test_missing_collector_raises_error(self):
        with pytest.raises(ValueError, match="Missing required 'collector' in services.aws"):
            load_config(self._write_config({"services": {"aws": {"options": {"path": "a.yaml"}}}}))

    def test_invalid_collector_raises_error(self):
        with pytest.raises(ValueError, match="must be one of"):
            load_config(self._write_config({"services": {"aws": {"collector": "s3"}}}))

    def test_file_collector_requires_path(self):
        with pytest.raises(ValueError, match="Missing required 'path' option in services.aws"):
            load_config(self._write_config({"services": {"aws": {"collector": "file"}}}))

    def test_unknown_service_keys_raise_error(self):
        with pytest.raises(ValueError, match="Unknown keys in services.chatgpt"):
            load_config(self._write_config({"services": {"chatgpt": {"collector": "openai", "model": "x"}}}))

    def test_invalid_openai_days_raises_error(self):
        with pytest.raises(ValueError, match="'days' option"):
            load_config(self._write_config({
                "services": {"chatgpt": {"collector": "openai", "options": {"days": 0}}}
            }))

    def test_invalid_service_id_raises_error(self):
        with pytest.raises(ValueError, match="Invalid service id"):
            load_config(self._write_config({"services": {"My_Service": {"collector": "openai"}}}))

    def test_credentials_must_name_variables(self):
        with pytest.raises(ValueError, match="must name an environment variable"):
            load_config(self._write_config({
                "services": {"chatgpt": {"collector": "openai", "credentials": {"apiKey": ""}}}
            }))


class TestAnomalyConfig:
    def test_defaults(self):
        config = AnomalyConfig()

        assert config.threshold_percent == 50.0
        assert config.lookback_days == 30
