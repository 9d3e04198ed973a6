"""Tests for configuration file loader."""

import json

import pytest

from dispatch_core.core.config import DispatcherConfig
from dispatch_core.core.env_config.file_loader import (
    ConfigFileLoader,
    ConfigValidationError,
)
from dispatch_core.core.logging.config import LogFormat


class TestFromYAML:
    """Test loading from YAML files."""

    def test_load_valid_yaml(self, tmp_path):
        config_file = tmp_path / "dispatch.yaml"
        config_file.write_text(
            """
dispatch:
  timeout:
    connect: 10
    read: 60
  retry:
    max_attempts: 3
    idempotent_actions: [RebootInstances]
    idempotent_action_prefixes: [Describe, List]
  rate_limit:
    max_delay: 900
  pool:
    maxsize: 25
  security:
    verify_ssl: true
  headers:
    User-Agent: "inventory-sync/2.1"
  tolerate_missing_on_delete: false
"""
        )

        config = ConfigFileLoader.from_yaml(config_file)

        assert isinstance(config, DispatcherConfig)
        assert config.timeout.as_tuple() == (10, 60)
        assert config.retry.max_attempts == 3
        assert config.retry.idempotent_actions == frozenset({"RebootInstances"})
        assert config.retry.idempotent_action_prefixes == ("Describe", "List")
        assert config.rate_limit.max_delay == 900
        assert config.pool.pool_maxsize == 25
        assert config.headers["User-Agent"] == "inventory-sync/2.1"
        assert config.tolerate_missing_on_delete is False

    def test_root_level_settings(self, tmp_path):
        """Секция dispatch необязательна."""
        config_file = tmp_path / "dispatch.yml"
        config_file.write_text("retry:\n  max_attempts: 2\n")
        assert ConfigFileLoader.from_yaml(config_file).retry.max_attempts == 2

    def test_logging_section(self, tmp_path):
        config_file = tmp_path / "dispatch.yaml"
        config_file.write_text(
            "logging:\n  level: DEBUG\n  format: json\n  extra_fields:\n    service: inventory\n"
        )
        logging_config = ConfigFileLoader.from_yaml(config_file).logging
        assert logging_config.format is LogFormat.JSON
        assert logging_config.extra_fields == {"service": "inventory"}

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigFileLoader.from_yaml(tmp_path / "missing.yaml")

    def test_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        with pytest.raises(ConfigValidationError, match="Empty config file"):
            ConfigFileLoader.from_yaml(config_file)

    def test_invalid_syntax(self, tmp_path):
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("retry: [unclosed\n")
        with pytest.raises(ConfigValidationError, match="Invalid YAML"):
            ConfigFileLoader.from_yaml(config_file)

    def test_invalid_values(self, tmp_path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("retry:\n  max_attempts: 0\n")
        with pytest.raises(ConfigValidationError):
            ConfigFileLoader.from_yaml(config_file)

    def test_unknown_key(self, tmp_path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("timeout:\n  total: 10\n")
        with pytest.raises(ConfigValidationError):
            ConfigFileLoader.from_yaml(config_file)

    def test_section_must_be_mapping(self, tmp_path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("retry: 5\n")
        with pytest.raises(ConfigValidationError, match="retry must be a dictionary"):
            ConfigFileLoader.from_yaml(config_file)


class TestFromJSON:

    def test_load_valid_json(self, tmp_path):
        config_file = tmp_path / "dispatch.json"
        config_file.write_text(json.dumps({
            "dispatch": {
                "retry": {"max_attempts": 4, "retryable_status_codes": [500, 502]},
                "rate_limit": {"status_codes": [429, 420]},
            }
        }))

        config = ConfigFileLoader.from_json(config_file)

        assert config.retry.max_attempts == 4
        assert config.retry.retryable_status_codes == frozenset({500, 502})
        assert config.rate_limit.status_codes == frozenset({429, 420})

    def test_invalid_json(self, tmp_path):
        config_file = tmp_path / "broken.json"
        config_file.write_text("{not json")
        with pytest.raises(ConfigValidationError, match="Invalid JSON"):
            ConfigFileLoader.from_json(config_file)


class TestFromFile:

    def test_autodetect(self, tmp_path):
        yaml_file = tmp_path / "a.yaml"
        yaml_file.write_text("retry:\n  max_attempts: 2\n")
        json_file = tmp_path / "a.json"
        json_file.write_text('{"retry": {"max_attempts": 3}}')

        assert ConfigFileLoader.from_file(yaml_file).retry.max_attempts == 2
        assert ConfigFileLoader.from_file(json_file).retry.max_attempts == 3

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported config file format"):
            ConfigFileLoader.from_file(tmp_path / "dispatch.toml")

    def test_from_env_path(self, tmp_path, monkeypatch):
        config_file = tmp_path / "dispatch.yaml"
        config_file.write_text("retry:\n  max_attempts: 2\n")
        monkeypatch.setenv("DISPATCH_CONFIG_FILE", str(config_file))
        assert ConfigFileLoader.from_env_path().retry.max_attempts == 2

    def test_from_env_path_unset(self, monkeypatch):
        monkeypatch.delenv("DISPATCH_CONFIG_FILE", raising=False)
        assert ConfigFileLoader.from_env_path() is None
