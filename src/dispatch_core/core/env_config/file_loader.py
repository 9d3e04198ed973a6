"""
Configuration file loader for YAML and JSON files.

Supports loading DispatcherConfig from external configuration files.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..config import (
    ConnectionPoolConfig,
    DispatcherConfig,
    RateLimitConfig,
    RetryConfig,
    SecurityConfig,
    TimeoutConfig,
)
from ..logging import LoggingConfig

CONFIG_FILE_ENV_VAR = "DISPATCH_CONFIG_FILE"
SECTION_KEY = "dispatch"


class ConfigValidationError(Exception):
    """Raised when configuration file is invalid."""


class ConfigFileLoader:
    """
    Загрузчик конфигурации из файлов.

    YAML и JSON, формат определяется по расширению. Настройки можно
    положить в корень файла или в секцию `dispatch:`.

    Examples:
        >>> config = ConfigFileLoader.from_yaml("dispatch.yaml")
        >>> config = ConfigFileLoader.from_json("dispatch.json")
        >>> config = ConfigFileLoader.from_file("dispatch.yaml")  # Auto-detect
        >>> config = ConfigFileLoader.from_env_path()  # From DISPATCH_CONFIG_FILE env var
    """

    @staticmethod
    def from_yaml(path: Union[str, Path]) -> DispatcherConfig:
        """
        Загрузить конфиг из YAML файла.

        Raises:
            FileNotFoundError: Если файл не найден
            ConfigValidationError: Если конфиг невалидный
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML syntax in {path}: {e}") from e

        if not data:
            raise ConfigValidationError(f"Empty config file: {path}")

        return ConfigFileLoader._build_config(data, str(path))

    @staticmethod
    def from_json(path: Union[str, Path]) -> DispatcherConfig:
        """
        Загрузить конфиг из JSON файла.

        Raises:
            FileNotFoundError: Если файл не найден
            ConfigValidationError: Если конфиг невалидный
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid JSON syntax in {path}: {e}") from e

        if not data:
            raise ConfigValidationError(f"Empty config file: {path}")

        return ConfigFileLoader._build_config(data, str(path))

    @staticmethod
    def from_file(path: Union[str, Path]) -> DispatcherConfig:
        """
        Автоопределение формата по расширению (.yaml, .yml, .json).

        Raises:
            ValueError: Если формат не поддерживается
        """
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix in [".yaml", ".yml"]:
            return ConfigFileLoader.from_yaml(path)
        elif suffix == ".json":
            return ConfigFileLoader.from_json(path)
        else:
            raise ValueError(
                f"Unsupported config file format: {suffix}. "
                f"Supported formats: .yaml, .yml, .json"
            )

    @staticmethod
    def from_env_path() -> Optional[DispatcherConfig]:
        """
        Загрузить из пути в DISPATCH_CONFIG_FILE.

        Returns:
            DispatcherConfig или None если переменная не задана
        """
        config_path = os.environ.get(CONFIG_FILE_ENV_VAR)
        if not config_path:
            return None

        return ConfigFileLoader.from_file(config_path)

    @staticmethod
    def _section(config_data: Dict[str, Any], name: str, source: str) -> Dict[str, Any]:
        section = config_data.get(name, {})
        if not isinstance(section, dict):
            raise ConfigValidationError(f"{name} must be a dictionary in {source}")
        return section

    @staticmethod
    def _build_config(data: Dict[str, Any], source: str) -> DispatcherConfig:
        """
        Build DispatcherConfig from parsed data.

        Raises:
            ConfigValidationError: If config is invalid
        """
        config_data = data.get(SECTION_KEY, data) if isinstance(data, dict) else data

        if not isinstance(config_data, dict):
            raise ConfigValidationError(
                f"Config must be a dictionary, got {type(config_data).__name__} in {source}"
            )

        section = ConfigFileLoader._section
        try:
            timeout_data = section(config_data, "timeout", source)
            timeout_cfg = TimeoutConfig(**timeout_data)

            retry_data = dict(section(config_data, "retry", source))
            # Списки из YAML/JSON -> frozenset/tuple
            for key in ("idempotent_methods", "idempotent_actions",
                        "retryable_status_codes", "busy_status_codes"):
                if key in retry_data:
                    retry_data[key] = frozenset(retry_data[key])
            if "idempotent_action_prefixes" in retry_data:
                retry_data["idempotent_action_prefixes"] = tuple(
                    retry_data["idempotent_action_prefixes"]
                )
            retry_cfg = RetryConfig(**retry_data)

            rate_data = dict(section(config_data, "rate_limit", source))
            if "status_codes" in rate_data:
                rate_data["status_codes"] = frozenset(rate_data["status_codes"])
            if "reset_headers" in rate_data:
                rate_data["reset_headers"] = tuple(rate_data["reset_headers"])
            rate_cfg = RateLimitConfig(**rate_data)

            pool_data = section(config_data, "pool", source)
            pool_cfg = ConnectionPoolConfig(
                pool_connections=pool_data.get("connections", 10),
                pool_maxsize=pool_data.get("maxsize", 10),
                pool_block=pool_data.get("block", False),
                max_redirects=pool_data.get("max_redirects", 30),
            )

            security_cfg = SecurityConfig(**section(config_data, "security", source))

            logging_cfg = None
            if "logging" in config_data:
                logging_data = section(config_data, "logging", source)
                logging_cfg = LoggingConfig.create(
                    level=logging_data.get("level", "INFO"),
                    format=logging_data.get("format", "text"),
                    enable_console=logging_data.get("enable_console", True),
                    enable_file=logging_data.get("enable_file", False),
                    file_path=logging_data.get("file_path"),
                    enable_correlation_id=logging_data.get("enable_correlation_id", True),
                    log_string_to_sign=logging_data.get("log_string_to_sign", False),
                    extra_fields=logging_data.get("extra_fields"),
                )

            headers = section(config_data, "headers", source)

            return DispatcherConfig(
                headers=headers,
                timeout=timeout_cfg,
                retry=retry_cfg,
                rate_limit=rate_cfg,
                pool=pool_cfg,
                security=security_cfg,
                tolerate_missing_on_delete=config_data.get("tolerate_missing_on_delete", True),
                logging=logging_cfg,
            )

        except (ValueError, TypeError) as e:
            raise ConfigValidationError(f"Invalid config in {source}: {e}") from e
