"""
Configuration loader from environment variables and .env files.

Main entry point for loading DispatcherConfig from the environment.
"""

import os
from typing import Optional

from ..config import (
    ConnectionPoolConfig,
    DispatcherConfig,
    RateLimitConfig,
    RetryConfig,
    SecurityConfig,
    TimeoutConfig,
)
from ..logging.config import LoggingConfig
from .validator import DispatchSettings

PROFILE_ENV_VAR = "DISPATCH_ENV"


def get_env_file_path(profile: Optional[str] = None) -> str:
    """
    Get .env file path for profile.

    Args:
        profile: Profile name (development/staging/production...)

    Returns:
        Path to .env file

    Example:
        >>> get_env_file_path("production")
        '.env.production'
        >>> get_env_file_path(None)  # DISPATCH_ENV not set
        '.env'
    """
    if profile is None:
        profile = os.getenv(PROFILE_ENV_VAR)

    if not profile:
        return ".env"

    return f".env.{profile}"


def load_settings(profile: Optional[str] = None, env_file: Optional[str] = None) -> DispatchSettings:
    """Validated settings only (credentials included)."""
    if env_file is None:
        env_file = get_env_file_path(profile)
    return DispatchSettings(_env_file=env_file)


def load_from_env(
    profile: Optional[str] = None,
    env_file: Optional[str] = None,
    **overrides
) -> DispatcherConfig:
    """
    Load DispatcherConfig from environment variables.

    Priority (highest to lowest):
    1. **overrides - explicit parameters (same names as DispatchSettings fields)
    2. Environment variables (DISPATCH_*)
    3. .env file (profile-specific or default)
    4. Defaults

    Args:
        profile: Profile to load; DISPATCH_ENV is used when None
        env_file: Custom .env file path (overrides profile)
        **overrides: Explicit config overrides

    Returns:
        DispatcherConfig instance

    Example:
        >>> config = load_from_env(profile="production", retry_max_attempts=3)
    """
    settings = load_settings(profile, env_file)

    def value(name: str):
        return overrides.get(name, getattr(settings, name))

    timeout = TimeoutConfig(
        connect=value('timeout_connect'),
        read=value('timeout_read'),
    )

    retry = RetryConfig(
        max_attempts=value('retry_max_attempts'),
        backoff_base=value('retry_backoff_base'),
        backoff_factor=value('retry_backoff_factor'),
        backoff_jitter=value('retry_backoff_jitter'),
        backoff_max=value('retry_backoff_max'),
    )

    rate_limit = RateLimitConfig(
        min_delay=value('rate_limit_min_delay'),
        max_delay=value('rate_limit_max_delay'),
        respect_retry_after=value('rate_limit_respect_retry_after'),
    )

    security = SecurityConfig(
        verify_ssl=value('security_verify_ssl'),
        max_response_size=value('security_max_response_size'),
    )

    pool = ConnectionPoolConfig(
        pool_connections=value('pool_connections'),
        pool_maxsize=value('pool_maxsize'),
    )

    logging_config = None
    if value('log_enabled'):
        file_path = value('log_file_path')
        logging_config = LoggingConfig.create(
            level=value('log_level'),
            format=value('log_format'),
            enable_console=value('log_enable_console'),
            enable_file=bool(file_path),
            file_path=file_path,
            log_string_to_sign=value('log_string_to_sign'),
        )

    return DispatcherConfig(
        timeout=timeout,
        retry=retry,
        rate_limit=rate_limit,
        pool=pool,
        security=security,
        tolerate_missing_on_delete=value('tolerate_missing_on_delete'),
        logging=logging_config,
    )
