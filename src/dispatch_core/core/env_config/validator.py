"""
Pydantic settings for environment configuration.

Flat DISPATCH_* variables, validated by pydantic before any dataclass
config is built from them.
"""

from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..credentials import Credentials


class DispatchSettings(BaseSettings):
    """
    Dispatcher configuration from environment variables.

    Reads from:
    1. Environment variables (DISPATCH_*)
    2. .env file
    3. Defaults

    Example .env file:
        DISPATCH_TIMEOUT_CONNECT=5.0
        DISPATCH_TIMEOUT_READ=30.0
        DISPATCH_RETRY_MAX_ATTEMPTS=5
        DISPATCH_RATE_LIMIT_MAX_DELAY=600
        DISPATCH_LOG_LEVEL=INFO
        DISPATCH_IDENTITY=AKIDEXAMPLE
        DISPATCH_SECRET=wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY

    Usage:
        >>> settings = DispatchSettings()
        >>> settings.retry_max_attempts
        5
    """

    model_config = SettingsConfigDict(
        env_prefix='DISPATCH_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # Timeouts
    timeout_connect: float = Field(default=5.0, gt=0)
    timeout_read: float = Field(default=30.0, gt=0)

    # Retry
    retry_max_attempts: int = Field(default=5, ge=1, le=20)
    retry_backoff_base: float = Field(default=0.5, ge=0)
    retry_backoff_factor: float = Field(default=2.0, ge=1.0)
    retry_backoff_jitter: bool = Field(default=True)
    retry_backoff_max: float = Field(default=60.0, gt=0)

    # Rate limit
    rate_limit_min_delay: float = Field(default=1.0, ge=0)
    rate_limit_max_delay: float = Field(default=7200.0, gt=0)
    rate_limit_respect_retry_after: bool = Field(default=True)

    # Security
    security_verify_ssl: bool = Field(default=True)
    security_max_response_size: int = Field(default=100 * 1024 * 1024, gt=0)

    # Connection pool
    pool_connections: int = Field(default=10, ge=1)
    pool_maxsize: int = Field(default=10, ge=1)

    # Behaviour
    tolerate_missing_on_delete: bool = Field(default=True)

    # Logging
    log_enabled: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")
    log_enable_console: bool = Field(default=True)
    log_file_path: Optional[str] = None
    log_string_to_sign: bool = Field(default=False)

    # Credentials (secret values are SecretStr and never printed)
    identity: Optional[str] = Field(default=None, description="Access key / account / client email")
    secret: Optional[SecretStr] = Field(default=None, description="Shared secret")
    session_token: Optional[SecretStr] = Field(default=None, description="Temporary session token")

    @field_validator('rate_limit_max_delay')
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """max_delay must not be below min_delay."""
        min_delay = info.data.get('rate_limit_min_delay', 1.0)
        if v < min_delay:
            raise ValueError(
                f"rate_limit_max_delay ({v}) must be >= rate_limit_min_delay ({min_delay})"
            )
        return v

    def to_credentials(self) -> Optional[Credentials]:
        """Credentials from DISPATCH_IDENTITY / DISPATCH_SECRET, None if not set."""
        if not self.identity or self.secret is None:
            return None
        return Credentials(
            identity=self.identity,
            secret=self.secret.get_secret_value(),
            session_token=(
                self.session_token.get_secret_value() if self.session_token else None
            ),
        )
