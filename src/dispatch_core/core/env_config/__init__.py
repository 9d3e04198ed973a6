"""
Environment configuration system for dispatch core.

Load configuration from .env files, environment variables and
YAML/JSON config files.

Example:
    >>> from dispatch_core.core.env_config import load_from_env
    >>>
    >>> config = load_from_env()                      # .env / DISPATCH_*
    >>> config = load_from_env(profile="production")  # .env.production
    >>> config = load_from_env(retry_max_attempts=3)  # explicit override
"""

from .file_loader import ConfigFileLoader, ConfigValidationError
from .loader import get_env_file_path, load_from_env, load_settings
from .validator import DispatchSettings

__all__ = [
    "load_from_env",
    "load_settings",
    "get_env_file_path",
    "DispatchSettings",
    "ConfigFileLoader",
    "ConfigValidationError",
]
