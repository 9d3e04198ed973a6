"""Dispatch Core - signed, retried, paginated requests to cloud provider APIs."""

import logging
from importlib.metadata import version, PackageNotFoundError

from .core import (
    CanonicalRequest,
    Headers,
    Body,
    HttpMethod,
    Credentials,
    StaticCredentialsSupplier,
    RefreshingCredentialsSupplier,
    HttpResult,
    RetryPolicy,
    ErrorClassifier,
    AWS_CODE_TABLE,
    AZURE_CODE_TABLE,
    Page,
    paginate,
    paginate_across,
    token_marker,
    next_url_marker,
    offset_marker,
    DispatchPageFetcher,
    Dispatcher,
    DispatcherConfig,
    TimeoutConfig,
    RetryConfig,
    RateLimitConfig,
    ConnectionPoolConfig,
    SecurityConfig,
    DispatchException,
    TransportError,
    SigningError,
    ConfigurationError,
    ParseError,
    ErrorKind,
    ClassifiedApiError,
    NotFoundError,
    RateLimitedError,
    ExhaustedRetriesError,
)
from .core.logging import DispatchLogger, NullLogger, LoggingConfig
from .core.env_config import load_from_env, ConfigFileLoader
from .signing import (
    SigningMode,
    LegacyHmacSigner,
    ScopedHmacSigner,
    ChunkedUploadSigner,
    JWTSigner,
    TokenPlacement,
    shared_key_lite_signer,
    s3_signer,
)
from .transport import Transport, RequestsTransport

# NullHandler: без конфигурации пользователя библиотека молчит
logging.getLogger('dispatch_core').addHandler(logging.NullHandler())

# Version info - read from package metadata (single source of truth in pyproject.toml)
try:
    __version__ = version("dispatch-core")
except PackageNotFoundError:
    # Package is not installed (development mode)
    __version__ = "0.0.0-dev"

__all__ = [
    # Request model
    "CanonicalRequest",
    "Headers",
    "Body",
    "HttpMethod",
    # Credentials
    "Credentials",
    "StaticCredentialsSupplier",
    "RefreshingCredentialsSupplier",
    # Signers
    "SigningMode",
    "LegacyHmacSigner",
    "ScopedHmacSigner",
    "ChunkedUploadSigner",
    "JWTSigner",
    "TokenPlacement",
    "shared_key_lite_signer",
    "s3_signer",
    # Dispatch
    "Dispatcher",
    "HttpResult",
    "RetryPolicy",
    "ErrorClassifier",
    "AWS_CODE_TABLE",
    "AZURE_CODE_TABLE",
    "Transport",
    "RequestsTransport",
    # Pagination
    "Page",
    "paginate",
    "paginate_across",
    "token_marker",
    "next_url_marker",
    "offset_marker",
    "DispatchPageFetcher",
    # Config
    "DispatcherConfig",
    "TimeoutConfig",
    "RetryConfig",
    "RateLimitConfig",
    "ConnectionPoolConfig",
    "SecurityConfig",
    "LoggingConfig",
    "load_from_env",
    "ConfigFileLoader",
    # Logging
    "DispatchLogger",
    "NullLogger",
    # Exceptions
    "DispatchException",
    "TransportError",
    "SigningError",
    "ConfigurationError",
    "ParseError",
    "ErrorKind",
    "ClassifiedApiError",
    "NotFoundError",
    "RateLimitedError",
    "ExhaustedRetriesError",
    # Version
    "__version__",
]
