"""Core модули dispatch core: модель запроса, политика повторов, классификатор, пагинация, dispatcher."""

from .config import (
    TimeoutConfig,
    RetryConfig,
    RateLimitConfig,
    ConnectionPoolConfig,
    SecurityConfig,
    DispatcherConfig,
)
from .request import (
    CanonicalRequest,
    Headers,
    Body,
    HttpMethod,
    percent_encode,
    strict_encode,
)
from .credentials import (
    Credentials,
    CredentialsSupplier,
    StaticCredentialsSupplier,
    RefreshingCredentialsSupplier,
)
from .outcome import (
    HttpResult,
    TransportFailure,
    Retry,
    GiveUp,
    GiveUpReason,
)
from .context import Command
from .retry_engine import RetryPolicy
from .error_classifier import (
    ErrorClassifier,
    parse_error_payload,
    DEFAULT_STATUS_TABLE,
    GENERIC_CODE_TABLE,
    AWS_CODE_TABLE,
    AZURE_CODE_TABLE,
)
from .pagination import (
    Page,
    paginate,
    iter_pages,
    paginate_across,
    token_marker,
    next_url_marker,
    offset_marker,
    DispatchPageFetcher,
)
from .exceptions import (
    DispatchException,
    TemporaryError,
    FatalError,
    TransportError,
    TimeoutError,
    ConnectionError,
    SigningError,
    ConfigurationError,
    ParseError,
    NonRepeatableBodyError,
    OperationCancelledError,
    ResponseTooLargeError,
    ErrorKind,
    ClassifiedApiError,
    NotFoundError,
    AlreadyExistsError,
    ConflictError,
    UnauthorizedError,
    InvalidArgumentError,
    ServerBusyError,
    RateLimitedError,
    UnclassifiedApiError,
    ExhaustedRetriesError,
    classify_requests_exception,
)
from .dispatcher import Dispatcher

__all__ = [
    # Config
    "TimeoutConfig",
    "RetryConfig",
    "RateLimitConfig",
    "ConnectionPoolConfig",
    "SecurityConfig",
    "DispatcherConfig",
    # Request model
    "CanonicalRequest",
    "Headers",
    "Body",
    "HttpMethod",
    "percent_encode",
    "strict_encode",
    # Credentials
    "Credentials",
    "CredentialsSupplier",
    "StaticCredentialsSupplier",
    "RefreshingCredentialsSupplier",
    # Outcomes
    "HttpResult",
    "TransportFailure",
    "Retry",
    "GiveUp",
    "GiveUpReason",
    "Command",
    # Policy / classification
    "RetryPolicy",
    "ErrorClassifier",
    "parse_error_payload",
    "DEFAULT_STATUS_TABLE",
    "GENERIC_CODE_TABLE",
    "AWS_CODE_TABLE",
    "AZURE_CODE_TABLE",
    # Pagination
    "Page",
    "paginate",
    "iter_pages",
    "paginate_across",
    "token_marker",
    "next_url_marker",
    "offset_marker",
    "DispatchPageFetcher",
    # Exceptions
    "DispatchException",
    "TemporaryError",
    "FatalError",
    "TransportError",
    "TimeoutError",
    "ConnectionError",
    "SigningError",
    "ConfigurationError",
    "ParseError",
    "NonRepeatableBodyError",
    "OperationCancelledError",
    "ResponseTooLargeError",
    "ErrorKind",
    "ClassifiedApiError",
    "NotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "UnauthorizedError",
    "InvalidArgumentError",
    "ServerBusyError",
    "RateLimitedError",
    "UnclassifiedApiError",
    "ExhaustedRetriesError",
    "classify_requests_exception",
    # Dispatcher
    "Dispatcher",
]
