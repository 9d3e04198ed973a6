"""
Иерархия исключений Dispatch Core.

Классификация:
- TemporaryError (retryable=True) - можно ретраить
- FatalError (fatal=True) - НЕ ретраить никогда
- ClassifiedApiError - ошибка API, разобранная ErrorClassifier
- ExhaustedRetriesError - бюджет попыток исчерпан

Сообщения содержат метод, endpoint (без query строки), статус и код
провайдера, но никогда не содержат учётные данные.
"""

from enum import Enum
from typing import Any, Dict, Optional, Type

import requests

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BASE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class DispatchException(Exception):
    """Базовое исключение Dispatch Core."""

    retryable: bool = False
    fatal: bool = False

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        self.message = message
        self.method = method
        self.endpoint = endpoint

        full_message = message
        if method and endpoint:
            full_message += f" ({method} {endpoint})"
        elif endpoint:
            full_message += f" ({endpoint})"
        super().__init__(full_message)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ВРЕМЕННЫЕ ОШИБКИ (retryable=True)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TemporaryError(DispatchException):
    """
    Временная ошибка - можно ретраить.

    Примеры: таймауты, сетевые ошибки.
    """
    retryable = True

class TransportError(TemporaryError):
    """Ошибка ввода-вывода транспорта: ответ не получен."""

class TimeoutError(TransportError):
    """
    Таймаут запроса.

    Args:
        message: Сообщение об ошибке
        method: HTTP метод
        endpoint: Endpoint запроса
        timeout_type: Тип таймаута ('connect' или 'read')
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout_type: Optional[str] = None,
    ):
        self.timeout_type = timeout_type
        if timeout_type:
            message += f" ({timeout_type} timeout)"
        super().__init__(message, method, endpoint)

class ConnectionError(TransportError):
    """
    Ошибка подключения.

    Примеры:
    - Connection refused
    - Connection reset
    - DNS resolution failed
    """

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ФАТАЛЬНЫЕ ОШИБКИ (fatal=True)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class FatalError(DispatchException):
    """
    Фатальная ошибка - НЕ ретраить.

    Примеры: ошибка подписи, невалидная конфигурация, ошибка парсинга.
    """
    fatal = True

class SigningError(FatalError):
    """Запрос невозможно подписать (нет или истекли учётные данные, поток без seek)."""

class ConfigurationError(FatalError):
    """Ошибка конфигурации."""

class ParseError(FatalError):
    """Парсер ответа упал на успешном ответе."""

class NonRepeatableBodyError(FatalError):
    """Повтор запроса невозможен: тело уже прочитано и не перематывается."""

class OperationCancelledError(FatalError):
    """Операция отменена вызывающей стороной."""

class ResponseTooLargeError(FatalError):
    """
    Ответ слишком большой.

    Args:
        size: Размер ответа (bytes)
        max_size: Максимально допустимый размер
        endpoint: Endpoint
    """

    def __init__(self, size: int, max_size: int, endpoint: Optional[str] = None):
        self.size = size
        self.max_size = max_size
        super().__init__(
            f"Response too large: {size} bytes (max: {max_size})",
            endpoint=endpoint,
        )

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# КЛАССИФИЦИРОВАННЫЕ ОШИБКИ API
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ErrorKind(str, Enum):
    """Стабильная таксономия ошибок API."""
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    SERVER_BUSY = "SERVER_BUSY"
    UNCLASSIFIED = "UNCLASSIFIED"

class ClassifiedApiError(DispatchException):
    """
    Ошибка API после классификации.

    Создаётся только ErrorClassifier.

    Args:
        kind: Категория ошибки
        status_code: HTTP статус
        code: Код ошибки провайдера (если есть)
        message: Сообщение провайдера (если есть)
        method: HTTP метод
        endpoint: Endpoint без query строки
    """
    kind: ErrorKind = ErrorKind.UNCLASSIFIED

    def __init__(
        self,
        status_code: int,
        code: Optional[str] = None,
        message: Optional[str] = None,
        method: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        self.status_code = status_code
        self.code = code
        self.provider_message = message

        msg = f"{self.kind.value}: HTTP {status_code}"
        if code:
            msg += f" [{code}]"
        if message:
            msg += f": {message}"
        super().__init__(msg, method, endpoint)

class NotFoundError(ClassifiedApiError):
    """Ресурс не найден."""
    kind = ErrorKind.NOT_FOUND

class AlreadyExistsError(ClassifiedApiError):
    """Ресурс уже существует."""
    kind = ErrorKind.ALREADY_EXISTS

class ConflictError(ClassifiedApiError):
    """Конфликт состояния ресурса."""
    kind = ErrorKind.CONFLICT

class UnauthorizedError(ClassifiedApiError):
    """Нет доступа или подпись не совпала."""
    kind = ErrorKind.UNAUTHORIZED

class InvalidArgumentError(ClassifiedApiError):
    """Невалидный запрос."""
    kind = ErrorKind.INVALID_ARGUMENT

class ServerBusyError(ClassifiedApiError):
    """Сервер временно перегружен."""
    kind = ErrorKind.SERVER_BUSY
    retryable = True

class RateLimitedError(ClassifiedApiError):
    """
    Превышен rate limit.

    Args:
        retry_after: Секунды до сброса лимита (если сервер их сообщил)
    """
    kind = ErrorKind.RATE_LIMITED
    retryable = True

    def __init__(
        self,
        status_code: int,
        code: Optional[str] = None,
        message: Optional[str] = None,
        method: Optional[str] = None,
        endpoint: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        super().__init__(status_code, code, message, method, endpoint)


class UnclassifiedApiError(ClassifiedApiError):
    """Ошибка без известной категории."""
    kind = ErrorKind.UNCLASSIFIED

ERROR_CLASSES: Dict[ErrorKind, Type[ClassifiedApiError]] = {
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.ALREADY_EXISTS: AlreadyExistsError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.UNAUTHORIZED: UnauthorizedError,
    ErrorKind.INVALID_ARGUMENT: InvalidArgumentError,
    ErrorKind.SERVER_BUSY: ServerBusyError,
    ErrorKind.UNCLASSIFIED: UnclassifiedApiError,
}

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# СПЕЦИАЛЬНЫЕ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ExhaustedRetriesError(DispatchException):
    """
    Исчерпаны все попытки.

    Args:
        attempts: Сколько попыток было сделано
        last_outcome: Последний исход (TransportFailure или HttpResult)
        last_error: Последняя ошибка
        method: HTTP метод
        endpoint: Endpoint
    """

    def __init__(
        self,
        attempts: int,
        last_outcome: Any = None,
        last_error: Optional[Exception] = None,
        method: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        self.attempts = attempts
        self.last_outcome = last_outcome
        self.last_error = last_error

        msg = f"Retries exhausted after {attempts} attempt(s)"
        if last_error is not None:
            msg += f". Last error: {last_error.__class__.__name__}: {last_error}"
        super().__init__(msg, method, endpoint)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# УТИЛИТЫ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def classify_requests_exception(
    exc: Exception,
    method: Optional[str] = None,
    endpoint: Optional[str] = None,
) -> DispatchException:
    """
    Конвертировать requests.exceptions в наши исключения.

    Args:
        exc: Исключение из requests
        method: HTTP метод
        endpoint: Endpoint запроса (без query строки)

    Returns:
        Наше исключение с правильной классификацией

    Examples:
        >>> exc = requests.exceptions.ReadTimeout()
        >>> our_exc = classify_requests_exception(exc, "GET", "https://example.com/")
        >>> assert isinstance(our_exc, TimeoutError)
        >>> assert our_exc.retryable == True
    """

    if isinstance(exc, requests.exceptions.ConnectTimeout):
        return TimeoutError("Request timeout", method, endpoint, timeout_type="connect")

    elif isinstance(exc, requests.exceptions.Timeout):
        return TimeoutError("Request timeout", method, endpoint, timeout_type="read")

    elif isinstance(exc, requests.exceptions.ConnectionError):
        return ConnectionError("Connection error", method, endpoint)

    elif isinstance(exc, requests.exceptions.ChunkedEncodingError):
        return ConnectionError("Connection broken while reading response", method, endpoint)

    elif isinstance(exc, (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema)):
        return ConfigurationError(f"Invalid URL: {exc}", method, endpoint)

    elif isinstance(exc, requests.exceptions.RequestException):
        return TransportError(f"Transport error: {exc}", method, endpoint)

    else:
        # Неизвестная ошибка - оборачиваем
        return DispatchException(str(exc), method, endpoint)
