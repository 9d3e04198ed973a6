# src/dispatch_core/core/error_classifier.py
"""
Классификация ошибок API.

Один классификатор, параметризованный таблицами провайдера:
код провайдера -> ErrorKind, затем HTTP статус -> ErrorKind,
иначе UNCLASSIFIED.
"""

import json
import logging
import xml.etree.ElementTree as ET
from typing import Callable, Mapping, Optional, Tuple

from .exceptions import (
    ERROR_CLASSES,
    ClassifiedApiError,
    ErrorKind,
    RateLimitedError,
)
from .outcome import HttpResult
from .retry_engine import RetryPolicy

logger = logging.getLogger(__name__)

PayloadParser = Callable[[HttpResult], Tuple[Optional[str], Optional[str]]]
RateLimitHint = Callable[[HttpResult], Optional[float]]

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ТАБЛИЦЫ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

DEFAULT_STATUS_TABLE: Mapping[int, ErrorKind] = {
    400: ErrorKind.INVALID_ARGUMENT,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.UNAUTHORIZED,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    412: ErrorKind.CONFLICT,
    429: ErrorKind.RATE_LIMITED,
    503: ErrorKind.SERVER_BUSY,
}

GENERIC_CODE_TABLE: Mapping[str, ErrorKind] = {
    'OBJECT_NOT_FOUND': ErrorKind.NOT_FOUND,
    'RESOURCE_ALREADY_EXISTS': ErrorKind.ALREADY_EXISTS,
    'CONFLICTING_OPERATION': ErrorKind.CONFLICT,
    'DIRECTORY_NOT_EMPTY': ErrorKind.CONFLICT,
    'SIGNATURE_MISMATCH': ErrorKind.UNAUTHORIZED,
    'SERVER_BUSY': ErrorKind.SERVER_BUSY,
}

AWS_CODE_TABLE: Mapping[str, ErrorKind] = {
    'NoSuchKey': ErrorKind.NOT_FOUND,
    'NoSuchBucket': ErrorKind.NOT_FOUND,
    'NoSuchUpload': ErrorKind.NOT_FOUND,
    'InvalidInstanceID.NotFound': ErrorKind.NOT_FOUND,
    'InvalidVolume.NotFound': ErrorKind.NOT_FOUND,
    'InvalidGroup.NotFound': ErrorKind.NOT_FOUND,
    'InvalidKeyPair.NotFound': ErrorKind.NOT_FOUND,
    'ResourceNotFoundException': ErrorKind.NOT_FOUND,
    'BucketAlreadyExists': ErrorKind.ALREADY_EXISTS,
    'BucketAlreadyOwnedByYou': ErrorKind.ALREADY_EXISTS,
    'InvalidGroup.Duplicate': ErrorKind.ALREADY_EXISTS,
    'InvalidKeyPair.Duplicate': ErrorKind.ALREADY_EXISTS,
    'EntityAlreadyExists': ErrorKind.ALREADY_EXISTS,
    'BucketNotEmpty': ErrorKind.CONFLICT,
    'OperationAborted': ErrorKind.CONFLICT,
    'IncorrectState': ErrorKind.CONFLICT,
    'SignatureDoesNotMatch': ErrorKind.UNAUTHORIZED,
    'InvalidAccessKeyId': ErrorKind.UNAUTHORIZED,
    'AccessDenied': ErrorKind.UNAUTHORIZED,
    'AuthFailure': ErrorKind.UNAUTHORIZED,
    'ExpiredToken': ErrorKind.UNAUTHORIZED,
    'RequestExpired': ErrorKind.UNAUTHORIZED,
    'InvalidParameterValue': ErrorKind.INVALID_ARGUMENT,
    'InvalidArgument': ErrorKind.INVALID_ARGUMENT,
    'MalformedXML': ErrorKind.INVALID_ARGUMENT,
    'Throttling': ErrorKind.RATE_LIMITED,
    'ThrottlingException': ErrorKind.RATE_LIMITED,
    'RequestLimitExceeded': ErrorKind.RATE_LIMITED,
    'SlowDown': ErrorKind.SERVER_BUSY,
    'ServiceUnavailable': ErrorKind.SERVER_BUSY,
    'InternalError': ErrorKind.UNCLASSIFIED,
}

AZURE_CODE_TABLE: Mapping[str, ErrorKind] = {
    'BlobNotFound': ErrorKind.NOT_FOUND,
    'ContainerNotFound': ErrorKind.NOT_FOUND,
    'ResourceNotFound': ErrorKind.NOT_FOUND,
    'ContainerAlreadyExists': ErrorKind.ALREADY_EXISTS,
    'BlobAlreadyExists': ErrorKind.ALREADY_EXISTS,
    'ContainerBeingDeleted': ErrorKind.CONFLICT,
    'LeaseIdMissing': ErrorKind.CONFLICT,
    'AuthenticationFailed': ErrorKind.UNAUTHORIZED,
    'InvalidQueryParameterValue': ErrorKind.INVALID_ARGUMENT,
    'InvalidHeaderValue': ErrorKind.INVALID_ARGUMENT,
    'ServerBusy': ErrorKind.SERVER_BUSY,
    'OperationTimedOut': ErrorKind.SERVER_BUSY,
}

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# РАЗБОР ТЕЛА ОШИБКИ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_CODE_FIELDS = ('Code', 'code', 'errorCode', 'error_code', 'error')
_MESSAGE_FIELDS = ('Message', 'message', 'errorMessage', 'error_description', 'detail')


def _first_text(mapping: dict, fields: Tuple[str, ...]) -> Optional[str]:
    for name in fields:
        value = mapping.get(name)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return str(value)
    return None


def _strip_ns(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def parse_error_payload(result: HttpResult) -> Tuple[Optional[str], Optional[str]]:
    """
    Достать (code, message) из тела ошибки.

    Понимает JSON (`{"Code": ...}`, `{"error": {"code": ..., "message": ...}}`)
    и XML (`<Error><Code>..</Code><Message>..</Message></Error>`, в том числе
    вложенный в `<Response><Errors>`). Нераспознанное тело даёт (None, None).

    Examples:
        >>> parse_error_payload(HttpResult(404, content=b"<Error><Code>NoSuchKey</Code></Error>"))
        ('NoSuchKey', None)
    """
    content = result.content
    if not content:
        return None, None

    text = content.strip()
    if text[:1] in (b'{', b'['):
        try:
            data = json.loads(text)
        except ValueError:
            return None, None
        if not isinstance(data, dict):
            return None, None
        nested = data.get('error') or data.get('Error')
        if isinstance(nested, dict):
            return _first_text(nested, _CODE_FIELDS), _first_text(nested, _MESSAGE_FIELDS)
        return _first_text(data, _CODE_FIELDS), _first_text(data, _MESSAGE_FIELDS)

    if text[:1] == b'<':
        try:
            root = ET.fromstring(text)
        except ET.ParseError:
            return None, None
        code = message = None
        for element in root.iter():
            name = _strip_ns(element.tag)
            if name == 'Code' and code is None:
                code = (element.text or '').strip() or None
            elif name == 'Message' and message is None:
                message = (element.text or '').strip() or None
        return code, message

    return None, None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# КЛАССИФИКАТОР
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ErrorClassifier:
    """
    Превращает неуспешный HttpResult в ClassifiedApiError.

    Args:
        code_table: Код провайдера -> ErrorKind
        status_table: HTTP статус -> ErrorKind
        tolerate_missing_on_delete: NOT_FOUND для DELETE - не ошибка
        payload_parser: Функция (result) -> (code, message)
        rate_limit_hint: Функция (result) -> секунды до сброса лимита или None
            (по умолчанию RetryPolicy().rate_limit_hint)

    Examples:
        >>> classifier = ErrorClassifier(AWS_CODE_TABLE)
        >>> error = classifier.classify(result, "GET", "https://s3.example.com/bucket/key")
        >>> error.kind
        <ErrorKind.NOT_FOUND: 'NOT_FOUND'>
    """

    def __init__(
        self,
        code_table: Optional[Mapping[str, ErrorKind]] = None,
        status_table: Optional[Mapping[int, ErrorKind]] = None,
        tolerate_missing_on_delete: bool = True,
        payload_parser: PayloadParser = parse_error_payload,
        rate_limit_hint: Optional[RateLimitHint] = None,
    ):
        self.code_table = dict(GENERIC_CODE_TABLE if code_table is None else code_table)
        self.status_table = dict(DEFAULT_STATUS_TABLE if status_table is None else status_table)
        self.tolerate_missing_on_delete = tolerate_missing_on_delete
        self._payload_parser = payload_parser
        self._rate_limit_hint = rate_limit_hint or RetryPolicy().rate_limit_hint

    def kind_for(self, status_code: int, code: Optional[str]) -> ErrorKind:
        """Код провайдера, затем статус, иначе UNCLASSIFIED."""
        if code and code in self.code_table:
            return self.code_table[code]
        return self.status_table.get(status_code, ErrorKind.UNCLASSIFIED)

    def classify(
        self,
        result: HttpResult,
        method: str,
        endpoint: Optional[str] = None,
    ) -> Optional[ClassifiedApiError]:
        """
        Классифицировать неуспешный ответ.

        Args:
            result: HTTP ответ
            method: HTTP метод запроса
            endpoint: Endpoint без query строки

        Returns:
            ClassifiedApiError или None если ответ успешный либо
            это терпимый NOT_FOUND на DELETE
        """
        if result.is_success:
            return None

        code, message = self._payload_parser(result)
        kind = self.kind_for(result.status_code, code)

        if (
            kind is ErrorKind.NOT_FOUND
            and str(method).upper() == 'DELETE'
            and self.tolerate_missing_on_delete
        ):
            logger.debug("Tolerating missing resource on DELETE %s", endpoint)
            return None

        error_class = ERROR_CLASSES[kind]
        if error_class is RateLimitedError:
            return RateLimitedError(
                result.status_code,
                code,
                message,
                method=str(method),
                endpoint=endpoint,
                retry_after=self._rate_limit_hint(result),
            )
        return error_class(result.status_code, code, message, method=str(method), endpoint=endpoint)
