"""
Исход одной попытки и решение о повторе.

Outcome = TransportFailure | HttpResult
RetryDecision = Retry | GiveUp
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional, Union

from .request import Headers


@dataclass(frozen=True)
class TransportFailure:
    """Ответ не получен: ошибка ввода-вывода."""
    cause: Exception

    @property
    def is_success(self) -> bool:
        return False


class HttpResult:
    """
    Полученный HTTP ответ.

    Args:
        status_code: HTTP статус
        headers: Заголовки ответа
        content: Тело (None если ответ потоковый и ещё не прочитан)
        raw: Исходный объект транспорта (requests.Response)
        url: URL запроса (может содержать подпись, только для внутреннего использования)

    Examples:
        >>> result = HttpResult(200, Headers.of({"Content-Type": "application/json"}), b'{"a": 1}')
        >>> result.json()["a"]
        1
    """

    def __init__(
        self,
        status_code: int,
        headers: Optional[Headers] = None,
        content: Optional[bytes] = b"",
        raw: Any = None,
        url: str = "",
        reason: str = "",
    ):
        self.status_code = status_code
        self.headers = Headers.of(headers)
        self._content = content
        self.raw = raw
        self.url = url
        self.reason = reason

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content(self) -> bytes:
        if self._content is None:
            self._content = self.raw.content if self.raw is not None else b""
        return self._content

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content or b"null")

    def iter_content(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """Потоковое чтение тела без загрузки в память."""
        if self._content is not None or self.raw is None:
            yield self.content
            return
        yield from self.raw.iter_content(chunk_size=chunk_size)

    def __repr__(self) -> str:
        return f"HttpResult(status_code={self.status_code})"


Outcome = Union[TransportFailure, HttpResult]


class GiveUpReason(str, Enum):
    """Почему повторов больше не будет."""
    SUCCEEDED = "succeeded"
    NOT_IDEMPOTENT = "not_idempotent"
    NOT_RETRYABLE = "not_retryable"
    EXHAUSTED = "exhausted"
    RATE_LIMIT_TOO_LONG = "rate_limit_too_long"


@dataclass(frozen=True)
class Retry:
    """Повторить через `after` секунд."""
    after: float
    reason: str = ""


@dataclass(frozen=True)
class GiveUp:
    """Больше не повторять."""
    reason: GiveUpReason


RetryDecision = Union[Retry, GiveUp]
