# src/dispatch_core/signing/base.py
"""
Общий контракт подписчиков запросов.

Подписчик - stateless функция (request, credentials, clock) -> request.
Он читает только учётные данные и текущее время; никакого кеша между
запросами. Это позволяет переподписывать запрос на каждой попытке.
"""

import base64
import hashlib
import hmac
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from ..core.credentials import Credentials
from ..core.exceptions import SigningError
from ..core.logging import NullLogger
from ..core.request import CanonicalRequest
from ..core.utils import Clock, as_utc, utc_now


class SigningMode(str, Enum):
    """
    Куда кладётся подпись.

    HEADER - заголовок Authorization (обычный запрос).
    QUERY - параметры query строки (pre-signed / временный URL).
    Режимы взаимоисключающие: подпись никогда не кладётся в оба места.
    """
    HEADER = "header"
    QUERY = "query"


Key = Union[str, bytes]


def _as_bytes(value: Key) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def hmac_digest(key: Key, message: Key, algorithm: str = "sha256") -> bytes:
    """HMAC(key, message) в сыром виде."""
    return hmac.new(_as_bytes(key), _as_bytes(message), getattr(hashlib, algorithm)).digest()


def hmac_base64(key: Key, message: Key, algorithm: str = "sha256") -> str:
    return base64.b64encode(hmac_digest(key, message, algorithm)).decode("ascii")


def sha256_hex(data: Key) -> str:
    return hashlib.sha256(_as_bytes(data)).hexdigest()


class RequestSigner(ABC):
    """
    Базовый подписчик.

    Подклассы реализуют `_sign`. Публичный `sign` проверяет учётные данные
    и фиксирует момент подписи, чтобы внутри одной подписи время было
    одно и то же.

    Args:
        logger: Структурный логгер (по умолчанию NullLogger)
    """

    def __init__(self, logger=None):
        self.logger = logger or NullLogger()

    def sign(
        self,
        request: CanonicalRequest,
        credentials: Optional[Credentials],
        clock: Clock = utc_now,
    ) -> CanonicalRequest:
        """
        Подписать запрос.

        Args:
            request: Неподписанный (или частично подписанный) запрос
            credentials: Учётные данные
            clock: Часы (UTC)

        Returns:
            Новый подписанный CanonicalRequest

        Raises:
            SigningError: Нет учётных данных, истекли, или тело нельзя хешировать
        """
        now = as_utc(clock())
        self.check_credentials(credentials, now)
        return self._sign(request, credentials, now)

    @staticmethod
    def check_credentials(credentials: Optional[Credentials], now: datetime) -> None:
        if credentials is None or not credentials.identity or not credentials.secret:
            raise SigningError("Credentials are missing identity or secret")
        if credentials.is_expired(now):
            raise SigningError(
                f"Credentials for {credentials.identity} expired at {credentials.expires_at}"
            )

    def _trace(self, kind: str, value: str) -> None:
        """Каноническая строка в DEBUG (только если явно включено в конфиге логов)."""
        if self.logger.log_string_to_sign:
            self.logger.debug(f"{self.__class__.__name__} {kind}", canonical=value)

    @abstractmethod
    def _sign(
        self,
        request: CanonicalRequest,
        credentials: Credentials,
        now: datetime,
    ) -> CanonicalRequest:
        """Реализация подписи."""
