"""
Учётные данные и их поставщики.

Credentials неизменяемы. Поставщик - любой callable без аргументов,
возвращающий Credentials. RefreshingCredentialsSupplier кеширует
значение и обновляет его под блокировкой, поэтому параллельные
вызовы видят ровно одно обновление.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from .exceptions import ConfigurationError
from .utils import Clock, as_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """
    Идентичность + секрет.

    Args:
        identity: Access key / account name / client email
        secret: Секрет (не попадает в repr)
        session_token: Временный токен сессии (опционально)
        expires_at: Момент истечения (опционально)
    """
    identity: str
    secret: str = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime, margin: timedelta = timedelta(0)) -> bool:
        if self.expires_at is None:
            return False
        return as_utc(now) + margin >= as_utc(self.expires_at)


CredentialsSupplier = Callable[[], Credentials]


class StaticCredentialsSupplier:
    """Всегда возвращает одни и те же учётные данные."""

    def __init__(self, credentials: Credentials):
        if not credentials.identity or not credentials.secret:
            raise ConfigurationError("Static credentials require identity and secret")
        self._credentials = credentials

    def __call__(self) -> Credentials:
        return self._credentials


class RefreshingCredentialsSupplier:
    """
    Мемоизирующий поставщик с обновлением по истечению срока.

    Args:
        loader: Callable, который достаёт свежие учётные данные
        clock: Часы (UTC)
        refresh_margin: Обновлять заранее, за столько до expires_at

    Examples:
        >>> supplier = RefreshingCredentialsSupplier(fetch_from_metadata_service)
        >>> creds = supplier()  # первый вызов загружает
        >>> creds = supplier()  # дальше из кеша, пока не истекут
    """

    def __init__(
        self,
        loader: Callable[[], Credentials],
        clock: Clock = utc_now,
        refresh_margin: timedelta = timedelta(minutes=5),
    ):
        self._loader = loader
        self._clock = clock
        self._refresh_margin = refresh_margin
        self._lock = threading.Lock()
        self._cached: Optional[Credentials] = None
        self.refresh_count = 0

    def _is_fresh(self, credentials: Optional[Credentials]) -> bool:
        return credentials is not None and not credentials.is_expired(
            self._clock(), self._refresh_margin
        )

    def __call__(self) -> Credentials:
        cached = self._cached
        if self._is_fresh(cached):
            return cached

        with self._lock:
            # Другой поток мог уже обновить
            if self._is_fresh(self._cached):
                return self._cached

            credentials = self._loader()
            self.refresh_count += 1
            logger.debug(
                "Credentials refreshed (identity=%s, expires_at=%s)",
                credentials.identity,
                credentials.expires_at,
            )
            self._cached = credentials
            return credentials

    def invalidate(self) -> None:
        """Сбросить кеш (например после 401)."""
        with self._lock:
            self._cached = None
