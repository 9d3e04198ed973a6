"""
Система конфигурации для Dispatch Core.

Все конфиги immutable (frozen dataclasses) для потокобезопасности.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, FrozenSet, Mapping, Optional, Tuple, Union

if TYPE_CHECKING:
    from .logging import LoggingConfig

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TIMEOUT CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class TimeoutConfig:
    """
    Конфигурация таймаутов транспорта.

    Args:
        connect: Таймаут подключения (сек)
        read: Таймаут чтения данных (сек)

    Examples:
        >>> TimeoutConfig(connect=5, read=30)
    """
    connect: float = 5
    read: float = 30

    def __post_init__(self):
        """Валидация."""
        if self.connect <= 0:
            raise ValueError("connect timeout must be positive")
        if self.read <= 0:
            raise ValueError("read timeout must be positive")

    def as_tuple(self) -> Tuple[float, float]:
        """Вернуть как (connect, read) для requests."""
        return (self.connect, self.read)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RETRY CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RetryConfig:
    """
    Конфигурация retry стратегии.

    Args:
        max_attempts: Максимум попыток (включая первую)
        backoff_base: Базовая задержка (сек)
        backoff_factor: Множитель для exponential backoff
        backoff_max: Максимальная задержка (сек)
        backoff_jitter: Добавлять случайность (против thundering herd)
        idempotent_methods: HTTP методы, которые безопасно повторять
        idempotent_actions: Явный список безопасных операций (Action=...)
        idempotent_action_prefixes: Префиксы read-only операций (Describe*, List*, Get*)
        action_param: Имя параметра с именем операции
        retryable_status_codes: Статусы, которые повторяются для безопасных запросов
        busy_status_codes: Статусы "сервер занят", которые повторяются всегда

    Examples:
        >>> RetryConfig(max_attempts=3, backoff_base=0.5)
        >>> RetryConfig(idempotent_actions=frozenset({"RebootInstances"}))
    """
    max_attempts: int = 5
    backoff_base: float = 0.5
    backoff_factor: float = 2.0
    backoff_max: float = 60.0
    backoff_jitter: bool = True

    idempotent_methods: FrozenSet[str] = frozenset(
        {'GET', 'HEAD', 'OPTIONS', 'PUT', 'DELETE'}
    )
    idempotent_actions: FrozenSet[str] = frozenset()
    idempotent_action_prefixes: Tuple[str, ...] = ('Describe', 'List', 'Get')
    action_param: str = 'Action'

    retryable_status_codes: FrozenSet[int] = frozenset({500, 502, 504})
    busy_status_codes: FrozenSet[int] = frozenset({503})

    def __post_init__(self):
        """Валидация."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base < 0:
            raise ValueError("backoff_base must be non-negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if self.backoff_max < 0:
            raise ValueError("backoff_max must be non-negative")
        object.__setattr__(
            self, 'idempotent_methods', frozenset(m.upper() for m in self.idempotent_methods)
        )
        object.__setattr__(self, 'idempotent_actions', frozenset(self.idempotent_actions))
        object.__setattr__(
            self, 'idempotent_action_prefixes', tuple(self.idempotent_action_prefixes)
        )
        object.__setattr__(
            self, 'retryable_status_codes', frozenset(self.retryable_status_codes)
        )
        object.__setattr__(self, 'busy_status_codes', frozenset(self.busy_status_codes))

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RATE LIMIT CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RateLimitConfig:
    """
    Конфигурация ожидания при rate limit.

    Args:
        status_codes: Статусы "too many requests"
        reset_headers: Заголовки с epoch-секундами сброса лимита
        respect_retry_after: Учитывать Retry-After header
        min_delay: Минимальная задержка (сек)
        max_delay: Дольше ждать не будем, сдаёмся (сек)

    Examples:
        >>> RateLimitConfig(max_delay=600)
    """
    status_codes: FrozenSet[int] = frozenset({429})
    reset_headers: Tuple[str, ...] = ('X-RateLimit-Reset', 'RateLimit-Reset')
    respect_retry_after: bool = True
    min_delay: float = 1.0
    max_delay: float = 7200.0

    def __post_init__(self):
        """Валидация."""
        if self.min_delay < 0:
            raise ValueError("min_delay must be non-negative")
        if self.max_delay < self.min_delay:
            raise ValueError("max_delay must be >= min_delay")
        object.__setattr__(self, 'status_codes', frozenset(self.status_codes))
        object.__setattr__(self, 'reset_headers', tuple(self.reset_headers))

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CONNECTION POOL CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class ConnectionPoolConfig:
    """
    Конфигурация connection pool.

    Args:
        pool_connections: Количество connection pools для кеширования
        pool_maxsize: Максимум соединений в пуле
        pool_block: Блокировать при достижении лимита
        max_redirects: Максимум редиректов

    Examples:
        >>> ConnectionPoolConfig(pool_maxsize=20)
    """
    pool_connections: int = 10
    pool_maxsize: int = 10
    pool_block: bool = False
    max_redirects: int = 30

    def __post_init__(self):
        """Валидация."""
        if self.pool_connections <= 0:
            raise ValueError("pool_connections must be positive")
        if self.pool_maxsize <= 0:
            raise ValueError("pool_maxsize must be positive")
        if self.max_redirects < 0:
            raise ValueError("max_redirects must be non-negative")

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SECURITY CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class SecurityConfig:
    """
    Конфигурация безопасности транспорта.

    Args:
        max_response_size: Максимальный размер ответа (байты)
        verify_ssl: Проверять SSL сертификаты
        allow_redirects: Разрешать редиректы

    Examples:
        >>> SecurityConfig(max_response_size=50*1024*1024)  # 50MB
        >>> SecurityConfig(verify_ssl=False)  # Для тестов
    """
    max_response_size: int = 100 * 1024 * 1024  # 100MB
    verify_ssl: bool = True
    allow_redirects: bool = False

    def __post_init__(self):
        """Валидация."""
        if self.max_response_size <= 0:
            raise ValueError("max_response_size must be positive")

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MAIN CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class DispatcherConfig:
    """
    Главная конфигурация Dispatcher.

    Immutable конфигурация для потокобезопасности.

    Args:
        headers: Заголовки по умолчанию (добавляются до подписи)
        timeout: Конфигурация таймаутов
        retry: Конфигурация retry
        rate_limit: Конфигурация ожидания rate limit
        pool: Конфигурация connection pool
        security: Конфигурация безопасности
        tolerate_missing_on_delete: DELETE несуществующего ресурса - не ошибка
        logging: Конфигурация логирования (None = без логирования)

    Examples:
        >>> config = DispatcherConfig()
        >>> config = DispatcherConfig.create(timeout=60, max_attempts=3)
    """
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    pool: ConnectionPoolConfig = field(default_factory=ConnectionPoolConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    tolerate_missing_on_delete: bool = True
    logging: Optional['LoggingConfig'] = None

    def __post_init__(self):
        """Freeze mutable dicts."""
        if isinstance(self.headers, dict):
            object.__setattr__(self, 'headers', MappingProxyType(dict(self.headers)))

    @classmethod
    def create(
        cls,
        timeout: Union[float, Tuple[float, float], TimeoutConfig] = 30,
        max_attempts: int = 5,
        verify_ssl: bool = True,
        headers: Optional[Dict[str, str]] = None,
        pool_maxsize: Optional[int] = None,
        rate_limit_max_delay: Optional[float] = None,
        logging: Optional['LoggingConfig'] = None,
        **kwargs
    ) -> 'DispatcherConfig':
        """
        Удобный конструктор конфигурации.

        Args:
            timeout: Таймаут (число, (connect, read) или TimeoutConfig)
            max_attempts: Максимум попыток (включая первую)
            verify_ssl: Проверять SSL
            headers: Заголовки по умолчанию
            pool_maxsize: Размер connection pool
            rate_limit_max_delay: Максимум ожидания rate limit (сек)
            logging: Конфигурация логирования

        Returns:
            DispatcherConfig instance

        Examples:
            >>> config = DispatcherConfig.create(timeout=(5, 60), max_attempts=3)
        """
        pool_cfg = (
            ConnectionPoolConfig(pool_maxsize=pool_maxsize)
            if pool_maxsize is not None
            else ConnectionPoolConfig()
        )
        rate_cfg = (
            RateLimitConfig(max_delay=rate_limit_max_delay)
            if rate_limit_max_delay is not None
            else RateLimitConfig()
        )

        return cls(
            headers=headers or {},
            timeout=_to_timeout(timeout),
            retry=RetryConfig(max_attempts=max_attempts),
            rate_limit=rate_cfg,
            pool=pool_cfg,
            security=SecurityConfig(verify_ssl=verify_ssl),
            logging=logging,
            **kwargs
        )

    def with_timeout(
        self, timeout: Union[float, Tuple[float, float], TimeoutConfig]
    ) -> 'DispatcherConfig':
        """
        Создать новый конфиг с изменённым timeout.

        Example:
            >>> new_config = config.with_timeout(60)
        """
        return replace(self, timeout=_to_timeout(timeout))

    def with_retries(self, max_attempts: int) -> 'DispatcherConfig':
        """
        Создать новый конфиг с изменённым числом попыток.

        Остальные параметры retry сохраняются.

        Example:
            >>> new_config = config.with_retries(3)
        """
        return replace(self, retry=replace(self.retry, max_attempts=max_attempts))


def _to_timeout(timeout: Union[float, Tuple[float, float], TimeoutConfig]) -> TimeoutConfig:
    if isinstance(timeout, TimeoutConfig):
        return timeout
    if isinstance(timeout, tuple):
        return TimeoutConfig(connect=timeout[0], read=timeout[1])
    return TimeoutConfig(connect=5, read=timeout)
