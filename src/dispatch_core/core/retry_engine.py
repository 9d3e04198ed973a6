"""
Retry policy для повторных попыток.

Включает:
- Exponential backoff с jitter
- Ожидание по подсказкам rate limit (X-RateLimit-Reset, Retry-After)
- Проверку безопасности повтора (метод или встроенное имя операции)
"""

import logging
import random
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Callable, Optional

from .config import RateLimitConfig, RetryConfig
from .context import Command
from .exceptions import ClassifiedApiError, ErrorKind
from .outcome import GiveUp, GiveUpReason, HttpResult, Outcome, Retry, RetryDecision, TransportFailure
from .utils import Clock, as_utc, epoch_millis, utc_now

logger = logging.getLogger(__name__)

# Нормальные значения: "60", "1700000000" или "Wed, 21 Oct 2015 07:28:00 GMT"
MAX_HEADER_LENGTH = 100

# Эпоха в секундах начинается примерно с 10 цифр; меньшие значения - дельта
_EPOCH_THRESHOLD = 10 ** 9


class RetryPolicy:
    """
    Решает, повторять ли попытку, и через сколько.

    Порядок правил:
        1. Успех - стоп.
        2. Транспортная ошибка - повтор только для безопасных запросов.
        3. Rate limit - ждать до сброса лимита (не дольше max_delay).
        4. SERVER_BUSY - повтор всегда; прочие 5xx из списка - только безопасные.
        5. Счётчик попыток дошёл до max_attempts - стоп в любом случае.

    Examples:
        >>> policy = RetryPolicy(RetryConfig(max_attempts=3))
        >>> decision = policy.decide(command, outcome)
        >>> if isinstance(decision, Retry):
        ...     time.sleep(decision.after)
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        rate_limit: Optional[RateLimitConfig] = None,
        clock: Clock = utc_now,
        random_fn: Callable[[], float] = random.random,
    ):
        """
        Args:
            config: Конфигурация retry
            rate_limit: Конфигурация ожидания rate limit
            clock: Часы (UTC)
            random_fn: Источник случайности для jitter
        """
        self.config = config or RetryConfig()
        self.rate_limit = rate_limit or RateLimitConfig()
        self._clock = clock
        self._random = random_fn

    # ==================== Решение ====================

    def decide(
        self,
        command: Command,
        outcome: Outcome,
        api_error: Optional[ClassifiedApiError] = None,
    ) -> RetryDecision:
        """
        Решить нужен ли retry.

        Args:
            command: Состояние операции (attempts уже включает эту попытку)
            outcome: Исход последней попытки
            api_error: Классифицированная ошибка (если есть)

        Returns:
            Retry(after) или GiveUp(reason)
        """
        if outcome.is_success:
            return GiveUp(GiveUpReason.SUCCEEDED)

        if isinstance(outcome, TransportFailure):
            if not self.is_retry_safe(command):
                return GiveUp(GiveUpReason.NOT_IDEMPOTENT)
            return self._bounded(command, self.backoff(command.failures), "transport failure")

        if self._is_rate_limited(outcome, api_error):
            delay = self.rate_limit_delay(outcome, failures=command.failures)
            if delay > self.rate_limit.max_delay:
                logger.warning(
                    "Rate limit reset too far in the future (%.0fs > %.0fs), giving up",
                    delay,
                    self.rate_limit.max_delay,
                )
                return GiveUp(GiveUpReason.RATE_LIMIT_TOO_LONG)
            return self._bounded(command, delay, "rate limited")

        if self._is_busy(outcome, api_error):
            return self._bounded(command, self.backoff(command.failures), "server busy")

        if outcome.status_code in self.config.retryable_status_codes:
            if not self.is_retry_safe(command):
                return GiveUp(GiveUpReason.NOT_IDEMPOTENT)
            return self._bounded(
                command, self.backoff(command.failures), f"HTTP {outcome.status_code}"
            )

        return GiveUp(GiveUpReason.NOT_RETRYABLE)

    def _bounded(self, command: Command, delay: float, reason: str) -> RetryDecision:
        # Лимит попыток важнее любой классификации
        if command.attempts >= self.config.max_attempts:
            return GiveUp(GiveUpReason.EXHAUSTED)
        return Retry(after=delay, reason=reason)

    # ==================== Безопасность повтора ====================

    def is_retry_safe(self, command: Command) -> bool:
        """
        Можно ли безопасно повторить запрос.

        True если метод идемпотентен или встроенная операция read-only.

        Examples:
            >>> # POST /?Action=DescribeInstances -> True
            >>> # POST /?Action=RunInstances -> False
        """
        request = command.request
        if request.method.value in self.config.idempotent_methods:
            return True

        action = request.action(self.config.action_param)
        if not action:
            return False
        if action in self.config.idempotent_actions:
            return True
        return action.startswith(self.config.idempotent_action_prefixes)

    # ==================== Rate limit ====================

    def _is_rate_limited(self, result: HttpResult, api_error: Optional[ClassifiedApiError]) -> bool:
        if api_error is not None and api_error.kind is ErrorKind.RATE_LIMITED:
            return True
        return result.status_code in self.rate_limit.status_codes

    def _is_busy(self, result: HttpResult, api_error: Optional[ClassifiedApiError]) -> bool:
        if api_error is not None and api_error.kind is ErrorKind.SERVER_BUSY:
            return True
        return result.status_code in self.config.busy_status_codes

    def rate_limit_delay(
        self,
        result: HttpResult,
        now: Optional[datetime] = None,
        failures: int = 0,
    ) -> float:
        """
        Вычислить ожидание до сброса rate limit (сек).

        Подсказка сервера (rate_limit_hint) берётся как есть, без jitter:
        сервер назвал точный момент. Без подсказки - exponential backoff
        по числу неудач. Результат не меньше min_delay.

        Args:
            result: Ответ с кодом 429 (или классифицированный RATE_LIMITED)
            now: Текущее время (по умолчанию из часов политики)
            failures: Сколько попыток уже провалилось

        Returns:
            Секунды для ожидания
        """
        delay = self.rate_limit_hint(result, now)
        if delay is None:
            delay = self.backoff(failures) if failures > 0 else 0.0
        return max(delay, self.rate_limit.min_delay)

    def rate_limit_hint(self, result: HttpResult, now: Optional[datetime] = None) -> Optional[float]:
        """
        Подсказка сервера о сбросе лимита (сек) или None.

        Приоритет: reset заголовки (epoch секунды или дельта), затем
        Retry-After (секунды или HTTP-date). Прошедший момент даёт 0.
        """
        now = as_utc(now or self._clock())

        for header in self.rate_limit.reset_headers:
            reset = self._parse_reset(result.headers.get(header))
            if reset is not None:
                if reset >= _EPOCH_THRESHOLD:
                    return max(0.0, (reset * 1000 - epoch_millis(now)) / 1000.0)
                return reset

        if self.rate_limit.respect_retry_after:
            return self._parse_retry_after(result, now)
        return None

    def _parse_reset(self, value: Optional[str]) -> Optional[float]:
        if not value:
            return None
        if len(value) > MAX_HEADER_LENGTH:
            logger.warning(f"Rate limit reset header too long ({len(value)} chars), ignoring")
            return None
        try:
            reset = float(value.strip())
        except ValueError:
            logger.debug(f"Failed to parse rate limit reset header '{value}'")
            return None
        if reset < 0:
            return None
        return reset

    def _parse_retry_after(self, result: HttpResult, now: datetime) -> Optional[float]:
        """
        Распарсить Retry-After header с валидацией против malicious input.

        Returns:
            Секунды или None
        """
        retry_after = result.headers.get('Retry-After')
        if not retry_after:
            return None

        # Защита от oversized header
        if len(retry_after) > MAX_HEADER_LENGTH:
            logger.warning(
                f"Retry-After header too long ({len(retry_after)} chars), ignoring. "
                f"Value: {retry_after[:50]}..."
            )
            return None

        try:
            # Попытка как число секунд
            seconds = float(retry_after)
            if seconds < 0 or seconds > 86400 * 365:  # Не больше года
                logger.warning(
                    f"Retry-After seconds value out of reasonable range: {seconds}"
                )
                return None
            return seconds
        except ValueError:
            # Попытка как HTTP-date
            try:
                retry_date = parsedate_to_datetime(retry_after)
            except (ValueError, TypeError, OverflowError) as e:
                logger.debug(
                    f"Failed to parse Retry-After header '{retry_after}': {e}"
                )
                return None
            delta = (as_utc(retry_date) - now).total_seconds()
            return max(0.0, delta)

    # ==================== Backoff ====================

    def backoff(self, failures: int) -> float:
        """
        Вычислить exponential backoff.

        Args:
            failures: Сколько попыток уже провалилось (1 после первой)

        Returns:
            Секунды для ожидания
        """
        exponent = max(failures - 1, 0)
        wait = self.config.backoff_base * (self.config.backoff_factor ** exponent)

        # Ограничить максимумом
        wait = min(wait, self.config.backoff_max)

        # Добавить jitter (50-150% от wait)
        if self.config.backoff_jitter:
            jitter = 0.5 + self._random()  # 0.5 to 1.5
            wait = wait * jitter

        return wait
