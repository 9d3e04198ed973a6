"""
Dispatcher: один вызов = одна логическая операция.

Цикл попытки:

    Building -> Signing -> Sending -> Succeeded
                   ^          |
                   |          v
                   +------ Retrying -> Failed

Каждая попытка подписывается заново (подпись содержит время), тело
перематывается перед повтором, ответ всегда освобождается через
transport.release().
"""

import threading
import time
from typing import Callable, Optional, TypeVar

from ..transport.requests_transport import RequestsTransport
from .config import DispatcherConfig
from .context import Command
from .credentials import CredentialsSupplier
from .error_classifier import ErrorClassifier
from .exceptions import (
    ClassifiedApiError,
    ExhaustedRetriesError,
    NonRepeatableBodyError,
    OperationCancelledError,
    ParseError,
    RateLimitedError,
    TransportError,
)
from .logging import DispatchLogger, NullLogger
from .logging.filters import clear_correlation_id, set_correlation_id
from .outcome import GiveUp, GiveUpReason, HttpResult, Outcome, TransportFailure
from .request import CanonicalRequest
from .retry_engine import RetryPolicy
from .utils import Clock, sanitize_headers, sanitize_url, utc_now

T = TypeVar("T")

Parser = Callable[[HttpResult], T]


class Dispatcher:
    """
    Исполнитель запросов: подпись, отправка, повторы, классификация ошибок.

    Args:
        transport: Транспорт (None - RequestsTransport.from_config(config))
        signer: Подписчик запросов
        credentials_supplier: Callable без аргументов -> Credentials
        config: Конфигурация (по умолчанию DispatcherConfig())
        retry_policy: Политика повторов (по умолчанию из config)
        classifier: Классификатор ошибок (по умолчанию из config)
        clock: Часы (UTC), общие для подписи и политики
        logger: Структурный логгер (по умолчанию из config.logging или NullLogger)
        sleep: Функция ожидания между попытками

    Examples:
        >>> dispatcher = Dispatcher(
        ...     RequestsTransport(),
        ...     ScopedHmacSigner("ec2", region="eu-west-1"),
        ...     StaticCredentialsSupplier(Credentials("AKID", "secret")),
        ... )
        >>> request = CanonicalRequest.from_url(
        ...     "GET", "https://ec2.eu-west-1.amazonaws.com/?Action=DescribeInstances"
        ... )
        >>> instances = dispatcher.execute(request, parser=parse_instances)
    """

    def __init__(
        self,
        transport,
        signer,
        credentials_supplier: CredentialsSupplier,
        config: Optional[DispatcherConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        classifier: Optional[ErrorClassifier] = None,
        clock: Clock = utc_now,
        logger=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or DispatcherConfig()
        if transport is None:
            transport = RequestsTransport.from_config(self.config)
        self.transport = transport
        self.signer = signer
        self.credentials_supplier = credentials_supplier
        self.retry_policy = retry_policy or RetryPolicy(
            self.config.retry, self.config.rate_limit, clock=clock
        )
        self.classifier = classifier or ErrorClassifier(
            tolerate_missing_on_delete=self.config.tolerate_missing_on_delete,
            rate_limit_hint=self.retry_policy.rate_limit_hint,
        )
        self._clock = clock
        self._sleep = sleep

        if logger is None and self.config.logging is not None:
            logger = DispatchLogger(self.config.logging, name="dispatch_core.dispatcher")
        self.logger = logger or NullLogger()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self) -> None:
        """Закрыть транспорт и логгер."""
        self.transport.close()
        self.logger.close()

    # ==================== Исполнение ====================

    def execute(
        self,
        request: CanonicalRequest,
        parser: Optional[Parser] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Выполнить операцию.

        Args:
            request: Неподписанный запрос
            parser: Функция HttpResult -> T (по умолчанию возвращается HttpResult)
            cancel_event: Событие отмены; проверяется перед каждым ожиданием

        Returns:
            Результат parser, либо None для терпимого DELETE несуществующего ресурса

        Raises:
            SigningError: Запрос невозможно подписать (не повторяется)
            ClassifiedApiError: Ошибка API, повтор невозможен или бессмыслен
            TransportError: Ответ не получен, а запрос не идемпотентен
            ExhaustedRetriesError: Бюджет попыток исчерпан
            ParseError: Парсер упал на успешном ответе
            NonRepeatableBodyError: Повтор потребовал перемотать одноразовое тело
            OperationCancelledError: Операция отменена
        """
        request = request.with_headers(
            (name, value) for name, value in self.config.headers.items()
            if name not in request.headers
        ).with_entity_headers()

        command = Command(request)
        method = request.method.value
        url = sanitize_url(request.url)
        set_correlation_id(command.request_id)
        start_time = time.time()

        self.logger.info(
            "Request started",
            method=method,
            url=url,
            correlation_id=command.request_id,
            max_attempts=self.config.retry.max_attempts,
        )

        try:
            while True:
                if command.attempts > 0:
                    self._rewind_body(command)

                outcome = self._attempt(command)
                command.record(outcome)

                api_error: Optional[ClassifiedApiError] = None
                if isinstance(outcome, HttpResult):
                    if outcome.is_success:
                        return self._complete(command, outcome, parser, start_time)
                    api_error = self._classify(command, outcome)
                    if api_error is None:
                        self.logger.info(
                            "Request completed",
                            method=method,
                            url=url,
                            status_code=outcome.status_code,
                            attempt=command.attempts,
                            tolerated_missing=True,
                            duration_ms=round((time.time() - start_time) * 1000, 2),
                        )
                        return None

                error = outcome.cause if isinstance(outcome, TransportFailure) else api_error
                decision = self.retry_policy.decide(command, outcome, api_error)

                if isinstance(decision, GiveUp):
                    raise self._give_up(command, decision, outcome, error, start_time)

                self.logger.warning(
                    "Request error (will retry)",
                    method=method,
                    url=url,
                    error=str(error),
                    error_type=type(error).__name__,
                    attempt=command.attempts,
                    max_attempts=self.config.retry.max_attempts,
                    wait_time_s=round(decision.after, 2),
                    reason=decision.reason,
                    duration_ms=round((time.time() - start_time) * 1000, 2),
                )
                self._wait(decision.after, cancel_event, command)
        finally:
            clear_correlation_id()

    # ==================== Шаги ====================

    def _attempt(self, command: Command) -> Outcome:
        """Подписать и отправить; SigningError пробрасывается как есть."""
        credentials = self.credentials_supplier()
        signed = self.signer.sign(command.request, credentials, self._clock)
        self.logger.debug(
            "Request signed",
            method=command.method,
            url=sanitize_url(signed.url),
            attempt=command.attempts + 1,
            headers=sanitize_headers(signed.headers),
        )
        try:
            return self.transport.send(signed)
        except TransportError as e:
            return TransportFailure(e)

    def _rewind_body(self, command: Command) -> None:
        body = command.request.body
        if body is not None and not body.rewind():
            raise NonRepeatableBodyError(
                "Request body is a consumed stream and cannot be resent",
                command.method,
                command.request.endpoint,
            )

    def _classify(self, command: Command, result: HttpResult) -> Optional[ClassifiedApiError]:
        try:
            api_error = self.classifier.classify(result, command.method, command.request.endpoint)
        finally:
            self.transport.release(result)
        if isinstance(api_error, RateLimitedError):
            # Подсказка по тем же часам и заголовкам, что и у политики
            hint = self.retry_policy.rate_limit_hint(result)
            if hint is not None:
                api_error.retry_after = hint
        return api_error

    def _complete(self, command: Command, result: HttpResult, parser, start_time: float):
        try:
            if parser is None:
                # Без парсера тело читается до release
                result.content
                value = result
            else:
                try:
                    value = parser(result)
                except Exception as e:
                    raise ParseError(
                        f"Response parser failed: {type(e).__name__}: {e}",
                        command.method,
                        command.request.endpoint,
                    ) from e
        finally:
            self.transport.release(result)

        self.logger.info(
            "Request completed",
            method=command.method,
            url=sanitize_url(command.request.url),
            status_code=result.status_code,
            attempt=command.attempts,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return value

    def _give_up(
        self,
        command: Command,
        decision: GiveUp,
        outcome: Outcome,
        error: Exception,
        start_time: float,
    ) -> Exception:
        exhausted = decision.reason is GiveUpReason.EXHAUSTED
        self.logger.error(
            "Request failed",
            method=command.method,
            url=sanitize_url(command.request.url),
            error=str(error),
            error_type=type(error).__name__,
            reason=decision.reason.value,
            attempt=command.attempts,
            max_attempts=self.config.retry.max_attempts,
            is_max_attempts=exhausted,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        if exhausted:
            return ExhaustedRetriesError(
                command.attempts,
                last_outcome=outcome,
                last_error=error,
                method=command.method,
                endpoint=command.request.endpoint,
            )
        return error

    def _wait(
        self,
        delay: float,
        cancel_event: Optional[threading.Event],
        command: Command,
    ) -> None:
        if cancel_event is None:
            self._sleep(delay)
            return
        if cancel_event.is_set() or cancel_event.wait(delay):
            raise OperationCancelledError(
                f"Operation cancelled after {command.attempts} attempt(s)",
                command.method,
                command.request.endpoint,
            )
