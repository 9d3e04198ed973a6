# src/dispatch_core/transport/requests_transport.py
"""
Транспорт поверх requests.

Одна попытка = один вызов session.request. Ошибки ввода-вывода
переводятся в TransportError через classify_requests_exception;
собственных повторов транспорт не делает (HTTPAdapter(max_retries=0)).
"""

import logging
from typing import Optional

import requests

from ..core.config import ConnectionPoolConfig, DispatcherConfig, SecurityConfig, TimeoutConfig
from ..core.exceptions import ResponseTooLargeError, classify_requests_exception
from ..core.outcome import HttpResult
from ..core.request import CanonicalRequest, Headers
from .base import Transport
from .session_manager import ThreadSafeSessionManager, pooled_session_factory

logger = logging.getLogger(__name__)


class RequestsTransport(Transport):
    """
    Thread-safe транспорт на requests.Session.

    Args:
        timeout: Таймауты (connect, read)
        pool: Настройки connection pool
        security: verify_ssl, allow_redirects, max_response_size
        stream_responses: Не читать тело сразу (для больших загрузок)

    Examples:
        >>> with RequestsTransport() as transport:
        ...     result = transport.send(signed_request)
        ...     transport.release(result)
    """

    def __init__(
        self,
        timeout: Optional[TimeoutConfig] = None,
        pool: Optional[ConnectionPoolConfig] = None,
        security: Optional[SecurityConfig] = None,
        stream_responses: bool = False,
    ):
        self.timeout = timeout or TimeoutConfig()
        self.pool = pool or ConnectionPoolConfig()
        self.security = security or SecurityConfig()
        self.stream_responses = stream_responses
        self._session_manager = ThreadSafeSessionManager(pooled_session_factory(self.pool))

    @classmethod
    def from_config(cls, config: DispatcherConfig, stream_responses: bool = False) -> "RequestsTransport":
        """
        Транспорт с таймаутами, пулом и security из DispatcherConfig.

        Examples:
            >>> config = ConfigFileLoader.from_file("dispatch.yaml")
            >>> transport = RequestsTransport.from_config(config)
        """
        return cls(config.timeout, config.pool, config.security, stream_responses)

    @property
    def session(self) -> requests.Session:
        """Сессия текущего потока."""
        return self._session_manager.get_session()

    def send(self, request: CanonicalRequest) -> HttpResult:
        """
        Отправить подписанный запрос.

        Raises:
            TransportError: Ответ не получен (таймаут, обрыв соединения)
            ResponseTooLargeError: Ответ больше security.max_response_size
        """
        method = request.method.value
        body = request.body
        try:
            response = self.session.request(
                method=method,
                url=request.url,
                headers=request.headers.to_dict(),
                data=body.payload() if body is not None else None,
                timeout=self.timeout.as_tuple(),
                verify=self.security.verify_ssl,
                allow_redirects=self.security.allow_redirects,
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            raise classify_requests_exception(e, method, request.endpoint) from e

        try:
            self._check_size(response, request.endpoint)
            content = None
            if not self.stream_responses:
                content = response.content
                if len(content) > self.security.max_response_size:
                    raise ResponseTooLargeError(
                        len(content), self.security.max_response_size, request.endpoint
                    )
        except requests.exceptions.RequestException as e:
            response.close()
            raise classify_requests_exception(e, method, request.endpoint) from e
        except ResponseTooLargeError:
            response.close()
            raise

        return HttpResult(
            status_code=response.status_code,
            headers=Headers.of(response.headers.items()),
            content=content,
            raw=response,
            url=response.url or request.url,
            reason=response.reason or "",
        )

    def _check_size(self, response: requests.Response, endpoint: str) -> None:
        content_length = response.headers.get('Content-Length')
        if not content_length:
            return
        try:
            size = int(content_length)
        except ValueError:
            logger.debug(f"Ignoring malformed Content-Length header: {content_length[:50]}")
            return
        if size > self.security.max_response_size:
            raise ResponseTooLargeError(size, self.security.max_response_size, endpoint)

    def release(self, result: HttpResult) -> None:
        if result.raw is not None:
            result.raw.close()

    def close(self) -> None:
        self._session_manager.close_all()
