"""Тесты RequestsTransport (HTTP замокан через responses)."""

import threading
from unittest.mock import Mock, patch

import pytest
import requests
import responses

from dispatch_core.core.config import (
    ConnectionPoolConfig,
    DispatcherConfig,
    SecurityConfig,
    TimeoutConfig,
)
from dispatch_core.core.exceptions import (
    ConnectionError,
    ResponseTooLargeError,
    TimeoutError,
    TransportError,
)
from dispatch_core.core.request import Body, CanonicalRequest
from dispatch_core.signing.scoped import ScopedHmacSigner
from dispatch_core.transport import RequestsTransport, ThreadSafeSessionManager, pooled_session_factory

URL = "https://api.example.com/v1/servers"


@pytest.fixture
def transport():
    with RequestsTransport(timeout=TimeoutConfig(connect=1, read=2)) as t:
        yield t


class TestSend:

    def test_success(self, transport, mock_responses):
        mock_responses.add(
            responses.GET, URL, json={"servers": []}, status=200,
            headers={"X-Request-Id": "req-1"},
        )

        result = transport.send(CanonicalRequest.from_url("GET", URL))

        assert result.status_code == 200
        assert result.json() == {"servers": []}
        assert result.headers.get("x-request-id") == "req-1"
        transport.release(result)

    def test_error_status_is_a_result(self, transport, mock_responses):
        """4xx/5xx - это ответ, а не исключение транспорта."""
        mock_responses.add(responses.GET, URL, body="busy", status=503)
        result = transport.send(CanonicalRequest.from_url("GET", URL))
        assert result.status_code == 503
        assert result.text == "busy"

    def test_headers_query_and_body_sent(self, transport, mock_responses):
        mock_responses.add(responses.POST, URL, status=201)
        request = CanonicalRequest.from_url(
            "POST", URL + "?dryRun=true&tag=a b",
            headers={"Authorization": "Bearer abc", "X-Amz-Date": "20150830T123600Z"},
            body=Body.of_bytes(b'{"name": "srv"}', content_type="application/json"),
        ).with_entity_headers()

        transport.send(request)

        sent = mock_responses.calls[0].request
        assert sent.url == URL + "?dryRun=true&tag=a%20b"
        assert sent.headers["Authorization"] == "Bearer abc"
        assert sent.headers["X-Amz-Date"] == "20150830T123600Z"
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.body == b'{"name": "srv"}'

    def test_repeated_header_sent_as_signed(
        self, transport, mock_responses, credentials, fixed_clock
    ):
        """Повторяющийся x-amz-* заголовок уходит в том же виде, в каком подписан."""
        mock_responses.add(responses.GET, URL, status=200)
        request = CanonicalRequest.from_url(
            "GET", URL, headers=[("X-Amz-Meta-Tag", "a"), ("X-Amz-Meta-Tag", "b")]
        )
        signed = ScopedHmacSigner("ec2", region="us-east-1").sign(request, credentials, fixed_clock)

        transport.send(signed)

        sent = mock_responses.calls[0].request
        assert sent.headers["X-Amz-Meta-Tag"] == "a,b"
        assert "x-amz-meta-tag" in signed.headers.get("Authorization")

    def test_redirects_not_followed(self, transport, mock_responses):
        mock_responses.add(
            responses.GET, URL, status=307, headers={"Location": "https://other.example.com/"}
        )
        result = transport.send(CanonicalRequest.from_url("GET", URL))
        assert result.status_code == 307
        assert len(mock_responses.calls) == 1


class TestErrors:

    @pytest.mark.parametrize("exc,expected,timeout_type", [
        (requests.exceptions.ConnectTimeout(), TimeoutError, "connect"),
        (requests.exceptions.ReadTimeout(), TimeoutError, "read"),
    ])
    def test_timeouts(self, transport, mock_responses, exc, expected, timeout_type):
        mock_responses.add(responses.GET, URL, body=exc)

        with pytest.raises(expected) as exc_info:
            transport.send(CanonicalRequest.from_url("GET", URL))

        assert exc_info.value.timeout_type == timeout_type
        assert exc_info.value.retryable

    def test_connection_error(self, transport, mock_responses):
        mock_responses.add(responses.GET, URL, body=requests.exceptions.ConnectionError("reset"))

        with pytest.raises(ConnectionError) as exc_info:
            transport.send(CanonicalRequest.from_url("GET", URL + "?X-Amz-Signature=abc"))

        assert isinstance(exc_info.value, TransportError)
        assert "X-Amz-Signature" not in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, requests.exceptions.ConnectionError)


class TestSizeGuard:

    def test_declared_length_too_large(self, mock_responses):
        mock_responses.add(
            responses.GET, URL, body=b"x" * 10, headers={"Content-Length": "5000"},
            auto_calculate_content_length=False,
        )
        transport = RequestsTransport(security=SecurityConfig(max_response_size=1000))

        with pytest.raises(ResponseTooLargeError) as exc_info:
            transport.send(CanonicalRequest.from_url("GET", URL))
        assert exc_info.value.size == 5000

    def test_actual_body_too_large(self, mock_responses):
        mock_responses.add(responses.GET, URL, body=b"x" * 2000)
        transport = RequestsTransport(security=SecurityConfig(max_response_size=1000))

        with pytest.raises(ResponseTooLargeError):
            transport.send(CanonicalRequest.from_url("GET", URL))

    def test_malformed_content_length_ignored(self):
        response = Mock(headers={"Content-Length": "abc"})
        assert RequestsTransport()._check_size(response, URL) is None


class TestStreaming:

    def test_body_read_lazily(self, mock_responses):
        mock_responses.add(responses.GET, URL, body=b"chunk" * 100)
        transport = RequestsTransport(stream_responses=True)

        result = transport.send(CanonicalRequest.from_url("GET", URL))

        assert b"".join(result.iter_content(chunk_size=64)) == b"chunk" * 100
        transport.release(result)


class TestSessions:

    def test_session_per_thread(self):
        transport = RequestsTransport()
        main_session = transport.session
        other = []

        thread = threading.Thread(target=lambda: other.append(transport.session))
        thread.start()
        thread.join()

        assert transport.session is main_session
        assert other[0] is not main_session
        transport.close()

    def test_adapter_does_not_retry(self):
        session = pooled_session_factory(ConnectionPoolConfig(pool_maxsize=3))()
        adapter = session.get_adapter("https://api.example.com/")

        assert adapter.max_retries.total == 0
        assert session.trust_env is False

    def test_close_all(self):
        manager = ThreadSafeSessionManager(pooled_session_factory(ConnectionPoolConfig()))
        manager.get_session()
        assert manager.get_active_sessions_count() == 1

        manager.close_all()
        manager.close_all()

        assert manager.get_active_sessions_count() == 0


class TestFromConfig:

    def test_settings_reach_session_request(self):
        config = DispatcherConfig.create(timeout=(3, 60), verify_ssl=False)
        transport = RequestsTransport.from_config(config)
        response = Mock(status_code=200, headers={}, content=b"", url=URL, reason="OK")

        with patch.object(transport.session, "request", return_value=response) as request:
            transport.send(CanonicalRequest.from_url("GET", URL))

        assert request.call_args.kwargs["timeout"] == (3, 60)
        assert request.call_args.kwargs["verify"] is False
        assert request.call_args.kwargs["allow_redirects"] is False
        transport.close()

    def test_pool_and_security_from_config(self):
        config = DispatcherConfig(
            pool=ConnectionPoolConfig(pool_maxsize=4),
            security=SecurityConfig(max_response_size=1024),
        )
        transport = RequestsTransport.from_config(config, stream_responses=True)

        assert transport.pool.pool_maxsize == 4
        assert transport.security.max_response_size == 1024
        assert transport.stream_responses
