"""
Pytest configuration and fixtures for dispatch-core tests.
"""

from datetime import datetime, timezone
from typing import List

import pytest
import responses as responses_lib

from dispatch_core.core.credentials import Credentials, StaticCredentialsSupplier
from dispatch_core.core.exceptions import TransportError
from dispatch_core.core.logging.config import LoggingConfig
from dispatch_core.core.logging.filters import clear_correlation_id
from dispatch_core.core.outcome import HttpResult
from dispatch_core.core.request import CanonicalRequest, Headers
from dispatch_core.transport.base import Transport

FIXED_NOW = datetime(2015, 8, 30, 12, 36, 0, tzinfo=timezone.utc)


class FakeTransport(Transport):
    """
    Scripted transport: returns (or raises) the queued items in order.

    Items are HttpResult instances or exceptions; every sent request is
    recorded in `sent`, every released result in `released`.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.sent: List[CanonicalRequest] = []
        self.released: List[HttpResult] = []
        self.closed = False

    def queue(self, *items) -> "FakeTransport":
        self.script.extend(items)
        return self

    def send(self, request: CanonicalRequest) -> HttpResult:
        self.sent.append(request)
        if not self.script:
            raise AssertionError(f"Unexpected request: {request.describe()}")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def release(self, result: HttpResult) -> None:
        self.released.append(result)

    def close(self) -> None:
        self.closed = True


def make_result(status_code: int = 200, content=b"", headers=None) -> HttpResult:
    """HttpResult helper for tests."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return HttpResult(status_code, Headers.of(headers), content)


def transport_error(message: str = "Connection reset") -> TransportError:
    return TransportError(message, "GET", "https://api.example.com/")


@pytest.fixture(autouse=True)
def _reset_correlation_id():
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def fixed_now():
    """Фиксированный момент (время тестового вектора v4)."""
    return FIXED_NOW


@pytest.fixture
def fixed_clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def credentials():
    """Учётные данные из публичного тестового вектора."""
    return Credentials("AKIDEXAMPLE", "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY")


@pytest.fixture
def credentials_supplier(credentials):
    return StaticCredentialsSupplier(credentials)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def sleeps():
    """Записывает задержки вместо реального ожидания."""
    recorded: List[float] = []
    return recorded


@pytest.fixture
def get_request():
    return CanonicalRequest.from_url("GET", "https://api.example.com/v1/servers")


@pytest.fixture
def mock_responses():
    """Mock HTTP responses using responses library."""
    with responses_lib.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def logging_config_with_file(tmp_path):
    """LoggingConfig с записью в файл во временной директории."""
    return LoggingConfig.create(
        level="DEBUG",
        format="json",
        enable_console=False,
        enable_file=True,
        file_path=str(tmp_path / "dispatch.log"),
    )
