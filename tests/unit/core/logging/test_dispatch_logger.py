"""
Tests for DispatchLogger and NullLogger.
"""

import json
import logging
import uuid

import pytest

from conftest import FakeTransport, make_result, transport_error
from dispatch_core.core.config import DispatcherConfig, RetryConfig
from dispatch_core.core.dispatcher import Dispatcher
from dispatch_core.core.logging.config import LogFormat, LoggingConfig, LogLevel
from dispatch_core.core.logging.filters import clear_correlation_id, set_correlation_id
from dispatch_core.core.logging.logger import DispatchLogger, NullLogger
from dispatch_core.core.request import CanonicalRequest
from dispatch_core.signing.scoped import ScopedHmacSigner


def _name():
    return f"dispatch_core.test.{uuid.uuid4().hex[:8]}"


def _records(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


class TestDispatchLogger:
    """Tests for DispatchLogger class."""

    def test_defaults(self):
        logger = DispatchLogger(name=_name())
        assert logger.config.level is LogLevel.INFO
        assert logger.config.format is LogFormat.TEXT
        logger.close()

    def test_structured_fields_in_json(self, logging_config_with_file):
        logger = DispatchLogger(logging_config_with_file, name=_name())
        logger.info("Request completed", method="GET", status_code=200, attempt=1)
        logger.close()

        record = _records(logging_config_with_file.file_path)[0]
        assert record["message"] == "Request completed"
        assert record["level"] == "INFO"
        assert record["status_code"] == 200
        assert record["attempt"] == 1

    def test_sensitive_fields_masked(self, logging_config_with_file):
        """Секреты в полях и внутри строк маскируются."""
        logger = DispatchLogger(logging_config_with_file, name=_name())
        logger.info(
            "Signed",
            secret="wJalrXUtnFEMI",
            header="AWS4-HMAC-SHA256 Credential=AKID/x, SignedHeaders=host, Signature=abcdef",
        )
        logger.close()

        record = _records(logging_config_with_file.file_path)[0]
        assert record["secret"] == "***REDACTED***"
        assert "abcdef" not in record["header"]
        assert "Credential=AKID/x" in record["header"]

    def test_correlation_id_attached(self, logging_config_with_file):
        logger = DispatchLogger(logging_config_with_file, name=_name())
        set_correlation_id("op-42")
        try:
            logger.warning("Request error (will retry)")
        finally:
            clear_correlation_id()
        logger.close()

        assert _records(logging_config_with_file.file_path)[0]["correlation_id"] == "op-42"

    def test_level_filtering(self, logging_config_with_file, tmp_path):
        config = LoggingConfig.create(
            level="WARNING", format="json", enable_console=False,
            enable_file=True, file_path=str(tmp_path / "warn.log"),
        )
        logger = DispatchLogger(config, name=_name())
        logger.info("hidden")
        logger.error("shown")
        logger.close()

        assert [r["message"] for r in _records(config.file_path)] == ["shown"]

    def test_log_string_to_sign_requires_debug_and_flag(self, tmp_path):
        on = DispatchLogger(
            LoggingConfig.create(level="DEBUG", enable_console=False, log_string_to_sign=True),
            name=_name(),
        )
        off = DispatchLogger(
            LoggingConfig.create(level="INFO", enable_console=False, log_string_to_sign=True),
            name=_name(),
        )
        assert on.log_string_to_sign is True
        assert off.log_string_to_sign is False

    def test_close_is_idempotent(self, logging_config_with_file):
        logger = DispatchLogger(logging_config_with_file, name=_name())
        logger.close()
        logger.close()
        logger.info("ignored after close")
        assert logger._closed
        assert not logger.is_enabled_for(logging.ERROR)

    def test_context_manager(self, logging_config_with_file):
        with DispatchLogger(logging_config_with_file, name=_name()) as logger:
            logger.info("inside")
        assert logger._closed

    def test_file_required_when_enabled(self):
        with pytest.raises(ValueError):
            LoggingConfig.create(enable_file=True)


class TestNullLogger:

    def test_accepts_everything(self):
        logger = NullLogger()
        logger.debug("x", a=1)
        logger.info("x")
        logger.warning("x")
        logger.error("x")
        logger.exception("x")
        logger.close()
        assert logger.log_string_to_sign is False
        assert not logger.is_enabled_for(logging.CRITICAL)


class TestDispatcherLogging:
    """События жизненного цикла запроса в логе."""

    def test_retry_then_success_events(self, logging_config_with_file, credentials_supplier, fixed_clock):
        transport = FakeTransport(transport_error(), make_result(200))
        config = DispatcherConfig(
            retry=RetryConfig(max_attempts=3, backoff_jitter=False),
            logging=logging_config_with_file,
        )
        dispatcher = Dispatcher(
            transport,
            ScopedHmacSigner("ec2", region="us-east-1"),
            credentials_supplier,
            config=config,
            clock=fixed_clock,
            sleep=lambda s: None,
        )
        request_url = "https://api.example.com/v1/servers?X-Amz-Security-Token=tok123&limit=5"
        dispatcher.execute(CanonicalRequest.from_url("GET", request_url))
        dispatcher.close()

        records = _records(logging_config_with_file.file_path)
        messages = [r["message"] for r in records]
        assert messages == [
            "Request started",
            "Request signed",
            "Request error (will retry)",
            "Request signed",
            "Request completed",
        ]

        retry = records[2]
        assert retry["wait_time_s"] == 0.5
        assert retry["attempt"] == 1
        assert retry["error_type"] == "TransportError"

        started = records[0]
        assert "tok123" not in json.dumps(records)
        assert len({r["correlation_id"] for r in records}) == 1
        assert started["correlation_id"] == records[4]["correlation_id"]

    def test_signed_headers_logged_without_signature(
        self, logging_config_with_file, credentials_supplier, fixed_clock
    ):
        config = DispatcherConfig(logging=logging_config_with_file)
        dispatcher = Dispatcher(
            FakeTransport(make_result(200)),
            ScopedHmacSigner("ec2", region="us-east-1"),
            credentials_supplier,
            config=config,
            clock=fixed_clock,
        )
        dispatcher.execute(CanonicalRequest.from_url("GET", "https://ec2.amazonaws.com/"))
        dispatcher.close()

        signed = next(
            r for r in _records(logging_config_with_file.file_path)
            if r["message"] == "Request signed"
        )
        assert signed["attempt"] == 1
        assert signed["headers"]["X-Amz-Date"] == "20150830T123600Z"
        assert signed["headers"]["Authorization"] == "***REDACTED***"
        assert "AWS4-HMAC-SHA256" not in json.dumps(signed)
