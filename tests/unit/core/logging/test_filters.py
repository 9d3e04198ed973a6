"""
Tests for log filters and correlation id storage.
"""

import logging
import threading

from dispatch_core.core.logging.filters import (
    CorrelationIdFilter,
    ExtraFieldsFilter,
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)


def _record():
    return logging.LogRecord("dispatch_core", logging.INFO, __file__, 1, "msg", (), None)


class TestCorrelationIdFunctions:

    def test_set_get_clear(self):
        set_correlation_id("op-1")
        assert get_correlation_id() == "op-1"
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_clear_when_not_set(self):
        clear_correlation_id()
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_thread_local(self):
        """Каждый поток видит только свой id."""
        set_correlation_id("main")
        seen = []

        def worker():
            seen.append(get_correlation_id())
            set_correlation_id("worker")
            seen.append(get_correlation_id())

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen == [None, "worker"]
        assert get_correlation_id() == "main"


class TestCorrelationIdFilter:

    def test_adds_id(self):
        set_correlation_id("op-2")
        record = _record()
        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "op-2"

    def test_no_id_no_attribute(self):
        record = _record()
        CorrelationIdFilter().filter(record)
        assert not hasattr(record, "correlation_id")

    def test_explicit_id_kept(self):
        set_correlation_id("op-3")
        record = _record()
        record.correlation_id = "explicit"
        CorrelationIdFilter().filter(record)
        assert record.correlation_id == "explicit"


class TestExtraFieldsFilter:

    def test_adds_static_fields(self):
        record = _record()
        ExtraFieldsFilter({"service": "inventory", "provider": "ec2"}).filter(record)
        assert record.service == "inventory"
        assert record.provider == "ec2"

    def test_does_not_override(self):
        record = _record()
        record.service = "billing"
        ExtraFieldsFilter({"service": "inventory"}).filter(record)
        assert record.service == "billing"

    def test_source_dict_copied(self):
        fields = {"service": "inventory"}
        log_filter = ExtraFieldsFilter(fields)
        fields["service"] = "changed"
        record = _record()
        log_filter.filter(record)
        assert record.service == "inventory"
