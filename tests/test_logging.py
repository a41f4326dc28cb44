"""
JSON log lines and request-scoped log fields.

The suite-wide logging config from conftest is torn down around every
test here so each test can install its own capture handler.
"""

import json
import logging
import threading
from datetime import date
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import ClosedPeriodError, UnbalancedEntryError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Install a capture handler at INFO and return a reader for its lines."""
    buffer = StringIO()
    configure_logging(handler=logging.StreamHandler(buffer))

    def read() -> list[dict]:
        return [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    return read


class TestLineShape:

    def test_core_keys(self, emitted):
        get_logger("services.journal_store").info("journal_entry_posted")

        (line,) = emitted()
        assert line["message"] == "journal_entry_posted"
        assert line["level"] == "INFO"
        assert line["logger"] == "ledger_kernel.services.journal_store"
        assert line["ts"].endswith("+00:00")

    def test_extra_becomes_top_level_keys(self, emitted):
        get_logger("reports").info(
            "trial_balance_built", extra={"account_count": 12, "total_debit": 10081000}
        )

        (line,) = emitted()
        assert line["account_count"] == 12
        assert line["total_debit"] == 10081000

    def test_uuid_and_date_values_serialized(self, emitted):
        account_id = uuid4()
        get_logger("reports").info(
            "ledger_built", extra={"account_id": account_id, "date_to": date(2024, 2, 29)}
        )

        (line,) = emitted()
        assert line["account_id"] == str(account_id)
        assert line["date_to"] == "2024-02-29"

    def test_unserializable_value_falls_back_to_str(self, emitted):
        get_logger("reports").info("odd_value", extra={"window": range(2)})

        (line,) = emitted()
        assert line["window"] == "range(0, 2)"

    def test_below_level_is_dropped(self, emitted):
        log = get_logger("period_closer")
        log.debug("closing_entry_lines")
        log.warning("period_already_closed")

        assert [line["message"] for line in emitted()] == ["period_already_closed"]

    def test_plain_exception(self, emitted):
        try:
            raise RuntimeError("disk full")
        except RuntimeError:
            get_logger("db").exception("flush_failed")

        (line,) = emitted()
        assert line["level"] == "ERROR"
        assert line["exc_type"] == "RuntimeError"
        assert line["exc_message"] == "disk full"
        assert "exc_code" not in line
        assert "Traceback" in line["traceback"]

    def test_ledger_error_attributes_flattened(self, emitted):
        try:
            raise ClosedPeriodError("2024-01", "2024-01-15")
        except ClosedPeriodError:
            get_logger("services.journal_store").error("posting_rejected", exc_info=True)

        (line,) = emitted()
        assert line["exc_code"] == "CLOSED_PERIOD"
        assert line["exc_period_code"] == "2024-01"
        assert line["exc_entry_date"] == "2024-01-15"

    def test_unbalanced_amounts_logged(self, emitted):
        try:
            raise UnbalancedEntryError(1000, 900)
        except UnbalancedEntryError:
            get_logger("services.journal_store").error("posting_rejected", exc_info=True)

        (line,) = emitted()
        assert (line["exc_total_debit"], line["exc_total_credit"]) == (1000, 900)

    def test_formatter_usable_on_its_own(self):
        record = logging.makeLogRecord(
            {"name": "ledger_kernel.x", "levelname": "INFO", "msg": "n=%d", "args": (3,)}
        )
        line = json.loads(StructuredFormatter().format(record))
        assert line["message"] == "n=3"


class TestContextFields:

    def test_bound_fields_on_every_line(self, emitted):
        tenant_id = uuid4()
        with LogContext.bind(tenant_id=tenant_id, correlation_id="req-7"):
            get_logger("a").info("one")
            get_logger("b").info("two")
        get_logger("a").info("three")

        first, second, third = emitted()
        assert first["tenant_id"] == second["tenant_id"] == str(tenant_id)
        assert first["correlation_id"] == "req-7"
        assert "tenant_id" not in third

    def test_extra_does_not_override_context(self, emitted):
        with LogContext.bind(entry_id="from-context"):
            get_logger("a").info("posted", extra={"entry_id": "from-extra"})

        (line,) = emitted()
        assert line["entry_id"] == "from-context"

    def test_set_skips_none(self):
        LogContext.set(tenant_id="t1", actor_id="u1")
        LogContext.set(tenant_id=None, entry_id="e1")

        assert LogContext.get_all() == {"tenant_id": "t1", "actor_id": "u1", "entry_id": "e1"}

    def test_clear(self):
        LogContext.set(correlation_id="c")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_each_level(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="middle", tenant_id="t"):
            with LogContext.bind(actor_id="inner"):
                assert LogContext.get_all() == {"actor_id": "inner", "tenant_id": "t"}
            assert LogContext.get_all() == {"actor_id": "middle", "tenant_id": "t"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(ValueError):
            with LogContext.bind(tenant_id="t"):
                raise ValueError
        assert LogContext.get_all() == {}

    def test_bind_ignores_none_and_unknown_names(self):
        with LogContext.bind(entry_id=None, invoice="F-1", actor_id=42):
            assert LogContext.get_all() == {"actor_id": "42"}

    def test_fresh_thread_starts_empty(self):
        LogContext.set(tenant_id="main")
        seen = []
        worker = threading.Thread(target=lambda: seen.append(LogContext.get_all()))
        worker.start()
        worker.join()

        assert seen == [{}]
        assert LogContext.get_all() == {"tenant_id": "main"}


class TestConfiguration:

    def test_second_configure_is_ignored(self):
        first, second = StringIO(), StringIO()
        configure_logging(handler=logging.StreamHandler(first))
        configure_logging(handler=logging.StreamHandler(second), level=logging.DEBUG)

        namespace = logging.getLogger("ledger_kernel")
        # pytest may attach its own capture handlers to the namespace
        ours = [h for h in namespace.handlers if isinstance(h.formatter, StructuredFormatter)]
        assert [h.stream for h in ours] == [first]
        assert namespace.level == logging.INFO

    def test_namespace_does_not_propagate(self, emitted):
        assert logging.getLogger("ledger_kernel").propagate is False

    def test_children_share_the_handler(self):
        buffer = StringIO()
        configure_logging(handler=logging.StreamHandler(buffer), level=logging.DEBUG)
        get_logger("services.period_closer").debug("closing")

        assert json.loads(buffer.getvalue())["logger"] == "ledger_kernel.services.period_closer"

    def test_reset_removes_handlers(self, emitted):
        reset_logging()

        namespace = logging.getLogger("ledger_kernel")
        assert not [h for h in namespace.handlers if isinstance(h.formatter, StructuredFormatter)]
        assert namespace.level == logging.WARNING

    def test_configure_after_reset_installs_again(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()
        buffer = StringIO()
        configure_logging(handler=logging.StreamHandler(buffer))
        get_logger("x").info("again")

        assert json.loads(buffer.getvalue())["message"] == "again"
