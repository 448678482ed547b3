"""Tests for the structured logging system (approval_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.exceptions import ThresholdExceededError
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "approval_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "approval_decision_applied",
            extra={"step_order": 2, "status": "approved"},
        )

        record = _parse_log(stream)
        assert record["step_order"] == 2
        assert record["status"] == "approved"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        wf_id = str(uuid4())
        with LogContext.bind(workflow_id=wf_id, actor_id="u-1"):
            get_logger("test").info("inside")

        record = _parse_log(stream)
        assert record["workflow_id"] == wf_id
        assert record["actor_id"] == "u-1"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ThresholdExceededError("wf-1", "area_manager", Decimal("25000"), Decimal("20000"))
        except ThresholdExceededError:
            get_logger("test").exception("denied")

        record = _parse_log(stream)
        assert record["exc_type"] == "ThresholdExceededError"
        assert record["exc_code"] == "THRESHOLD_EXCEEDED"
        assert record["exc_role"] == "area_manager"
        assert record["exc_amount"] == "25000"
        assert "traceback" in record

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "workflow_id" not in record
        assert "correlation_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("values", extra={"entity": uid, "amount": Decimal("2250.00")})

        record = _parse_log(stream)
        assert record["entity"] == str(uid)
        assert record["amount"] == "2250.00"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        for i in range(5):
            logger.info("line", extra={"i": i})

        records = _parse_all_logs(stream)
        assert [r["i"] for r in records] == list(range(5))


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="c-1")
        assert LogContext.get_all() == {"correlation_id": "c-1"}

    def test_clear(self):
        LogContext.set(correlation_id="c-1", entity_id="e-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner"):
            assert LogContext.get_all()["actor_id"] == "inner"
        assert LogContext.get_all()["actor_id"] == "outer"

    def test_bind_ignores_none(self):
        with LogContext.bind(workflow_id=None, entity_id="e-2"):
            assert LogContext.get_all() == {"entity_id": "e-2"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="t-1")

    def test_nested_bind_merges(self):
        with LogContext.bind(workflow_id="wf-1"):
            with LogContext.bind(org_unit_id="zone-7"):
                assert LogContext.get_all() == {"workflow_id": "wf-1", "org_unit_id": "zone-7"}
            assert LogContext.get_all() == {"workflow_id": "wf-1"}
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("approval_kernel").handlers) == 1

    def test_does_not_propagate_to_root(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        assert logging.getLogger("approval_kernel").propagate is False

    def test_get_logger_is_namespaced(self):
        assert get_logger("services.approval").name == "approval_kernel.services.approval"
