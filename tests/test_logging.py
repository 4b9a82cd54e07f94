"""Tests for the structured logging system (procurement_kernel/logging_config.py)."""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from procurement_kernel.domain.documents import DocumentKind
from procurement_kernel.exceptions import OverReturnError, PersistenceError
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
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
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "procurement_kernel.test"
        assert "ts" in record

    def test_decimals_and_enums_serialized_as_text(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("shortfall_detected", extra={
            "shortfall_quantity": Decimal("2.505"),
            "kind": DocumentKind.PURCHASE_ORDER,
            "receipt_note_id": uuid4(),
        })

        record = _parse_log(stream)
        assert record["shortfall_quantity"] == "2.505"
        assert record["kind"] == "purchase_order"
        assert len(record["receipt_note_id"]) == 36

    def test_procurement_error_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise OverReturnError("item-a", Decimal("6"), Decimal("5"))
        except OverReturnError:
            get_logger("test").error("return_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "OverReturnError"
        assert record["exc_code"] == "OVER_RETURN"
        assert record["exc_item_key"] == "item-a"
        assert record["exc_allowed"] == "5"
        assert "traceback" in record

    def test_persistence_stage_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        error = PersistenceError("create_return_note", "connection reset").with_stage("return-note")
        try:
            raise error
        except PersistenceError:
            get_logger("test").error("store_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_stage"] == "return-note"
        assert record["exc_operation"] == "create_return_note"


class TestLogContext:
    def test_bound_fields_included_and_restored(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")

        with LogContext.bind(document_id="purchase_order:PO-1001", receipt_note_id=None):
            logger.info("inside")
        logger.info("outside")

        inside, outside = [json.loads(line) for line in stream.getvalue().strip().split("\n")]
        assert inside["document_id"] == "purchase_order:PO-1001"
        assert "receipt_note_id" not in inside
        assert "document_id" not in outside

    def test_nested_bind_merges(self):
        with LogContext.bind(document_id="purchase_order:PO-1001"):
            with LogContext.bind(return_note_id=uuid4()):
                ctx = LogContext.get_all()
            assert set(LogContext.get_all()) == {"document_id"}

        assert set(ctx) == {"document_id", "return_note_id"}
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            LogContext.bind(event_id="evt-1")

    def test_threads_do_not_share_context(self):
        def in_worker():
            return LogContext.get_all()

        with LogContext.bind(corporation_id="corp-1"):
            with ThreadPoolExecutor(max_workers=1) as pool:
                seen = pool.submit(in_worker).result()

        assert seen == {}


class TestConfiguration:
    def test_configure_is_idempotent(self):
        first, _ = _make_handler()
        second, _ = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)

        handlers = logging.getLogger("procurement_kernel").handlers
        assert first in handlers
        assert second not in handlers
