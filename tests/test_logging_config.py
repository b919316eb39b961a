from __future__ import annotations

import logging

from erp.context import reset_request_id, set_request_id
from erp.logging_config import RequestIdFilter, configure_app_logging


def _record() -> logging.LogRecord:
    return logging.LogRecord("erp.test", logging.INFO, __file__, 1, "hello", None, None)


def test_filter_attaches_current_request_id():
    token = set_request_id("req-42")
    try:
        record = _record()
        assert RequestIdFilter().filter(record) is True
        assert record.request_id == "req-42"
    finally:
        reset_request_id(token)


def test_filter_uses_placeholder_outside_requests():
    record = _record()
    RequestIdFilter().filter(record)
    assert record.request_id == "-"


def test_configure_is_idempotent():
    configure_app_logging("debug")
    configure_app_logging("INFO")

    logger = logging.getLogger("erp")
    handlers = [h for h in logger.handlers if getattr(h, "_erp_handler", False)]
    assert len(handlers) == 1
    assert logger.level == logging.INFO
    assert logger.propagate is True
