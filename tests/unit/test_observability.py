"""Unit tests for the structured logging helpers in ``observability``."""

from __future__ import annotations

import logging

import pytest

from dcs_control import bind_trace_id, get_logger
from dcs_control.observability import TRACE_ID, log_info, log_warning, make_event


def test_null_handler_present() -> None:
    """The package logger stays silent unless the host application configures handlers."""

    logger = get_logger()
    assert logger.name == "dcs_control"
    assert any(isinstance(handler, logging.NullHandler) for handler in logger.handlers)


def test_trace_id_in_log(caplog: pytest.LogCaptureFixture) -> None:
    """Structured logs include the bound trace identifier and the contextual fields."""

    caplog.set_level(logging.INFO, logger="dcs_control")
    bind_trace_id("trace-123")
    try:
        log_info("command_dispatch", server="acme", command="ping")
    finally:
        bind_trace_id(None)
    record = caplog.records[-1]
    assert record.getMessage() == "command_dispatch"
    assert getattr(record, "context") == {"trace_id": "trace-123", "server": "acme", "command": "ping"}


def test_warning_level_is_preserved(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="dcs_control")
    log_warning("port_conflict", transport="tcp", port=31000)
    assert caplog.records[-1].levelno == logging.WARNING


def test_bind_trace_id_clears_context() -> None:
    bind_trace_id("trace-temp")
    bind_trace_id(None)
    assert TRACE_ID.get() is None


def test_make_event_merges_optional_payload() -> None:
    event = make_event("acme", "/etc/dcservers.xml", {"port": 31000})
    assert event == {"server": "acme", "path": "/etc/dcservers.xml", "port": 31000}
    assert make_event(None, None) == {"server": None, "path": None}
