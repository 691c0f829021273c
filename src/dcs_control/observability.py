"""Structured logging helpers shared by the loader, the directory and dispatch.

Purpose
    Keep every diagnostic emitted by the control plane predictable and
    contextual. Configuration-time problems (port conflicts, missing includes,
    duplicate servers) are reported here instead of being raised, so the
    wording and the structured fields must stay stable.

Contents
    - ``TRACE_ID``: context variable storing the active trace identifier.
    - ``get_logger``: returns the shared package logger (quiet by default).
    - ``bind_trace_id``: binds or clears the active trace identifier.
    - ``log_debug`` / ``log_info`` / ``log_warning`` / ``log_error``: emit
      structured entries via a single private emitter.
    - ``make_event``: convenience builder for server-scoped event payloads.

System Integration
    Used by adapters, the application layer and the composition root. The
    domain layer stays free of logging; nothing here configures handlers.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Final, Mapping

TRACE_ID: ContextVar[str | None] = ContextVar("dcs_control_trace_id", default=None)
"""Current trace identifier propagated through logging helpers.

Why
    A single load pass or dispatch touches several layers; binding one
    identifier lets operators correlate all of its log lines.
"""

_LOGGER: Final[logging.Logger] = logging.getLogger("dcs_control")
_LOGGER.addHandler(logging.NullHandler())


def get_logger() -> logging.Logger:
    """Expose the package logger so applications may attach handlers."""

    return _LOGGER


def bind_trace_id(trace_id: str | None) -> None:
    """Bind or clear the active trace identifier.

    Examples
    --------
    >>> bind_trace_id('load-1')
    >>> TRACE_ID.get()
    'load-1'
    >>> bind_trace_id(None)
    >>> TRACE_ID.get() is None
    True
    """

    TRACE_ID.set(trace_id)


def log_debug(message: str, **fields: Any) -> None:
    """Emit a structured debug log entry that includes the trace context."""

    _emit(logging.DEBUG, message, fields)


def log_info(message: str, **fields: Any) -> None:
    """Emit a structured info log entry that includes the trace context."""

    _emit(logging.INFO, message, fields)


def log_warning(message: str, **fields: Any) -> None:
    """Emit a structured warning; used for advisory configuration problems."""

    _emit(logging.WARNING, message, fields)


def log_error(message: str, **fields: Any) -> None:
    """Emit a structured error log entry that includes the trace context."""

    _emit(logging.ERROR, message, fields)


def make_event(
    server: str | None,
    path: str | None,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a structured payload for server configuration events.

    Inputs
        server: Name of the server profile concerned, if any.
        path: Configuration file associated with the event, if available.
        payload: Optional mapping with extra diagnostic detail.

    Examples
    --------
    >>> make_event('acme', None, {'port': 31000})
    {'server': 'acme', 'path': None, 'port': 31000}
    """

    event: dict[str, Any] = {"server": server, "path": path}
    if payload:
        event |= dict(payload)
    return event


def _emit(level: int, message: str, fields: Mapping[str, Any]) -> None:
    """Send a log entry through the shared logger with contextual metadata."""

    _LOGGER.log(level, message, extra={"context": _with_trace(fields)})


def _with_trace(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Attach the current trace identifier to the provided structured fields."""

    context = {"trace_id": TRACE_ID.get()}
    context.update(fields)
    return context
