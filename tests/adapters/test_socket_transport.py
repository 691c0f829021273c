"""Socket transport tests against a loopback listener."""

from __future__ import annotations

import logging
import socket

import pytest

from dcs_control.adapters.transport.socket_client import SocketCommandTransport
from dcs_control.domain.errors import TransportConnectError, TransportError, TransportTimeoutError


def test_sends_one_line_and_returns_reply(listener, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="dcs_control")
    listener.reply = 'result=OK000 message="All good"'
    reply = SocketCommandTransport().send(listener.host, listener.port, "PING:7\r\n", 2.0)
    assert reply == 'result=OK000 message="All good"'
    assert listener.received == ["PING:7"]
    events = [record.getMessage() for record in caplog.records]
    assert "transport_sent" in events and "transport_received" in events


def test_listener_closing_without_reply_yields_empty_text(listener) -> None:
    listener.reply = ""
    assert SocketCommandTransport().send(listener.host, listener.port, "PING", 2.0) == ""


def test_refused_connection_raises_connect_error(closed_port: int) -> None:
    with pytest.raises(TransportConnectError):
        SocketCommandTransport().send("127.0.0.1", closed_port, "PING", 1.0)


def test_silent_listener_raises_timeout() -> None:
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    try:
        with pytest.raises(TransportTimeoutError) as info:
            SocketCommandTransport().send("127.0.0.1", server.getsockname()[1], "PING", 0.2)
    finally:
        server.close()
    assert isinstance(info.value, TransportError)
