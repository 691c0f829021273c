"""Shared fixtures: markup documents on disk and a loopback command listener."""

from __future__ import annotations

import socket
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

import pytest

from dcs_control.domain.scope import PropertyScope


def document(body: str, **root_attributes: str) -> str:
    """Wrap *body* in a ``DCServerConfig`` root element."""

    attributes = "".join(f' {key}="{value}"' for key, value in root_attributes.items())
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<DCServerConfig{attributes}>\n{body}\n</DCServerConfig>\n'


@pytest.fixture()
def write_markup(tmp_path: Path) -> Callable[..., Path]:
    """Write a server declaration document below ``tmp_path`` and return its path."""

    def _write(relative: str, body: str, **root_attributes: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(document(body, **root_attributes), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def global_scope() -> PropertyScope:
    return PropertyScope(name="global")


@dataclass
class Listener:
    """A one-line-per-connection TCP listener on the loopback interface."""

    host: str
    port: int
    reply: str
    received: list[str] = field(default_factory=list)


@pytest.fixture()
def listener() -> Iterator[Listener]:
    """Accept connections on an ephemeral loopback port and answer each request line with ``reply``."""

    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", 0))
    server.listen(5)
    server.settimeout(0.2)
    state = Listener("127.0.0.1", server.getsockname()[1], reply="result=OK000")
    stop = threading.Event()

    def _serve() -> None:
        while not stop.is_set():
            try:
                conn, _addr = server.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with conn:
                conn.settimeout(2.0)
                data = b""
                while b"\n" not in data:
                    chunk = conn.recv(1024)
                    if not chunk:
                        break
                    data += chunk
                state.received.append(data.decode("utf-8").rstrip("\n"))
                if state.reply:
                    conn.sendall(state.reply.encode("utf-8") + b"\n")

    thread = threading.Thread(target=_serve, daemon=True)
    thread.start()
    try:
        yield state
    finally:
        stop.set()
        thread.join(timeout=2.0)
        server.close()


@pytest.fixture()
def closed_port() -> int:
    """Return a loopback port with nothing listening on it."""

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
