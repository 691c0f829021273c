"""Line-oriented TCP client for device communication server command listeners.

One request per connection: connect, write the request line, read one
response line (or up to EOF), close.
"""

from __future__ import annotations

import socket
from typing import Final

from ...domain.errors import TransportConnectError, TransportError, TransportTimeoutError
from ...observability import log_debug

ENCODING: Final[str] = "utf-8"
MAX_RESPONSE_BYTES: Final[int] = 64 * 1024


class SocketCommandTransport:
    """Send one command line to ``host:port`` and return the reply line.

    Raises :class:`TransportConnectError` when the listener cannot be reached,
    :class:`TransportTimeoutError` when it does not answer in time, and
    :class:`TransportError` for failures mid-exchange.
    """

    def __init__(self, *, max_response: int = MAX_RESPONSE_BYTES) -> None:
        self.max_response = max_response

    def send(self, host: str, port: int, line: str, timeout: float) -> str:
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except (socket.timeout, TimeoutError) as exc:
            raise TransportTimeoutError(f"Connect to {host}:{port} timed out") from exc
        except OSError as exc:
            raise TransportConnectError(f"Connect to {host}:{port} failed: {exc}") from exc
        try:
            sock.settimeout(timeout)
            payload = line.rstrip("\r\n").encode(ENCODING) + b"\n"
            try:
                sock.sendall(payload)
            except OSError as exc:
                raise TransportError(f"Send to {host}:{port} failed: {exc}") from exc
            log_debug("transport_sent", host=host, port=port, size=len(payload))
            try:
                data = self._read_line(sock)
            except (socket.timeout, TimeoutError) as exc:
                raise TransportTimeoutError(f"No response from {host}:{port} within {timeout}s") from exc
            except OSError as exc:
                raise TransportError(f"Receive from {host}:{port} failed: {exc}") from exc
            log_debug("transport_received", host=host, port=port, size=len(data))
            return data.decode(ENCODING, errors="replace").strip()
        finally:
            sock.close()

    def _read_line(self, sock: socket.socket) -> bytes:
        buffer = bytearray()
        while len(buffer) < self.max_response:
            chunk = sock.recv(4096)
            if not chunk:
                break
            buffer.extend(chunk)
            if b"\n" in chunk:
                break
        return bytes(buffer).split(b"\n", 1)[0]
