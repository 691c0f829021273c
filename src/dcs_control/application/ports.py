"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts adapters must satisfy so the dispatch engine,
the directory and the composition root can run without depending on concrete
socket, SMS, audit or persistence implementations.

Contents
--------
* :class:`Device` - the device record a dispatch targets.
* :class:`DeviceLookup` - loads device records by unique identifier.
* :class:`CommandTransport` - one-shot line-oriented request/response client.
* :class:`SmsGateway` - hand-off point for SMS-protocol commands.
* :class:`SmsGatewayProvider` - name -> gateway lookup.
* :class:`AuditSink` - receives "command sent" audit records.
* :class:`PathResolver` - locates the root configuration documents.
* :class:`FileLoader` - parses runtime property files.
* :class:`EnvLoader` - materialises prefixed environment variables.

System Role
-----------
These protocols keep the dependency direction pointing inwards: adapters
implement them, the application layer only consumes them.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Protocol

from ..domain.commands import CommandDefinition
from ..domain.results import ResultCode


class Device(Protocol):
    """A remote tracking device as seen by the dispatch engine.

    Why
    ----
    Devices live in an external persistence layer; dispatch only needs their
    identity, routing hints and the ping-count rate limit.
    """

    account_id: str
    device_id: str
    unique_id: str
    data_key: str
    modem_id: str
    imei: str
    serial: str
    server_name: str
    command_host: str | None
    sms_enabled: bool

    def exceeds_max_ping_count(self) -> bool:
        """Return ``True`` when no further command may be sent."""

    def increment_ping_count(self) -> None:
        """Record one successfully dispatched command."""


class DeviceLookup(Protocol):
    """Device persistence keyed by the full (prefixed) unique identifier."""

    def load_by_unique_id(self, unique_id: str) -> Device | None:
        """Return the device registered under *unique_id*, or ``None``."""


class CommandTransport(Protocol):
    """Send one request line and read one response line.

    Implementations raise :class:`~dcs_control.domain.errors.TransportError`
    subclasses on failure and always release the connection.
    """

    def send(self, host: str, port: int, line: str, timeout: float) -> str:
        """Write *line* plus a newline to ``host:port`` and return the response line."""


class SmsGateway(Protocol):
    """Deliver a rendered command as a text message."""

    def send(self, command: CommandDefinition, text: str, device: Device) -> ResultCode | None:
        """Send *text* to *device*; ``None`` means the gateway rejected the command."""


class SmsGatewayProvider(Protocol):
    """Look up SMS gateways by name."""

    def create(self, name: str) -> SmsGateway:
        """Return the gateway registered as *name* or raise ``UnknownGateway``."""


class AuditSink(Protocol):
    """Receive audit records for dispatched commands."""

    def device_command(self, account_id: str, device_id: str, text: str) -> None:
        """Record that *text* was sent to the given device."""


class PathResolver(Protocol):
    """Discover the markup documents that declare server profiles."""

    def config_files(self) -> Iterable[str]:
        """Yield candidate root documents (``dcservers.xml``) in priority order."""

    def server_files(self, name: str) -> Iterable[str]:
        """Yield candidate standalone documents for server *name*."""


class FileLoader(Protocol):
    """Parse a runtime property file into a mapping."""

    def load(self, path: str) -> Mapping[str, object]:
        """Read *path* and return a mapping or raise ``InvalidFormat``/``NotFound``."""


class EnvLoader(Protocol):
    """Translate process environment variables into flat dotted keys."""

    def load(self, prefix: str) -> Mapping[str, object]:
        """Return variables that match *prefix* (``__`` separates key segments)."""
