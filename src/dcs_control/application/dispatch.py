"""Command dispatch: resolve, render, transmit, classify, record.

Purpose
-------
Send one named command to one device and report the outcome as a
:class:`~dcs_control.domain.results.DispatchOutcome`. Every failure, from an
unknown server to a refused connection, ends as a result code; nothing raised
by a collaborator escapes :meth:`CommandDispatcher.dispatch`.

Contents
--------
* :class:`CommandDispatcher` - the dispatch engine.
* :func:`encode_properties` / :func:`parse_properties` - the flat
  ``key=value`` wire encoding used by command listeners.
* :func:`command_request` - the property form of a dispatch request.

System Role
-----------
Built by :func:`dcs_control.core.create_dispatcher` with explicit collaborators
(directory, socket transport, SMS gateway provider, audit sink). Dispatches
share no mutable state, so any number may run concurrently.

State flow of one dispatch::

    RESOLVING -> RENDERING -> {SMS | SOCKET} -> CLASSIFYING -> {SIDE_EFFECTS | DONE}
"""

from __future__ import annotations

from typing import Final, Mapping, Sequence

from ..domain.commands import CommandDefinition
from ..domain.errors import DcsError, TransportError, UnknownGateway
from ..domain.profile import ServerProfile
from ..domain.results import DispatchOutcome, ResultCode
from ..observability import log_error, log_info, log_warning
from .directory import ServerDirectory
from .ports import AuditSink, CommandTransport, Device, SmsGatewayProvider
from .templating import render_command

COMMAND_TYPE_CONFIG: Final[str] = "config"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0
DEFAULT_SMS_GATEWAY: Final[str] = "log"
SMS_GATEWAY_PROPERTY: Final[str] = "SmsGatewayHandler.defaultName"
REQUEST_FORMAT_PROPERTY: Final[str] = "commandRequestFormat"
REQUEST_FORMAT_PROPERTIES: Final[str] = "properties"
NOT_SUPPORTED_MESSAGE: Final[str] = "Command port not supported"

KEY_ACCOUNT: Final[str] = "account"
KEY_DEVICE: Final[str] = "device"
KEY_UNIQUE: Final[str] = "unique"
KEY_CMDTYPE: Final[str] = "cmdtype"
KEY_CMDNAME: Final[str] = "cmdname"
KEY_ARG: Final[str] = "arg"
KEY_RESULT: Final[str] = "result"
KEY_MESSAGE: Final[str] = "message"

_QUOTE_TRIGGERS: Final[frozenset[str]] = frozenset(' \t\r\n"=')


def encode_properties(values: Mapping[str, object]) -> str:
    """Encode *values* as space separated ``key=value`` pairs.

    Values containing whitespace, ``"`` or ``=`` are double-quoted with
    ``\\"`` escapes.

    >>> encode_properties({"account": "demo", "arg0": "hello world"})
    'account=demo arg0="hello world"'
    """

    parts = []
    for key, value in values.items():
        text = "" if value is None else str(value)
        if any(ch in _QUOTE_TRIGGERS for ch in text):
            text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
        parts.append(f"{key}={text}")
    return " ".join(parts)


def parse_properties(text: str | None) -> dict[str, str]:
    """Parse a flat ``key=value`` string; whitespace and newlines separate pairs.

    >>> parse_properties('result=OK000 message="All good"')
    {'result': 'OK000', 'message': 'All good'}
    >>> parse_properties('result=OK000\\nmessage=Successful')
    {'result': 'OK000', 'message': 'Successful'}
    >>> parse_properties('flag')
    {'flag': ''}
    """

    values: dict[str, str] = {}
    if not text:
        return values
    pos, size = 0, len(text)
    while pos < size:
        while pos < size and text[pos].isspace():
            pos += 1
        if pos >= size:
            break
        start = pos
        while pos < size and text[pos] != "=" and not text[pos].isspace():
            pos += 1
        key = text[start:pos]
        if pos >= size or text[pos] != "=":
            values[key] = ""
            continue
        pos += 1
        value, pos = _read_value(text, pos)
        values[key] = value
    return values


def _read_value(text: str, pos: int) -> tuple[str, int]:
    """Read one (possibly quoted) value starting at *pos*."""

    size = len(text)
    if pos < size and text[pos] == '"':
        pos += 1
        chars: list[str] = []
        while pos < size and text[pos] != '"':
            if text[pos] == "\\" and pos + 1 < size:
                pos += 1
            chars.append(text[pos])
            pos += 1
        return "".join(chars), pos + 1
    start = pos
    while pos < size and not text[pos].isspace():
        pos += 1
    return text[start:pos], pos


def command_request(
    device: Device,
    command_type: str,
    command_name: str,
    args: Sequence[str | None],
) -> dict[str, str]:
    """Build the property form of a request; arguments stop at the first ``None``."""

    request = {
        KEY_ACCOUNT: device.account_id,
        KEY_DEVICE: device.device_id,
        KEY_UNIQUE: device.unique_id,
        KEY_CMDTYPE: command_type,
        KEY_CMDNAME: command_name,
    }
    for index, value in enumerate(args):
        if value is None:
            break
        request[f"{KEY_ARG}{index}"] = value
    return request


class CommandDispatcher:
    """Dispatch engine bound to one directory and one set of collaborators.

    Parameters
    ----------
    directory:
        Loaded server profiles.
    transport:
        Socket client used when the profile has a command port.
    sms_gateways:
        Gateway provider used when the command port is not configured.
    audit:
        Receives one record per successful dispatch.
    timeout:
        Default response timeout in seconds; a profile's
        ``tcpPacketTimeoutMS`` overrides it.
    """

    def __init__(
        self,
        directory: ServerDirectory,
        transport: CommandTransport,
        sms_gateways: SmsGatewayProvider,
        audit: AuditSink,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.directory = directory
        self.transport = transport
        self.sms_gateways = sms_gateways
        self.audit = audit
        self.timeout = timeout

    def dispatch(
        self,
        device: Device,
        command_name: str,
        args: Sequence[str | None] | None = None,
        *,
        command_type: str = COMMAND_TYPE_CONFIG,
        server_name: str | None = None,
    ) -> DispatchOutcome:
        """Send *command_name* with *args* to *device* and classify the outcome.

        Policy checks (blank server, ping limit) run before any lookup, and
        lookups run before any I/O. On ``SUCCESS`` or ``COMMAND_QUEUED`` the
        device ping count is incremented once and an audit record is written.
        """

        values = list(args or ())
        server = (server_name or device.server_name or "").strip()
        if not server:
            log_warning("dispatch_rejected", reason="blank server", device=device.device_id)
            return DispatchOutcome.of(ResultCode.INVALID_SERVER)
        if device.exceeds_max_ping_count():
            log_warning("dispatch_rejected", reason="over limit", server=server, device=device.device_id)
            return DispatchOutcome.of(ResultCode.OVER_LIMIT)

        try:
            outcome, audit_text = self._dispatch(server, device, command_name, values, command_type)
        except DcsError as exc:
            log_error("dispatch_failed", server=server, command=command_name, error=str(exc))
            return DispatchOutcome.of(ResultCode.INTERNAL_ERROR, str(exc))
        if outcome.is_success:
            self._record(device, audit_text)
        return outcome

    def _dispatch(
        self,
        server: str,
        device: Device,
        command_name: str,
        args: list[str | None],
        command_type: str,
    ) -> tuple[DispatchOutcome, str]:
        profile = self.directory.get(server, warn=True)
        if profile is None:
            return DispatchOutcome.of(ResultCode.INVALID_SERVER), ""
        command = profile.commands.get(command_name)
        if command is None or not command.enabled:
            log_warning("command_not_available", server=server, command=command_name)
            return DispatchOutcome.of(ResultCode.INVALID_COMMAND), ""

        rendered = render_command(command, args, device)
        if profile.command_port <= 0:
            if not command.is_sms:
                log_error("command_port_not_supported", server=server, command=command_name)
                return DispatchOutcome.of(ResultCode.NOT_SUPPORTED, NOT_SUPPORTED_MESSAGE), ""
            return self._send_sms(profile, command, rendered, device), f"Command: {rendered}"

        outcome = self._send_socket(profile, device, command, rendered, args, command_type)
        return outcome, _audit_text(command_name, args)

    def _send_sms(
        self,
        profile: ServerProfile,
        command: CommandDefinition,
        rendered: str,
        device: Device,
    ) -> DispatchOutcome:
        if not device.sms_enabled:
            log_warning("sms_not_authorized", server=profile.name, account=device.account_id)
            return DispatchOutcome.of(ResultCode.NOT_AUTHORIZED)
        name = command.protocol_handler or profile.get_string(SMS_GATEWAY_PROPERTY, DEFAULT_SMS_GATEWAY) or DEFAULT_SMS_GATEWAY
        try:
            gateway = self.sms_gateways.create(name)
        except UnknownGateway:
            log_error("sms_gateway_unknown", server=profile.name, gateway=name)
            return DispatchOutcome.of(ResultCode.INVALID_PROTO)
        except Exception as exc:  # noqa: BLE001
            log_error("sms_gateway_failed", server=profile.name, gateway=name, error=repr(exc))
            return DispatchOutcome.of(ResultCode.GATEWAY_ERROR, str(exc) or None)
        try:
            result = gateway.send(command, rendered, device)
        except Exception as exc:  # noqa: BLE001
            log_error("sms_gateway_failed", server=profile.name, gateway=name, error=repr(exc))
            return DispatchOutcome.of(ResultCode.GATEWAY_ERROR, str(exc) or None)
        if result is None:
            return DispatchOutcome.of(ResultCode.INVALID_COMMAND)
        log_info("command_dispatch", server=profile.name, command=command.name, gateway=name, result=result.code)
        return DispatchOutcome.of(result)

    def _send_socket(
        self,
        profile: ServerProfile,
        device: Device,
        command: CommandDefinition,
        rendered: str,
        args: list[str | None],
        command_type: str,
    ) -> DispatchOutcome:
        host = profile.dispatch_host(device, self.directory.bind_address)
        port = profile.command_port
        timeout = profile.tcp_packet_timeout_ms(int(self.timeout * 1000)) / 1000.0
        line = self._request_line(profile, device, command, rendered, args, command_type)
        log_info("command_dispatch", server=profile.name, command=command.name, host=host, port=port, request=line)
        try:
            reply = self.transport.send(host, port, line, timeout)
        except TransportError as exc:
            log_error("transmit_failed", server=profile.name, host=host, port=port, error=str(exc))
            return DispatchOutcome.of(ResultCode.TRANSMIT_FAIL, str(exc) or None)
        except Exception as exc:  # noqa: BLE001
            log_error("transmit_failed", server=profile.name, host=host, port=port, error=repr(exc))
            return DispatchOutcome.of(ResultCode.TRANSMIT_FAIL, str(exc) or None)
        if not reply or not reply.strip():
            log_error("transmit_failed", server=profile.name, host=host, port=port, error="empty response")
            return DispatchOutcome.of(ResultCode.TRANSMIT_FAIL)
        response = parse_properties(reply)
        result = ResultCode.from_response(response)
        log_info("command_response", server=profile.name, command=command.name, result=result.code, response=reply)
        return DispatchOutcome.of(result, response.get(KEY_MESSAGE) or None, response)

    def _request_line(
        self,
        profile: ServerProfile,
        device: Device,
        command: CommandDefinition,
        rendered: str,
        args: list[str | None],
        command_type: str,
    ) -> str:
        request_format = (profile.get_string(REQUEST_FORMAT_PROPERTY, "") or "").strip().lower()
        if request_format == REQUEST_FORMAT_PROPERTIES:
            return encode_properties(command_request(device, command_type, command.name, args))
        return rendered

    def _record(self, device: Device, audit_text: str) -> None:
        device.increment_ping_count()
        self.audit.device_command(device.account_id, device.device_id, audit_text)


def _audit_text(command_name: str, args: Sequence[str | None]) -> str:
    """``Command: name(a,b)`` or ``Command: name`` without arguments."""

    text = f"Command: {command_name}"
    if args:
        text += "(" + ",".join("" if arg is None else arg for arg in args) + ")"
    return text
