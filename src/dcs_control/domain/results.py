"""Dispatch outcome taxonomy.

Contents
--------
* :class:`ResultCode` - fixed set of outcomes, each with a short wire code and
  a human-readable message.
* :class:`DispatchOutcome` - a ResultCode plus the message and raw response
  returned by a single dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping


class ResultCode(Enum):
    """Outcome of a command dispatch.

    Examples
    --------
    >>> ResultCode.SUCCESS.code, ResultCode.SUCCESS.message
    ('OK000', 'Successful')
    >>> ResultCode.lookup('TX001')
    <ResultCode.TRANSMIT_FAIL: ('TX001', 'Transmit failure')>
    >>> ResultCode.COMMAND_QUEUED.is_success
    True
    """

    SUCCESS = ("OK000", "Successful")
    COMMAND_QUEUED = ("OK001", "Command Queued")
    INVALID_ACCOUNT = ("AC001", "Invalid Account")
    INVALID_DEVICE = ("DV001", "Invalid Device")
    INVALID_SERVER = ("SR001", "Invalid Server")
    NOT_AUTHORIZED = ("AU001", "Not Authorized")
    OVER_LIMIT = ("AU002", "Over Limit")
    INVALID_COMMAND = ("CM001", "Invalid command")
    INVALID_ARG = ("CM002", "Invalid command/argument")
    INVALID_TYPE = ("CM003", "Invalid command type")
    EMPTY_REQUEST = ("CM004", "Invalid/Empty request")
    NOT_SUPPORTED = ("CM005", "Not Supported by Device")
    UNKNOWN_HOST = ("HP001", "Invalid host")
    TRANSMIT_FAIL = ("TX001", "Transmit failure")
    NO_SESSION = ("TX002", "No Active Session Found")
    OFFLINE = ("TX007", "Device Offline")
    AGED_ROUTE = ("TX011", "Return route too old (UDP)")
    INVALID_PROTO = ("PR001", "Invalid Protocol")
    INVALID_SMS = ("PR002", "Invalid SMS specification")
    INVALID_PACKET = ("PK001", "Invalid Packet")
    INVALID_EMAIL_FR = ("EM001", "Invalid EMail 'From' address")
    INVALID_EMAIL_TO = ("EM002", "Invalid EMail 'To' address")
    INTERNAL_ERROR = ("XX001", "Internal Error")
    GATEWAY_ERROR = ("GW001", "Gateway Error")
    GATEWAY_CONFIG = ("GW010", "Gateway Config")
    GATEWAY_ACCOUNT = ("GW011", "Gateway Account")
    GATEWAY_USER = ("GW012", "Gateway User")
    GATEWAY_DEVICE = ("GW013", "Gateway Device")
    GATEWAY_HOST = ("GW014", "Gateway Host")
    GATEWAY_PORT = ("GW015", "Gateway Port")
    GATEWAY_CONNECT = ("GW021", "Gateway Connect")
    GATEWAY_AUTH = ("GW031", "Gateway Authentication Failed")
    GATEWAY_SERVICE = ("GW032", "Gateway Service Failed")
    UNKNOWN = ("UN000", "Unknown Result")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def message(self) -> str:
        return self.value[1]

    @property
    def is_success(self) -> bool:
        """True for ``SUCCESS`` and ``COMMAND_QUEUED`` only."""

        return self in (ResultCode.SUCCESS, ResultCode.COMMAND_QUEUED)

    @classmethod
    def lookup(cls, code: str | None, default: "ResultCode | None" = None) -> "ResultCode | None":
        """Find a ResultCode by short code or by enum name (case-insensitive)."""

        if code is None or not code.strip():
            return default
        wanted = code.strip().upper()
        for member in cls:
            if member.code == wanted or member.name == wanted:
                return member
        return default

    @classmethod
    def from_response(cls, response: Mapping[str, str] | None) -> "ResultCode":
        """Classify a parsed response mapping.

        A missing mapping is ``UNKNOWN``; an absent or blank ``result`` key is
        ``SUCCESS``; a non-blank but unrecognised code is ``UNKNOWN``.

        >>> ResultCode.from_response({"result": ""}).name
        'SUCCESS'
        >>> ResultCode.from_response({"result": "ZZ999"}).name
        'UNKNOWN'
        """

        if response is None:
            return cls.UNKNOWN
        code = response.get("result", "")
        if not code or not code.strip():
            return cls.SUCCESS
        return cls.lookup(code, cls.UNKNOWN)  # type: ignore[return-value]

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class DispatchOutcome:
    """Result of one dispatch: the classified code, a message and the raw response."""

    result: ResultCode
    message: str = ""
    response: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def of(cls, result: ResultCode, message: str | None = None, response: Mapping[str, str] | None = None) -> "DispatchOutcome":
        return cls(result, message or result.message, dict(response or {}))

    @property
    def is_success(self) -> bool:
        return self.result.is_success

    def as_dict(self) -> dict[str, object]:
        return {"result": self.result.code, "name": self.result.name, "message": self.message}
