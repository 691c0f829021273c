"""Command definitions a server profile can send to its devices.

Purpose
-------
Model the named, parameterised commands declared in a server's command block:
their template string, argument schema, transport protocol and the
acknowledgement and state rules attached to them. Definitions are immutable
once built, either from markup (see :mod:`dcs_control.adapters.markup.loader`)
or from the structured JSON command form.

Contents
--------
* :class:`CommandProtocol` - ``udp`` / ``tcp`` / ``sms`` transport tags.
* :class:`AccessLevel` - default ACL access level of a command.
* :class:`CommandArg` - one declared template argument.
* :class:`CommandDefinition` - one command.
* :class:`CommandRegistry` - ordered per-profile command table.
* :func:`parse_command_map_json` - build a registry from the JSON form.

System Role
-----------
The template engine renders :attr:`CommandDefinition.template`; the dispatch
engine reads the protocol, handler and port rules. Nothing in this module
performs I/O or logging: rejected entries are reported through return values
or :class:`~dcs_control.domain.errors.ValidationError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Final, Iterable, Iterator, Mapping

from .errors import ValidationError
from .events import STATUS_NONE
from .values import parse_bool, parse_int, split_list

COMMAND_TYPE_ALL: Final[str] = "all"
DEFAULT_ARG_NAME: Final[str] = "arg"
ARG_DISPLAY_LENGTH: Final[int] = 70
ARG_MAXIMUM_LENGTH: Final[int] = 500

JSON_DCS: Final[str] = "DCS"
JSON_COMMANDS: Final[str] = "Commands"


class CommandProtocol(Enum):
    """Transport a command travels over; ``UDP`` is the default."""

    UDP = (0, "udp")
    TCP = (1, "tcp")
    SMS = (9, "sms")

    @property
    def id(self) -> int:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]

    @property
    def is_sms(self) -> bool:
        return self is CommandProtocol.SMS

    @classmethod
    def parse(cls, text: str | int | None, default: "CommandProtocol | None" = None) -> "CommandProtocol":
        """Parse a protocol by name or numeric id, falling back to *default* (UDP).

        >>> CommandProtocol.parse('SMS'), CommandProtocol.parse('1'), CommandProtocol.parse('bogus')
        (<CommandProtocol.SMS: (9, 'sms')>, <CommandProtocol.TCP: (1, 'tcp')>, <CommandProtocol.UDP: (0, 'udp')>)
        """

        fallback = default or cls.UDP
        if text is None:
            return fallback
        word = str(text).strip().lower()
        for member in cls:
            if word == member.label or word == str(member.id):
                return member
        return fallback


def split_protocol(text: str | None) -> tuple[str, str | None]:
    """Split ``"sms:handler"`` into ``("sms", "handler")``.

    >>> split_protocol('sms:twilio')
    ('sms', 'twilio')
    >>> split_protocol(' udp ')
    ('udp', None)
    """

    raw = (text or "").strip()
    if ":" not in raw:
        return raw, None
    proto, _, handler = raw.partition(":")
    return proto.strip(), handler.strip()


class AccessLevel(IntEnum):
    NONE = 0
    READ = 1
    WRITE = 2
    ALL = 3

    @classmethod
    def parse(cls, text: object, default: "AccessLevel | None" = None) -> "AccessLevel":
        """Parse an access level by name or number; unknown values give *default* (WRITE)."""

        fallback = cls.WRITE if default is None else default
        if text is None or not str(text).strip():
            return fallback
        word = str(text).strip().upper()
        if word in cls.__members__:
            return cls[word]
        number = parse_int(word, None)
        if number is not None and number in cls._value2member_map_:
            return cls(number)
        return fallback


def decode_escapes(text: str | None) -> str:
    r"""Turn literal ``\n`` and ``\r`` sequences into control characters.

    >>> decode_escapes('AT+X\\r\\n')
    'AT+X\r\n'
    """

    if text is None:
        return ""
    return text.replace("\\n", "\n").replace("\\r", "\r")


def parse_length_spec(spec: str | None) -> tuple[int, int]:
    """Parse an argument ``length="display,maximum"`` attribute.

    Display falls back to 70; maximum falls back to display and is raised to
    at least display.

    >>> parse_length_spec('20,10'), parse_length_spec('30'), parse_length_spec('0,0')
    ((20, 20), (30, 30), (70, 70))
    """

    parts = [parse_int(item, 0) or 0 for item in split_list(spec or "")]
    display = parts[0] if parts and parts[0] > 0 else ARG_DISPLAY_LENGTH
    maximum = parts[1] if len(parts) > 1 and parts[1] > 0 else display
    return display, max(display, maximum)


@dataclass(frozen=True, slots=True)
class CommandArg:
    """A declared command argument.

    ``command`` is a non-owning back-reference bound by the owning
    :class:`CommandDefinition`; it is excluded from equality.
    """

    name: str
    description: str = ""
    read_only: bool = False
    session_var: str | None = None
    default_value: str = ""
    display_length: int = ARG_DISPLAY_LENGTH
    maximum_length: int = ARG_MAXIMUM_LENGTH
    command: "CommandDefinition | None" = field(default=None, compare=False, repr=False)

    def with_length(self, display: int, maximum: int) -> "CommandArg":
        """Return a copy with adjusted lengths (display falls back to 70,
        maximum to twice the display length)."""

        disp = display if display > 0 else ARG_DISPLAY_LENGTH
        return replace(self, display_length=disp, maximum_length=maximum if maximum > 0 else disp * 2)

    def to_json(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Description": self.description,
            "ReadOnly": self.read_only,
            "ResourceName": self.session_var,
            "DefaultValue": self.default_value,
            "DisplayLength": self.display_length,
            "MaximumLength": self.maximum_length,
        }

    @classmethod
    def from_json(cls, obj: Mapping[str, Any]) -> "CommandArg":
        return cls(
            name=str(obj.get("Name", "")),
            description=str(obj.get("Description", "")),
            read_only=bool(parse_bool(obj.get("ReadOnly"), False)),
            session_var=obj.get("ResourceName") or None,
            default_value=str(obj.get("DefaultValue", "") or ""),
            display_length=parse_int(obj.get("DisplayLength"), ARG_DISPLAY_LENGTH) or ARG_DISPLAY_LENGTH,
            maximum_length=parse_int(obj.get("MaximumLength"), ARG_MAXIMUM_LENGTH) or ARG_MAXIMUM_LENGTH,
        )


@dataclass(frozen=True, slots=True)
class CommandDefinition:
    """A named, parameterised, transport-tagged command.

    Construction normalises the raw inputs: escape sequences in the template
    are decoded, ``has_args`` is forced on when the template contains ``${``,
    a ``"sms:handler"`` protocol is split into protocol and handler, and the
    acknowledgement and audit codes collapse to ``STATUS_NONE`` unless
    positive.

    Examples
    --------
    >>> cmd = CommandDefinition("acme", "ping", template="PING:${arg}", protocol="sms:log")
    >>> cmd.has_args, cmd.protocol, cmd.protocol_handler, cmd.is_sms
    (True, 'sms', 'log', True)
    >>> cmd.is_type("admin")
    True
    """

    server: str
    name: str
    description: str = ""
    enabled: bool = True
    types: tuple[str, ...] = ()
    acl_name: str = ""
    acl_default: AccessLevel = AccessLevel.WRITE
    template: str = ""
    has_args: bool = False
    args: tuple[CommandArg, ...] = ()
    protocol: str = ""
    protocol_handler: str | None = None
    max_route_age: int = -1
    allow_queue: bool = False
    expect_ack: bool = False
    expect_ack_code: int = STATUS_NONE
    state_mask: int = 0
    state_value: bool = False
    audit_code: int = STATUS_NONE

    def __post_init__(self) -> None:
        set_field = object.__setattr__
        set_field(self, "name", self.name.strip())
        set_field(self, "description", (self.description or "").strip())
        set_field(self, "acl_name", (self.acl_name or "").strip())
        set_field(self, "types", tuple(self.types or ()))
        template = decode_escapes(self.template)
        set_field(self, "template", template)
        set_field(self, "has_args", bool(self.has_args) or "${" in template)
        proto, handler = split_protocol(self.protocol)
        set_field(self, "protocol", proto)
        set_field(self, "protocol_handler", handler if handler is not None else self.protocol_handler)
        set_field(self, "expect_ack_code", self.expect_ack_code if self.expect_ack_code > 0 else STATUS_NONE)
        set_field(self, "audit_code", self.audit_code if self.audit_code > 0 else STATUS_NONE)
        args = tuple(self.args) if self.has_args else ()
        for arg in args:
            object.__setattr__(arg, "command", self)
        set_field(self, "args", args)

    @property
    def command_protocol(self) -> CommandProtocol:
        return CommandProtocol.parse(self.protocol)

    @property
    def is_sms(self) -> bool:
        return self.command_protocol.is_sms

    @property
    def has_max_route_age(self) -> bool:
        return self.max_route_age > 0

    @property
    def has_state_mask(self) -> bool:
        return self.state_mask != 0

    @property
    def has_audit_code(self) -> bool:
        return self.audit_code != STATUS_NONE

    @property
    def arg_count(self) -> int:
        if not self.has_args:
            return 0
        return len(self.args) or 1

    def arg_index(self, name: str) -> int:
        """Return the position of the declared argument *name*, or ``-1``."""

        for index, arg in enumerate(self.args):
            if arg.name == name:
                return index
        return -1

    def arg(self, index: int) -> CommandArg | None:
        return self.args[index] if 0 <= index < len(self.args) else None

    def is_type(self, command_type: str | None) -> bool:
        """True for type ``all``, for commands without types, or a listed type."""

        if command_type is not None and command_type.strip().lower() == COMMAND_TYPE_ALL:
            return True
        if not self.types:
            return True
        return command_type in self.types

    def to_json(self) -> dict[str, Any]:
        """Return the structured JSON form; optional keys appear only when set."""

        obj: dict[str, Any] = {
            "Name": self.name,
            "Description": self.description,
            "Enabled": self.enabled,
            "Types": list(self.types),
            "AclName": self.acl_name,
            "AclDefault": int(self.acl_default),
        }
        if self.has_max_route_age:
            obj["MaximumRouteAge"] = self.max_route_age
        obj["AllowQueue"] = self.allow_queue
        if self.expect_ack:
            obj["ExpectAck"] = True
            obj["ExpectAckCode"] = self.expect_ack_code
        if self.has_state_mask:
            obj["StateBitMask"] = self.state_mask
            obj["StateBitValue"] = self.state_value
        if self.has_audit_code:
            obj["AuditCode"] = self.audit_code
        protocol = self.protocol if not self.protocol_handler else f"{self.protocol}:{self.protocol_handler}"
        obj["Protocol"] = protocol
        obj["CommandString"] = self.template
        if self.has_args and self.args:
            obj["Args"] = [arg.to_json() for arg in self.args]
        return obj

    @classmethod
    def from_json(cls, server: str, obj: Mapping[str, Any]) -> "CommandDefinition":
        """Build a definition from its JSON form.

        Raises
        ------
        ValidationError
            When *obj* or one of its ``Args`` entries is not an object.
        """

        if not isinstance(obj, Mapping):
            raise ValidationError("Command JSON object is missing")
        name = str(obj.get("Name", ""))
        raw_args = obj.get("Args") or []
        args: list[CommandArg] = []
        for index, item in enumerate(raw_args):
            if not isinstance(item, Mapping):
                raise ValidationError(f"Command '{name}': invalid Arg at #{index}")
            args.append(CommandArg.from_json(item))
        types = obj.get("Types") or ()
        return cls(
            server=server.strip(),
            name=name,
            description=str(obj.get("Description", "") or ""),
            enabled=bool(parse_bool(obj.get("Enabled"), True)),
            types=tuple(str(item) for item in types),
            acl_name=str(obj.get("AclName", "") or ""),
            acl_default=AccessLevel.parse(obj.get("AclDefault")),
            template=str(obj.get("CommandString", "") or ""),
            has_args=bool(args),
            args=tuple(args),
            protocol=str(obj.get("Protocol", "") or ""),
            max_route_age=parse_int(obj.get("MaximumRouteAge"), -1) or 0,
            allow_queue=bool(parse_bool(obj.get("AllowQueue"), False)),
            expect_ack=bool(parse_bool(obj.get("ExpectAck"), False)),
            expect_ack_code=parse_int(obj.get("ExpectAckCode"), STATUS_NONE) or STATUS_NONE,
            state_mask=parse_int(obj.get("StateBitMask"), 0) or 0,
            state_value=bool(parse_bool(obj.get("StateBitValue"), True)),
            audit_code=parse_int(obj.get("AuditCode"), STATUS_NONE) or STATUS_NONE,
        )


class CommandRegistry:
    """Ordered ``name -> CommandDefinition`` table of one server profile.

    Blank and duplicate names are refused; :meth:`add` reports the refusal
    through its return value so callers can log it.

    Examples
    --------
    >>> registry = CommandRegistry("acme")
    >>> registry.add(CommandDefinition("acme", "ping", template="PING"))
    True
    >>> registry.add(CommandDefinition("acme", "ping", template="OTHER"))
    False
    >>> registry.get("ping").template
    'PING'
    """

    def __init__(self, server: str, commands: Iterable[CommandDefinition] = ()) -> None:
        self.server = server
        self._commands: dict[str, CommandDefinition] = {}
        for command in commands:
            self.add(command)

    def add(self, command: CommandDefinition) -> bool:
        if not command.name or command.name in self._commands:
            return False
        self._commands[command.name] = command
        return True

    def get(self, name: str | None) -> CommandDefinition | None:
        if name is None:
            return None
        return self._commands.get(name)

    def names(self) -> list[str]:
        return list(self._commands)

    def visible(self, command_type: str = COMMAND_TYPE_ALL) -> list[CommandDefinition]:
        """Enabled commands applicable to *command_type*, in declaration order."""

        return [cmd for cmd in self._commands.values() if cmd.enabled and cmd.is_type(command_type)]

    def to_json(self, command_type: str = COMMAND_TYPE_ALL) -> dict[str, Any]:
        return {
            JSON_DCS: self.server,
            JSON_COMMANDS: [command.to_json() for command in self.visible(command_type)],
        }

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    def __iter__(self) -> Iterator[CommandDefinition]:
        return iter(self._commands.values())

    def __len__(self) -> int:
        return len(self._commands)


def parse_command_map_json(obj: Mapping[str, Any] | None) -> CommandRegistry:
    """Build a :class:`CommandRegistry` from ``{"DCS": name, "Commands": [...]}``.

    Raises
    ------
    ValidationError
        When the object, its ``DCS`` name or its ``Commands`` array is missing,
        or when a command entry is malformed.

    Examples
    --------
    >>> registry = parse_command_map_json({"DCS": "acme", "Commands": [{"Name": "ping", "CommandString": "PING"}]})
    >>> registry.server, registry.names()
    ('acme', ['ping'])
    """

    if not isinstance(obj, Mapping):
        raise ValidationError("Command map JSON object is missing")
    server = str(obj.get(JSON_DCS) or "").strip()
    if not server:
        raise ValidationError("Command map JSON object does not specify the 'DCS' name")
    entries = obj.get(JSON_COMMANDS)
    if not isinstance(entries, list):
        raise ValidationError("Command map JSON object does not contain a 'Commands' array")
    registry = CommandRegistry(server)
    for entry in entries:
        if entry is not None:
            registry.add(CommandDefinition.from_json(server, entry))
    return registry
