"""Server profiles and the four-level property resolution engine.

Purpose
-------
A :class:`ServerProfile` is the resolved configuration of one device
communication server: listen ports, attribute flags, property scopes, the
command registry and the event-code table. Every "what is the effective value
of property X for server Y" question is answered by :meth:`ServerProfile.resolve`.

Contents
--------
* ``F_*`` attribute flag constants and :func:`flags_from_attributes`.
* :func:`normalize_prefixes` - unique-id prefix list normalisation.
* :class:`ServerProfile` - the profile itself.

System Role
-----------
Built by :mod:`dcs_control.adapters.markup.loader`, registered with
:class:`dcs_control.application.directory.ServerDirectory` and read by the
template and dispatch engines. The global scope a profile falls back to is
handed in at construction, so profiles never reach for process globals.

Resolution order for a candidate key list ``C`` (first level with any key
present wins, first present key in caller order within that level):

1. default scope, ``C`` as given;
2. default scope, ``C`` normalised with the profile name;
3. global scope, ``C`` normalised;
4. global scope, ``C`` as given.
"""

from __future__ import annotations

from typing import Any, Final, Iterable, Mapping, Protocol

from .commands import AccessLevel, CommandRegistry
from .events import EventCodeMap
from .scope import Keys, PropertyScope, as_keys, normalize_key, normalize_keys
from .values import PropertyValue, parse_double, parse_int, split_list

F_NONE: Final[int] = 0x00000000
F_HAS_INPUTS: Final[int] = 0x00000002
F_HAS_OUTPUTS: Final[int] = 0x00000004
F_COMMAND_TCP: Final[int] = 0x00000100
F_COMMAND_UDP: Final[int] = 0x00000200
F_COMMAND_SMS: Final[int] = 0x00000400
F_XMIT_TCP: Final[int] = 0x00001000
F_XMIT_UDP: Final[int] = 0x00002000
F_XMIT_SMS: Final[int] = 0x00004000
F_XMIT_SAT: Final[int] = 0x00008000
F_JAR_OPTIONAL: Final[int] = 0x00010000
F_STD_VEHICLE: Final[int] = F_HAS_INPUTS | F_HAS_OUTPUTS | F_XMIT_TCP | F_XMIT_UDP
F_STD_PERSONAL: Final[int] = F_XMIT_TCP | F_XMIT_UDP

ATTRIBUTE_FLAGS: Final[Mapping[str, int]] = {
    "hasInputs": F_HAS_INPUTS,
    "hasOutputs": F_HAS_OUTPUTS,
    "commandTcp": F_COMMAND_TCP,
    "commandUdp": F_COMMAND_UDP,
    "commandSms": F_COMMAND_SMS,
    "transmitTcp": F_XMIT_TCP,
    "transmitUdp": F_XMIT_UDP,
    "transmitSms": F_XMIT_SMS,
    "transmitSat": F_XMIT_SAT,
    "jarOptional": F_JAR_OPTIONAL,
}

TCP: Final[str] = "tcp"
UDP: Final[str] = "udp"
SAT: Final[str] = "sat"
TRANSPORTS: Final[tuple[str, ...]] = (TCP, UDP, SAT)

DCSERVER_PREFIX: Final[str] = "DCServer."
DEFAULT_GROUP: Final[str] = "default"
DEFAULT_HOST: Final[str] = "localhost"

STATUS_MOTION_START: Final[int] = 0xF111
STATUS_MOTION_STOP: Final[int] = 0xF113
STATUS_PARKED: Final[int] = 0xF2C0
STATUS_UNPARKED: Final[int] = 0xF2C6
STATUS_IGNITION_ON: Final[int] = 0xF401
STATUS_IGNITION_OFF: Final[int] = 0xF403
STATUS_ENGINE_START: Final[int] = 0xF40C
STATUS_ENGINE_STOP: Final[int] = 0xF40D

_START_STOP_ALIASES: Final[Mapping[str, tuple[int, int]]] = {
    "ign": (STATUS_IGNITION_ON, STATUS_IGNITION_OFF),
    "ignition": (STATUS_IGNITION_ON, STATUS_IGNITION_OFF),
    "eng": (STATUS_ENGINE_START, STATUS_ENGINE_STOP),
    "engine": (STATUS_ENGINE_START, STATUS_ENGINE_STOP),
    "park": (STATUS_PARKED, STATUS_UNPARKED),
    "parked": (STATUS_PARKED, STATUS_UNPARKED),
    "ss": (STATUS_MOTION_START, STATUS_MOTION_STOP),
    "startstop": (STATUS_MOTION_START, STATUS_MOTION_STOP),
}


class CommandHostSource(Protocol):
    """The slice of a device record :meth:`ServerProfile.dispatch_host` reads."""

    command_host: str | None


def flags_from_attributes(attributes: Mapping[str, bool]) -> int:
    """Fold ``hasInputs=true``-style attributes into an ``F_*`` bitmask.

    >>> hex(flags_from_attributes({"hasInputs": True, "transmitUdp": True, "other": True}))
    '0x2002'
    """

    flags = F_NONE
    for name, bit in ATTRIBUTE_FLAGS.items():
        if attributes.get(name):
            flags |= bit
    return flags


def normalize_prefixes(prefixes: Iterable[str] | None) -> list[str]:
    """Normalise a unique-id prefix list.

    ``<blank>`` and ``*`` become the empty prefix, a trailing ``*`` is
    stripped, and an empty list means "match without a prefix".

    >>> normalize_prefixes(['imei_', '*', 'gl*', '<blank>'])
    ['imei_', '', 'gl', '']
    >>> normalize_prefixes([])
    ['']
    """

    result: list[str] = []
    for raw in prefixes or ():
        item = (raw or "").strip()
        if item in ("<blank>", "*"):
            item = ""
        elif item.endswith("*"):
            item = item[:-1]
        result.append(item)
    return result or [""]


class ServerProfile:
    """Configuration of one device communication server.

    The name is fixed at construction. Everything else is filled in by the
    loader and treated as read-only once the profile is registered.

    Examples
    --------
    >>> globals_ = PropertyScope({"acme.minimumSpeedKPH": 5.0})
    >>> profile = ServerProfile("acme", global_scope=globals_)
    >>> profile.properties().set("tcpPort", "31000")
    >>> profile.resolve("tcpPort")
    (1, 'tcpPort', PropertyValue(kind=<ValueKind.STRING: 'string'>, raw='31000'))
    >>> profile.minimum_speed_kph(0.0)
    5.0
    """

    def __init__(self, name: str, *, global_scope: PropertyScope | None = None, source: str | None = None) -> None:
        self._name = name.strip()
        self.global_scope = global_scope if global_scope is not None else PropertyScope(name="global")
        self.source = source
        self.description = ""
        self.bind_address: str | None = None
        self.ssl = False
        self.protocol = ""
        self.remote_logging = ""
        self.flags = F_NONE
        self.model_names: list[str] = []
        self.unique_prefixes: list[str] = [""]
        self.command_host: str | None = None
        self._command_port = 0
        self.commands_acl_name = ""
        self.commands_acl_default = AccessLevel.WRITE
        self.commands = CommandRegistry(self._name)
        self.event_codes = EventCodeMap()
        self.recommended_keys: dict[str, str] = {}
        self.global_block: dict[str, str] = {}
        self._ports: dict[str, list[tuple[int, str | None]]] = {transport: [] for transport in TRANSPORTS}
        self._groups: dict[str, PropertyScope] = {DEFAULT_GROUP: PropertyScope(name=DEFAULT_GROUP)}

    @property
    def name(self) -> str:
        return self._name

    # ------------------------------------------------------------------
    # property groups and resolution

    def properties(self, group: str | None = None, *, create: bool = False) -> PropertyScope:
        """Return the property group *group*; blank or ``default`` is the default scope.

        An unknown group is created when *create* is set, otherwise the default
        scope is returned.
        """

        key = (group or "").strip()
        if not key or key.lower() == DEFAULT_GROUP:
            return self._groups[DEFAULT_GROUP]
        if key not in self._groups:
            if not create:
                return self._groups[DEFAULT_GROUP]
            self._groups[key] = PropertyScope(name=key)
        return self._groups[key]

    def group_names(self) -> list[str]:
        return list(self._groups)

    def normalize(self, key: str) -> str:
        return normalize_key(self._name, key)

    def resolve(self, keys: Keys) -> tuple[int, str, PropertyValue] | None:
        """Return ``(level, key, value)`` of the first match, or ``None``.

        >>> profile = ServerProfile("acme", global_scope=PropertyScope({"port": "1"}))
        >>> profile.resolve(["missing", "port"])[:2]
        (4, 'port')
        """

        literal = tuple(key for key in as_keys(keys) if key and key.strip())
        if not literal:
            return None
        normalized = normalize_keys(self._name, literal)
        local = self._groups[DEFAULT_GROUP]
        levels = (
            (1, local, literal),
            (2, local, normalized),
            (3, self.global_scope, normalized),
            (4, self.global_scope, literal),
        )
        for level, scope, candidates in levels:
            key = scope.first_key(candidates)
            if key is not None:
                return level, key, scope.value(key)  # type: ignore[return-value]
        return None

    def has_property(self, keys: Keys) -> bool:
        return self.resolve(keys) is not None

    def _value(self, keys: Keys) -> PropertyValue | None:
        found = self.resolve(keys)
        return found[2] if found is not None else None

    def get_string(self, keys: Keys, default: str | None = None) -> str | None:
        found = self._value(keys)
        return found.as_string() if found is not None else default

    def get_int(self, keys: Keys, default: int | None = 0) -> int | None:
        found = self._value(keys)
        return found.as_int(default) if found is not None else default

    def get_double(self, keys: Keys, default: float | None = 0.0) -> float | None:
        found = self._value(keys)
        return found.as_double(default) if found is not None else default

    def get_bool(self, keys: Keys, default: bool | None = False) -> bool | None:
        found = self._value(keys)
        return found.as_bool(default) if found is not None else default

    def get_string_list(self, keys: Keys, default: list[str] | None = None) -> list[str] | None:
        found = self._value(keys)
        return found.as_string_list() if found is not None else default

    def get_int_list(self, keys: Keys, default: list[int] | None = None) -> list[int] | None:
        found = self._value(keys)
        return found.as_int_list() if found is not None else default

    def property_keys(self, prefix: str = "") -> list[str]:
        """Keys starting with *prefix* or its normalised form, locally and globally."""

        prefixes = {prefix, normalize_key(self._name, prefix)} if prefix else {""}
        seen: dict[str, None] = {}
        for scope in (self._groups[DEFAULT_GROUP], self.global_scope):
            for pfx in prefixes:
                for key in scope.keys(pfx):
                    seen.setdefault(key, None)
        return list(seen)

    # ------------------------------------------------------------------
    # ports

    def server_keys(self, *suffixes: str, dcs_only: bool = False) -> list[str]:
        """Build ``DCServer.<n>.<suffix>`` (then ``<n>.<suffix>``) candidate keys."""

        keys = [f"{DCSERVER_PREFIX}{self._name}.{suffix}" for suffix in suffixes]
        if not dcs_only:
            keys.extend(f"{self._name}.{suffix}" for suffix in suffixes)
        return keys

    def _port_override_keys(self, transport: str) -> list[str]:
        if transport == SAT:
            return self.server_keys("satPort")
        specific = "tcpPort" if transport == TCP else "udpPort"
        return [
            f"{DCSERVER_PREFIX}{self._name}.{specific}",
            f"{DCSERVER_PREFIX}{self._name}.port",
            f"{self._name}.{specific}",
            f"{self._name}.port",
        ]

    def set_ports(
        self,
        transport: str,
        bind: str | None,
        ports: Iterable[int] | None,
        *,
        check_overrides: bool = True,
    ) -> list[int]:
        """Add *ports* to the *transport* set and return the effective list.

        With *check_overrides* the port properties win whenever any of them is
        defined; an override that yields no valid port removes the set.
        """

        effective = [port for port in ports or () if port > 0]
        if check_overrides:
            keys = self._port_override_keys(transport)
            if self.has_property(keys):
                effective = [port for port in self.get_int_list(keys, []) or [] if port > 0]
                if not effective:
                    self._ports[transport] = []
                    return []
        bind_host = bind.strip() if bind and bind.strip() else None
        self._ports[transport].extend((port, bind_host) for port in effective)
        return effective

    def ports(self, transport: str) -> list[int]:
        """Distinct ports of *transport* in declaration order."""

        seen: dict[int, None] = {}
        for port, _bind in self._ports.get(transport, []):
            seen.setdefault(port, None)
        return list(seen)

    def port_binds(self, transport: str) -> list[tuple[int, str | None]]:
        return list(self._ports.get(transport, []))

    def has_port(self, transport: str, port: int) -> bool:
        return any(existing == port for existing, _bind in self._ports.get(transport, []))

    @property
    def tcp_ports(self) -> list[int]:
        return self.ports(TCP)

    @property
    def udp_ports(self) -> list[int]:
        return self.ports(UDP)

    @property
    def sat_ports(self) -> list[int]:
        return self.ports(SAT)

    # ------------------------------------------------------------------
    # command dispatch

    def set_command_port(self, port: int) -> None:
        self._command_port = port

    @property
    def command_port(self) -> int:
        """Configured command port; a positive property override wins."""

        override = self.get_int(self.server_keys("commandPort"), 0) or 0
        return override if override > 0 else self._command_port

    @property
    def supports_command_dispatcher(self) -> bool:
        return self.command_port > 0

    def dispatch_host(self, device: CommandHostSource | None = None, bind_address: str | None = None) -> str:
        """Host to send commands to.

        Precedence: profile host, device host, *bind_address*, the
        ``DCServer.<n>.bindAddress`` property, then ``localhost``.
        """

        for candidate in (
            self.command_host,
            getattr(device, "command_host", None) if device is not None else None,
            bind_address,
            self.get_string(f"{DCSERVER_PREFIX}{self._name}.bindAddress", None),
        ):
            if candidate and candidate.strip():
                return candidate.strip()
        return DEFAULT_HOST

    # ------------------------------------------------------------------
    # flags

    def has_flag(self, flag: int) -> bool:
        return (self.flags & flag) != 0

    @property
    def has_digital_inputs(self) -> bool:
        return self.has_flag(F_HAS_INPUTS)

    @property
    def has_digital_outputs(self) -> bool:
        return self.has_flag(F_HAS_OUTPUTS)

    @property
    def jar_optional(self) -> bool:
        return self.has_flag(F_JAR_OPTIONAL)

    # ------------------------------------------------------------------
    # tunables

    def _timeout(self, suffix: str, default: int, *, dcs_only: bool = False) -> int:
        return self.get_int(self.server_keys(suffix, dcs_only=dcs_only), default) or default

    def tcp_idle_timeout_ms(self, default: int) -> int:
        return self._timeout("tcpIdleTimeoutMS", default)

    def tcp_packet_timeout_ms(self, default: int) -> int:
        return self._timeout("tcpPacketTimeoutMS", default)

    def tcp_session_timeout_ms(self, default: int) -> int:
        return self._timeout("tcpSessionTimeoutMS", default)

    def udp_idle_timeout_ms(self, default: int) -> int:
        return self._timeout("udpIdleTimeoutMS", default, dcs_only=True)

    def udp_packet_timeout_ms(self, default: int) -> int:
        return self._timeout("udpPacketTimeoutMS", default, dcs_only=True)

    def udp_session_timeout_ms(self, default: int) -> int:
        return self._timeout("udpSessionTimeoutMS", default, dcs_only=True)

    def client_command_port_udp(self, default: int) -> int:
        keys = [
            f"{DCSERVER_PREFIX}{self._name}.clientCommandPort.udp",
            f"{DCSERVER_PREFIX}{self._name}.clientCommandPort",
            f"{self._name}.clientCommandPort.udp",
            f"{self._name}.clientCommandPort",
        ]
        return self.get_int(keys, default) or default

    def client_command_port_tcp(self, default: int) -> int:
        keys = [
            f"{DCSERVER_PREFIX}{self._name}.clientCommandPort.tcp",
            f"{DCSERVER_PREFIX}{self._name}.clientCommandPort",
            f"{self._name}.clientCommandPort.tcp",
            f"{self._name}.clientCommandPort",
        ]
        return self.get_int(keys, default) or default

    def ack_response_port(self, default: int) -> int:
        return self.get_int(self.server_keys("ackResponsePort"), default) or default

    def minimum_speed_kph(self, default: float) -> float:
        value = self.get_double(self.server_keys("minimumSpeedKPH"), default)
        return default if value is None else value

    def estimate_odometer(self, default: bool) -> bool:
        return bool(self.get_bool(self.server_keys("estimateOdometer"), default))

    def simulate_geozones(self, default: bool) -> bool:
        return bool(self.get_bool(self.server_keys("simulateGeozones"), default))

    def start_stop_supported(self, default: bool) -> bool:
        return bool(self.get_bool(self.server_keys("startStopSupported"), default))

    def battery_level_range(self, default: tuple[float, float] = (11.4, 12.8)) -> tuple[float, float]:
        """Return ``(min, max)`` volts; reversed ranges are swapped, negatives clamp to 0.

        >>> profile = ServerProfile("acme")
        >>> profile.properties().set("batteryLevelRange", "12.8,11.4")
        >>> profile.battery_level_range()
        (11.4, 12.8)
        """

        text = self.get_string(self.server_keys("batteryLevelRange"), None)
        if text is None or not text.strip():
            return default
        values = [parse_double(item, 0.0) or 0.0 for item in split_list(text)]
        if not values:
            low, high = default
        elif len(values) == 1:
            low = high = values[0]
        else:
            low, high = values[0], values[1]
        low, high = max(low, 0.0), max(high, 0.0)
        if high <= low:
            low, high = high, low
        return low, high

    def start_stop_status_codes(self) -> tuple[int, int] | None:
        """Start/stop status code pair from ``startStopStatusCodes``, or ``None``.

        Accepts the aliases ``ignition``, ``engine``, ``parked``, ``startstop``,
        ``default`` (start/stop when supported) or an explicit ``start,stop``.
        """

        text = (self.get_string(self.server_keys("startStopStatusCodes"), "") or "").strip().lower()
        if not text:
            return None
        if text == "default":
            return _START_STOP_ALIASES["startstop"] if self.start_stop_supported(False) else None
        if text in _START_STOP_ALIASES:
            return _START_STOP_ALIASES[text]
        parts = split_list(text)
        if len(parts) >= 2:
            start, stop = parse_int(parts[0], 0) or 0, parse_int(parts[1], 0) or 0
            if start > 0 and stop > 0:
                return start, stop
        return None

    # ------------------------------------------------------------------
    # presentation

    def ports_summary(self) -> str:
        """Short port listing, e.g. ``TCP=31000 UDP=31000 CMD=30050``.

        >>> ServerProfile("acme").ports_summary()
        'no-ports'
        """

        parts = []
        for label, ports in (("TCP", self.tcp_ports), ("UDP", self.udp_ports), ("SAT", self.sat_ports)):
            if ports:
                parts.append(f"{label}={','.join(str(port) for port in ports)}")
        if self.command_port > 0:
            parts.append(f"CMD={self.command_port}")
        return " ".join(parts) if parts else "no-ports"

    def describe(self) -> str:
        return f"({self._name}) {self.description} [{self.ports_summary()}]"

    def as_dict(self) -> dict[str, Any]:
        """JSON-friendly snapshot used by the CLI ``show`` command."""

        return {
            "name": self._name,
            "description": self.description,
            "source": self.source,
            "protocol": self.protocol,
            "bind_address": self.bind_address,
            "ssl": self.ssl,
            "flags": self.flags,
            "model_names": list(self.model_names),
            "unique_prefixes": list(self.unique_prefixes),
            "ports": {"tcp": self.tcp_ports, "udp": self.udp_ports, "sat": self.sat_ports},
            "command_host": self.command_host,
            "command_port": self.command_port,
            "commands_acl": {"name": self.commands_acl_name, "default": int(self.commands_acl_default)},
            "properties": {name: scope.as_dict() for name, scope in self._groups.items()},
            "commands": self.commands.to_json()["Commands"],
            "event_codes": self.event_codes.as_dict(),
            "recommended_keys": dict(self.recommended_keys),
        }

    def __repr__(self) -> str:
        return f"ServerProfile(name={self._name!r})"
