"""Command template rendering.

Purpose
-------
Turn a :class:`~dcs_control.domain.commands.CommandDefinition` template and a
positional argument list into the literal command string sent to a device.

Contents
--------
* :func:`render_command` - full rendering: placeholders (only when the command
  declares arguments) followed by device identity tokens.
* :func:`render_template` - placeholder substitution on a bare template.
* :func:`apply_modifier` - the per-placeholder format directives.
* :func:`replace_device_tokens` - ``%{uniqueID}`` / ``{UNIQUEID}`` style tokens.

Placeholders have the form ``${key[:modifier][=default]}``. ``key`` is looked
up as a declared argument name, then as ``arg`` (argument 0), then as
``argN``; a blank or missing value falls back to the default clause.
"""

from __future__ import annotations

import re
from typing import Callable, Final, Mapping, Sequence

from ..domain.commands import DEFAULT_ARG_NAME, CommandDefinition
from ..domain.values import parse_int
from .ports import Device

PLACEHOLDER: Final[re.Pattern[str]] = re.compile(r"\$\{([^}:=]*)(?::([^}=]*))?(?:=([^}]*))?\}")
_ARG_N: Final[re.Pattern[str]] = re.compile(rf"{DEFAULT_ARG_NAME}(\d+)")
_NUMERIC: Final[re.Pattern[str]] = re.compile(r"[+-]?\d+")
_GEO_SEPARATORS: Final[re.Pattern[str]] = re.compile(r"[/, ]+")
_WHITESPACE: Final[str] = " \t\r\n"

DEVICE_TOKENS: Final[Mapping[str, tuple[str, ...]]] = {
    "data_key": ("%{dataKey}", "{DATAKEY}", "${dataKey}"),
    "unique_id": ("%{uniqueID}", "{UNIQUEID}", "${uniqueID}"),
    "modem_id": ("%{modemID}", "{MODEMID}", "${modemID}"),
    "imei": ("%{imei}", "{IMEI}", "${imei}"),
    "serial": ("%{serial}", "{SERIAL}", "${serial}"),
}


def render_command(command: CommandDefinition, args: Sequence[str | None] | None, device: Device | None = None) -> str:
    """Render *command* for *device* with positional *args*.

    Placeholders are substituted first and device identity tokens are
    replaced in the result, so a token passed inside an argument is expanded
    too. In a command with arguments the ``${uniqueID}`` forms are therefore
    placeholders and resolve through their default clause.

    Examples
    --------
    >>> cmd = CommandDefinition("acme", "ping", template="PING:${arg}")
    >>> render_command(cmd, ["7"])
    'PING:7'
    >>> literal = CommandDefinition("acme", "reset", template="RESET")
    >>> render_command(literal, ["ignored"])
    'RESET'
    """

    text = command.template
    if command.has_args:
        text = render_template(text, args or (), [arg.name for arg in command.args])
    if device is not None:
        text = replace_device_tokens(text, device)
    return text


def render_template(template: str, args: Sequence[str | None], arg_names: Sequence[str] = ()) -> str:
    """Substitute every ``${...}`` placeholder in *template*.

    >>> render_template("SET ${speed:#=0} ${mode=idle}", ["80kph"], ["speed"])
    'SET 80 idle'
    >>> render_template("${arg1:h16}", ["x", "16"])
    '0x0010'
    >>> render_template("open ${unterminated", ["x"])
    'open ${unterminated'
    """

    names = list(arg_names)

    def _replace(match: re.Match[str]) -> str:
        key, modifier, default = match.group(1), match.group(2), match.group(3) or ""
        value = _lookup(key, args, names, default)
        return apply_modifier(value, modifier)

    return PLACEHOLDER.sub(_replace, template)


def _lookup(key: str, args: Sequence[str | None], names: list[str], default: str) -> str:
    """Resolve *key* against declared names, ``arg`` and ``argN``."""

    if key in names:
        index = names.index(key)
        if index < len(args):
            return _or_default(args[index], default)
    if key == DEFAULT_ARG_NAME:
        return _or_default(args[0] if args else None, default)
    match = _ARG_N.fullmatch(key)
    if match is not None:
        index = int(match.group(1))
        if index < len(args):
            return _or_default(args[index], default)
    return default


def _or_default(value: str | None, default: str) -> str:
    if value is None or not value.strip():
        return default
    return value


def _hex(width: int, mask: int | None) -> Callable[[str], str]:
    def _format(value: str) -> str:
        number = parse_int(value, 0) or 0
        number &= mask if mask is not None else 0xFFFFFFFFFFFFFFFF
        return f"0x{number:0{width}X}"

    return _format


def _as_int(value: str) -> str:
    return str(parse_int(value, 0) or 0)


def _no_space(value: str) -> str:
    return "".join(ch for ch in value if ch not in _WHITESPACE)


def quote(value: str) -> str:
    """Wrap *value* in double quotes, escaping backslashes and quotes.

    >>> quote('Hello "World"')
    '"Hello \\\\"World\\\\""'
    """

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_geo_point(value: str) -> tuple[float, float] | None:
    """Parse ``lat/lon`` (``/``, ``,`` or space separated); invalid pairs give ``None``.

    >>> parse_geo_point('39.1234, -142.1234')
    (39.1234, -142.1234)
    >>> parse_geo_point('95/0') is None
    True
    """

    parts = [part for part in _GEO_SEPARATORS.split(value.strip()) if part]
    if len(parts) < 2:
        return None
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    return lat, lon


def _geo(value: str) -> tuple[str, str]:
    point = parse_geo_point(value) or (0.0, 0.0)
    return f"{point[0]:.5f}", f"{point[1]:.5f}"


def _geo_pair(value: str) -> str:
    lat, lon = _geo(value)
    return f"{lat}/{lon}"


def _geo_lat(value: str) -> str:
    return _geo(value)[0]


def _geo_lon(value: str) -> str:
    return _geo(value)[1]


_MODIFIERS: Final[Mapping[str, Callable[[str], str]]] = {
    "h8": _hex(2, 0xFF),
    "hex8": _hex(2, 0xFF),
    "h16": _hex(4, 0xFFFF),
    "hex16": _hex(4, 0xFFFF),
    "h32": _hex(8, 0xFFFFFFFF),
    "hex32": _hex(8, 0xFFFFFFFF),
    "h64": _hex(16, None),
    "hex64": _hex(16, None),
    "#": _as_int,
    "int": _as_int,
    "long": _as_int,
    "ns": _no_space,
    "nospace": _no_space,
    "q": quote,
    "quote": quote,
    "gp": _geo_pair,
    "gps": _geo_pair,
    "gplat": _geo_lat,
    "lat": _geo_lat,
    "latitude": _geo_lat,
    "gplon": _geo_lon,
    "lon": _geo_lon,
    "longitude": _geo_lon,
}


def apply_modifier(value: str, modifier: str | None) -> str:
    """Apply a placeholder format directive to *value*.

    Unknown non-numeric modifiers leave the value unchanged.

    Examples
    --------
    >>> apply_modifier('16', 'hex16'), apply_modifier('-1', 'H16')
    ('0x0010', '0xFFFF')
    >>> apply_modifier('A,B,C', '1'), apply_modifier('A,B,C', '5'), apply_modifier('solo', '0')
    ('B', '', 'solo')
    >>> apply_modifier('39.1234 -142.1234', 'gps')
    '39.12340/-142.12340'
    """

    if modifier is None or not modifier.strip():
        return value
    name = modifier.strip().lower()
    formatter = _MODIFIERS.get(name)
    if formatter is not None:
        return formatter(value)
    if _NUMERIC.fullmatch(name):
        return _indexed(value, int(name))
    return value


def _indexed(value: str, index: int) -> str:
    """Pick element *index* of a list delimited by the first non-alphanumeric character."""

    if index < 0:
        return value
    delimiter = next((ch for ch in value if not ch.isalnum()), None)
    if delimiter is None:
        return value if index == 0 else ""
    items = value.split(delimiter)
    return items[index] if index < len(items) else ""


def replace_device_tokens(text: str, device: Device) -> str:
    """Substitute the device identity tokens into *text*."""

    for attribute, tokens in DEVICE_TOKENS.items():
        replacement = getattr(device, attribute, "") or ""
        for token in tokens:
            text = text.replace(token, replacement)
    return text
