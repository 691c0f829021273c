"""Tagged property values and the coercion rules used by typed lookups.

Purpose
-------
Property scopes hold values from several sources: markup text, TOML/YAML
scalars, environment strings and command-line overrides. Rather than storing
untyped objects, every entry is wrapped in a :class:`PropertyValue` that
records its kind so the typed getters (``get_int``, ``get_bool``, ...) convert
explicitly and predictably.

Contents
--------
* :class:`ValueKind` - the six supported kinds.
* :class:`PropertyValue` - immutable ``(kind, raw)`` pair with converters.
* :func:`parse_int` / :func:`parse_double` / :func:`parse_bool` /
  :func:`split_list` - text coercions shared with the template engine and the
  markup loader.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence

from .errors import ValidationError

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_LEADING_INT = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|\d+)")
_TRUE_WORDS = frozenset({"true", "yes", "on", "1", "y", "t"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0", "n", "f"})


class ValueKind(str, Enum):
    """Discriminator of a :class:`PropertyValue`."""

    STRING = "string"
    INT = "int"
    LONG = "long"
    DOUBLE = "double"
    BOOL = "bool"
    STRING_LIST = "string_list"


def parse_int(text: object, default: int | None = 0) -> int | None:
    """Parse the leading integer run of *text*.

    Accepts an optional sign followed by decimal digits or a ``0x`` hex
    literal; trailing characters are ignored. Anything else yields *default*.

    Examples
    --------
    >>> parse_int('123ABC'), parse_int('0x10'), parse_int('-1'), parse_int('abc', 7)
    (123, 16, -1, 7)
    """

    if isinstance(text, bool):
        return int(text)
    if isinstance(text, int):
        return text
    if isinstance(text, float):
        return int(text)
    if text is None:
        return default
    match = _LEADING_INT.match(str(text))
    if match is None:
        return default
    sign, digits = match.groups()
    value = int(digits, 16) if digits[:2].lower() == "0x" else int(digits)
    return -value if sign == "-" else value


def parse_double(text: object, default: float | None = 0.0) -> float | None:
    """Parse *text* as a float, returning *default* when it is not numeric.

    >>> parse_double(' 12.5 '), parse_double('n/a', 1.0)
    (12.5, 1.0)
    """

    if isinstance(text, bool):
        return float(text)
    if isinstance(text, (int, float)):
        return float(text)
    if text is None:
        return default
    try:
        return float(str(text).strip())
    except ValueError:
        return default


def parse_bool(text: object, default: bool | None = False) -> bool | None:
    """Interpret common truthy/falsy spellings, otherwise return *default*.

    >>> parse_bool('Yes'), parse_bool('off'), parse_bool('maybe', True)
    (True, False, True)
    """

    if isinstance(text, bool):
        return text
    if isinstance(text, (int, float)):
        return text != 0
    if text is None:
        return default
    word = str(text).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return default


def split_list(text: str, separator: str = ",") -> list[str]:
    """Split *text* on *separator* and trim every item; blank text is empty.

    >>> split_list(' a, b ,c ')
    ['a', 'b', 'c']
    >>> split_list('')
    []
    """

    if not text or not text.strip():
        return []
    return [item.strip() for item in text.split(separator)]


@dataclass(frozen=True, slots=True)
class PropertyValue:
    """A property value tagged with its kind.

    Examples
    --------
    >>> PropertyValue.of(31000).kind
    <ValueKind.INT: 'int'>
    >>> PropertyValue.of('31000,31001').as_int_list()
    [31000, 31001]
    >>> PropertyValue.of(True).as_string()
    'true'
    """

    kind: ValueKind
    raw: Any

    @classmethod
    def of(cls, value: object) -> "PropertyValue":
        """Wrap a plain Python value, inferring its kind."""

        if isinstance(value, PropertyValue):
            return value
        if value is None:
            return cls(ValueKind.STRING, "")
        if isinstance(value, bool):
            return cls(ValueKind.BOOL, value)
        if isinstance(value, int):
            kind = ValueKind.INT if _INT32_MIN <= value <= _INT32_MAX else ValueKind.LONG
            return cls(kind, value)
        if isinstance(value, float):
            return cls(ValueKind.DOUBLE, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        if isinstance(value, (list, tuple)):
            return cls(ValueKind.STRING_LIST, tuple(_scalar_text(item) for item in value))
        raise ValidationError(f"Unsupported property value type: {type(value).__name__}")

    def as_string(self) -> str:
        if self.kind is ValueKind.STRING_LIST:
            return ",".join(self.raw)
        return _scalar_text(self.raw)

    def as_int(self, default: int | None = 0) -> int | None:
        if self.kind in (ValueKind.INT, ValueKind.LONG, ValueKind.BOOL):
            return int(self.raw)
        if self.kind is ValueKind.DOUBLE:
            return int(self.raw)
        return parse_int(self.as_string(), default)

    def as_double(self, default: float | None = 0.0) -> float | None:
        if self.kind in (ValueKind.INT, ValueKind.LONG, ValueKind.DOUBLE):
            return float(self.raw)
        return parse_double(self.as_string(), default)

    def as_bool(self, default: bool | None = False) -> bool | None:
        if self.kind is ValueKind.BOOL:
            return self.raw
        if self.kind in (ValueKind.INT, ValueKind.LONG, ValueKind.DOUBLE):
            return self.raw != 0
        return parse_bool(self.as_string(), default)

    def as_string_list(self) -> list[str]:
        if self.kind is ValueKind.STRING_LIST:
            return list(self.raw)
        if self.kind is ValueKind.STRING:
            return split_list(self.raw)
        return [self.as_string()]

    def as_int_list(self) -> list[int]:
        """Parse every list item as an integer, skipping unparsable entries."""

        parsed = (parse_int(item, None) for item in self.as_string_list())
        return [value for value in parsed if value is not None]


def _scalar_text(value: object) -> str:
    """Render a scalar the way property files spell it."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def first_present(candidates: Sequence[str], present: Iterable[str]) -> str | None:
    """Return the first of *candidates* contained in *present*.

    >>> first_present(['b', 'a'], {'a', 'b'})
    'b'
    """

    pool = present if isinstance(present, (set, frozenset, dict)) else set(present)
    for key in candidates:
        if key in pool:
            return key
    return None
