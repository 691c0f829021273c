"""Ordered property scopes and server-name key normalisation.

Purpose
-------
A :class:`PropertyScope` is the unit every resolution query looks at: an
insertion-ordered mapping of case-sensitive keys to tagged values. Scopes are
filled while configuration loads and are read-only afterwards apart from a few
administrative writes.

Contents
--------
* :func:`normalize_key` / :func:`normalize_keys` - prefix bare keys with a
  server name (``tcpPort`` -> ``acme.tcpPort``).
* :class:`PropertyScope` - the store with typed, multi-key getters.

System Role
-----------
:class:`dcs_control.domain.profile.ServerProfile` owns one default scope plus
optional named groups; :class:`dcs_control.application.runtime.RuntimeProperties`
exposes the process-wide scope built from runtime layers.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Sequence, Union

from .values import PropertyValue, first_present

Keys = Union[str, Sequence[str]]


def normalize_key(name: str, key: str | None) -> str:
    """Prefix *key* with ``name + "."`` unless it already contains that prefix.

    The check is a substring test, so both ``acme.tcpPort`` and
    ``DCServer.acme.tcpPort`` stay unchanged for server ``acme``.

    Examples
    --------
    >>> normalize_key('acme', 'tcpPort')
    'acme.tcpPort'
    >>> normalize_key('acme', 'DCServer.acme.tcpPort')
    'DCServer.acme.tcpPort'
    >>> normalize_key('acme', '  ')
    ''
    """

    if key is None or not key.strip():
        return ""
    if f"{name}." in key:
        return key
    return f"{name}.{key}"


def normalize_keys(name: str, keys: Keys) -> tuple[str, ...]:
    """Normalise every candidate key, preserving the caller's order."""

    return tuple(normalize_key(name, key) for key in as_keys(keys))


def as_keys(keys: Keys) -> tuple[str, ...]:
    """Return *keys* as a tuple whether a single key or a sequence was given."""

    if isinstance(keys, str):
        return (keys,)
    return tuple(keys)


class PropertyScope:
    """Insertion-ordered ``key -> PropertyValue`` store.

    Lookups accept a single key or a candidate list; with a list, the first
    key present (in caller order) wins. Reading never mutates the scope.

    Examples
    --------
    >>> scope = PropertyScope({"acme.tcpPort": 31000})
    >>> scope.get_int(["acme.port", "acme.tcpPort"], 0)
    31000
    >>> scope.get_string("missing", "dft")
    'dft'
    """

    __slots__ = ("name", "_values")

    def __init__(self, values: Mapping[str, object] | None = None, *, name: str = "default") -> None:
        self.name = name
        self._values: dict[str, PropertyValue] = {}
        if values:
            self.update(values)

    def set(self, key: str, value: object) -> None:
        """Store *value* under *key*, wrapping it as a :class:`PropertyValue`."""

        self._values[key] = PropertyValue.of(value)

    def update(self, values: Mapping[str, object]) -> None:
        for key, value in values.items():
            self.set(key, value)

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def has(self, keys: Keys) -> bool:
        return self.first_key(keys) is not None

    def first_key(self, keys: Keys) -> str | None:
        """Return the first candidate key that is defined in this scope."""

        return first_present(as_keys(keys), self._values)

    def value(self, keys: Keys) -> PropertyValue | None:
        key = self.first_key(keys)
        return self._values[key] if key is not None else None

    def get_string(self, keys: Keys, default: str | None = None) -> str | None:
        found = self.value(keys)
        return found.as_string() if found is not None else default

    def get_int(self, keys: Keys, default: int | None = 0) -> int | None:
        found = self.value(keys)
        return found.as_int(default) if found is not None else default

    def get_double(self, keys: Keys, default: float | None = 0.0) -> float | None:
        found = self.value(keys)
        return found.as_double(default) if found is not None else default

    def get_bool(self, keys: Keys, default: bool | None = False) -> bool | None:
        found = self.value(keys)
        return found.as_bool(default) if found is not None else default

    def get_string_list(self, keys: Keys, default: list[str] | None = None) -> list[str] | None:
        found = self.value(keys)
        return found.as_string_list() if found is not None else default

    def get_int_list(self, keys: Keys, default: list[int] | None = None) -> list[int] | None:
        found = self.value(keys)
        return found.as_int_list() if found is not None else default

    def keys(self, prefix: str = "") -> list[str]:
        """Return keys starting with *prefix*, in insertion order."""

        return [key for key in self._values if key.startswith(prefix)]

    def items(self) -> Iterator[tuple[str, PropertyValue]]:
        return iter(self._values.items())

    def as_dict(self) -> dict[str, Any]:
        """Return plain Python values (lists for string lists) keyed as stored."""

        return {
            key: list(value.raw) if isinstance(value.raw, tuple) else value.raw
            for key, value in self._values.items()
        }

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"PropertyScope(name={self.name!r}, keys={len(self._values)})"
