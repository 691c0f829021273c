"""Process-scoped registry of loaded server profiles.

Purpose
-------
Answer the questions collaborators ask about the running fleet: resolve a
profile by name, list profiles, inspect their ports and map a raw device
identifier to the profile whose unique-id prefix matches or to the devices it
names.

Contents
--------
* :class:`ServerDirectory` - name -> :class:`ServerProfile` map plus the
  global properties and bind address of the load pass that produced it.

System Role
-----------
Constructed by :func:`dcs_control.core.load_directory` and handed explicitly
to the dispatch engine and the CLI. After loading it is only read, so
concurrent readers need no locking.
"""

from __future__ import annotations

from itertools import chain
from typing import Callable, Iterator

from .ports import Device, DeviceLookup
from ..domain.profile import SAT, TCP, UDP, ServerProfile
from ..domain.scope import PropertyScope
from ..observability import log_debug, log_error, log_warning


class ServerDirectory:
    """Ordered ``name -> ServerProfile`` registry.

    Registration order is significant: unique-id lookups try profiles in the
    order they were added. Re-adding a name is a no-op (first wins).

    Examples
    --------
    >>> directory = ServerDirectory()
    >>> directory.add(ServerProfile("acme"))
    True
    >>> directory.add(ServerProfile("acme"))
    False
    >>> directory.has("acme"), directory.description("nope")
    (True, '(nope)')
    """

    def __init__(
        self,
        *,
        global_properties: PropertyScope | None = None,
        bind_address: str | None = None,
        backlog: int = 0,
        source: str | None = None,
    ) -> None:
        self._profiles: dict[str, ServerProfile] = {}
        self.global_properties = global_properties if global_properties is not None else PropertyScope(name="global")
        self.bind_address = bind_address
        self.backlog = backlog
        self.source = source

    def add(self, profile: ServerProfile) -> bool:
        if profile.name in self._profiles:
            log_debug("duplicate_server_ignored", server=profile.name, path=profile.source)
            return False
        self._profiles[profile.name] = profile
        return True

    def get(self, name: str | None, warn: bool = False) -> ServerProfile | None:
        """Return the profile called *name*; with *warn* a miss is logged."""

        if name is None or not name.strip():
            if warn:
                log_error("server_name_blank")
            return None
        profile = self._profiles.get(name.strip())
        if profile is None and warn:
            log_warning("server_not_found", server=name, hint=f"not found [Not defined in {self.source}?]")
        return profile

    def has(self, name: str | None) -> bool:
        return name is not None and name.strip() in self._profiles

    def description(self, name: str) -> str:
        profile = self._profiles.get(name)
        return profile.describe() if profile is not None else f"({name})"

    def names(self) -> list[str]:
        return list(self._profiles)

    def list(
        self,
        include_all: bool = False,
        installed: Callable[[ServerProfile], bool] | None = None,
    ) -> list[ServerProfile]:
        """Return profiles in registration order.

        Unless *include_all* is set, profiles whose protocol module is not
        installed (per the *installed* predicate) are left out; jar-optional
        profiles always pass.
        """

        profiles = list(self._profiles.values())
        if include_all or installed is None:
            return profiles
        return [profile for profile in profiles if profile.jar_optional or installed(profile)]

    def ports(self, name: str) -> dict[str, list[int]] | None:
        profile = self._profiles.get(name)
        if profile is None:
            return None
        return {TCP: profile.tcp_ports, UDP: profile.udp_ports, SAT: profile.sat_ports}

    def command_port(self, name: str) -> int:
        profile = self._profiles.get(name)
        return profile.command_port if profile is not None else 0

    def supports_command_dispatcher(self, name: str) -> bool:
        profile = self._profiles.get(name)
        return profile is not None and profile.supports_command_dispatcher

    def find_by_unique_id(self, raw_id: str | None) -> tuple[ServerProfile, str] | None:
        """Match *raw_id* against every profile's unique-id prefixes.

        Returns ``(profile, raw_id_without_prefix)`` for the first profile (in
        registration order) with a matching prefix; an empty prefix matches
        any identifier.

        >>> directory = ServerDirectory()
        >>> first = ServerProfile("first"); first.unique_prefixes = ["imei_"]
        >>> second = ServerProfile("second")
        >>> _ = directory.add(first), directory.add(second)
        >>> [(p.name, rest) for p, rest in [directory.find_by_unique_id("imei_123")]]
        [('first', '123')]
        >>> directory.find_by_unique_id("abc")[0].name
        'second'
        """

        if raw_id is None or not raw_id.strip():
            return None
        ident = raw_id.strip()
        for profile in self._profiles.values():
            for prefix in profile.unique_prefixes:
                if ident.startswith(prefix):
                    return profile, ident[len(prefix):]
        return None

    def lookup_unique_id(self, mobile_id: str | None, devices: DeviceLookup) -> list[Device]:
        """Load every device whose unique id is a known prefix plus *mobile_id*.

        The bare identifier is tried first, then each profile's prefixes in
        registration order. A candidate id is loaded at most once.
        """

        if mobile_id is None or not mobile_id.strip():
            return []
        ident = mobile_id.strip()
        prefixes = chain([""], *(profile.unique_prefixes for profile in self._profiles.values()))
        tried: set[str] = set()
        found: list[Device] = []
        for prefix in prefixes:
            candidate = prefix + ident
            if candidate in tried:
                continue
            tried.add(candidate)
            device = devices.load_by_unique_id(candidate)
            if device is not None:
                found.append(device)
        log_debug("unique_id_lookup", mobile_id=ident, tried=len(tried), found=len(found))
        return found

    def __contains__(self, name: object) -> bool:
        return name in self._profiles

    def __iter__(self) -> Iterator[ServerProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)
