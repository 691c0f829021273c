"""Listen-port conflict detection for a single load pass.

The registry lives only while the loader runs. It records which profile
claimed each TCP and UDP port first and logs a ``port_conflict`` warning when
a *different* profile claims the same port later. Conflicts are advisory: the
later profile still registers.
"""

from __future__ import annotations

from typing import Final

from ..domain.profile import TCP, UDP, ServerProfile
from ..observability import log_warning

CHECKED_TRANSPORTS: Final[tuple[str, ...]] = (TCP, UDP)


class PortRegistry:
    """Per-transport ``port -> owning profile name`` maps.

    Examples
    --------
    >>> registry = PortRegistry()
    >>> registry.claim("tcp", 31000, "acme") is None
    True
    >>> registry.claim("tcp", 31000, "acme") is None
    True
    >>> registry.claim("tcp", 31000, "other")
    'acme'
    >>> len(registry.conflicts)
    1
    """

    def __init__(self) -> None:
        self._owners: dict[str, dict[int, str]] = {transport: {} for transport in CHECKED_TRANSPORTS}
        self.conflicts: list[tuple[str, int, str, str]] = []

    def claim(self, transport: str, port: int, profile_name: str, warn: bool = True) -> str | None:
        """Claim *port* for *profile_name*; return the earlier owner on conflict.

        The first claimant keeps the port. Re-claiming by the same name is
        silent. With *warn* disabled a conflict is still returned and counted
        but not logged.
        """

        owners = self._owners.setdefault(transport, {})
        owner = owners.get(port)
        if owner is None:
            owners[port] = profile_name
            return None
        if owner == profile_name:
            return None
        self.conflicts.append((transport, port, owner, profile_name))
        if warn:
            log_warning(
                "port_conflict",
                transport=transport,
                port=port,
                owner=owner,
                server=profile_name,
            )
        return owner

    def register_profile(self, profile: ServerProfile, warn: bool = True) -> int:
        """Claim every TCP port, then every UDP port of *profile*; return the conflict count."""

        found = 0
        for transport in CHECKED_TRANSPORTS:
            for port in profile.ports(transport):
                if self.claim(transport, port, profile.name, warn) is not None:
                    found += 1
        return found

    def owner(self, transport: str, port: int) -> str | None:
        return self._owners.get(transport, {}).get(port)
