"""Protocol module registry.

Each device communication server is implemented by a protocol module that may
or may not be installed next to the control plane. Modules announce themselves
under the ``dcs_control.protocols`` entry-point group with the server name as
the entry-point name; tests and embedders register them explicitly.
"""

from __future__ import annotations

from importlib import metadata
from typing import Any, Callable, Dict

from ...domain.errors import NotFound
from ...domain.profile import ServerProfile
from ...observability import log_debug

ENTRY_POINT_GROUP = "dcs_control.protocols"

ModuleFactory = Callable[[], Any]


class ProtocolModuleRegistry:
    """Server name -> protocol module factory table.

    Lookups are exact on the server name. A name that was never registered is
    not installed.

    >>> registry = ProtocolModuleRegistry({"acme": object})
    >>> registry.installed(ServerProfile("acme")), registry.installed(ServerProfile("beta"))
    (True, False)
    """

    def __init__(self, modules: Dict[str, ModuleFactory] | None = None) -> None:
        self._modules: Dict[str, ModuleFactory] = {k.strip(): v for k, v in (modules or {}).items()}

    @classmethod
    def default(cls) -> "ProtocolModuleRegistry":
        """Registry of the protocol modules installed as entry points."""

        registry = cls()
        for entry_point in metadata.entry_points(group=ENTRY_POINT_GROUP):
            registry.register(entry_point.name, entry_point.load)
        log_debug("protocol_modules_discovered", group=ENTRY_POINT_GROUP, names=registry.names())
        return registry

    def register(self, name: str, factory: ModuleFactory) -> None:
        self._modules[name.strip()] = factory

    def has(self, name: str | None) -> bool:
        return name is not None and name.strip() in self._modules

    def names(self) -> list[str]:
        return sorted(self._modules)

    def installed(self, profile: ServerProfile) -> bool:
        return self.has(profile.name)

    def load(self, name: str) -> Any:
        key = name.strip()
        if key not in self._modules:
            raise NotFound(f"protocol module for server '{name}' not installed")
        return self._modules[key]()
