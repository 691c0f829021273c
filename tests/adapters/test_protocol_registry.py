"""Protocol module registry tests."""

from __future__ import annotations

from importlib import metadata

import pytest

from dcs_control.adapters.protocols.registry import ENTRY_POINT_GROUP, ProtocolModuleRegistry
from dcs_control.application.directory import ServerDirectory
from dcs_control.domain.errors import NotFound
from dcs_control.domain.profile import F_JAR_OPTIONAL, ServerProfile


def test_unregistered_server_is_not_installed() -> None:
    registry = ProtocolModuleRegistry()
    assert not registry.installed(ServerProfile("acme"))
    assert not registry.has(None)
    with pytest.raises(NotFound):
        registry.load("acme")


def test_registered_module_is_installed_and_loads() -> None:
    module = object()
    registry = ProtocolModuleRegistry()
    registry.register(" acme ", lambda: module)
    assert registry.names() == ["acme"]
    assert registry.installed(ServerProfile("acme"))
    assert not registry.installed(ServerProfile("Acme"))
    assert registry.load("acme") is module


def test_default_reads_entry_point_group(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[str] = []
    entry = metadata.EntryPoint(name="acme", value="json:loads", group=ENTRY_POINT_GROUP)

    def _entry_points(*, group: str) -> list[metadata.EntryPoint]:
        seen.append(group)
        return [entry]

    monkeypatch.setattr(metadata, "entry_points", _entry_points)
    registry = ProtocolModuleRegistry.default()
    assert seen == [ENTRY_POINT_GROUP]
    assert registry.names() == ["acme"]


def test_directory_listing_uses_registry() -> None:
    installed, missing, optional = ServerProfile("acme"), ServerProfile("beta"), ServerProfile("gamma")
    optional.flags = F_JAR_OPTIONAL
    directory = ServerDirectory()
    for profile in (installed, missing, optional):
        directory.add(profile)
    registry = ProtocolModuleRegistry({"acme": object})
    assert [p.name for p in directory.list(installed=registry.installed)] == ["acme", "gamma"]
    assert [p.name for p in directory.list(include_all=True, installed=registry.installed)] == ["acme", "beta", "gamma"]
