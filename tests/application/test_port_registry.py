from __future__ import annotations

import logging

import pytest

from dcs_control.application.port_registry import PortRegistry
from dcs_control.domain.profile import SAT, TCP, UDP, ServerProfile


def _profile(name: str, tcp=(), udp=(), sat=()) -> ServerProfile:
    profile = ServerProfile(name)
    profile.set_ports(TCP, None, list(tcp))
    profile.set_ports(UDP, None, list(udp))
    profile.set_ports(SAT, None, list(sat))
    return profile


def _conflict_records(caplog: pytest.LogCaptureFixture) -> list[logging.LogRecord]:
    return [record for record in caplog.records if record.getMessage() == "port_conflict"]


def test_conflict_is_logged_exactly_once(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="dcs_control")
    registry = PortRegistry()
    assert registry.register_profile(_profile("first", tcp=[31000])) == 0
    assert registry.register_profile(_profile("second", tcp=[31000])) == 1
    records = _conflict_records(caplog)
    assert len(records) == 1
    assert records[0].context["owner"] == "first"
    assert records[0].context["server"] == "second"
    assert registry.owner(TCP, 31000) == "first"
    assert registry.conflicts == [(TCP, 31000, "first", "second")]


def test_same_profile_and_other_transport_never_conflict(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="dcs_control")
    registry = PortRegistry()
    registry.register_profile(_profile("first", tcp=[31000]))
    assert registry.claim(TCP, 31000, "first") is None
    assert registry.register_profile(_profile("second", udp=[31000], sat=[31000])) == 0
    assert _conflict_records(caplog) == []


def test_silent_conflict_is_still_counted(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="dcs_control")
    registry = PortRegistry()
    registry.claim(UDP, 5000, "first")
    assert registry.claim(UDP, 5000, "second", warn=False) == "first"
    assert len(registry.conflicts) == 1
    assert _conflict_records(caplog) == []
