"""ServerProfile behaviour: four-level resolution, ports, command dispatch settings."""

from __future__ import annotations

import pytest

from dcs_control.domain.profile import (
    F_HAS_INPUTS,
    F_XMIT_UDP,
    STATUS_IGNITION_OFF,
    STATUS_IGNITION_ON,
    TCP,
    UDP,
    ServerProfile,
    flags_from_attributes,
    normalize_prefixes,
)
from dcs_control.domain.scope import PropertyScope


def _profile(global_values: dict[str, object] | None = None) -> ServerProfile:
    return ServerProfile("acme", global_scope=PropertyScope(global_values or {}, name="global"))


def test_resolution_level_one_local_literal() -> None:
    profile = _profile({"acme.port": "4", "port": "5"})
    profile.properties().set("port", "1")
    profile.properties().set("acme.port", "2")
    assert profile.resolve("port")[:2] == (1, "port")
    assert profile.get_int("port") == 1


def test_resolution_level_two_local_normalized() -> None:
    profile = _profile({"acme.port": "3", "port": "4"})
    profile.properties().set("acme.port", "2")
    assert profile.resolve("port")[:2] == (2, "acme.port")
    assert profile.get_int("port") == 2


def test_resolution_level_three_global_normalized() -> None:
    profile = _profile({"acme.port": "3", "port": "4"})
    assert profile.resolve("port")[:2] == (3, "acme.port")


def test_resolution_level_four_global_literal() -> None:
    profile = _profile({"port": "4"})
    assert profile.resolve("port")[:2] == (4, "port")
    assert profile.get_int("missing", 9) == 9
    assert profile.resolve(["", "  "]) is None


def test_candidate_list_respects_levels_before_order() -> None:
    profile = _profile({"first": "global"})
    profile.properties().set("second", "local")
    assert profile.get_string(["first", "second"]) == "local"


def test_property_groups() -> None:
    profile = _profile()
    group = profile.properties("alt", create=True)
    group.set("k", "v")
    assert profile.properties("alt") is group
    assert profile.properties("DEFAULT") is profile.properties()
    assert profile.properties("unknown") is profile.properties()
    assert profile.group_names() == ["default", "alt"]


def test_port_override_replaces_declared_ports() -> None:
    profile = _profile({"DCServer.acme.tcpPort": "32000,32001"})
    assert profile.set_ports(TCP, None, [31000]) == [32000, 32001]
    assert profile.tcp_ports == [32000, 32001]


def test_empty_port_override_clears_the_set() -> None:
    profile = _profile({"acme.udpPort": ""})
    assert profile.set_ports(UDP, None, [31000]) == []
    assert profile.udp_ports == []


def test_ports_without_override_are_kept_distinct() -> None:
    profile = _profile()
    profile.set_ports(TCP, "10.0.0.1", [31000, 31000, 0, 31001])
    assert profile.tcp_ports == [31000, 31001]
    assert profile.port_binds(TCP)[0] == (31000, "10.0.0.1")
    assert profile.has_port(TCP, 31001)


def test_command_port_override_wins_when_positive() -> None:
    profile = _profile({"DCServer.acme.commandPort": "30050"})
    profile.set_command_port(30000)
    assert profile.command_port == 30050
    assert profile.supports_command_dispatcher

    plain = _profile({"acme.commandPort": "0"})
    plain.set_command_port(-1)
    assert plain.command_port == -1
    assert not plain.supports_command_dispatcher


class _Device:
    command_host = "device-host"


def test_dispatch_host_precedence() -> None:
    profile = _profile({"DCServer.acme.bindAddress": "prop-host"})
    assert profile.dispatch_host() == "prop-host"
    assert profile.dispatch_host(None, "bind-host") == "bind-host"
    assert profile.dispatch_host(_Device(), "bind-host") == "device-host"
    profile.command_host = "profile-host"
    assert profile.dispatch_host(_Device(), "bind-host") == "profile-host"
    assert _profile().dispatch_host() == "localhost"


def test_flags_and_prefixes() -> None:
    flags = flags_from_attributes({"hasInputs": True, "transmitUdp": True, "hasOutputs": False})
    assert flags == F_HAS_INPUTS | F_XMIT_UDP
    profile = _profile()
    profile.flags = flags
    assert profile.has_digital_inputs and not profile.has_digital_outputs
    assert normalize_prefixes(["imei_", "*", "<blank>", "gl*"]) == ["imei_", "", "", "gl"]
    assert normalize_prefixes(None) == [""]


def test_tunables_use_server_keys() -> None:
    profile = _profile(
        {
            "DCServer.acme.tcpPacketTimeoutMS": "2500",
            "acme.minimumSpeedKPH": "4.5",
            "acme.udpIdleTimeoutMS": "999",
            "acme.startStopStatusCodes": "ignition",
        }
    )
    assert profile.tcp_packet_timeout_ms(10000) == 2500
    assert profile.tcp_idle_timeout_ms(1234) == 1234
    assert profile.minimum_speed_kph(0.0) == 4.5
    assert profile.udp_idle_timeout_ms(100) == 100
    assert profile.start_stop_status_codes() == (STATUS_IGNITION_ON, STATUS_IGNITION_OFF)


@pytest.mark.parametrize(
    ("text", "expected"),
    [("11.0,13.0", (11.0, 13.0)), ("13.0,11.0", (11.0, 13.0)), ("-1,12", (0.0, 12.0))],
)
def test_battery_level_range(text: str, expected: tuple[float, float]) -> None:
    profile = _profile({"acme.batteryLevelRange": text})
    assert profile.battery_level_range() == expected


def test_presentation() -> None:
    profile = _profile()
    profile.description = "Acme tracker"
    assert profile.describe() == "(acme) Acme tracker [no-ports]"
    profile.set_ports(TCP, None, [31000])
    profile.set_command_port(30050)
    assert profile.ports_summary() == "TCP=31000 CMD=30050"
    snapshot = profile.as_dict()
    assert snapshot["ports"] == {"tcp": [31000], "udp": [], "sat": []}
    assert snapshot["command_port"] == 30050
