"""Markup loader tests: server declarations, includes, overrides and diagnostics."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from dcs_control.adapters.markup.loader import MarkupLoader, parse_ports
from dcs_control.adapters.path_resolvers.default import DefaultPathResolver
from dcs_control.domain.errors import InvalidFormat, NotFound
from dcs_control.domain.scope import PropertyScope

ACME = """
<DCServer name="acme" protocol="tcp">
  <Description>
    Acme
    tracker
  </Description>
  <UniqueIDPrefix>acme_, imei_</UniqueIDPrefix>
  <ModelNames>
    AT-100
    AT-200
  </ModelNames>
  <Attributes>hasInputs=true hasOutputs=false</Attributes>
  <ListenPorts tcpPort="31000,31001" udpPort="31000"/>
  <Properties>
    <Property key="minimumSpeedKPH">4.5</Property>
    <Property key="acme.estimateOdometer">true</Property>
  </Properties>
  <Properties id="alt">
    <Property key="alt.only">1</Property>
  </Properties>
  <EventCodeMap>
    <Code key="16">0xF020</Code>
    <Code key="IGN" data="x">ignore</Code>
  </EventCodeMap>
  <Commands dispatchHost="10.0.0.9" dispatchPort="30050">
    <Command name="ping">
      <Type>admin, config</Type>
      <Description>Ping the device</Description>
      <String protocol="tcp">PING:${arg}</String>
      <Arg name="arg">Ping argument</Arg>
      <StatusCode>0xF0E0</StatusCode>
    </Command>
  </Commands>
</DCServer>
"""


def _server(name: str, body: str = "", **attributes: str) -> str:
    extra = "".join(f' {key}="{value}"' for key, value in attributes.items())
    return f'<DCServer name="{name}"{extra}>{body}</DCServer>'


def _events(caplog: pytest.LogCaptureFixture, name: str) -> list[logging.LogRecord]:
    return [record for record in caplog.records if record.getMessage() == name]


@pytest.fixture(autouse=True)
def _debug_logging(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="dcs_control")


def test_server_declaration_is_parsed(write_markup, global_scope: PropertyScope) -> None:
    root = write_markup("dcservers.xml", ACME, bindAddress="10.0.0.1", backlog="25")
    result = MarkupLoader(global_scope).load(root)
    assert result.bind_address == "10.0.0.1"
    assert result.backlog == 25
    (profile,) = result.profiles
    assert profile.name == "acme"
    assert profile.protocol == "tcp"
    assert profile.description == "Acme tracker"
    assert profile.model_names == ["AT-100", "AT-200"]
    assert profile.unique_prefixes == ["acme_", "imei_"]
    assert profile.has_digital_inputs and not profile.has_digital_outputs
    assert profile.get_string("Attribute.hasInputs") == "true"
    assert profile.tcp_ports == [31000, 31001]
    assert profile.udp_ports == [31000]
    assert profile.get_double("minimumSpeedKPH") == 4.5
    assert profile.estimate_odometer(False) is True
    assert profile.properties("alt").get_string("acme.alt.only") == "1"
    assert profile.event_codes.translate(16, 0) == 0xF020
    assert profile.event_codes.get("ign").ignored
    assert profile.command_port == 30050
    assert profile.command_host == "10.0.0.9"
    command = profile.commands.get("ping")
    assert command.types == ("admin", "config")
    assert command.description == "Ping the device"
    assert command.template == "PING:${arg}"
    assert command.audit_code == 0xF0E0
    assert [arg.name for arg in command.args] == ["arg"]


def test_runtime_scope_overrides_parse_time_values(write_markup, global_scope: PropertyScope) -> None:
    global_scope.set("DCServer.acme.description", "Override")
    global_scope.set("DCServer.acme.minimumSpeedKPH", "9")
    global_scope.set("DCServer.acme.tcpPort", "32000")
    root = write_markup("dcservers.xml", ACME)
    (profile,) = MarkupLoader(global_scope).load(root).profiles
    assert profile.description == "Override"
    assert profile.get_double("minimumSpeedKPH") == 9.0
    assert profile.tcp_ports == [32000]


def test_duplicate_server_first_declaration_wins(write_markup, global_scope, caplog) -> None:
    write_markup("more.xml", _server("acme", "<Description>Second</Description>") + _server("beta"))
    root = write_markup("dcservers.xml", _server("acme", "<Description>First</Description>") + '<Include file="more.xml"/>')
    result = MarkupLoader(global_scope).load(root)
    assert [profile.name for profile in result.profiles] == ["acme", "beta"]
    assert result.profiles[0].description == "First"
    (record,) = _events(caplog, "duplicate_server_ignored")
    assert record.levelno == logging.WARNING
    assert record.context["server"] == "acme"
    assert record.context["path"].endswith("more.xml")


def test_self_include_is_ignored(write_markup, global_scope, caplog) -> None:
    root = write_markup("dcservers.xml", '<Include file="dcservers.xml"/>' + _server("acme"))
    result = MarkupLoader(global_scope).load(root)
    assert [profile.name for profile in result.profiles] == ["acme"]
    assert len(_events(caplog, "recursive_include_ignored")) == 1


def test_cyclic_includes_terminate(write_markup, global_scope) -> None:
    write_markup("b.xml", '<Include file="a.xml"/>' + _server("beta"))
    root = write_markup("a.xml", '<Include file="b.xml"/>' + _server("alpha"))
    result = MarkupLoader(global_scope).load(root)
    assert [profile.name for profile in result.profiles] == ["beta", "alpha"]
    assert [Path(path).name for path in result.files] == ["a.xml", "b.xml"]


def test_include_directory_and_glob(write_markup, global_scope) -> None:
    write_markup("conf.d/20-beta.xml", _server("beta"))
    write_markup("conf.d/10-alpha.xml", _server("alpha"))
    root = write_markup("dcservers.xml", '<Include file="*.xml"/>', includeDir="conf.d")
    result = MarkupLoader(global_scope).load(root)
    assert [profile.name for profile in result.profiles] == ["alpha", "beta"]
    assert result.include_dir == "conf.d"


def test_missing_include_is_logged(write_markup, global_scope, caplog) -> None:
    root = write_markup(
        "dcservers.xml",
        '<Include file="absent.xml"/><Include file="maybe.xml" optional="true"/>' + _server("acme"),
    )
    result = MarkupLoader(global_scope).load(root)
    assert [profile.name for profile in result.profiles] == ["acme"]
    levels = {record.context["file"]: record.levelno for record in _events(caplog, "include_not_found")}
    assert levels == {"absent.xml": logging.ERROR, "maybe.xml": logging.DEBUG}


def test_broken_include_does_not_abort_the_pass(write_markup, global_scope, caplog, tmp_path: Path) -> None:
    (tmp_path / "broken.xml").write_text("<DCServerConfig><DCServer", encoding="utf-8")
    root = write_markup("dcservers.xml", '<Include file="broken.xml"/>' + _server("acme"))
    result = MarkupLoader(global_scope).load(root)
    assert [profile.name for profile in result.profiles] == ["acme"]
    assert len(_events(caplog, "include_failed")) == 1


def test_include_with_wrong_root_tag_is_skipped(write_markup, global_scope, caplog, tmp_path: Path) -> None:
    (tmp_path / "other.xml").write_text("<Servers><DCServer name=\"ghost\"/></Servers>", encoding="utf-8")
    root = write_markup("dcservers.xml", _server("acme") + '<Include file="other.xml"/>')
    result = MarkupLoader(global_scope).load(root)
    assert [profile.name for profile in result.profiles] == ["acme"]
    assert len(_events(caplog, "config_root_invalid")) == 1
    assert [Path(record.context["included_from"]).name for record in _events(caplog, "include_failed")] == ["dcservers.xml"]


def test_invalid_port_spec_drops_the_list(write_markup, global_scope, caplog) -> None:
    root = write_markup("dcservers.xml", _server("acme", '<ListenPorts tcpPort="31000,abc" udpPort="31002"/>'))
    (profile,) = MarkupLoader(global_scope).load(root).profiles
    assert profile.tcp_ports == []
    assert profile.udp_ports == [31002]
    assert _events(caplog, "invalid_port_spec")[0].context["spec"] == "31000,abc"


def test_port_conflicts_are_recorded_once(write_markup, global_scope, caplog) -> None:
    root = write_markup(
        "dcservers.xml",
        _server("acme", '<ListenPorts tcpPort="31000"/>')
        + _server("beta", '<ListenPorts tcpPort="31000"/>')
        + _server("gamma", '<ListenPorts tcpPort="31000" warnPortConflict="false"/>'),
    )
    result = MarkupLoader(global_scope).load(root)
    assert result.conflicts == (("tcp", 31000, "acme", "beta"), ("tcp", 31000, "acme", "gamma"))
    (record,) = _events(caplog, "port_conflict")
    assert record.context["server"] == "beta"
    assert [profile.name for profile in result.profiles] == ["acme", "beta", "gamma"]


def test_duplicate_port_within_a_list_is_warned(write_markup, global_scope, caplog) -> None:
    root = write_markup("dcservers.xml", _server("acme", '<ListenPorts tcpPort="31000,31000"/>'))
    (profile,) = MarkupLoader(global_scope).load(root).profiles
    assert profile.tcp_ports == [31000]
    assert len(_events(caplog, "duplicate_port")) == 1


def test_socket_commands_need_a_command_port(write_markup, global_scope, caplog) -> None:
    commands = (
        "<Commands>"
        '<Command name="ping"><String protocol="tcp">PING</String></Command>'
        '<Command name="locate"><String protocol="sms:log">LOC</String></Command>'
        "</Commands>"
    )
    root = write_markup("dcservers.xml", _server("acme", commands))
    (profile,) = MarkupLoader(global_scope).load(root).profiles
    assert profile.commands.names() == ["locate"]
    assert profile.commands.get("locate").protocol_handler == "log"
    assert _events(caplog, "command_ignored")[0].context["command"] == "ping"


def test_command_enablement(write_markup, global_scope) -> None:
    global_scope.set("DCServer.acme.Command.revived.enabled", "true")
    commands = (
        '<Commands dispatchPort="30050">'
        '<Command name="hidden" enabled="hidden"><String>H</String></Command>'
        '<Command name="off" enabled="false"><String>O</String></Command>'
        '<Command name="revived" enabled="false"><String>R</String></Command>'
        '<Command name="hidden" ><String>again</String></Command>'
        "</Commands>"
    )
    root = write_markup("dcservers.xml", _server("acme", commands))
    (profile,) = MarkupLoader(global_scope).load(root).profiles
    assert profile.commands.names() == ["hidden", "revived"]
    assert profile.commands.get("hidden").enabled is False
    assert profile.commands.get("hidden").template == "H"
    assert profile.commands.get("revived").enabled is True


def test_filter_loads_one_server_with_global_properties(write_markup, global_scope) -> None:
    body = (
        _server("acme", '<GlobalProperties><Property key="bindAddress">10.1.1.1</Property></GlobalProperties>')
        + _server("beta")
    )
    root = write_markup("dcservers.xml", body)
    filtered = MarkupLoader(global_scope, server_name="acme").load(root)
    assert [profile.name for profile in filtered.profiles] == ["acme"]
    assert filtered.global_properties == {"bindAddress": "10.1.1.1"}
    unfiltered = MarkupLoader(global_scope, server_name="*").load(root)
    assert [profile.name for profile in unfiltered.profiles] == ["acme", "beta"]
    assert unfiltered.global_properties == {}


def test_inactive_and_unnamed_servers_are_skipped(write_markup, global_scope, caplog) -> None:
    root = write_markup(
        "dcservers.xml",
        _server("acme", active="false") + _server("acme") + _server("") + _server("beta"),
    )
    result = MarkupLoader(global_scope).load(root)
    assert [profile.name for profile in result.profiles] == ["acme", "beta"]
    assert len(_events(caplog, "server_name_missing")) == 1
    assert len(_events(caplog, "server_inactive")) == 1
    assert _events(caplog, "duplicate_server_ignored") == []


def test_inactive_declaration_after_active_one_is_skipped(write_markup, global_scope, caplog) -> None:
    root = write_markup("dcservers.xml", _server("acme", protocol="tcp") + _server("acme", active="false", protocol="udp"))
    result = MarkupLoader(global_scope).load(root)
    assert [(profile.name, profile.protocol) for profile in result.profiles] == [("acme", "tcp")]
    assert _events(caplog, "duplicate_server_ignored") == []


def test_standalone_document_fallback(write_markup, global_scope, tmp_path: Path) -> None:
    write_markup("dcserver_acme.xml", _server("acme"))
    resolver = DefaultPathResolver(config_dir=tmp_path, cwd=tmp_path, env={}, platform="unknown")
    loader = MarkupLoader(global_scope, server_name="acme", resolver=resolver)
    result = loader.load(tmp_path / "dcservers.xml")
    assert [profile.name for profile in result.profiles] == ["acme"]


def test_missing_root_raises_not_found(global_scope, tmp_path: Path) -> None:
    with pytest.raises(NotFound):
        MarkupLoader(global_scope).load(tmp_path / "dcservers.xml")


def test_bad_root_raises_invalid_format(global_scope, tmp_path: Path) -> None:
    wrong = tmp_path / "wrong.xml"
    wrong.write_text("<Servers/>", encoding="utf-8")
    broken = tmp_path / "broken.xml"
    broken.write_text("<DCServerConfig>", encoding="utf-8")
    for path in (wrong, broken):
        with pytest.raises(InvalidFormat):
            MarkupLoader(global_scope).load(path)


def test_parse_ports_rejects_non_positive() -> None:
    assert parse_ports("31000, 0") is None
    assert parse_ports(" 31000 ,31001 ") == [31000, 31001]
