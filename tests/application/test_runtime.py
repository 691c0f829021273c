from __future__ import annotations

import logging

import pytest

from dcs_control.application.runtime import RuntimeProperties


def test_command_line_beats_global_properties_regardless_of_insertion_order() -> None:
    runtime = RuntimeProperties()
    runtime.add_layer("cmdline", {"DCServer.acme.commandPort": "1"})
    runtime.add_layer("dcs-global", {"DCServer.acme.commandPort": "2", "extra": "x"})
    assert runtime.scope.get_int("DCServer.acme.commandPort") == 1
    assert runtime.origin("DCServer.acme.commandPort")["layer"] == "cmdline"
    assert runtime.scope.get_string("extra") == "x"
    assert [name for name, _path in runtime.layers()] == ["dcs-global", "cmdline"]


def test_layer_order_file_global_env_cmdline() -> None:
    runtime = RuntimeProperties(
        [
            ("env", {"k": "env"}, None),
            ("file", {"k": "file", "f": 1}, "/etc/x.toml"),
            ("dcs-global", {"k": "global"}, "dcservers.xml"),
        ]
    )
    assert runtime.scope.get_string("k") == "env"
    assert runtime.origin("f") == {"layer": "file", "path": "/etc/x.toml", "key": "f"}
    assert runtime.origin("missing") is None


def test_scope_is_updated_in_place() -> None:
    runtime = RuntimeProperties()
    scope = runtime.scope
    runtime.add_layer("file", {"a": 1})
    assert scope is runtime.scope
    assert scope.get_int("a") == 1


def test_unknown_layer_is_rejected() -> None:
    with pytest.raises(ValueError):
        RuntimeProperties().add_layer("dotenv", {})


def test_layer_added_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="dcs_control")
    RuntimeProperties().add_layer("env", {"a": 1})
    record = next(record for record in caplog.records if record.getMessage() == "runtime_layer_added")
    assert record.context["layer"] == "env"
    assert record.context["keys"] == 1
