"""Environment loader adapter tests: prefix filtering, dotted keys and coercion."""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from dcs_control.adapters.env.default import ENV_PREFIX, DefaultEnvLoader, default_env_prefix, env_key


def test_default_env_prefix() -> None:
    assert default_env_prefix("dcs-control") == ENV_PREFIX


def test_env_loader_keeps_segment_case_and_filters_prefix() -> None:
    environ = {
        "DCS_CONTROL_DCServer__acme__commandPort": "30050",
        "DCS_CONTROL_DCServer__acme__ssl": "true",
        "DCS_CONTROL_minimumSpeedKPH": "4.5",
        "DCS_CONTROL_bindAddress": "10.0.0.5",
        "OTHER": "ignored",
    }
    data = DefaultEnvLoader(environ=environ).load()
    assert data == {
        "DCServer.acme.commandPort": 30050,
        "DCServer.acme.ssl": True,
        "minimumSpeedKPH": 4.5,
        "bindAddress": "10.0.0.5",
    }


def test_env_key_drops_empty_segments() -> None:
    assert env_key("__acme____tcpPort__") == "acme.tcpPort"
    assert DefaultEnvLoader(environ={"DCS_CONTROL___": "x"}).load() == {}


def test_lists_stay_text() -> None:
    data = DefaultEnvLoader(environ={"DCS_CONTROL_acme__tcpPort": "31000,31001"}).load()
    assert data["acme.tcpPort"] == "31000,31001"


SCALAR_VALUES = st.sampled_from(["0", "-7", "true", "FALSE", "3.5", "none", "debug"])
SEGMENTS = st.sampled_from(["DCServer__acme__tcpPort", "acme__commandPort", "bindAddress"])


@given(st.dictionaries(SEGMENTS, SCALAR_VALUES, max_size=3))
def test_env_loader_handles_random_keys(entries: dict[str, str]) -> None:
    environ = {f"DEMO_{key}": value for key, value in entries.items()}
    environ["IGNORED"] = "1"
    data = DefaultEnvLoader(environ=environ).load("DEMO")
    assert set(data) == {key.replace("__", ".") for key in entries}
    for key, raw in entries.items():
        value = data[key.replace("__", ".")]
        if raw.lower() in {"true", "false"}:
            assert value is (raw.lower() == "true")
        elif raw.lstrip("-").isdigit():
            assert value == int(raw)
        elif raw == "3.5":
            assert value == 3.5
        else:
            assert value == raw
