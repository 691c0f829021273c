from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from dcs_control.adapters.devices.memory import InMemoryDevice
from dcs_control.application.templating import apply_modifier, parse_geo_point, render_command, render_template
from dcs_control.domain.commands import CommandArg, CommandDefinition

LITERAL = st.text(alphabet=st.characters(exclude_characters="$"), max_size=40)


@given(LITERAL, st.lists(st.text(max_size=5), max_size=3))
def test_template_without_placeholders_is_unchanged(template: str, args: list[str]) -> None:
    assert render_template(template, args) == template


@pytest.mark.parametrize(
    ("value", "modifier", "expected"),
    [
        ("16", "hex16", "0x0010"),
        ("-1", "hex16", "0xFFFF"),
        ("255", "h8", "0xFF"),
        ("-1", "hex32", "0xFFFFFFFF"),
        ("-1", "hex64", "0xFFFFFFFFFFFFFFFF"),
        ("abc", "hex16", "0x0000"),
        ("42mph", "#", "42"),
        (" a b ", "ns", "ab"),
        ('say "hi"', "q", '"say \\"hi\\""'),
        ("39.1234/-142.1234", "gps", "39.12340/-142.12340"),
        ("bogus", "gps", "0.00000/0.00000"),
        ("39.1234,-142.1234", "lat", "39.12340"),
        ("39.1234,-142.1234", "lon", "-142.12340"),
        ("value", "unknown", "value"),
    ],
)
def test_modifiers(value: str, modifier: str, expected: str) -> None:
    assert apply_modifier(value, modifier) == expected


@pytest.mark.parametrize(
    ("value", "index", "expected"),
    [("A,B,C", "0", "A"), ("A,B,C", "2", "C"), ("A,B,C", "3", ""), ("1|2|3", "1", "2"), ("single", "0", "single"), ("single", "1", "")],
)
def test_index_modifier_uses_first_non_alphanumeric_delimiter(value: str, index: str, expected: str) -> None:
    assert apply_modifier(value, index) == expected


def test_placeholder_resolution_order() -> None:
    template = "${speed} ${arg1} ${arg} ${missing=dflt} ${arg5=none}"
    assert render_template(template, ["80", "x"], ["speed"]) == "80 x 80 dflt none"


def test_blank_argument_uses_default() -> None:
    assert render_template("MODE ${mode=idle}", ["  "], ["mode"]) == "MODE idle"
    assert render_template("MODE ${mode=idle}", [None], ["mode"]) == "MODE idle"


def test_unterminated_placeholder_left_as_is() -> None:
    assert render_template("SET ${arg", ["1"]) == "SET ${arg"


def test_render_command_with_device_tokens() -> None:
    command = CommandDefinition(
        "acme",
        "ident",
        template="ID=%{imei};U={UNIQUEID};M=${modemID};S=${serial};V=${value:h8}",
        args=(CommandArg("value"),),
    )
    device = InMemoryDevice("demo", "truck", unique_id="u1", modem_id="m1", imei="i1", serial="s1")
    assert render_command(command, ["10"], device) == "ID=i1;U=u1;M=;S=;V=0x0A"


def test_literal_command_replaces_device_tokens() -> None:
    command = CommandDefinition("acme", "ident", template="M=%{modemID};S={SERIAL}")
    device = InMemoryDevice("demo", "truck", modem_id="m1", serial="s1")
    assert render_command(command, ["ignored"], device) == "M=m1;S=s1"


def test_device_token_inside_argument_is_expanded_once() -> None:
    command = CommandDefinition("acme", "say", template="SAY ${arg}", args=(CommandArg("arg"),))
    device = InMemoryDevice("demo", "truck", unique_id="${arg}-uid")
    assert render_command(command, ["%{uniqueID}"], device) == "SAY ${arg}-uid"


def test_literal_command_ignores_arguments() -> None:
    command = CommandDefinition("acme", "reset", template="RESET")
    assert render_command(command, ["1", "2"]) == "RESET"


def test_geo_point_bounds() -> None:
    assert parse_geo_point("91,0") is None
    assert parse_geo_point("1 2") == (1.0, 2.0)
    assert parse_geo_point("1") is None
