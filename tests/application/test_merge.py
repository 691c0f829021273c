from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from dcs_control.application.merge import flatten, merge_layers

SEGMENT = st.text(alphabet="abcdefgXYZ", min_size=1, max_size=5)
SCALAR = st.one_of(st.booleans(), st.integers(), st.text(min_size=1, max_size=5))
VALUE = st.recursive(
    SCALAR,
    lambda children: st.dictionaries(SEGMENT, children, min_size=1, max_size=3),
    max_leaves=10,
)
MAPPING = st.dictionaries(SEGMENT, VALUE, max_size=4)


def test_precedence_overwrites() -> None:
    layers = [
        ("file", {"DCServer": {"acme": {"commandPort": 1, "tcpPort": "31000"}}}, "/etc/dcs.toml"),
        ("env", {"DCServer.acme.commandPort": 2}, None),
        ("cmdline", {"bindAddress": "10.0.0.1"}, None),
    ]
    merged, meta = merge_layers(layers)
    assert merged["DCServer.acme.commandPort"] == 2
    assert merged["DCServer.acme.tcpPort"] == "31000"
    assert meta["DCServer.acme.commandPort"]["layer"] == "env"
    assert meta["DCServer.acme.tcpPort"] == {"layer": "file", "path": "/etc/dcs.toml", "key": "DCServer.acme.tcpPort"}
    assert meta["bindAddress"]["layer"] == "cmdline"


def test_flatten_preserves_case_and_lists() -> None:
    assert flatten({"DCServer": {"Acme": {"TcpPort": [1, 2]}}}) == {"DCServer.Acme.TcpPort": [1, 2]}


def test_merge_is_idempotent() -> None:
    layers = [
        ("file", {"db": {"host": "localhost", "ports": [5432]}}, "a.toml"),
        ("env", {"db.host": "remote"}, None),
    ]
    assert merge_layers(layers) == merge_layers(layers)


@given(MAPPING, MAPPING)
def test_later_layer_wins_for_every_key(lower, upper) -> None:
    merged, meta = merge_layers([("file", lower, None), ("cmdline", upper, None)])
    for key, value in flatten(upper).items():
        assert merged[key] == value
        assert meta[key]["layer"] == "cmdline"
