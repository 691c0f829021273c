"""Application-layer merge policy for runtime property layers.

Purpose
-------
Convert a sequence of layer payloads into one flat ``dotted.key -> value``
mapping while tracking which layer supplied every key. Remains free of I/O so
alternative composition roots can reuse it.

Contents
    - ``merge_layers``: public entry point driven by a simple loop.
    - ``flatten``: turn nested mappings into dotted keys, preserving case.
    - ``_merge_layer`` / ``_set_scalar``: tiny helpers narrating how provenance
      is updated when values change.

System Role
-----------
Receives layer payloads from :class:`dcs_control.application.runtime.RuntimeProperties`
and applies precedence (``file -> dcs-global -> env -> cmdline``).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Iterable


def merge_layers(
    layers: Iterable[tuple[str, Mapping[str, object], str | None]],
) -> tuple[dict[str, object], dict[str, dict[str, object]]]:
    """Merge runtime property *layers* honouring precedence and provenance.

    Why
    ----
    Runtime properties arrive from files, server declarations, the environment
    and the command line. Flattening them into one store with provenance keeps
    resolution deterministic and lets the CLI explain where a value came from.

    Parameters
    ----------
    layers:
        Iterable of ``(layer_name, mapping, source_path)`` tuples ordered from
        lowest to highest precedence. Nested mappings are flattened first.

    Returns
    -------
    tuple[dict[str, object], dict[str, dict[str, object]]]
        ``(merged, provenance)`` where ``merged`` is flat and ``provenance``
        maps each key to ``{"layer", "path", "key"}``.

    Examples
    --------
    >>> merged, meta = merge_layers([
    ...     ("file", {"DCServer": {"acme": {"commandPort": 1}}}, "/etc/dcs.toml"),
    ...     ("cmdline", {"DCServer.acme.commandPort": "2"}, None),
    ... ])
    >>> merged["DCServer.acme.commandPort"], meta["DCServer.acme.commandPort"]["layer"]
    ('2', 'cmdline')
    """

    merged: dict[str, object] = {}
    meta: dict[str, dict[str, object]] = {}

    for layer_name, data, path in layers:
        _merge_layer(merged, meta, data, layer_name, path)
    return merged, meta


def flatten(payload: Mapping[str, object], prefix: str = "") -> dict[str, object]:
    """Flatten nested mappings into dotted keys; key case is kept.

    >>> flatten({"DCServer": {"acme": {"tcpPort": [1, 2]}}, "bindAddress": "0.0.0.0"})
    {'DCServer.acme.tcpPort': [1, 2], 'bindAddress': '0.0.0.0'}
    """

    flat: dict[str, object] = {}
    for key, value in payload.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def _merge_layer(
    target: dict[str, object],
    meta: dict[str, dict[str, object]],
    payload: Mapping[str, object],
    layer: str,
    path: str | None,
) -> None:
    """Merge a single flattened *payload* into *target* while tracking provenance."""

    for key, value in flatten(payload).items():
        _set_scalar(target, meta, key, value, layer, path)


def _set_scalar(
    target: dict[str, object],
    meta: dict[str, dict[str, object]],
    key: str,
    value: object,
    layer: str,
    path: str | None,
) -> None:
    target[key] = value
    meta[key] = {"layer": layer, "path": path, "key": key}
