"""Process-wide runtime properties assembled from ordered layers.

The global scope every :class:`~dcs_control.domain.profile.ServerProfile`
falls back to. Layers are merged lowest first (``file``, ``dcs-global``,
``env``, ``cmdline``), so command-line values always win over a server's
GlobalProperties block.
"""

from __future__ import annotations

from typing import Final, Iterable, Mapping

from ..domain.scope import PropertyScope
from ..observability import log_debug
from .merge import merge_layers

LAYER_FILE: Final[str] = "file"
LAYER_DCS_GLOBAL: Final[str] = "dcs-global"
LAYER_ENV: Final[str] = "env"
LAYER_CMDLINE: Final[str] = "cmdline"
LAYER_ORDER: Final[tuple[str, ...]] = (LAYER_FILE, LAYER_DCS_GLOBAL, LAYER_ENV, LAYER_CMDLINE)


class RuntimeProperties:
    """Layered runtime properties with provenance.

    Layers may be added in any order; they are always merged by their rank in
    ``LAYER_ORDER`` and, within one rank, in insertion order.

    Examples
    --------
    >>> runtime = RuntimeProperties()
    >>> runtime.add_layer("cmdline", {"bindAddress": "10.0.0.1"})
    >>> runtime.add_layer("dcs-global", {"bindAddress": "127.0.0.1"})
    >>> runtime.scope.get_string("bindAddress"), runtime.origin("bindAddress")["layer"]
    ('10.0.0.1', 'cmdline')
    """

    def __init__(self, layers: Iterable[tuple[str, Mapping[str, object], str | None]] = ()) -> None:
        self._layers: list[tuple[str, Mapping[str, object], str | None]] = []
        self._meta: dict[str, dict[str, object]] = {}
        self.scope = PropertyScope(name="global")
        for name, data, path in layers:
            self._layers.append((name, dict(data), path))
        self._rebuild()

    def add_layer(self, name: str, data: Mapping[str, object], path: str | None = None) -> None:
        """Add a layer and re-merge; the existing :attr:`scope` object is updated in place."""

        if name not in LAYER_ORDER:
            raise ValueError(f"Unknown runtime property layer: {name}")
        self._layers.append((name, dict(data), path))
        self._rebuild()
        log_debug("runtime_layer_added", layer=name, path=path, keys=len(data))

    def origin(self, key: str) -> dict[str, object] | None:
        """Return ``{"layer", "path", "key"}`` for *key* or ``None`` when undefined."""

        found = self._meta.get(key)
        return dict(found) if found is not None else None

    def layers(self) -> list[tuple[str, str | None]]:
        return [(name, path) for name, _data, path in self._ordered()]

    def _ordered(self) -> list[tuple[str, Mapping[str, object], str | None]]:
        return sorted(self._layers, key=lambda layer: LAYER_ORDER.index(layer[0]))

    def _rebuild(self) -> None:
        merged, meta = merge_layers(self._ordered())
        for key in list(self.scope):
            if key not in merged:
                self.scope.remove(key)
        self.scope.update(merged)
        self._meta = meta
