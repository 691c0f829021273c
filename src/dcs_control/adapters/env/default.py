"""Environment variable adapter.

Purpose
-------
Translate process environment variables into flat runtime property keys. The
result forms the ``env`` layer, which ranks above property files and server
GlobalProperties and below command-line definitions.

Key behaviours
--------------
* Enforces a prefix (``DCS_CONTROL_`` by default) so only relevant keys are
  captured.
* ``__`` separates key segments (``DCS_CONTROL_DCServer__acme__commandPort``
  becomes ``DCServer.acme.commandPort``). Property keys are case-sensitive, so
  the segment case is kept as written.
* Performs light type coercion for common scalar types (bools, ints, floats).
* Emits structured logging via :mod:`dcs_control.observability`.
"""

from __future__ import annotations

import os
from typing import Final, Mapping

from ...observability import log_debug

ENV_PREFIX: Final[str] = "DCS_CONTROL"


def default_env_prefix(slug: str) -> str:
    """Return the canonical environment prefix for *slug*.

    Examples
    --------
    >>> default_env_prefix('dcs-control')
    'DCS_CONTROL'
    """

    return slug.replace("-", "_").upper()


class DefaultEnvLoader:
    """Load environment variables that belong to the runtime property namespace."""

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        """Initialise the loader with a specific ``environ`` mapping for testability."""

        self._environ = environ if environ is not None else os.environ

    def load(self, prefix: str = ENV_PREFIX) -> dict[str, object]:
        """Return a flat mapping of the variables carrying *prefix*.

        Side Effects
        ------------
        Emits ``env_variables_loaded`` debug events with the collected keys.

        Examples
        --------
        >>> env = {
        ...     'DCS_CONTROL_DCServer__acme__commandPort': '30050',
        ...     'DCS_CONTROL_bindAddress': '10.0.0.5',
        ...     'OTHER': 'x',
        ... }
        >>> DefaultEnvLoader(environ=env).load('DCS_CONTROL')
        {'DCServer.acme.commandPort': 30050, 'bindAddress': '10.0.0.5'}
        """

        prefix = f"{prefix}_" if prefix and not prefix.endswith("_") else prefix
        collected: dict[str, object] = {}
        for key, value in self._environ.items():
            if prefix and not key.startswith(prefix):
                continue
            stripped = key[len(prefix) :] if prefix else key
            dotted = env_key(stripped)
            if not dotted:
                continue
            collected[dotted] = _coerce(value)
        log_debug("env_variables_loaded", layer="env", path=None, keys=sorted(collected.keys()))
        return collected


def env_key(name: str) -> str:
    """Turn ``DCServer__acme__tcpPort`` into ``DCServer.acme.tcpPort``; empty segments drop out.

    >>> env_key('DCServer__acme__tcpPort'), env_key('__')
    ('DCServer.acme.tcpPort', '')
    """

    return ".".join(part for part in name.split("__") if part)


def _coerce(value: str) -> object:
    """Coerce textual environment values to Python primitives where possible.

    Examples
    --------
    >>> _coerce('true'), _coerce('10'), _coerce('3.5'), _coerce('31000,31001')
    (True, 10, 3.5, '31000,31001')
    """

    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
            return int(value)
        return float(value)
    except ValueError:
        return value
