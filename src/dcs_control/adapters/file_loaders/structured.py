"""Runtime property file loaders.

Purpose
-------
Convert on-disk runtime property files into Python mappings that the merge
layer flattens into the global scope. Adapters are small wrappers around
``tomllib``/``json``/``yaml.safe_load`` plus a ``key=value`` reader, so error
handling and observability live in one place.

Contents
--------
* :class:`BaseFileLoader` - shared helpers for reading files and validating
  mapping outputs.
* :class:`TOMLFileLoader` - TOML documents.
* :class:`JSONFileLoader` - JSON documents.
* :class:`YAMLFileLoader` - YAML documents (PyYAML).
* :class:`PropertiesFileLoader` - flat ``key=value`` ``.conf``/``.properties`` files.
* :func:`loader_for` - choose a loader by file suffix.

System Role
-----------
Invoked by :func:`dcs_control.core.read_runtime_properties` for every file
passed with ``--properties``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[assignment]

import yaml

from ...application.ports import FileLoader
from ...domain.errors import InvalidFormat, NotFound
from ...observability import log_debug, log_error


class BaseFileLoader:
    """Common utilities shared by the runtime property file loaders."""

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`NotFound` when the file is missing.

        Side Effects
        ------------
        Emits ``config_file_read`` debug events.
        """

        file_path = Path(path)
        if not file_path.is_file():
            raise NotFound(f"Property file not found: {path}")
        payload = file_path.read_bytes()
        log_debug("config_file_read", path=path, layer="file", size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidFormat``.

        Examples
        --------
        >>> BaseFileLoader._ensure_mapping({"key": 1}, path="demo")
        {'key': 1}
        >>> BaseFileLoader._ensure_mapping(42, path="demo")
        Traceback (most recent call last):
        ...
        dcs_control.domain.errors.InvalidFormat: File demo did not produce a mapping
        """

        if not isinstance(data, Mapping):
            raise InvalidFormat(f"File {path} did not produce a mapping")
        return data  # type: ignore[return-value]


class TOMLFileLoader(BaseFileLoader):
    """Load TOML documents using the standard library parser."""

    def load(self, path: str) -> Mapping[str, object]:
        """Return the mapping extracted from the TOML file at *path*.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', suffix='.toml', delete=False, encoding='utf-8')
        >>> _ = tmp.write('[DCServer.acme]\\ncommandPort = 30050')
        >>> tmp.close()
        >>> TOMLFileLoader().load(tmp.name)["DCServer"]["acme"]["commandPort"]
        30050
        >>> Path(tmp.name).unlink()
        """

        try:
            text = self._read(path).decode("utf-8")
            data = tomllib.loads(text)
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:  # type: ignore[attr-defined]
            log_error("config_file_invalid", layer="file", path=path, format="toml", error=str(exc))
            raise InvalidFormat(f"Invalid TOML in {path}: {exc}") from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("config_file_loaded", layer="file", path=path, format="toml")
        return result


class JSONFileLoader(BaseFileLoader):
    """Load JSON documents."""

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = json.loads(self._read(path))
        except json.JSONDecodeError as exc:
            log_error("config_file_invalid", layer="file", path=path, format="json", error=str(exc))
            raise InvalidFormat(f"Invalid JSON in {path}: {exc}") from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("config_file_loaded", layer="file", path=path, format="json")
        return result


class YAMLFileLoader(BaseFileLoader):
    """Load YAML documents with ``yaml.safe_load``; an empty document is ``{}``."""

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = yaml.safe_load(self._read(path))
        except yaml.YAMLError as exc:
            log_error("config_file_invalid", layer="file", path=path, format="yaml", error=str(exc))
            raise InvalidFormat(f"Invalid YAML in {path}: {exc}") from exc
        if data is None:
            data = {}
        result = self._ensure_mapping(data, path=path)
        log_debug("config_file_loaded", layer="file", path=path, format="yaml")
        return result


class PropertiesFileLoader(BaseFileLoader):
    """Load flat ``key=value`` files.

    Blank lines and lines starting with ``#`` or ``!`` are ignored; ``:`` is
    accepted as an alternative separator. Keys and values are trimmed and key
    case is preserved.
    """

    def load(self, path: str) -> Mapping[str, object]:
        """Return the flat mapping of the property file at *path*.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', suffix='.conf', delete=False, encoding='utf-8')
        >>> _ = tmp.write('# comment\\nDCServer.acme.commandPort = 30050\\n')
        >>> tmp.close()
        >>> PropertiesFileLoader().load(tmp.name)
        {'DCServer.acme.commandPort': '30050'}
        >>> Path(tmp.name).unlink()
        """

        try:
            text = self._read(path).decode("utf-8")
        except UnicodeDecodeError as exc:
            log_error("config_file_invalid", layer="file", path=path, format="properties", error=str(exc))
            raise InvalidFormat(f"Invalid property file {path}: {exc}") from exc
        data: dict[str, object] = {}
        for number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line[0] in "#!":
                continue
            key, separator, value = _split_property(line)
            if not separator or not key:
                log_error("config_file_invalid", layer="file", path=path, format="properties", line=number)
                raise InvalidFormat(f"Invalid property line {number} in {path}: {raw!r}")
            data[key] = value
        log_debug("config_file_loaded", layer="file", path=path, format="properties")
        return data


def _split_property(line: str) -> tuple[str, str, str]:
    """Split on the first ``=`` or ``:`` (whichever comes first)."""

    positions = [pos for pos in (line.find("="), line.find(":")) if pos >= 0]
    if not positions:
        return line, "", ""
    pos = min(positions)
    return line[:pos].strip(), line[pos], line[pos + 1 :].strip()


_LOADERS: dict[str, type[BaseFileLoader]] = {
    ".toml": TOMLFileLoader,
    ".json": JSONFileLoader,
    ".yaml": YAMLFileLoader,
    ".yml": YAMLFileLoader,
    ".conf": PropertiesFileLoader,
    ".properties": PropertiesFileLoader,
}


def loader_for(path: str) -> FileLoader:
    """Return a loader instance for *path* based on its suffix.

    >>> type(loader_for('/etc/dcs/runtime.yml')).__name__
    'YAMLFileLoader'
    >>> loader_for('notes.txt')
    Traceback (most recent call last):
    ...
    dcs_control.domain.errors.InvalidFormat: Unsupported property file type: notes.txt
    """

    loader_cls = _LOADERS.get(Path(path).suffix.lower())
    if loader_cls is None:
        raise InvalidFormat(f"Unsupported property file type: {path}")
    return loader_cls()  # type: ignore[return-value]
