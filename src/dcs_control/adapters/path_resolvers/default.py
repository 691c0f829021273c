"""Filesystem discovery of server declarations and runtime property files.

Purpose
-------
Implement the :class:`dcs_control.application.ports.PathResolver` protocol by
encapsulating OS-specific search rules. This adapter is the only component
that knows where ``dcservers.xml``, standalone ``dcserver_<name>.xml``
documents and runtime property files live.

Contents
--------
* :class:`DefaultPathResolver` - resolves candidate files per platform.
* :func:`_collect_layer` - yields runtime property files within a directory.

System Role
-----------
Feeds candidate paths into :func:`dcs_control.core.load_directory` when the
caller does not name a root document explicitly.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Final, Iterable, List, Mapping

from ...observability import log_debug

ROOT_DOCUMENT: Final[str] = "dcservers.xml"
SERVER_DIRECTORY: Final[str] = "dcservers"

#: Runtime property file extensions picked up from ``config.d`` directories.
_ALLOWED_EXTENSIONS = (".toml", ".yaml", ".yml", ".json", ".conf", ".properties")


def server_document_name(name: str) -> str:
    """Return the standalone document name for server *name*.

    >>> server_document_name('acme')
    'dcserver_acme.xml'
    """

    return f"dcserver_{name}.xml"


class DefaultPathResolver:
    """Resolve candidate configuration paths.

    Search order: the explicit *config_dir* (or ``DCS_CONTROL_CONFIG_DIR``),
    the working directory, the platform-wide directory, then the per-user
    directory.
    """

    def __init__(
        self,
        *,
        slug: str = "dcs-control",
        config_dir: str | Path | None = None,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        platform: str | None = None,
    ) -> None:
        self.slug = slug
        self.env = {**os.environ, **(env or {})}
        explicit = config_dir or self.env.get("DCS_CONTROL_CONFIG_DIR")
        self.config_dir = Path(explicit) if explicit else None
        self.cwd = cwd or Path.cwd()
        self.platform = platform or sys.platform

    def directories(self) -> List[Path]:
        """Return the directories searched, highest priority first, without duplicates."""

        candidates: list[Path] = []
        if self.config_dir is not None:
            candidates.append(self.config_dir)
        candidates.append(self.cwd)
        candidates.extend(self._platform_dirs())
        unique: list[Path] = []
        for candidate in candidates:
            if candidate not in unique:
                unique.append(candidate)
        return unique

    def config_files(self) -> Iterable[str]:
        """Yield existing ``dcservers.xml`` documents in priority order.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> _ = (Path(tmp.name) / 'dcservers.xml').write_text('<DCServerConfig/>', encoding='utf-8')
        >>> resolver = DefaultPathResolver(config_dir=tmp.name, cwd=Path(tmp.name), platform='unknown')
        >>> [Path(p).name for p in resolver.config_files()]
        ['dcservers.xml']
        >>> tmp.cleanup()
        """

        paths = [str(base / ROOT_DOCUMENT) for base in self.directories() if (base / ROOT_DOCUMENT).is_file()]
        if paths:
            log_debug("path_candidates", layer="markup", path=None, count=len(paths))
        return paths

    def server_files(self, name: str) -> Iterable[str]:
        """Yield existing standalone documents for server *name*.

        Both ``<dir>/dcserver_<name>.xml`` and
        ``<dir>/dcservers/dcserver_<name>.xml`` are considered.
        """

        document = server_document_name(name)
        paths: list[str] = []
        for base in self.directories():
            for candidate in (base / document, base / SERVER_DIRECTORY / document):
                if candidate.is_file():
                    paths.append(str(candidate))
        if paths:
            log_debug("path_candidates", layer="markup", path=None, server=name, count=len(paths))
        return paths

    def property_files(self) -> Iterable[str]:
        """Yield runtime property files (``config.toml`` plus ``config.d`` entries).

        Files are ordered lowest precedence first: system-wide, per-user, then
        the explicit configuration directory.
        """

        bases = list(self._platform_dirs())
        if self.config_dir is not None and self.config_dir not in bases:
            bases.append(self.config_dir)
        paths: list[str] = []
        for base in bases:
            paths.extend(_collect_layer(base))
        if paths:
            log_debug("path_candidates", layer="file", path=None, count=len(paths))
        return paths

    @property
    def _is_linux(self) -> bool:
        return self.platform.startswith("linux")

    @property
    def _is_macos(self) -> bool:
        return self.platform == "darwin"

    @property
    def _is_windows(self) -> bool:
        return self.platform.startswith("win")

    def _platform_dirs(self) -> Iterable[Path]:
        """Yield the system-wide then the per-user directory for the current platform."""

        slug = self.slug
        if self._is_linux:
            yield Path(self.env.get("DCS_CONTROL_ETC", "/etc")) / slug
            xdg = self.env.get("XDG_CONFIG_HOME")
            yield (Path(xdg) if xdg else Path.home() / ".config") / slug
        elif self._is_macos:
            yield Path(self.env.get("DCS_CONTROL_MAC_APP_ROOT", "/Library/Application Support")) / slug
            yield Path(self.env.get("DCS_CONTROL_MAC_HOME_ROOT", Path.home() / "Library/Application Support")) / slug
        elif self._is_windows:
            yield Path(self.env.get("ProgramData", r"C:\\ProgramData")) / slug
            yield Path(self.env.get("APPDATA", Path.home() / "AppData" / "Roaming")) / slug


def _collect_layer(base: Path) -> Iterable[str]:
    """Yield ``config.toml`` and supported ``config.d`` entries under *base*.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> extra = root / 'config.d' / '10-ports.conf'
    >>> extra.parent.mkdir(parents=True, exist_ok=True)
    >>> _ = (root / 'config.toml').write_text('bindAddress = "0.0.0.0"', encoding='utf-8')
    >>> _ = extra.write_text('acme.tcpPort=31000', encoding='utf-8')
    >>> sorted(Path(p).name for p in _collect_layer(root))
    ['10-ports.conf', 'config.toml']
    >>> tmp.cleanup()
    """

    config_file = base / "config.toml"
    if config_file.is_file():
        yield str(config_file)
    config_dir = base / "config.d"
    if config_dir.is_dir():
        for path in sorted(config_dir.iterdir()):
            if path.is_file() and path.suffix.lower() in _ALLOWED_EXTENSIONS:
                yield str(path)
