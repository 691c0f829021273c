"""Server declaration loader for ``dcservers.xml`` documents.

Purpose
-------
Parse the hierarchical markup tree (plus every document it includes) into
:class:`~dcs_control.domain.profile.ServerProfile` objects, detecting listen
port conflicts along the way.

Contents
--------
* :class:`LoadResult` - the outcome of one load pass.
* :class:`MarkupLoader` - the loader itself.
* :func:`parse_ports` - listen-port attribute parsing.

System Role
-----------
Called by :func:`dcs_control.core.load_directory`. Only problems with the root
document raise (:class:`~dcs_control.domain.errors.NotFound`,
:class:`~dcs_control.domain.errors.InvalidFormat`); everything inside a
document (bad includes, duplicate servers, port conflicts, unknown tags) is
logged and the pass continues with the next declaration.

Includes are expanded with an explicit work-list, depth-first in document
order. A canonical-path visited set bounds the pass, so cyclic include graphs
terminate.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Iterable, Iterator, NamedTuple

from ...application.dispatch import parse_properties
from ...application.ports import PathResolver
from ...application.port_registry import PortRegistry
from ...domain.commands import AccessLevel, CommandArg, CommandDefinition, parse_length_spec, split_protocol
from ...domain.errors import InvalidFormat, NotFound
from ...domain.events import EventCode, EventCodeMap, parse_status_code
from ...domain.profile import SAT, TCP, UDP, ServerProfile, flags_from_attributes, normalize_prefixes
from ...domain.scope import PropertyScope
from ...domain.values import parse_bool, parse_int, split_list
from ...observability import log_debug, log_error, log_info, log_warning, make_event

ROOT_TAG: Final[str] = "DCServerConfig"
NO_FILTER: Final[frozenset[str]] = frozenset({"", "*"})

_DCSERVER: Final[str] = "DCServer."
_DCS: Final[str] = "dcs."


@dataclass(frozen=True, slots=True)
class LoadResult:
    """Everything one load pass produced.

    ``global_properties`` holds the GlobalProperties block of the filtered
    server (empty when no filter is set); callers merge it as the
    ``dcs-global`` runtime layer.
    """

    profiles: tuple[ServerProfile, ...]
    global_properties: dict[str, str] = field(default_factory=dict)
    bind_address: str | None = None
    backlog: int = 0
    include_dir: str | None = None
    conflicts: tuple[tuple[str, int, str, str], ...] = ()
    files: tuple[str, ...] = ()


class _Task(NamedTuple):
    """One work-list entry: either a document to open or a top-level element."""

    path: Path
    element: ET.Element | None = None
    including: Path | None = None


def parse_ports(text: str | None, *, server: str | None = None, path: str | None = None) -> list[int] | None:
    """Parse a comma separated port list.

    Blank text yields ``None``; a single non-positive or non-numeric entry
    invalidates the whole list (logged as ``invalid_port_spec``).

    >>> parse_ports('31000, 31001')
    [31000, 31001]
    >>> parse_ports('31000,abc') is None, parse_ports('') is None
    (True, True)
    """

    if text is None or not text.strip():
        return None
    ports = [parse_int(item, -1) or -1 for item in split_list(text)]
    if not ports or any(port <= 0 for port in ports):
        log_error("invalid_port_spec", **make_event(server, path, {"spec": text}))
        return None
    return ports


def _tag(element: ET.Element) -> str:
    return element.tag.lower() if isinstance(element.tag, str) else ""


def _text(element: ET.Element, separator: str | None = " ") -> str:
    """Element text; with *separator* lines are trimmed and joined, blank lines dropped."""

    raw = "".join(element.itertext())
    if separator is None:
        return raw
    return separator.join(line.strip() for line in raw.splitlines() if line.strip())


def _attr_bool(element: ET.Element, name: str, default: bool) -> bool:
    return bool(parse_bool(element.get(name), default))


class MarkupLoader:
    """Load server declarations from a root document and its includes.

    Parameters
    ----------
    global_scope:
        The process-wide runtime scope. It supplies the parse-time overrides
        (descriptions, properties, attributes, command enablement) and is
        handed to every profile for four-level resolution.
    server_name:
        Optional filter; ``None``, blank or ``*`` loads every declaration.
    resolver:
        Used to find ``dcserver_<name>.xml`` when the root document is missing
        and a filter is set.
    """

    def __init__(
        self,
        global_scope: PropertyScope,
        *,
        server_name: str | None = None,
        resolver: PathResolver | None = None,
    ) -> None:
        self.global_scope = global_scope
        name = (server_name or "").strip()
        self.server_filter = None if name in NO_FILTER else name
        self.resolver = resolver

    def load(self, path: str | Path) -> LoadResult:
        """Run one load pass starting at *path*.

        Raises
        ------
        NotFound
            When neither the root document nor a filtered standalone document exists.
        InvalidFormat
            When the root document is not well-formed or has the wrong root tag.
        """

        root_path = self._locate_root(Path(path))
        root = self._parse_document(root_path)
        bind_address = root.get("bindAddress") or None
        bind_address = self.global_scope.get_string("bindAddress", None) or bind_address
        backlog = parse_int(root.get("backlog"), 0) or 0
        include_dir = root.get("includeDir") or None

        state = _PassState(registry=PortRegistry(), include_dir=include_dir)
        canonical = root_path.resolve()
        state.visited.add(canonical)
        state.files.append(str(canonical))
        log_info("config_load_started", **make_event(self.server_filter, str(canonical)))

        stack: list[Iterator[_Task]] = [self._children(root, canonical)]
        while stack:
            task = next(stack[-1], None)
            if task is None:
                stack.pop()
                continue
            if task.element is None:
                children = self._open_include(task, state)
                if children is not None:
                    stack.append(children)
                continue
            tag = _tag(task.element)
            if tag == "dcserver":
                self._load_server(task.element, task.path, state)
            elif tag == "include":
                files = self._resolve_include(task.element, task.path, state.include_dir)
                stack.append(iter([_Task(file, None, task.path) for file in files]))
            else:
                log_debug("unknown_tag", **make_event(None, str(task.path), {"tag": task.element.tag}))

        log_info(
            "config_load_finished",
            **make_event(self.server_filter, str(canonical), {"servers": len(state.profiles), "files": len(state.files)}),
        )
        return LoadResult(
            profiles=tuple(state.profiles),
            global_properties=dict(state.global_properties),
            bind_address=bind_address,
            backlog=backlog,
            include_dir=include_dir,
            conflicts=tuple(state.registry.conflicts),
            files=tuple(state.files),
        )

    # ------------------------------------------------------------------
    # documents and includes

    def _locate_root(self, path: Path) -> Path:
        if path.is_file():
            return path
        if self.server_filter is not None and self.resolver is not None:
            for candidate in self.resolver.server_files(self.server_filter):
                log_debug("standalone_document_found", **make_event(self.server_filter, candidate))
                return Path(candidate)
            log_warning("standalone_document_missing", **make_event(self.server_filter, str(path)))
        log_error("config_file_missing", **make_event(self.server_filter, str(path)))
        raise NotFound(f"Server configuration file does not exist: {path}")

    def _parse_document(self, path: Path) -> ET.Element:
        """Parse *path* and check its root tag; failures raise :class:`InvalidFormat`."""

        try:
            root = ET.parse(path).getroot()
        except (ET.ParseError, OSError) as exc:
            log_error("config_file_invalid", **make_event(None, str(path), {"error": str(exc)}))
            raise InvalidFormat(f"Invalid server configuration markup in {path}: {exc}") from exc
        if _tag(root) != ROOT_TAG.lower():
            log_error("config_root_invalid", **make_event(None, str(path), {"tag": root.tag}))
            raise InvalidFormat(f"[{path}] Invalid root tag: {root.tag}")
        log_debug("config_file_loaded", **make_event(None, str(path), {"format": "xml"}))
        return root

    def _children(self, root: ET.Element, path: Path) -> Iterator[_Task]:
        for element in root:
            if isinstance(element.tag, str):
                yield _Task(path, element)

    def _open_include(self, task: _Task, state: "_PassState") -> Iterator[_Task] | None:
        canonical = task.path.resolve()
        if task.including is not None and canonical == task.including.resolve():
            log_warning("recursive_include_ignored", **make_event(None, str(canonical)))
            return None
        if canonical in state.visited:
            log_debug("include_already_loaded", **make_event(None, str(canonical)))
            return None
        state.visited.add(canonical)
        try:
            root = self._parse_document(canonical)
        except InvalidFormat:
            log_error("include_failed", **make_event(None, str(canonical), {"included_from": str(task.including)}))
            return None
        state.files.append(str(canonical))
        return self._children(root, canonical)

    def _resolve_include(self, element: ET.Element, including: Path, include_dir: str | None) -> list[Path]:
        """Resolve an ``Include`` element to existing files (absolute dir, parent/dir, parent)."""

        pattern = (element.get("file") or "").strip()
        if not pattern:
            log_error("include_invalid", **make_event(None, str(including), {"reason": "blank file"}))
            return []
        optional = _attr_bool(element, "optional", False)
        dir_text = (element.get("dir") or "").strip() or (include_dir or "")
        directory = Path(dir_text) if dir_text else None
        parent = including.resolve().parent

        if directory is not None and directory.is_absolute():
            search = [directory]
        else:
            search = ([parent / directory] if directory is not None else []) + [parent]

        found: list[Path] = []
        for base in search:
            for candidate in (path.resolve() for path in self._match(base, pattern)):
                if candidate not in found:
                    found.append(candidate)
        if not found:
            if optional:
                log_debug("include_not_found", **make_event(None, str(including), {"file": pattern, "optional": True}))
            else:
                log_error("include_not_found", **make_event(None, str(including), {"file": pattern}))
        return found

    @staticmethod
    def _match(base: Path, pattern: str) -> Iterable[Path]:
        if "*" in pattern:
            if not base.is_dir():
                return []
            return sorted(path for path in base.glob(pattern) if path.is_file())
        candidate = base / pattern
        return [candidate] if candidate.is_file() else []

    # ------------------------------------------------------------------
    # server declarations

    def _load_server(self, element: ET.Element, path: Path, state: "_PassState") -> None:
        name = (element.get("name") or "").strip()
        if self.server_filter is not None and self.server_filter != name:
            return
        if not name:
            log_error("server_name_missing", **make_event(None, str(path)))
            return
        if not _attr_bool(element, "active", True):
            log_debug("server_inactive", **make_event(name, str(path)))
            return
        if name in state.names:
            log_warning("duplicate_server_ignored", **make_event(name, str(path)))
            return
        state.names.add(name)

        log_debug("server_parsing", **make_event(name, str(path)))
        profile = ServerProfile(name, global_scope=self.global_scope, source=str(path))
        profile.protocol = (element.get("protocol") or "").strip()
        profile.remote_logging = (element.get("remoteLogging") or "").strip()
        parser = _ServerParser(self, profile, path, state)
        for child in element:
            if isinstance(child.tag, str):
                parser.parse(child)
        state.registry.register_profile(profile, parser.warn_port_conflict)
        state.profiles.append(profile)


@dataclass(slots=True)
class _PassState:
    """Mutable bookkeeping for one load pass."""

    registry: PortRegistry
    include_dir: str | None = None
    profiles: list[ServerProfile] = field(default_factory=list)
    names: set[str] = field(default_factory=set)
    visited: set[Path] = field(default_factory=set)
    files: list[str] = field(default_factory=list)
    global_properties: dict[str, str] = field(default_factory=dict)


class _ServerParser:
    """Fill one profile from the child elements of a ``DCServer`` declaration."""

    def __init__(self, loader: MarkupLoader, profile: ServerProfile, path: Path, state: _PassState) -> None:
        self.loader = loader
        self.profile = profile
        self.name = profile.name
        self.path = str(path)
        self.state = state
        self.overrides = loader.global_scope
        self.warn_port_conflict = True

    def parse(self, element: ET.Element) -> None:
        handler = getattr(self, f"_on_{_tag(element)}", None)
        if handler is None:
            log_error("unknown_tag", **make_event(self.name, self.path, {"tag": element.tag}))
            return
        handler(element)

    def _event(self, **payload: object) -> dict[str, object]:
        return make_event(self.name, self.path, payload)

    def _on_description(self, element: ET.Element) -> None:
        text = _text(element, " ")
        self.profile.description = self.overrides.get_string(f"{_DCSERVER}{self.name}.description", text) or text

    def _on_modelnames(self, element: ET.Element) -> None:
        self.profile.model_names = [line for line in _text(element, "\n").split("\n") if line]

    def _on_attributes(self, element: ET.Element) -> None:
        attributes = parse_properties(_text(element, " "))
        flags = {key: bool(parse_bool(value, False)) for key, value in attributes.items()}
        self.profile.flags = flags_from_attributes(flags)
        scope = self.profile.properties()
        for key, value in attributes.items():
            attr_key = f"Attribute.{key}"
            override = [f"{_DCSERVER}{self.name}.{attr_key}", f"{_DCS}{self.name}.{attr_key}"]
            scope.set(attr_key, self.overrides.get_string(override, value) if self.overrides.has(override) else value)

    def _on_uniqueidprefix(self, element: ET.Element) -> None:
        self.profile.unique_prefixes = normalize_prefixes(split_list(_text(element, ",")))

    def _on_listenports(self, element: ET.Element) -> None:
        self.warn_port_conflict = _attr_bool(element, "warnPortConflict", True)
        bind = (element.get("bindAddress") or "").strip() or None
        self.profile.bind_address = bind
        self.profile.ssl = _attr_bool(element, "ssl", False)
        for transport, attribute in ((TCP, "tcpPort"), (UDP, "udpPort"), (SAT, "satPort")):
            ports = parse_ports(element.get(attribute), server=self.name, path=self.path) or []
            seen: set[int] = set()
            for port in ports:
                if port in seen or self.profile.has_port(transport, port):
                    log_warning("duplicate_port", **self._event(transport=transport, port=port))
                seen.add(port)
            self.profile.set_ports(transport, bind, ports, check_overrides=True)

    def _on_globalproperties(self, element: ET.Element) -> None:
        if self.loader.server_filter is None:
            return
        for key, value in self._properties(element):
            self.state.global_properties[key] = value
            self.profile.global_block[key] = value

    def _on_properties(self, element: ET.Element) -> None:
        scope = self.profile.properties(element.get("id"), create=True)
        prefix = f"{self.name}."
        for key, value in self._properties(element):
            bare = key[len(prefix):] if key.startswith(prefix) else key
            override = [
                f"{_DCSERVER}{self.name}.{bare}",
                f"{_DCSERVER}{self.name}.Properties.{bare}",
                f"{_DCS}{self.name}.{bare}",
                f"{_DCS}{self.name}.Properties.{bare}",
            ]
            if self.overrides.has(override):
                value = self.overrides.get_string(override, value) or ""
            scope.set(prefix + bare, value)

    def _properties(self, element: ET.Element) -> Iterator[tuple[str, str]]:
        for child in element:
            if _tag(child) != "property":
                continue
            key = (child.get("key") or "").strip()
            if not key:
                log_warning("property_key_missing", **self._event())
                continue
            trim = _attr_bool(child, "trim", True)
            yield key, (_text(child, " ") if trim else _text(child, None))

    def _on_eventcodemap(self, element: ET.Element) -> None:
        table = EventCodeMap(enabled=_attr_bool(element, "enabled", True))
        for child in element:
            if _tag(child) != "code":
                continue
            key = (child.get("key") or "").strip()
            entry = EventCode(key, parse_status_code(_text(child, " ")), child.get("data"))
            if not table.add(entry):
                log_warning("event_code_invalid", **self._event(key=key))
        self.profile.event_codes = table

    def _on_configproperties(self, element: ET.Element) -> None:
        for child in element:
            if _tag(child) != "property":
                continue
            key = (child.get("key") or "").strip()
            if key:
                self.profile.recommended_keys[key] = _text(child, " ")

    def _on_commands(self, element: ET.Element) -> None:
        host = (element.get("dispatchHost") or "").strip() or None
        port_text = (element.get("dispatchPort") or "").strip()
        self.profile.command_host = host
        self.profile.set_command_port(-1 if port_text.lower() == "sms" else (parse_int(port_text, -1) or -1))
        for child in element:
            tag = _tag(child)
            if tag == "aclname":
                self.profile.commands_acl_name = _text(child, "")
                self.profile.commands_acl_default = AccessLevel.parse(child.get("default"))
            elif tag == "command":
                self._command(child)

    def _enabled(self, command_name: str, text: str) -> tuple[bool, bool]:
        """Return ``(enabled, keep)`` after the global and local overrides."""

        enabled = True if text == "" else bool(parse_bool(text, False))
        keep = enabled or text == "hidden"
        local_keys = [f"Command.{command_name}.enabled", f"command.{command_name}.enabled"]
        global_keys = [
            f"{_DCSERVER}{self.name}.{local_keys[0]}",
            f"{_DCSERVER}{self.name}.{local_keys[1]}",
            f"{_DCS}{self.name}.{local_keys[0]}",
            f"{_DCS}{self.name}.{local_keys[1]}",
        ]
        local = self.profile.properties()
        for scope, keys in ((self.overrides, global_keys), (local, local_keys)):
            if scope.has(keys):
                enabled = bool(scope.get_bool(keys, enabled))
                keep = keep or enabled
                break
        return enabled, keep

    def _command(self, element: ET.Element) -> None:
        command_name = (element.get("name") or "").strip()
        if not command_name:
            log_error("command_name_missing", **self._event())
            return
        enabled, keep = self._enabled(command_name, (element.get("enabled") or "").strip().lower())
        if not keep:
            log_debug("command_disabled", **self._event(command=command_name))
            return

        acl = (element.get("acl") or "").strip()
        acl_base = self.profile.commands_acl_name
        fields: dict[str, object] = {
            "description": "",
            "types": (),
            "acl_name": acl or (f"{acl_base}.{command_name}" if acl_base else command_name),
            "acl_default": AccessLevel.WRITE,
            "template": "",
            "protocol": "",
            "max_route_age": -1,
            "allow_queue": False,
            "audit_code": 0,
            "expect_ack_code": 0,
            "state_mask": 0,
            "state_value": False,
        }
        has_args = _attr_bool(element, "hasArgs", False)
        expect_ack = _attr_bool(element, "expectAck", False)
        args: list[CommandArg] = []
        for child in element:
            tag = _tag(child)
            if tag == "type":
                fields["types"] = tuple(item for item in split_list(_text(child, ",")) if item)
            elif tag == "description":
                fields["description"] = _text(child, " ")
            elif tag == "aclname":
                fields["acl_name"] = _text(child, "")
                fields["acl_default"] = AccessLevel.parse(child.get("default"))
            elif tag == "string":
                fields["protocol"] = (child.get("protocol") or "").strip()
                fields["max_route_age"] = parse_int(child.get("udpMaxAge"), -1) or 0
                fields["allow_queue"] = _attr_bool(child, "queue", False)
                fields["template"] = _text(child, "")
            elif tag == "statuscode":
                code = parse_int(_text(child, ""), -1) or -1
                fields["audit_code"] = code if code > 0 else 0
            elif tag == "expectackcode":
                code = parse_int(_text(child, ""), -1)
                if code is not None and code >= 0:
                    fields["expect_ack_code"] = code
                    expect_ack = True
            elif tag == "arg":
                args.append(self._arg(child))
                has_args = True
            elif tag == "state":
                fields["state_mask"] = self._state_mask(child)
                fields["state_value"] = bool(parse_bool(_text(child, ""), False))
            else:
                log_warning("unknown_tag", **self._event(command=command_name, tag=child.tag))

        proto, _handler = split_protocol(str(fields["protocol"]))
        if self.profile.command_port <= 0 and proto.lower() != "sms":
            log_warning("command_ignored", **self._event(command=command_name, reason="not an SMS protocol command"))
            return
        command = CommandDefinition(
            server=self.name,
            name=command_name,
            enabled=enabled,
            has_args=has_args,
            args=tuple(args),
            expect_ack=expect_ack,
            **fields,  # type: ignore[arg-type]
        )
        if not self.profile.commands.add(command):
            log_error("duplicate_command_ignored", **self._event(command=command_name))
            return
        log_debug("command_added", **self._event(command=command_name, enabled=enabled))

    @staticmethod
    def _arg(element: ET.Element) -> CommandArg:
        arg = CommandArg(
            name=(element.get("name") or "").strip(),
            description=_text(element, " "),
            read_only=_attr_bool(element, "readOnly", False),
            session_var=element.get("sessionVar") or None,
            default_value=element.get("defaultValue") or "",
        )
        length = element.get("length")
        if length and length.strip():
            display, maximum = parse_length_spec(length)
            arg = arg.with_length(display, maximum)
        return arg

    @staticmethod
    def _state_mask(element: ET.Element) -> int:
        mask = parse_int(element.get("mask"), 0) or 0
        if mask == 0:
            index = parse_int(element.get("index"), -1)
            if index is not None and index >= 0:
                mask = 1 << index
        return mask
