"""Composition root for ``dcs_control``.

Purpose
-------
Provide the entry points that wire path resolution, runtime property layers,
the markup loader and the dispatch collaborators together. Everything the
CLI does goes through the functions here.

Contents
--------
* :class:`ConfigLoadError` - the root document cannot be located or parsed.
* :func:`read_runtime_properties` - build the layered global scope.
* :func:`load_directory` - load server declarations into a
  :class:`~dcs_control.application.directory.ServerDirectory`.
* :func:`create_dispatcher` - build a
  :class:`~dcs_control.application.dispatch.CommandDispatcher` with default
  adapters.
* :func:`send_command` - one-shot convenience around the dispatcher.

System Role
-----------
This module is the only place that knows about concrete adapters. The
application layer receives them explicitly; there is no module-level state,
so two directories loaded from different documents never interfere.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .adapters.audit.log_sink import LoggingAuditSink
from .adapters.env.default import ENV_PREFIX, DefaultEnvLoader
from .adapters.file_loaders.structured import loader_for
from .adapters.markup.loader import LoadResult, MarkupLoader
from .adapters.path_resolvers.default import ROOT_DOCUMENT, DefaultPathResolver
from .adapters.sms.registry import SmsGatewayRegistry
from .adapters.transport.socket_client import SocketCommandTransport
from .application.directory import ServerDirectory
from .application.dispatch import DEFAULT_TIMEOUT_SECONDS, COMMAND_TYPE_CONFIG, CommandDispatcher
from .application.ports import AuditSink, CommandTransport, Device, SmsGatewayProvider
from .application.runtime import LAYER_CMDLINE, LAYER_DCS_GLOBAL, LAYER_ENV, LAYER_FILE, RuntimeProperties
from .domain.errors import DcsError, InvalidFormat, NotFound
from .domain.results import DispatchOutcome
from .observability import bind_trace_id, log_debug, log_info, make_event


class ConfigLoadError(DcsError):
    """Raised when a root configuration document or property file cannot be loaded.

    Why
    ----
    Callers catch one exception type for "nothing could be loaded", while
    problems inside a loaded document stay logged diagnostics.

    What
    -----
    Wraps :class:`NotFound` or :class:`InvalidFormat` with the offending path.
    """


def read_runtime_properties(
    *,
    files: Iterable[str] = (),
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> RuntimeProperties:
    """Return the runtime properties built from files, environment and overrides.

    Why
    ----
    Every server profile falls back to one process-wide scope; building it in
    one place keeps the layer precedence explicit.

    What
    ----
    Loads each property file as a ``file`` layer (in the given order), then the
    ``DCS_CONTROL_`` environment variables as the ``env`` layer and finally
    *overrides* as the ``cmdline`` layer.

    Raises
    ------
    ConfigLoadError
        When a property file is missing or malformed.

    Examples
    --------
    >>> runtime = read_runtime_properties(
    ...     environ={'DCS_CONTROL_bindAddress': '10.0.0.5'},
    ...     overrides={'DCServer.acme.commandPort': '30050'},
    ... )
    >>> runtime.scope.get_string('bindAddress'), runtime.scope.get_int('DCServer.acme.commandPort')
    ('10.0.0.5', 30050)
    """

    runtime = RuntimeProperties()
    for path in files:
        try:
            data = loader_for(path).load(path)
        except (NotFound, InvalidFormat) as exc:
            log_debug("layer_error", layer=LAYER_FILE, path=path, error=str(exc))
            raise ConfigLoadError(f"Failed to load property file {path}: {exc}") from exc
        if data:
            runtime.add_layer(LAYER_FILE, data, path)

    env_data = DefaultEnvLoader(environ=environ).load(ENV_PREFIX)
    if env_data:
        runtime.add_layer(LAYER_ENV, env_data)
        log_debug("layer_loaded", **make_event(None, None, {"layer": LAYER_ENV, "keys": len(env_data)}))

    if overrides:
        runtime.add_layer(LAYER_CMDLINE, overrides)
        log_debug("layer_loaded", **make_event(None, None, {"layer": LAYER_CMDLINE, "keys": len(overrides)}))
    return runtime


def load_directory(
    config_path: str | Path | None = None,
    *,
    server_name: str | None = None,
    properties_files: Sequence[str] = (),
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    config_dir: str | Path | None = None,
    runtime: RuntimeProperties | None = None,
) -> ServerDirectory:
    """Load server declarations and return the populated directory.

    Why
    ----
    The directory is the unit handed to the dispatcher and the CLI; building it
    here keeps adapter wiring out of the application layer.

    What
    ----
    Resolves the root document (explicit *config_path*, else the first
    ``dcservers.xml`` found by :class:`DefaultPathResolver`), builds the runtime
    properties (discovered property files first, then *properties_files*),
    runs one :class:`MarkupLoader` pass and registers the resulting profiles.
    When *server_name* names a single server, that server's GlobalProperties
    become the ``dcs-global`` runtime layer.

    Parameters
    ----------
    runtime:
        Pre-built runtime properties; when given, *properties_files*,
        *overrides* and *environ* are ignored.

    Raises
    ------
    ConfigLoadError
        When the root document is missing or malformed, or a property file
        cannot be read.

    Side Effects
    ------------
    Resets the trace identifier and emits ``config_loaded``.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name) / 'dcservers.xml'
    >>> _ = root.write_text(
    ...     '<DCServerConfig><DCServer name="acme"><Description>Acme</Description>'
    ...     '<ListenPorts tcpPort="31000"/></DCServer></DCServerConfig>',
    ...     encoding='utf-8',
    ... )
    >>> directory = load_directory(root, environ={}, config_dir=tmp.name)
    >>> directory.names(), directory.ports('acme')['tcp']
    (['acme'], [31000])
    >>> tmp.cleanup()
    """

    bind_trace_id(None)
    resolver = DefaultPathResolver(config_dir=config_dir, env=environ)
    if runtime is None:
        files = [*resolver.property_files(), *properties_files]
        runtime = read_runtime_properties(files=files, environ=environ, overrides=overrides)

    root = _root_document(config_path, resolver)
    loader = MarkupLoader(runtime.scope, server_name=server_name, resolver=resolver)
    try:
        result = loader.load(root)
    except (NotFound, InvalidFormat) as exc:
        raise ConfigLoadError(f"Failed to load server configuration {root}: {exc}") from exc

    if result.global_properties:
        runtime.add_layer(LAYER_DCS_GLOBAL, result.global_properties, result.files[0] if result.files else None)

    directory = _build_directory(result, runtime)
    log_info(
        "config_loaded",
        **make_event(server_name, str(root), {"servers": len(directory), "conflicts": len(result.conflicts)}),
    )
    return directory


def _root_document(config_path: str | Path | None, resolver: DefaultPathResolver) -> Path:
    if config_path is not None:
        return Path(config_path)
    for candidate in resolver.config_files():
        return Path(candidate)
    base = resolver.config_dir or resolver.cwd
    return base / ROOT_DOCUMENT


def _build_directory(result: LoadResult, runtime: RuntimeProperties) -> ServerDirectory:
    bind_address = runtime.scope.get_string("bindAddress", None) or result.bind_address
    directory = ServerDirectory(
        global_properties=runtime.scope,
        bind_address=bind_address,
        backlog=result.backlog,
        source=result.files[0] if result.files else None,
    )
    for profile in result.profiles:
        directory.add(profile)
    return directory


def create_dispatcher(
    directory: ServerDirectory,
    *,
    transport: CommandTransport | None = None,
    sms_gateways: SmsGatewayProvider | None = None,
    audit: AuditSink | None = None,
    timeout: float | None = None,
) -> CommandDispatcher:
    """Return a dispatcher bound to *directory*; missing collaborators get the default adapters.

    >>> dispatcher = create_dispatcher(ServerDirectory())
    >>> type(dispatcher.transport).__name__, dispatcher.timeout
    ('SocketCommandTransport', 10.0)
    """

    return CommandDispatcher(
        directory,
        transport if transport is not None else SocketCommandTransport(),
        sms_gateways if sms_gateways is not None else SmsGatewayRegistry.default(),
        audit if audit is not None else LoggingAuditSink(),
        timeout if timeout is not None else DEFAULT_TIMEOUT_SECONDS,
    )


def send_command(
    directory: ServerDirectory,
    device: Device,
    command_name: str,
    args: Sequence[str | None] | None = None,
    *,
    command_type: str = COMMAND_TYPE_CONFIG,
    server_name: str | None = None,
    timeout: float | None = None,
) -> DispatchOutcome:
    """Dispatch one command with the default adapters."""

    dispatcher = create_dispatcher(directory, timeout=timeout)
    return dispatcher.dispatch(device, command_name, args, command_type=command_type, server_name=server_name)


__all__ = [
    "ConfigLoadError",
    "read_runtime_properties",
    "load_directory",
    "create_dispatcher",
    "send_command",
]
