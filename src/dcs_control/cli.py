"""CLI adapter for ``dcs_control`` built on ``lib_cli_exit_tools``.

Purpose
-------
Let operators inspect loaded server declarations, resolve properties, render
command templates and send commands without writing Python code.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` - shared Click settings ensuring ``-h`` works.
* :func:`cli` - root command holding the load options and the traceback flag.
* :func:`cli_info`, :func:`cli_list`, :func:`cli_show`, :func:`cli_ports`,
  :func:`cli_lookup`, :func:`cli_property`, :func:`cli_render`,
  :func:`cli_send` - subcommands.
* :func:`main` - entry point used by ``console_scripts`` registration.

System Role
-----------
The outermost layer: it calls the composition root (:mod:`dcs_control.core`)
and formats results. ``lib_cli_exit_tools`` owns the exit code strategy.
"""

from __future__ import annotations

import json
import sys
from importlib import metadata
from pathlib import Path
from typing import Final, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from .adapters.devices.memory import InMemoryDevice
from .adapters.protocols.registry import ProtocolModuleRegistry
from .application.directory import ServerDirectory
from .application.dispatch import COMMAND_TYPE_CONFIG
from .application.templating import render_command
from .core import ConfigLoadError, load_directory, send_command
from .domain.profile import ServerProfile

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000
_DISTRIBUTION: Final[str] = "dcs_control"


def _resolve_version() -> str:
    """Return the installed package version, ``"0.0.0"`` when metadata is missing."""

    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


def _parse_defines(values: Sequence[str]) -> dict[str, str]:
    """Turn repeated ``-D key=value`` options into a mapping.

    >>> _parse_defines(["DCServer.acme.commandPort=30050", "bindAddress = 10.0.0.1"])
    {'DCServer.acme.commandPort': '30050', 'bindAddress': '10.0.0.1'}
    """

    defines: dict[str, str] = {}
    for item in values:
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            raise click.BadParameter(f"Expected key=value, got {item!r}", param_hint="-D/--define")
        defines[key.strip()] = value.strip()
    return defines


@click.group(
    help="Device communication server control plane",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name=_DISTRIBUTION,
    message="dcs_control version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Root server declaration document (defaults to a discovered dcservers.xml)",
)
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory searched for dcservers.xml and runtime property files",
)
@click.option("--server", "server_name", default=None, help="Load only the named server ('*' loads all)")
@click.option("-D", "--define", "defines", multiple=True, help="Runtime property override key=value (repeatable)")
@click.option(
    "--properties",
    "properties_files",
    multiple=True,
    type=click.Path(path_type=Path, dir_okay=False, exists=True),
    help="Runtime property file (.toml, .json, .yaml, .conf); repeatable, later files win",
)
@click.pass_context
def cli(
    ctx: click.Context,
    traceback: bool,
    config_path: Optional[Path],
    config_dir: Optional[Path],
    server_name: Optional[str],
    defines: Sequence[str],
    properties_files: Sequence[Path],
) -> None:
    """Root command storing load options and configuring traceback handling.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and
        ``lib_cli_exit_tools.config.traceback_force_color``.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    ctx.obj["load"] = {
        "config_path": config_path,
        "config_dir": config_dir,
        "server_name": server_name,
        "overrides": _parse_defines(defines),
        "properties_files": [str(path) for path in properties_files],
    }
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


def _directory(ctx: click.Context) -> ServerDirectory:
    """Load the directory once per invocation from the root options."""

    cached = ctx.obj.get("directory")
    if cached is not None:
        return cached
    try:
        directory = load_directory(**ctx.obj["load"])
    except ConfigLoadError as exc:
        raise click.ClickException(str(exc)) from exc
    ctx.obj["directory"] = directory
    return directory


def _profile(ctx: click.Context, name: str) -> ServerProfile:
    profile = _directory(ctx).get(name, warn=True)
    if profile is None:
        raise click.ClickException(f"Server not found: {name}")
    return profile


def _echo_json(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        click.echo(f"{_DISTRIBUTION} (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', _DISTRIBUTION)}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("list", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--all", "include_all", is_flag=True, default=False, help="Include servers whose protocol module is not installed")
@click.pass_context
def cli_list(ctx: click.Context, include_all: bool) -> None:
    """List loaded servers as ``(name) description [ports]``.

    Without ``--all`` only servers with an installed protocol module (or marked
    ``jarOptional``) are shown.
    """

    protocols = ctx.obj.get("protocols") or ProtocolModuleRegistry.default()
    for profile in _directory(ctx).list(include_all=include_all, installed=protocols.installed):
        click.echo(profile.describe())


@cli.command("show", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@click.pass_context
def cli_show(ctx: click.Context, name: str) -> None:
    """Print the full profile of server NAME as JSON."""

    _echo_json(_profile(ctx, name).as_dict())


@cli.command("ports", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@click.pass_context
def cli_ports(ctx: click.Context, name: str) -> None:
    """Print the listen ports and command port of server NAME."""

    profile = _profile(ctx, name)
    _echo_json(
        {
            "tcp": profile.tcp_ports,
            "udp": profile.udp_ports,
            "sat": profile.sat_ports,
            "command": profile.command_port,
        }
    )


@cli.command("lookup", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("unique_id")
@click.pass_context
def cli_lookup(ctx: click.Context, unique_id: str) -> None:
    """Print the server whose unique-id prefix matches UNIQUE_ID."""

    found = _directory(ctx).find_by_unique_id(unique_id)
    if found is None:
        click.echo(f"No server matches {unique_id}")
        ctx.exit(1)
    profile, stripped = found
    _echo_json({"server": profile.name, "id": stripped})


@cli.command("property", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@click.argument("keys", nargs=-1, required=True)
@click.pass_context
def cli_property(ctx: click.Context, name: str, keys: Sequence[str]) -> None:
    """Resolve the first present of KEYS for server NAME.

    The output names the resolution level: 1 local literal, 2 local
    normalized, 3 global normalized, 4 global literal.
    """

    found = _profile(ctx, name).resolve(list(keys))
    if found is None:
        _echo_json({"server": name, "keys": list(keys), "found": False})
        ctx.exit(1)
    level, key, value = found
    _echo_json({"server": name, "key": key, "level": level, "value": value.raw})


def _device_options(func):  # type: ignore[no-untyped-def]
    """Shared device identity options for ``render`` and ``send``."""

    for option in reversed(
        (
            click.option("--account", default="sysadmin", show_default=True, help="Account id"),
            click.option("--device", "device_id", default="device", show_default=True, help="Device id"),
            click.option("--unique-id", default="", help="Device unique id"),
            click.option("--modem-id", default="", help="Device modem id"),
            click.option("--imei", default="", help="Device IMEI"),
            click.option("--serial", default="", help="Device serial number"),
            click.option("--data-key", default="", help="Device data key"),
            click.option("--sms-enabled/--no-sms-enabled", default=False, help="Account may send SMS"),
        )
    ):
        func = option(func)
    return func


def _make_device(name: str, options: dict[str, object]) -> InMemoryDevice:
    return InMemoryDevice(
        account_id=str(options["account"]),
        device_id=str(options["device_id"]),
        unique_id=str(options["unique_id"]),
        modem_id=str(options["modem_id"]),
        imei=str(options["imei"]),
        serial=str(options["serial"]),
        data_key=str(options["data_key"]),
        server_name=name,
        sms_enabled=bool(options["sms_enabled"]),
    )


@cli.command("render", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@click.argument("command")
@click.argument("args", nargs=-1)
@_device_options
@click.pass_context
def cli_render(ctx: click.Context, name: str, command: str, args: Sequence[str], **options: object) -> None:
    """Render COMMAND of server NAME with ARGS without sending it."""

    definition = _profile(ctx, name).commands.get(command)
    if definition is None:
        raise click.ClickException(f"Command not found: {name}/{command}")
    click.echo(render_command(definition, list(args), _make_device(name, options)))


@cli.command("send", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@click.argument("command")
@click.argument("args", nargs=-1)
@_device_options
@click.option("--type", "command_type", default=COMMAND_TYPE_CONFIG, show_default=True, help="Command type")
@click.option("--timeout", type=float, default=None, help="Response timeout in seconds")
@click.pass_context
def cli_send(
    ctx: click.Context,
    name: str,
    command: str,
    args: Sequence[str],
    command_type: str,
    timeout: Optional[float],
    **options: object,
) -> None:
    """Dispatch COMMAND with ARGS to an ad hoc device on server NAME.

    Prints ``<code> <message>``; the exit code is 0 only on success.
    """

    device = _make_device(name, options)
    outcome = send_command(_directory(ctx), device, command, list(args), command_type=command_type, timeout=timeout)
    click.echo(f"{outcome.result.code} {outcome.message}")
    if not outcome.is_success:
        ctx.exit(1)


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name=_DISTRIBUTION,
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
