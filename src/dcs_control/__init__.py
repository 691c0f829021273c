"""Public package surface for ``dcs_control``.

Import the composition-root helpers and the value types most callers need
from here; adapters and application services stay reachable through their
modules.
"""

from __future__ import annotations

from .application.directory import ServerDirectory
from .application.dispatch import CommandDispatcher
from .application.runtime import RuntimeProperties
from .core import ConfigLoadError, create_dispatcher, load_directory, read_runtime_properties, send_command
from .domain.commands import CommandArg, CommandDefinition, CommandRegistry
from .domain.errors import DcsError, InvalidFormat, NotFound, TransportError, UnknownGateway, ValidationError
from .domain.profile import ServerProfile
from .domain.results import DispatchOutcome, ResultCode
from .domain.scope import PropertyScope
from .observability import bind_trace_id, get_logger

__all__ = [
    "CommandArg",
    "CommandDefinition",
    "CommandDispatcher",
    "CommandRegistry",
    "ConfigLoadError",
    "DcsError",
    "DispatchOutcome",
    "InvalidFormat",
    "NotFound",
    "PropertyScope",
    "ResultCode",
    "RuntimeProperties",
    "ServerDirectory",
    "ServerProfile",
    "TransportError",
    "UnknownGateway",
    "ValidationError",
    "bind_trace_id",
    "create_dispatcher",
    "get_logger",
    "load_directory",
    "read_runtime_properties",
    "send_command",
]
