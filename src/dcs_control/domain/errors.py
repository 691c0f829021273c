"""Domain-level exception hierarchy.

Purpose
-------
Expose the error taxonomy shared by adapters, the application layer and the
composition root. Most control-plane failures are *not* exceptions: loader
problems are logged and dispatch failures are :class:`ResultCode` values. The
types below cover the remaining cases where an adapter must signal a problem
to its caller.

Contents
--------
* :class:`DcsError` - umbrella base class.
* :class:`InvalidFormat` - markup or property files that cannot be parsed.
* :class:`NotFound` - an expected file or resource is missing.
* :class:`ValidationError` - syntactically valid input with invalid values.
* :class:`TransportError` and subclasses - socket exchange failures, mapped to
  ``TRANSMIT_FAIL`` at the dispatch boundary.
* :class:`UnknownGateway` - an SMS gateway name with no registered factory.

System Role
-----------
Adapters raise these, the dispatch engine and the loader catch them at their
boundaries. Callers that use the lower-level adapters directly catch
:class:`DcsError` to handle all library failures uniformly.
"""

from __future__ import annotations


class DcsError(Exception):
    """Base type for all exceptions emitted by ``dcs_control``."""


class InvalidFormat(DcsError):
    """Raised when a configuration artifact cannot be parsed.

    Typical Sources
    ---------------
    The XML loader (malformed markup, wrong root tag) and the runtime property
    file loaders (``tomllib``, :mod:`json`, :mod:`yaml`, ``key=value`` files).
    """


class NotFound(DcsError):
    """Represents a missing file or resource.

    The loader treats a missing *include* as non-fatal; only the root document
    being absent propagates to the caller.
    """


class ValidationError(DcsError):
    """Signals values that parse but make no sense (bad port lists, malformed
    JSON command objects)."""


class TransportError(DcsError):
    """Base class for command transport failures."""


class TransportConnectError(TransportError):
    """The dispatch host refused or could not be reached."""


class TransportTimeoutError(TransportError):
    """No response line arrived within the configured timeout."""


class UnknownGateway(DcsError):
    """Raised when an SMS gateway name is not present in the registry."""
