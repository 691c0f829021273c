from __future__ import annotations

from dcs_control import ConfigLoadError
from dcs_control.domain.errors import (
    DcsError,
    InvalidFormat,
    NotFound,
    TransportConnectError,
    TransportError,
    TransportTimeoutError,
    UnknownGateway,
    ValidationError,
)


def test_error_hierarchy() -> None:
    for error_type in (InvalidFormat, NotFound, ValidationError, TransportError, UnknownGateway, ConfigLoadError):
        assert issubclass(error_type, DcsError)
    assert issubclass(TransportConnectError, TransportError)
    assert issubclass(TransportTimeoutError, TransportError)
