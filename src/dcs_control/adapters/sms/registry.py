"""SMS gateway registry.

Maps gateway names (case-insensitive) to factories. The only built-in gateway
is ``log``, which records the message instead of sending it; real providers
register themselves under their own names.
"""

from __future__ import annotations

from typing import Callable, Dict

from ...application.ports import Device, SmsGateway
from ...domain.commands import CommandDefinition
from ...domain.errors import UnknownGateway
from ...domain.results import ResultCode
from ...observability import log_info

GatewayFactory = Callable[[], SmsGateway]


class LoggingSmsGateway:
    """Gateway that logs the outgoing message and reports success."""

    name = "log"

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, command: CommandDefinition, text: str, device: Device) -> ResultCode | None:
        if not text:
            return None
        self.sent.append((device.modem_id or device.unique_id, command.name, text))
        log_info(
            "sms_sent",
            gateway=self.name,
            server=command.server,
            command=command.name,
            account=device.account_id,
            device=device.device_id,
            text=text,
        )
        return ResultCode.SUCCESS


class SmsGatewayRegistry:
    """Name -> gateway factory table."""

    def __init__(self, gateways: Dict[str, GatewayFactory] | None = None) -> None:
        self._gateways: Dict[str, GatewayFactory] = {k.lower(): v for k, v in (gateways or {}).items()}

    @classmethod
    def default(cls) -> "SmsGatewayRegistry":
        return cls({LoggingSmsGateway.name: LoggingSmsGateway})

    def register(self, name: str, factory: GatewayFactory) -> None:
        self._gateways[name.strip().lower()] = factory

    def has(self, name: str) -> bool:
        return name.strip().lower() in self._gateways

    def names(self) -> list[str]:
        return sorted(self._gateways)

    def get(self, name: str | None, default: str | None = None) -> SmsGateway | None:
        """Create the gateway *name* (or *default*); ``None`` when neither is registered."""

        for candidate in (name, default):
            if candidate and self.has(candidate):
                return self.create(candidate)
        return None

    def create(self, name: str) -> SmsGateway:
        key = name.strip().lower()
        if key not in self._gateways:
            raise UnknownGateway(f"SMS gateway '{name}' not registered")
        return self._gateways[key]()
