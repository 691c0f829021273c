"""In-memory device records and a unique-id keyed store for the CLI and tests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable


@dataclass
class InMemoryDevice:
    """A device held in memory.

    ``max_ping_count`` of ``0`` means unlimited.

    Examples
    --------
    >>> device = InMemoryDevice("demo", "truck1", server_name="acme", max_ping_count=1)
    >>> device.exceeds_max_ping_count()
    False
    >>> device.increment_ping_count()
    >>> device.exceeds_max_ping_count()
    True
    """

    account_id: str
    device_id: str
    unique_id: str = ""
    data_key: str = ""
    modem_id: str = ""
    imei: str = ""
    serial: str = ""
    server_name: str = ""
    command_host: str | None = None
    sms_enabled: bool = False
    ping_count: int = 0
    max_ping_count: int = 0

    def exceeds_max_ping_count(self) -> bool:
        return self.max_ping_count > 0 and self.ping_count >= self.max_ping_count

    def increment_ping_count(self) -> None:
        self.ping_count += 1


class InMemoryDeviceStore:
    """Devices indexed by their full unique identifier.

    >>> store = InMemoryDeviceStore()
    >>> store.add(InMemoryDevice("demo", "truck1", unique_id="imei_123"))
    >>> store.load_by_unique_id("imei_123").device_id
    'truck1'
    >>> store.load_by_unique_id("123") is None
    True
    """

    def __init__(self, devices: Iterable[InMemoryDevice] = ()) -> None:
        self._by_unique_id: Dict[str, InMemoryDevice] = {}
        for device in devices:
            self.add(device)

    def add(self, device: InMemoryDevice) -> None:
        if device.unique_id:
            self._by_unique_id[device.unique_id] = device

    def load_by_unique_id(self, unique_id: str) -> InMemoryDevice | None:
        return self._by_unique_id.get(unique_id)

    def __len__(self) -> int:
        return len(self._by_unique_id)
