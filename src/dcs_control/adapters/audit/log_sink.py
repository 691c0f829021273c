"""Audit sink that records dispatched commands through the package logger."""

from __future__ import annotations

from collections import deque
from typing import Deque, NamedTuple

from ...observability import log_info


class AuditRecord(NamedTuple):
    account_id: str
    device_id: str
    text: str


class LoggingAuditSink:
    """Log each ``device_command`` audit record and keep the most recent ones."""

    def __init__(self, *, keep: int = 100) -> None:
        self.records: Deque[AuditRecord] = deque(maxlen=keep)

    def device_command(self, account_id: str, device_id: str, text: str) -> None:
        record = AuditRecord(account_id, device_id, text)
        self.records.append(record)
        log_info("device_command", account=account_id, device=device_id, text=text)
