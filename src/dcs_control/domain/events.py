"""Device-native event code translation.

A server profile may translate the codes a device reports into canonical
status codes. Code ``0`` means "use the default status", negative or blank
means "ignore the event entirely".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final, Iterable, Union

from .values import parse_int

STATUS_NONE: Final[int] = 0
STATUS_IGNORE: Final[int] = -1

CodeKey = Union[int, str]


def parse_status_code(text: str | None) -> int:
    """Parse the status-code text of a translation entry.

    Examples
    --------
    >>> parse_status_code(''), parse_status_code('ignore'), parse_status_code('default')
    (-1, -1, 0)
    >>> parse_status_code('0xF020'), parse_status_code('-5'), parse_status_code('0')
    (61472, -1, 0)
    """

    if text is None or not text.strip() or text.strip().lower() == "ignore":
        return STATUS_IGNORE
    word = text.strip().lower()
    if word in ("default", "none"):
        return STATUS_NONE
    code = parse_int(word, STATUS_IGNORE)
    if code is None or code < 0:
        return STATUS_IGNORE
    return code


def code_key(key: CodeKey) -> CodeKey | None:
    """Return the lookup key for *key*: an int when it parses as a non-negative
    int, else the lowercased trimmed string; blank gives ``None``."""

    if isinstance(key, int) and not isinstance(key, bool):
        return key if key >= 0 else None
    text = str(key).strip()
    if not text:
        return None
    if text.lstrip("+").isdigit():
        return int(text)
    return text.lower()


@dataclass(frozen=True, slots=True)
class EventCode:
    """One translation entry: device key, canonical status code, optional data."""

    key: CodeKey
    status_code: int
    data: str | None = None

    @property
    def ignored(self) -> bool:
        return self.status_code == STATUS_IGNORE


@dataclass(slots=True)
class EventCodeMap:
    """Lookup table from device-native codes to :class:`EventCode` entries.

    Examples
    --------
    >>> codes = EventCodeMap.from_entries([EventCode(7, 0xF020), EventCode("gps", 0xF010)])
    >>> codes.translate(7, 0)
    61472
    >>> codes.translate("GPS", 0)
    61456
    >>> EventCodeMap(enabled=False, codes=codes.codes).get(7) is None
    True
    """

    enabled: bool = True
    codes: dict[CodeKey, EventCode] = field(default_factory=dict)

    @classmethod
    def from_entries(cls, entries: Iterable[EventCode], *, enabled: bool = True) -> "EventCodeMap":
        table = cls(enabled=enabled)
        for entry in entries:
            table.add(entry)
        return table

    def add(self, entry: EventCode) -> bool:
        key = code_key(entry.key)
        if key is None:
            return False
        self.codes[key] = EventCode(key, entry.status_code, entry.data)
        return True

    def get(self, code: CodeKey) -> EventCode | None:
        if not self.enabled:
            return None
        key = code_key(code)
        return self.codes.get(key) if key is not None else None

    def translate(self, code: CodeKey, default: int) -> int:
        entry = self.get(code)
        return entry.status_code if entry is not None else default

    def __len__(self) -> int:
        return len(self.codes)

    def as_dict(self) -> dict[str, object]:
        return {
            "enabled": self.enabled,
            "codes": {
                str(key): {"status_code": entry.status_code, "data": entry.data}
                for key, entry in self.codes.items()
            },
        }
