"""Bounded in-memory store of browser console events."""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, List, Optional

from .models import ConsoleLogEntry

CONSOLE_TYPES = ("log", "info", "warning", "error", "debug", "exception")

_TYPE_ALIASES = {
    "warn": "warning",
    "pageerror": "exception",
}


def normalize_console_type(raw: Any) -> str:
    """Map a driver console message type onto the store's type set."""
    value = str(raw or "log").strip().lower()
    value = _TYPE_ALIASES.get(value, value)
    return value if value in CONSOLE_TYPES else "log"


class ConsoleLogStore:
    """Keep the most recent console entries, oldest evicted first."""

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max(1, int(max_entries or 1000))
        self._entries: Deque[ConsoleLogEntry] = deque(maxlen=self.max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, entry: ConsoleLogEntry) -> None:
        self._entries.append(entry)

    def record_message(self, type_: Any, text: Any) -> ConsoleLogEntry:
        entry = ConsoleLogEntry(type=normalize_console_type(type_), text=str(text or ""))
        self.record(entry)
        return entry

    def query(
        self,
        type_: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        clear: bool = False,
    ) -> List[ConsoleLogEntry]:
        """
        Return matching entries in arrival order.

        ``type_`` of ``None``/``"all"`` disables the type filter. ``search`` is a
        plain substring match, so brackets and other punctuation are literal.
        ``limit`` keeps the most recent N matches. ``clear`` empties the store
        after the read.
        """
        wanted = str(type_ or "all").strip().lower()
        if wanted != "all":
            wanted = _TYPE_ALIASES.get(wanted, wanted)
        needle = str(search or "")

        items: List[ConsoleLogEntry] = []
        for entry in self._entries:
            if wanted != "all" and entry.type != wanted:
                continue
            if needle and needle not in entry.text:
                continue
            items.append(entry)

        if limit is not None:
            n = max(0, int(limit))
            items = items[-n:] if n else []
        if clear:
            self.clear()
        return items

    def clear(self) -> None:
        self._entries.clear()
