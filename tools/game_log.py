"""
GameLog — Typed, bounded log of what the player sees.

The narrative engine appends `system`, `game_event`, `error`, `combat`
and `narration` lines here; the host renders them. Recent lines are also
fed back into oracle prompts.
"""

import logging
from collections import deque
from typing import Deque, Iterable, List, Optional

from models.world import LogEntry

logger = logging.getLogger('GameLog')


class GameLog:

    def __init__(self, max_entries: int = 200):
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, entry_type: str, text: str, processed_text: Optional[str] = None) -> LogEntry:
        entry = LogEntry(type=entry_type, text=text, processed_text=processed_text)
        self._entries.append(entry)
        logger.debug(f"[{entry.type}] {text[:100]}")
        return entry

    def recent(self, limit: int = 3) -> List[LogEntry]:
        """The last `limit` entries, oldest first."""
        if limit <= 0:
            return []
        return list(self._entries)[-limit:]

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def of_type(self, entry_type: str) -> List[LogEntry]:
        return [e for e in self._entries if e.type == entry_type]

    def to_list(self) -> List[dict]:
        return [e.model_dump() for e in self._entries]

    def load(self, records: Iterable[dict]):
        self._entries.clear()
        for record in records:
            self._entries.append(LogEntry.model_validate(record))
