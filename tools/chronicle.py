"""
Chronicle — Bounded log of major plot points.

Only the most recent 20 entries are kept. An entry is rejected when one
of the last three already has the same summary (case and whitespace
insensitive) and the same set of involved entities.
"""

import logging
from collections import deque
from typing import Deque, Iterable, List, Optional

from models.memory import MajorPlotPoint

logger = logging.getLogger('Chronicle')


def _normalize_summary(summary: str) -> str:
    return " ".join(summary.split()).lower()


def _entity_key(ids: Optional[Iterable[str]]) -> List[str]:
    return sorted(set(ids or []))


class Chronicle:

    MAX_ENTRIES = 20
    DEDUPE_WINDOW = 3

    def __init__(self, max_entries: int = MAX_ENTRIES):
        self._points: Deque[MajorPlotPoint] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._points)

    def add(
        self,
        summary: str,
        involved_entity_ids: Optional[List[str]] = None,
        location_name: Optional[str] = None,
    ) -> Optional[MajorPlotPoint]:
        """Append a plot point unless it is blank or a near-duplicate.

        Returns:
            The stored MajorPlotPoint, or None if it was rejected.
        """
        if not summary or not summary.strip():
            return None

        point = MajorPlotPoint(
            summary=summary,
            involved_entity_ids=list(involved_entity_ids) if involved_entity_ids else None,
            location_name=location_name,
        )

        normalized = _normalize_summary(point.summary)
        ids = _entity_key(point.involved_entity_ids)
        for recent in list(self._points)[-self.DEDUPE_WINDOW:]:
            if _normalize_summary(recent.summary) == normalized and _entity_key(recent.involved_entity_ids) == ids:
                logger.info(f"Skipping near-duplicate plot point: {point.summary[:60]}")
                return None

        self._points.append(point)
        logger.info(f"Plot point recorded: {point.summary[:80]}")
        return point

    def recent(self, limit: int = 10) -> List[MajorPlotPoint]:
        """Most recent plot points, newest first."""
        return list(reversed(self._points))[:limit]

    def all(self) -> List[MajorPlotPoint]:
        """All retained plot points, oldest first."""
        return list(self._points)

    def to_list(self) -> List[dict]:
        return [p.model_dump() for p in self._points]

    def load(self, records: Iterable[dict]):
        self._points.clear()
        for record in records:
            self._points.append(MajorPlotPoint.model_validate(record))
