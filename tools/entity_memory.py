"""
EntityMemory — Ground truth of what the player knows exists.

Keyed by entity id, kept in first-encounter order. Records are created on
the first confirmed sighting and may later be enriched, but an entity's
type never changes once stored.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from models.memory import MemorableEntity

logger = logging.getLogger('EntityMemory')


class EntityMemory:
    """In-memory store of MemorableEntity records for one session."""

    def __init__(self):
        self._entities: Dict[str, MemorableEntity] = {}

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def get(self, entity_id: str) -> Optional[MemorableEntity]:
        return self._entities.get(entity_id)

    def all(self) -> List[MemorableEntity]:
        """All entities, oldest first."""
        return list(self._entities.values())

    def add_or_update(
        self,
        entity_id: str,
        name: str,
        entity_type: str,
        rarity: str,
        description_hint: str,
        context: str,
    ) -> Tuple[bool, Optional[MemorableEntity]]:
        """Insert a new entity or enrich an existing one.

        An existing record is only rewritten when the new hint is longer or
        the encounter context differs. A type change is refused.

        Returns:
            (changed, entity) where entity is the stored record, or None if
            the input could not be stored.
        """
        try:
            candidate = MemorableEntity(
                id=entity_id,
                name=name,
                type=entity_type,
                rarity=rarity,
                description_hint=description_hint,
                first_encountered_context=context,
            )
        except ValidationError as e:
            logger.warning(f"Cannot remember entity {entity_id}: {e}")
            return False, None

        existing = self._entities.get(entity_id)
        if existing is None:
            self._entities[entity_id] = candidate
            logger.info(f"New entity remembered: {candidate.name} ({candidate.type}, {entity_id})")
            return True, candidate

        if existing.type != candidate.type:
            logger.warning(
                f"Refusing to change type of {entity_id} from {existing.type} to {candidate.type}"
            )
            return False, existing

        longer_hint = len(candidate.description_hint) > len(existing.description_hint)
        new_context = candidate.first_encountered_context != existing.first_encountered_context
        if not longer_hint and not new_context:
            return False, existing

        updated = existing.model_copy(update={
            "description_hint": candidate.description_hint if longer_hint else existing.description_hint,
            "first_encountered_context": candidate.first_encountered_context,
        })
        self._entities[entity_id] = updated
        return True, updated

    def confirmed_of_type(self, entity_type: str) -> List[MemorableEntity]:
        """Confirmed entities of one type (lore hints are never confirmed)."""
        return [e for e in self._entities.values() if e.type == entity_type and e.type != "lore_hint"]

    def visible_entities(self, hidden_ids: Iterable[str] = ()) -> List[MemorableEntity]:
        """Entities that should appear in prompt context, oldest first."""
        hidden = set(hidden_ids)
        return [e for e in self._entities.values() if not (e.type == "lore_hint" and e.id in hidden)]

    def to_list(self) -> List[dict]:
        return [e.model_dump() for e in self._entities.values()]

    def load(self, records: Iterable[dict]):
        self._entities = {}
        for record in records:
            entity = MemorableEntity.model_validate(record)
            self._entities[entity.id] = entity
