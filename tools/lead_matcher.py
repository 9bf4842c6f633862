"""
LeadMatcher — Connects freshly generated entities to the leads that foretold them.

Called right after the world produces a new item, NPC or location. The
entity is remembered, compared against open leads of the same type, and
if the lore keeper is confident, the best lead is marked fulfilled and a
single discovery line is logged. Each entity id is processed once.
"""

import logging
from typing import Dict, List, Optional, Sequence, TYPE_CHECKING

from models.memory import GeneratedEntity, PotentialDiscovery
from models.world import WorldSnapshot
from tools.entity_memory import EntityMemory
from tools.errors import OracleCallFailed
from tools.game_log import GameLog

if TYPE_CHECKING:
    from agents.lore_keeper import LoreKeeperAgent
    from tools.discovery_ledger import DiscoveryLedger

logger = logging.getLogger('LeadMatcher')

_UNSET = object()


def pick_lead(candidates: Sequence[PotentialDiscovery], named_ids: List[str]) -> Optional[PotentialDiscovery]:
    """Deterministic choice among equally plausible leads.

    Earliest first mention wins, then the smallest id.
    """
    by_id = {lead.id: lead for lead in candidates}
    valid = [by_id[lead_id] for lead_id in dict.fromkeys(named_ids) if lead_id in by_id]
    if not valid:
        return None
    return min(valid, key=lambda lead: (lead.first_mentioned_timestamp, lead.id))


class LeadMatcher:
    """Matches generated entities to open leads and records the discovery.

    Args:
        ledger: The session's DiscoveryLedger.
        memory: The session's EntityMemory.
        game_log: Where the discovery line is written.
        lore_keeper: LoreKeeperAgent that judges the match.
    """

    def __init__(
        self,
        ledger: "DiscoveryLedger",
        memory: EntityMemory,
        game_log: GameLog,
        lore_keeper: Optional["LoreKeeperAgent"] = None,
    ):
        self.ledger = ledger
        self.memory = memory
        self.game_log = game_log
        self.lore_keeper = lore_keeper
        self._recorded: Dict[str, Optional[str]] = {}

    async def match_to_lead(
        self,
        entity: GeneratedEntity,
        entity_type: Optional[str] = None,
        open_leads: Optional[Sequence[PotentialDiscovery]] = None,
        world: Optional[WorldSnapshot] = None,
    ) -> Optional[str]:
        """Return the id of the open lead `entity` fulfills, or None.

        No oracle call is made when there are no candidate leads. Low
        confidence and ids outside the candidate set count as no match,
        and so does an oracle failure.
        """
        try:
            return await self._judge(entity, entity_type, open_leads, world)
        except OracleCallFailed as e:
            logger.warning(f"Lead matching failed for '{entity.name}', treating as unmatched: {e}")
            return None

    async def _judge(
        self,
        entity: GeneratedEntity,
        entity_type: Optional[str],
        open_leads: Optional[Sequence[PotentialDiscovery]],
        world: Optional[WorldSnapshot],
    ) -> Optional[str]:
        """Like match_to_lead, but an oracle failure raises OracleCallFailed."""
        entity_type = entity_type or entity.type
        pool = open_leads if open_leads is not None else self.ledger.open_leads()
        candidates = [lead for lead in pool if lead.type == entity_type and lead.status == "mentioned"]
        if not candidates:
            return None
        if self.lore_keeper is None:
            logger.warning("No lore keeper configured; cannot match leads.")
            return None

        result = await self.lore_keeper.match_entity_to_lead(
            entity, candidates, self.ledger.build_context_summary(), world
        )
        verdict = result.unwrap()

        if verdict.fulfilled_lead_id is None or verdict.confidence == "low":
            return None

        chosen = pick_lead(candidates, [verdict.fulfilled_lead_id] + verdict.equally_plausible_lead_ids)
        if chosen is None:
            logger.warning(f"Oracle named unknown lead {verdict.fulfilled_lead_id} for '{entity.name}'")
            return None
        return chosen.id

    async def record_generated_entity(
        self,
        entity: GeneratedEntity,
        entity_type: Optional[str] = None,
        context: str = "",
        world: Optional[WorldSnapshot] = None,
    ) -> Optional[str]:
        """Remember a generated entity and fulfill the lead it matches.

        Idempotent per entity id once the lore keeper has given a verdict:
        a repeat call returns the first result without calling the oracle
        or logging again. After an oracle failure nothing is cached, so a
        later call for the same entity asks again.

        Returns:
            The fulfilled lead id, or None.
        """
        previous = self._recorded.get(entity.id, _UNSET)
        if previous is not _UNSET:
            return previous

        entity_type = entity_type or entity.type
        self.memory.add_or_update(
            entity.id, entity.name, entity_type, entity.rarity, entity.description, context
        )

        try:
            lead_id = await self._judge(entity, entity_type, None, world)
        except OracleCallFailed as e:
            logger.warning(f"Lead matching failed for '{entity.name}'; will retry on the next record: {e}")
            return None
        self._recorded[entity.id] = lead_id
        if lead_id is None:
            return None

        if self.ledger.mark_fulfilled(lead_id, entity.id):
            lead = self.ledger.get(lead_id)
            self.game_log.add(
                "game_event",
                f"Discovery! You found the {entity_type} '{entity.name}', "
                f"the one hinted at as \"{lead.name}\".",
            )
        return lead_id

    def to_dict(self) -> Dict[str, Optional[str]]:
        return dict(self._recorded)

    def load(self, records: Dict[str, Optional[str]]):
        self._recorded = dict(records)
