"""
DiscoveryLedger — Leads (rumors) and their lifecycle from `mentioned` to `discovered`.

A mention becomes a lead with a deterministic id, so the same narrative
mention can never produce two rows. Before inserting, the lore keeper is
asked whether the mention rewords an existing lead (then nothing is
written) or names something the player already knows (then the lead is
stored pre-confirmed). Otherwise the lead is stored as `mentioned` and
mirrored into Entity Memory as a `lore_hint`.

Oracle failures never reach the caller: registration fails closed to a
plain `mentioned` lead and logs a warning.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from models.memory import DiscoveryCandidate, PotentialDiscovery, RegistrationResult
from models.world import WorldSnapshot
from tools.chronicle import Chronicle
from tools.entity_memory import EntityMemory
from tools.errors import OracleCallFailed

if TYPE_CHECKING:
    from agents.lore_keeper import LoreKeeperAgent

logger = logging.getLogger('DiscoveryLedger')


def make_lead_id(source_entity_id: str, name: str, lead_type: str) -> str:
    """Deterministic lead id from (source, normalized name, type)."""
    normalized = re.sub(r"\s+", "_", name.strip()).lower()
    return f"{source_entity_id}-{normalized}-{lead_type}"


class DiscoveryLedger:
    """Per-session store of PotentialDiscovery leads.

    Args:
        memory: The session's EntityMemory (lore hints are mirrored there).
        chronicle: The session's Chronicle (read for the context digest).
        lore_keeper: LoreKeeperAgent for similarity and entity-link checks.
    """

    CONTEXT_WINDOW = 10

    def __init__(self, memory: EntityMemory, chronicle: Chronicle, lore_keeper: Optional["LoreKeeperAgent"] = None):
        self.memory = memory
        self.chronicle = chronicle
        self.lore_keeper = lore_keeper
        self._leads: Dict[str, PotentialDiscovery] = {}

    def __contains__(self, lead_id: str) -> bool:
        return lead_id in self._leads

    def __len__(self) -> int:
        return len(self._leads)

    def get(self, lead_id: str) -> Optional[PotentialDiscovery]:
        return self._leads.get(lead_id)

    def all(self) -> List[PotentialDiscovery]:
        """All leads, oldest first."""
        return list(self._leads.values())

    def open_leads(self, lead_type: Optional[str] = None) -> List[PotentialDiscovery]:
        """Leads still in `mentioned` status, optionally of one type."""
        return [
            lead for lead in self._leads.values()
            if lead.status == "mentioned" and (lead_type is None or lead.type == lead_type)
        ]

    def discovered_ids(self) -> List[str]:
        return [lead.id for lead in self._leads.values() if lead.status == "discovered"]

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_mention(
        self,
        candidate: DiscoveryCandidate,
        location_key: str,
        world: Optional[WorldSnapshot] = None,
    ) -> RegistrationResult:
        """Register a rumored entity as a lead.

        Args:
            candidate: The mention (name, type, hint and its narrative source).
            location_key: Where the player heard it.
            world: Optional snapshot for richer oracle prompts.

        Returns:
            RegistrationResult with outcome `created`, `preconfirmed` or `duplicate_prevented`.
        """
        lead_id = make_lead_id(candidate.source_entity_id, candidate.name, candidate.type)

        try:
            if await self._is_similar_to_existing(candidate):
                logger.info(f"Similar lead already tracked; skipping '{candidate.name}' ({lead_id})")
                return RegistrationResult(outcome="duplicate_prevented", lead_id=lead_id)
            linked_entity_id = await self._find_existing_entity(candidate, world)
        except OracleCallFailed as e:
            logger.warning(f"Lead checks failed for '{candidate.name}', registering as new: {e}")
            linked_entity_id = None

        if linked_entity_id:
            return self._insert_preconfirmed(candidate, lead_id, location_key, linked_entity_id)
        return self._insert_mentioned(candidate, lead_id, location_key)

    async def _is_similar_to_existing(self, candidate: DiscoveryCandidate) -> bool:
        if not self._leads:
            return False
        if self.lore_keeper is None:
            raise OracleCallFailed("check_similar_lead", "No lore keeper configured.")
        result = await self.lore_keeper.check_similar_lead(
            candidate, self.all(), self.build_context_summary()
        )
        return result.unwrap().similar_lead_exists

    async def _find_existing_entity(self, candidate: DiscoveryCandidate, world: Optional[WorldSnapshot]) -> Optional[str]:
        known = self.memory.confirmed_of_type(candidate.type)
        if not known:
            return None
        if self.lore_keeper is None:
            raise OracleCallFailed("link_to_existing_entity", "No lore keeper configured.")
        result = await self.lore_keeper.link_to_existing_entity(
            candidate, known, self.build_context_summary(), world
        )
        matched = result.unwrap().matched_existing_entity_id
        if matched and matched not in {e.id for e in known}:
            logger.warning(f"Oracle linked '{candidate.name}' to unknown entity {matched}; ignoring")
            return None
        return matched

    def _new_lead(self, candidate: DiscoveryCandidate, lead_id: str, location_key: str, **overrides) -> PotentialDiscovery:
        return PotentialDiscovery(
            id=lead_id,
            name=candidate.name,
            type=candidate.type,
            description_hint=candidate.description_hint,
            rarity_hint=candidate.rarity_hint,
            source_text_snippet=candidate.source_text_snippet,
            source_type=candidate.source_type,
            source_entity_id=candidate.source_entity_id,
            first_mentioned_location_key=location_key,
            **overrides,
        )

    def _insert_preconfirmed(
        self, candidate: DiscoveryCandidate, lead_id: str, location_key: str, entity_id: str
    ) -> RegistrationResult:
        existing = self._leads.get(lead_id)
        if existing is not None:
            if existing.status == "mentioned":
                self.mark_fulfilled(lead_id, entity_id)
                return RegistrationResult(outcome="preconfirmed", lead_id=lead_id, lead=self._leads[lead_id])
            return RegistrationResult(outcome="duplicate_prevented", lead_id=lead_id)

        lead = self._new_lead(candidate, lead_id, location_key, status="discovered", fulfilled_by_id=entity_id)
        self._leads[lead_id] = lead
        logger.info(f"Lead '{lead.name}' refers to known entity {entity_id}; stored as discovered")
        return RegistrationResult(outcome="preconfirmed", lead_id=lead_id, lead=lead)

    def _insert_mentioned(self, candidate: DiscoveryCandidate, lead_id: str, location_key: str) -> RegistrationResult:
        if lead_id in self._leads:
            logger.info(f"Lead {lead_id} already registered; not creating a second row")
            return RegistrationResult(outcome="duplicate_prevented", lead_id=lead_id)

        lead = self._new_lead(candidate, lead_id, location_key)
        self._leads[lead_id] = lead
        _, hint = self.memory.add_or_update(
            lead_id,
            lead.name,
            "lore_hint",
            lead.rarity_hint or "Lore",
            lead.description_hint,
            f"Mentioned in {lead.source_type} (ID: {lead.source_entity_id}) at {location_key}",
        )
        logger.info(f"New lead: '{lead.name}' ({lead.type}) from {lead.source_type} {lead.source_entity_id}")
        return RegistrationResult(outcome="created", lead_id=lead_id, lead=lead, lore_hint=hint)

    async def register_mentions_from_text(
        self,
        text: str,
        source_type: str,
        source_entity_id: str,
        location_key: str,
        world: Optional[WorldSnapshot] = None,
    ) -> Tuple[str, List[RegistrationResult]]:
        """Find lore mentions in a passage and register each one.

        Returns:
            (processed_text, results). processed_text carries [lore] markup,
            or is the raw text if identification failed.
        """
        if not text or not text.strip():
            return text, []
        if self.lore_keeper is None:
            logger.warning("No lore keeper configured; skipping lore identification.")
            return text, []

        result = await self.lore_keeper.identify_lore(
            text, source_type, source_entity_id, self.build_context_summary(), world
        )
        try:
            identified = result.unwrap()
        except OracleCallFailed as e:
            logger.warning(f"Lore identification failed for {source_type} {source_entity_id}: {e}")
            return text, []

        results = []
        for entity in identified.entities:
            candidate = DiscoveryCandidate(
                name=entity.name,
                type=entity.type,
                description_hint=entity.description_hint,
                rarity_hint=entity.rarity_hint,
                source_text_snippet=entity.original_phrase,
                source_type=source_type,
                source_entity_id=source_entity_id,
            )
            results.append(await self.register_mention(candidate, location_key, world))
        return identified.text_with_markup, results

    async def seed_initial_leads(self, world: WorldSnapshot, location_key: Optional[str] = None) -> List[RegistrationResult]:
        """Ask for 1-2 starting leads and register them. Fails closed to no leads."""
        if self.lore_keeper is None:
            return []
        result = await self.lore_keeper.generate_initial_leads(world, self.build_context_summary())
        try:
            initial = result.unwrap()
        except OracleCallFailed as e:
            logger.warning(f"Initial lead generation failed: {e}")
            return []

        results = []
        for lead in initial.leads:
            candidate = DiscoveryCandidate(
                name=lead.name,
                type=lead.type,
                description_hint=lead.description_hint,
                rarity_hint=lead.rarity_hint,
                source_text_snippet=lead.source_text_snippet,
                source_type="initial_setup",
                source_entity_id=f"GameStart-{world.character.name}",
            )
            results.append(await self.register_mention(candidate, location_key or world.location.key, world))
        return results

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------

    def mark_fulfilled(self, lead_id: str, entity_id: str) -> bool:
        """Move a lead from `mentioned` to `discovered`.

        Returns:
            True if the lead changed state. False if it was unknown or already discovered.
        """
        lead = self._leads.get(lead_id)
        if lead is None:
            logger.warning(f"Cannot fulfill unknown lead {lead_id}")
            return False
        if lead.status == "discovered":
            return False
        self._leads[lead_id] = lead.model_copy(update={"status": "discovered", "fulfilled_by_id": entity_id})
        logger.info(f"Lead '{lead.name}' fulfilled by {entity_id}")
        return True

    # ------------------------------------------------------------------
    # Context digest
    # ------------------------------------------------------------------

    def build_context_summary(self) -> str:
        """Bounded memory digest for every generation prompt.

        Three sections in fixed order (known entities, plot points, open
        leads), each newest first and capped at CONTEXT_WINDOW. Lore hints
        whose lead is already discovered are left out.
        """
        window = self.CONTEXT_WINDOW
        entities = list(reversed(self.memory.visible_entities(self.discovered_ids())))[:window]
        plot_points = self.chronicle.recent(window)
        leads = list(reversed(self.open_leads()))[:window]

        lines = ["## Game Memory", "Known Entities (most recent first):"]
        if entities:
            for e in entities:
                label = "rumored" if e.type == "lore_hint" else e.type
                lines.append(f"- {e.name} ({label}, {e.rarity}): {e.description_hint}")
        else:
            lines.append("- None yet.")

        lines.append("Major Plot Points (most recent first):")
        if plot_points:
            for p in plot_points:
                where = f" [at {p.location_name}]" if p.location_name else ""
                lines.append(f"- {p.summary}{where}")
        else:
            lines.append("- None yet.")

        lines.append("Unconfirmed Leads (most recent first):")
        if leads:
            for lead in leads:
                lines.append(
                    f"- \"{lead.name}\" ({lead.type}): {lead.description_hint} "
                    f"(heard via {lead.source_type})"
                )
        else:
            lines.append("- None yet.")

        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_list(self) -> List[dict]:
        return [lead.model_dump() for lead in self._leads.values()]

    def load(self, records: Iterable[dict]):
        self._leads = {}
        for record in records:
            lead = PotentialDiscovery.model_validate(record)
            self._leads[lead.id] = lead
