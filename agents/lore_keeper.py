"""
Lore Keeper Agent — The fuzzy-matching side of the narrative memory.

Never speaks to players. Answers five narrow questions for the Discovery
Ledger and Lead Matcher:
  - Is this new rumor just a rewording of a lead we already track?
  - Does this rumor actually refer to something the player already knows?
  - Which open lead, if any, does this freshly generated entity fulfill?
  - Which named, discoverable things are mentioned in this passage?
  - What one or two leads should a new game start with?

Every method returns a tagged OracleResult; callers decide how to fail.
"""

import logging
from typing import Optional, Sequence

from models.memory import DiscoveryCandidate, GeneratedEntity, MemorableEntity, PotentialDiscovery
from models.oracle_output import (
    ExistingEntityLink,
    InitialLeads,
    LeadFulfillment,
    LoreIdentification,
    SimilarLeadCheck,
)
from models.world import WorldSnapshot
from tools.context_assembler import describe_character, describe_setting
from tools.oracle import OracleClient, OracleResult

logger = logging.getLogger('LoreKeeper')


LORE_KEEPER_IDENTITY = """You are the Lore Keeper for a text-based adventure game.
You NEVER speak to players. You keep the game's memory consistent: you decide whether
rumors are duplicates, whether they point at things already known, and which rumor a
newly generated thing fulfills. Be conservative. A weak or coincidental match is no match.
Respond with ONLY valid JSON. No markdown, no explanation."""


SIMILAR_LEAD_SCHEMA = """
You must respond with ONLY valid JSON matching this exact schema:
{
  "similar_lead_exists": true
}
"""

ENTITY_LINK_SCHEMA = """
You must respond with ONLY valid JSON matching this exact schema:
{
  "matched_existing_entity_id": "entity-id" or null
}
"""

LEAD_MATCH_SCHEMA = """
You must respond with ONLY valid JSON matching this exact schema:
{
  "fulfilled_lead_id": "lead-id" or null,
  "equally_plausible_lead_ids": [],
  "confidence": "low|medium|high"
}

Use "equally_plausible_lead_ids" ONLY when other leads fit exactly as well as your pick.
"""

LORE_IDENTIFICATION_SCHEMA = """
You must respond with ONLY valid JSON matching this exact schema:
{
  "entities": [
    {
      "name": "Proper Name",
      "type": "item|npc|location",
      "description_hint": "3-7 word rumor-like hint",
      "rarity_hint": "Common|Uncommon|Rare|Epic|Legendary|Lore" or null,
      "original_phrase": "exact phrase from the text"
    }
  ],
  "text_with_markup": "the original text with [lore entity_type=\\"TYPE\\" entity_name=\\"NAME\\"]PHRASE[/lore] tags"
}
"""

INITIAL_LEADS_SCHEMA = """
You must respond with ONLY valid JSON matching this exact schema:
{
  "leads": [
    {
      "name": "Proper Name",
      "type": "item|npc|location",
      "description_hint": "5-15 word hint or rumor",
      "rarity_hint": "Common|Uncommon|Rare|Epic|Legendary|Lore" or null,
      "source_text_snippet": "5-15 word in-world phrase explaining how the character knows this"
    }
  ]
}
"""

_SOURCE_DESCRIPTIONS = {
    "dialogue": "This text is dialogue from an NPC (ID: {source_id}).",
    "item_text": "This text is from an item (ID: {source_id}) being read or examined.",
    "contextual_examination": "This text is from the player examining a detail (Source ID: {source_id}) in their surroundings.",
    "event_narration": "This text is narration of an ongoing event (Event: {source_id}).",
    "initial_setup": "This text describes the start of the game ({source_id}).",
}


def _lead_line(lead: PotentialDiscovery) -> str:
    return (
        f"- Lead ID: {lead.id}, Name: \"{lead.name}\", Type: {lead.type}, "
        f"Hint: \"{lead.description_hint}\", Rarity Hint: {lead.rarity_hint or 'N/A'}, "
        f"Status: {lead.status}, Source: {lead.source_type} \"{lead.source_text_snippet[:70]}\""
    )


def _candidate_line(candidate: DiscoveryCandidate) -> str:
    return (
        f"Name: \"{candidate.name}\", Type: {candidate.type}, Hint: \"{candidate.description_hint}\", "
        f"Rarity Hint: {candidate.rarity_hint or 'N/A'}"
    )


class LoreKeeperAgent:
    """Semantic matching for leads and entities, backed by the content oracle.

    Args:
        oracle: The shared OracleClient.
        temperature: Low by default; these are classification calls.
    """

    def __init__(self, oracle: OracleClient, temperature: float = 0.2):
        self.oracle = oracle
        self.temperature = temperature

    async def check_similar_lead(
        self,
        candidate: DiscoveryCandidate,
        existing_leads: Sequence[PotentialDiscovery],
        memory_context: str = "",
    ) -> OracleResult:
        """Ask whether `candidate` rewords any existing lead, whatever its status."""
        existing = "\n".join(_lead_line(lead) for lead in existing_leads) or "No existing leads."
        prompt = f"""Decide whether a new lead (rumor) is semantically a duplicate of an existing lead.

{memory_context or "No broader memory context provided."}

## New Lead
{_candidate_line(candidate)}

## Existing Leads
{existing}

Compare the new lead with each existing lead, regardless of status ('mentioned' or 'discovered'):
1. Semantic name similarity ("Amulet of Kings" vs "The King's Amulet").
2. Description hint overlap.
3. Type must be the same.
Return true only if the new lead is essentially a REWORDING or SLIGHT VARIATION of an existing one.
{SIMILAR_LEAD_SCHEMA}"""
        return await self.oracle.invoke(
            prompt,
            SimilarLeadCheck,
            f"check_similar_lead (New Lead: {candidate.name})",
            system_instruction=LORE_KEEPER_IDENTITY,
            temperature=self.temperature,
        )

    async def link_to_existing_entity(
        self,
        candidate: DiscoveryCandidate,
        known_entities: Sequence[MemorableEntity],
        memory_context: str = "",
        world: Optional[WorldSnapshot] = None,
    ) -> OracleResult:
        """Ask whether `candidate` refers to an entity the player already knows."""
        entities = "\n".join(
            f"- Entity ID: {e.id}, Name: \"{e.name}\", Type: {e.type}, Rarity: {e.rarity}, Hint: \"{e.description_hint}\""
            for e in known_entities
        ) or "No known entities of this type."
        prompt = f"""Decide whether a new lead (rumor) actually refers to an entity ALREADY KNOWN to the player.

{describe_setting(world)}
{describe_character(world)}

{memory_context}

## Potential New Lead
{_candidate_line(candidate)}

## Known Memorable Entities (same type)
{entities}

Consider: strong name similarity ("The Sunken Library" vs "Sunken Library of Eldoria"),
strong alignment of hints and descriptions, contextual plausibility, rarity consistency.
If a very strong, clear match exists, return that entity's ID. If several match, return only the BEST.
If the match is weak or coincidental, return null: the lead is new information.
{ENTITY_LINK_SCHEMA}"""
        return await self.oracle.invoke(
            prompt,
            ExistingEntityLink,
            f"link_to_existing_entity (Lead: {candidate.name})",
            system_instruction=LORE_KEEPER_IDENTITY,
            temperature=self.temperature,
        )

    async def match_entity_to_lead(
        self,
        entity: GeneratedEntity,
        open_leads: Sequence[PotentialDiscovery],
        memory_context: str = "",
        world: Optional[WorldSnapshot] = None,
    ) -> OracleResult:
        """Ask which open lead of the same type `entity` fulfills, with a confidence level."""
        leads = "\n".join(_lead_line(lead) for lead in open_leads)
        detail = f"\nDetail: {entity.detail}" if entity.detail else ""
        prompt = f"""Decide whether a newly generated game entity fulfills one of the player's open leads.

{describe_setting(world)}
{describe_character(world)}

{memory_context}

## Generated {entity.type}
Name: {entity.name}
Rarity: {entity.rarity}
Description: {entity.description or 'N/A'}{detail}

## Unconfirmed Leads of type '{entity.type}'
{leads}

Matching factors: semantic name similarity ("Ancient Sword" vs "The Sword of Ancients"),
alignment of description and hint, contextual plausibility, rarity consistency.
Pick the ONE lead most clearly fulfilled. If nothing is a strong match, fulfilled_lead_id MUST be null
and confidence "low". Never confirm a weak match.
{LEAD_MATCH_SCHEMA}"""
        return await self.oracle.invoke(
            prompt,
            LeadFulfillment,
            f"match_entity_to_lead (Entity: {entity.name}, Type: {entity.type})",
            system_instruction=LORE_KEEPER_IDENTITY,
            temperature=self.temperature,
        )

    async def identify_lore(
        self,
        text: str,
        source_type: str,
        source_entity_id: str,
        memory_context: str = "",
        world: Optional[WorldSnapshot] = None,
    ) -> OracleResult:
        """Find named, discoverable entities in `text` and return it with [lore] markup."""
        source = _SOURCE_DESCRIPTIONS.get(source_type, "Source: {source_id}.").format(source_id=source_entity_id)
        prompt = f"""Identify mentions of potentially new, significant, discoverable entities (items, NPCs, locations) in a passage.
Do not identify generic concepts ("a sword", "a cave", "a merchant") unless they carry a specific proper name
and the context suggests uniqueness ("the Sword of Valoria", "Merchant Vorlag").

{describe_character(world)}
{source}

Game memory (already known or rumored; do not re-identify exact name matches unless the mention adds real detail):
{memory_context}

## Text to Analyze
{text}

For each entity give its canonical name, type, a 3-7 word rumor-like hint and the exact original phrase.
Return the text with each phrase wrapped in [lore entity_type="TYPE" entity_name="NAME"]PHRASE[/lore].
If nothing qualifies, return an empty list and the text unchanged. Quality over quantity.
{LORE_IDENTIFICATION_SCHEMA}"""
        return await self.oracle.invoke(
            prompt,
            LoreIdentification,
            f"identify_lore (Source: {source_type} {source_entity_id})",
            system_instruction=LORE_KEEPER_IDENTITY,
            temperature=self.temperature,
        )

    async def generate_initial_leads(self, world: WorldSnapshot, memory_context: str = "") -> OracleResult:
        """Ask for one or two thematic starting leads for a new game."""
        loc = world.location
        prompt = f"""Craft the initial plot hooks for a new game.

{describe_character(world)}
Starting Location: {loc.name} - {loc.description} (Rarity: {loc.rarity}, Tags: {', '.join(loc.environment_tags) or 'none'}).
{describe_setting(world)}

Memory (avoid duplicating anything already here):
{memory_context}

Generate 1 or 2 actionable leads (rumors, hints, objectives) that fit the character, location and setting.
They can hint at nearby items, notable NPCs or intriguing locations. Rarity should usually be Common to Rare.
An empty list is acceptable only if nothing thematic fits.
{INITIAL_LEADS_SCHEMA}"""
        return await self.oracle.invoke(
            prompt,
            InitialLeads,
            "generate_initial_leads",
            system_instruction=LORE_KEEPER_IDENTITY,
            temperature=0.8,
        )
