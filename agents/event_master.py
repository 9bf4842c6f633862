"""
Event Master Agent — Decides when something happens, and what.

Four oracle requests drive the event lifecycle:
  - Trigger decision: should a significant player action spark an event?
  - Event generation: title, narration, effects and up to two new leads.
  - Attack consequences: the event that follows a player attacking an NPC.
  - Resolution: did the player's latest command resolve, progress or not
    touch the event awaiting their action?

The agent only builds prompts and validates results. Applying effects
and moving between phases is the lifecycle's job.
"""

import logging
from typing import Optional

from models.events import ActiveEvent, EventDecision, EventEffects, EventResolutionResult
from models.world import NPCSnapshot, WorldSnapshot
from tools.oracle import OracleClient, OracleResult

logger = logging.getLogger('EventMaster')


EVENT_MASTER_IDENTITY = """You are the Event Master for a text-based adventure game.
You decide when the world reacts to the player, and you write those moments: short,
vivid, and consistent with everything the game already remembers. Never contradict the
game memory you are given. Never invent effects that the situation does not support.
Respond with ONLY valid JSON. No markdown, no explanation."""


DECISION_SCHEMA = """
You must respond with ONLY valid JSON matching this exact schema:
{
  "should_trigger_event": true,
  "event_concept": "short concept of the event" or null,
  "event_intensity": "low|medium|high" or null
}

"event_concept" and "event_intensity" MUST both be set when should_trigger_event is true,
and MUST both be null when it is false.
"""

EFFECTS_SCHEMA = """
You must respond with ONLY valid JSON matching this exact schema (omit or null any effect that does not apply):
{
  "event_title": "Short evocative title",
  "narration": "2-4 sentences describing what happens",
  "combat_narration": "blow-by-blow description if combat occurs" or null,
  "character_effects": {
    "health_change": -10, "energy_change": 5,
    "skill_xp_gains": [{"skill_name": "Athletics", "amount": 10}],
    "status_effect_added": "Poisoned", "status_effect_removed": null
  },
  "item_effects": {
    "items_added_to_inventory": [{"name": "Item", "description": "...", "item_type_guess": "weapon", "rarity": "Common", "visual_prompt_hint": "..."}],
    "items_removed_from_inventory_by_name": [],
    "items_added_to_location": [],
    "items_removed_from_location_by_name": []
  },
  "location_effects": {
    "description_change": "..." ,
    "new_temporary_npc": {"name": "...", "description": "...", "appearance_details": "...", "dialogue_greeting": "...", "rarity": "Common", "visual_prompt_hint": "..."},
    "environment_tag_added": "flooded", "environment_tag_removed": null
  },
  "npc_effects": [{"npc_id_targeted": "npc-id", "health_change": -5, "is_defeated": false, "disposition_change": "Neutral|Friendly|Hostile|Afraid", "dialogue_override": null, "is_hidden_during_event": null}],
  "world_effects": {"time_passes": "an hour", "weather_changes": "rain begins"},
  "major_plot_point_summary": "one sentence for the chronicle, only if this event matters to the story" or null,
  "involved_entity_ids_for_plot_point": [],
  "visual_prompt_hint_for_event_image": "short image description" or null,
  "requires_player_action_to_resolve": false,
  "resolution_criteria_prompt": "what the player must do, if action is required" or null,
  "resolution_npc_disposition_change": {"npc_id": "npc-id", "new_disposition": "Friendly"} or null,
  "resolution_items_awarded_to_player": [],
  "potential_discoveries_generated": [
    {"name": "Proper Name", "type": "item|npc|location", "description_hint": "rumor-like hint", "rarity_hint": "Rare", "source_text_snippet": "phrase from the narration"}
  ]
}

At most 2 potential_discoveries_generated. Only name things that are new and worth seeking.
"""

RESOLUTION_SCHEMA = """
You must respond with ONLY valid JSON matching this exact schema:
{
  "resolved": false,
  "resolution_narration": "what happens because of the player's action",
  "progressed": false,
  "next_stage_narration": "the new state of the event, if it progressed" or null,
  "updated_visual_prompt_hint_for_event_image": null,
  "updated_resolution_criteria_prompt": "what the player must do now, if it progressed" or null,
  "updated_npc_disposition": {"npc_id": "npc-id", "new_disposition": "Friendly|Neutral|Hostile|Afraid"} or null,
  "items_awarded_to_player": [{"name": "Item", "description": "...", "item_type_guess": "misc", "rarity": "Common"}],
  "major_plot_point_summary": "one sentence for the chronicle, only if resolved and significant" or null,
  "potential_discoveries_generated": [
    {"name": "Proper Name", "type": "item|npc|location", "description_hint": "rumor-like hint", "rarity_hint": "Rare", "source_text_snippet": "phrase from the narration"}
  ]
}

"resolved" ends the event. "progressed" means the situation changed but still needs action.
If the action neither resolves nor changes anything, both are false.
At most 2 potential_discoveries_generated, only for new things your narration names as worth seeking.
"""


def _with_guidance(prompt: str, guidance: str) -> str:
    if not guidance:
        return prompt
    return f"{prompt}\n## Game Director Guidance\n{guidance}\n"


class EventMasterAgent:
    """Event decision, generation and resolution, backed by the content oracle.

    Args:
        oracle: The shared OracleClient.
        decision_temperature: Sampling temperature for trigger decisions.
        generation_temperature: Sampling temperature for event content.
    """

    def __init__(self, oracle: OracleClient, decision_temperature: float = 0.5, generation_temperature: float = 0.8):
        self.oracle = oracle
        self.decision_temperature = decision_temperature
        self.generation_temperature = generation_temperature

    async def decide_trigger(self, trigger_context: str, world: WorldSnapshot, context: str) -> OracleResult:
        """Ask whether `trigger_context` should spark an event now."""
        prompt = f"""Decide whether a game event should trigger right now.

{context}

## Trigger
The player's last action produced this trigger context: "{trigger_context}".

Events should be meaningful, not constant. Trigger only when the action and its significance
plausibly provoke a reaction from the world. Favor story continuity with the game memory.
{DECISION_SCHEMA}"""
        return await self.oracle.invoke(
            prompt,
            EventDecision,
            f"decide_trigger ({trigger_context})",
            system_instruction=EVENT_MASTER_IDENTITY,
            temperature=self.decision_temperature,
        )

    async def generate_event(
        self,
        concept: str,
        intensity: str,
        world: WorldSnapshot,
        context: str,
        guidance: str = "",
    ) -> OracleResult:
        """Write the event for a decided concept and intensity."""
        prompt = f"""Generate a game event.

{context}

## Event To Generate
Concept: {concept}
Intensity: {intensity}

Keep the event bounded to this moment and location. Effects must be proportional to the intensity.
Set requires_player_action_to_resolve only if the player must respond before the event can end,
and then give a clear resolution_criteria_prompt. Reference existing NPCs by their IDs.
{EFFECTS_SCHEMA}"""
        return await self.oracle.invoke(
            _with_guidance(prompt, guidance),
            EventEffects,
            f"generate_event ({concept})",
            system_instruction=EVENT_MASTER_IDENTITY,
            temperature=self.generation_temperature,
        )

    async def generate_attack_consequences(
        self,
        target_npc: NPCSnapshot,
        world: WorldSnapshot,
        context: str,
        guidance: str = "",
    ) -> OracleResult:
        """Write the event that follows the player attacking `target_npc`."""
        prompt = f"""The player character just attacked an NPC. Generate the event that follows.

{context}

## Target
{target_npc.name} (ID: {target_npc.id}, Rarity: {target_npc.rarity}, Disposition: {target_npc.disposition}).
{target_npc.description}

Describe the exchange in combat_narration. Put the NPC's health, defeat and disposition in npc_effects
with npc_id_targeted "{target_npc.id}", and the player's injuries in character_effects.
If the fight is not over, set requires_player_action_to_resolve and explain what the player can do.
{EFFECTS_SCHEMA}"""
        return await self.oracle.invoke(
            _with_guidance(prompt, guidance),
            EventEffects,
            f"generate_attack_consequences (Target: {target_npc.id})",
            system_instruction=EVENT_MASTER_IDENTITY,
            temperature=self.generation_temperature,
        )

    async def evaluate_resolution(
        self,
        event: ActiveEvent,
        command_text: str,
        world: WorldSnapshot,
        context: str,
    ) -> OracleResult:
        """Judge whether `command_text` resolves, progresses or leaves `event` unchanged."""
        prompt = f"""An event is awaiting the player's action. Judge the player's latest command against it.

{context}

## Active Event
Title: {event.title}
Current situation: {event.narration}
To resolve: {event.resolution_criteria_prompt or 'Not specified; use judgement.'}

## Player Command
"{command_text}"

Be fair but not generous: vague or unrelated actions do not resolve the event.
{RESOLUTION_SCHEMA}"""
        return await self.oracle.invoke(
            prompt,
            EventResolutionResult,
            f"evaluate_resolution ({event.title})",
            system_instruction=EVENT_MASTER_IDENTITY,
            temperature=self.decision_temperature,
        )
