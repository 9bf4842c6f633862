"""
EventLifecycle — The single event slot and the only code allowed to move it.

Phases:
    DORMANT -> DECIDING -> GENERATING -> AWAITING_ACTION -> RESOLVED -> DORMANT

A declined or mundane event goes from DECIDING or GENERATING straight
back to DORMANT. A self-contained event skips AWAITING_ACTION.

Every phase change goes through `_transition`, which rejects anything not
in the table. That is what keeps at most one event alive per session:
a second trigger while the slot is busy is a caller bug and raises
EventInvariantError.

Oracle failures during deciding or generating put the slot back to
DORMANT; during a resolution attempt the event keeps waiting. In both
cases OracleCallFailed propagates so the turn can narrate it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, TYPE_CHECKING

from agents.game_director import GameDirectorAgent
from models.director import GameDirectorDirective
from models.events import (
    ActiveEvent,
    EventDecision,
    EventEffects,
    EventPhase,
    GeneratedItem,
    has_content,
)
from models.memory import DiscoveryCandidate, GeneratedEntity
from models.world import WorldSnapshot
from tools.errors import EventInvariantError, OracleCallFailed

if TYPE_CHECKING:
    from agents.event_master import EventMasterAgent
    from tools.session import NarrativeSession

logger = logging.getLogger('EventLifecycle')


MUNDANE_TITLES = (
    "a fleeting sensation",
    "the moment passes",
    "all remains calm",
    "nothing noteworthy",
    "nothing unusual",
)

NOTHING_HAPPENS = "The feeling passes. Nothing significant seems to happen."

_TRANSITIONS = {
    EventPhase.DORMANT: {EventPhase.DECIDING, EventPhase.GENERATING},
    EventPhase.DECIDING: {EventPhase.DORMANT, EventPhase.GENERATING},
    EventPhase.GENERATING: {EventPhase.DORMANT, EventPhase.AWAITING_ACTION, EventPhase.RESOLVED},
    EventPhase.AWAITING_ACTION: {EventPhase.RESOLVED},
    EventPhase.RESOLVED: {EventPhase.DORMANT},
}


def is_significant(trigger_context: str) -> bool:
    """Only epic/legendary actions and system-driven contexts may spark an event."""
    lowered = trigger_context.lower()
    if "_epic_" in lowered or "_legendary_" in lowered:
        return True
    return lowered.startswith("event_") or lowered.startswith("game_start")


def is_mundane(effects: EventEffects) -> bool:
    """A mundane title or narration with nothing else attached."""
    text = f"{effects.event_title}\n{effects.narration}".lower()
    if not any(phrase in text for phrase in MUNDANE_TITLES):
        return False
    return not (
        effects.has_effects()
        or effects.major_plot_point_summary
        or effects.potential_discoveries_generated
        or effects.requires_player_action_to_resolve
    )


@dataclass
class EventOutcome:
    """What `attempt_trigger` or `begin_player_action_event` did.

    outcome is one of: ignored, declined, discarded_mundane, active, concluded.
    The lifecycle raises on oracle failure instead; the engine facade reports
    that as outcome "failed".
    """
    outcome: str
    event: Optional[ActiveEvent] = None
    decision: Optional[EventDecision] = None
    lead_ids: List[str] = field(default_factory=list)


@dataclass
class ResolutionOutcome:
    """What `resolve_attempt` did. outcome is one of: resolved, progressed, unchanged."""
    outcome: str
    narration: str
    event: Optional[ActiveEvent] = None
    lead_ids: List[str] = field(default_factory=list)


class EventLifecycle:
    """Drives the session's event slot through its phases.

    Args:
        session: The NarrativeSession whose event_state this machine owns.
        event_master: EventMasterAgent for decisions, generation and resolution.
    """

    def __init__(self, session: "NarrativeSession", event_master: "EventMasterAgent"):
        self.session = session
        self.event_master = event_master

    @property
    def phase(self) -> EventPhase:
        return self.session.event_state.phase

    @property
    def active_event(self) -> Optional[ActiveEvent]:
        return self.session.event_state.active

    @property
    def can_trigger(self) -> bool:
        return self.phase == EventPhase.DORMANT

    @property
    def awaiting_action(self) -> bool:
        return self.phase == EventPhase.AWAITING_ACTION

    def _transition(self, target: EventPhase):
        current = self.phase
        if target not in _TRANSITIONS[current]:
            raise EventInvariantError(f"Illegal event transition {current.value} -> {target.value}")
        self.session.event_state.phase = target
        logger.info(f"[{self.session.session_id}] Event phase {current.value} -> {target.value}")

    def _reset(self):
        """Return to DORMANT from any pre-activation phase, dropping the slot."""
        self.session.event_state.phase = EventPhase.DORMANT
        self.session.event_state.active = None

    def _finish(self):
        self._transition(EventPhase.RESOLVED)
        self._transition(EventPhase.DORMANT)
        self.session.event_state.active = None

    # ------------------------------------------------------------------
    # Triggered events
    # ------------------------------------------------------------------

    async def attempt_trigger(
        self,
        trigger_context: str,
        world: WorldSnapshot,
        directive: Optional[GameDirectorDirective] = None,
    ) -> EventOutcome:
        """Try to spark an event from a significant player action.

        Raises:
            EventInvariantError: If an event is already in progress.
            OracleCallFailed: If the decision or generation oracle failed. The slot is DORMANT again.
        """
        if not self.can_trigger:
            raise EventInvariantError(
                f"Cannot trigger '{trigger_context}': event slot is {self.phase.value}"
            )
        if not is_significant(trigger_context):
            logger.debug(f"Trigger context '{trigger_context}' is not significant; ignoring")
            return EventOutcome("ignored")

        log = self.session.game_log
        directive = directive if directive is not None else self.session.directive
        context = self.session.context.build_event_context(world)

        self._transition(EventPhase.DECIDING)
        log.add("system", "You feel a change in the air...")
        try:
            decision = (await self.event_master.decide_trigger(trigger_context, world, context)).unwrap()
            if not decision.should_trigger_event:
                self._transition(EventPhase.DORMANT)
                log.add("system", NOTHING_HAPPENS)
                return EventOutcome("declined", decision=decision)

            self._transition(EventPhase.GENERATING)
            guidance = self._event_guidance(directive, decision.event_concept)
            effects = (await self.event_master.generate_event(
                decision.event_concept, decision.event_intensity, world, context, guidance
            )).unwrap()
        except OracleCallFailed:
            self._reset()
            raise

        if is_mundane(effects):
            logger.info(f"Discarding mundane event '{effects.event_title}'")
            self._transition(EventPhase.DORMANT)
            log.add("system", NOTHING_HAPPENS)
            return EventOutcome("discarded_mundane", decision=decision)

        event = self._activate(effects, "triggered")
        log.add("game_event", f"EVENT: {effects.event_title}")
        self._log_narration(effects)
        lead_ids = await self._apply_effects(effects, world)
        event.generated_lead_ids = lead_ids

        if effects.requires_player_action_to_resolve:
            self._await_action(effects, "This event requires your attention.")
            return EventOutcome("active", event=event, decision=decision, lead_ids=lead_ids)

        summary = f"Event Occurred: \"{effects.event_title}\". {effects.narration}"
        if effects.major_plot_point_summary:
            summary += f" Lore/Plot: {effects.major_plot_point_summary}"
        involved = [world.character.name] + effects.involved_entity_ids_for_plot_point
        self.session.chronicle.add(summary, list(dict.fromkeys(involved)), world.location.name)
        self._finish()
        return EventOutcome("concluded", event=event, decision=decision, lead_ids=lead_ids)

    def _event_guidance(self, directive: Optional[GameDirectorDirective], concept: str) -> str:
        if directive is None:
            return ""
        lines = [GameDirectorAgent.guidance_for(directive, "EventGeneration")]
        params = directive.gameplay_parameter_suggestions
        if directive.focus == concept or params.increase_narrative_length_for_scenario == concept:
            lines.append(
                "This event matches the current game focus or a scenario requiring longer narration. "
                "Provide a more detailed and immersive event narration."
            )
        if params.preferred_event_type and params.preferred_event_type == concept:
            lines.append(f"This event type ({concept}) is currently preferred.")
        return "\n".join(line for line in lines if line)

    # ------------------------------------------------------------------
    # Player-initiated events
    # ------------------------------------------------------------------

    async def begin_player_action_event(
        self,
        target_npc_id: str,
        world: WorldSnapshot,
        directive: Optional[GameDirectorDirective] = None,
    ) -> EventOutcome:
        """Generate the consequences of the player attacking an NPC.

        Raises:
            EventInvariantError: If an event is already in progress.
            OracleCallFailed: If generation failed. The slot is DORMANT again.
        """
        if not self.can_trigger:
            raise EventInvariantError(
                f"Cannot start player action against {target_npc_id}: event slot is {self.phase.value}"
            )
        log = self.session.game_log
        target = world.npc(target_npc_id)
        if target is None:
            log.add("error", "There is no one like that here to confront.")
            return EventOutcome("ignored")

        directive = directive if directive is not None else self.session.directive
        guidance = ""
        if directive is not None:
            guidance = GameDirectorAgent.guidance_for(directive, "CombatResolution")
            if directive.focus == "HighStakesCombat":
                guidance += "\nThis is a high stakes combat scenario. Emphasize danger and impactful outcomes."

        context = self.session.context.build_event_context(world)
        self._transition(EventPhase.GENERATING)
        try:
            effects = (await self.event_master.generate_attack_consequences(
                target, world, context, guidance
            )).unwrap()
        except OracleCallFailed:
            self._reset()
            raise

        event = self._activate(effects, "player_action", target_npc_id=target_npc_id)
        log.add("game_event", f"PLAYER ACTION EVENT: {effects.event_title}")
        self._log_narration(effects)
        lead_ids = await self._apply_effects(effects, world)
        event.generated_lead_ids = lead_ids

        target_effect = next((e for e in effects.npc_effects if e.npc_id_targeted == target_npc_id), None)
        target_defeated = bool(target_effect and target_effect.is_defeated)
        player_defeated = self._player_defeated(effects, world)

        if effects.requires_player_action_to_resolve and not (target_defeated or player_defeated):
            self._await_action(effects, "The situation remains tense and requires further action.")
            return EventOutcome("active", event=event, lead_ids=lead_ids)

        if target_defeated or player_defeated:
            log.add("system", "The confrontation has reached a conclusion.")
        else:
            log.add("system", "The immediate consequences of your action have played out.")
        summary = f"Action Outcome: \"{effects.event_title}\". Final Result: {effects.narration}"
        if effects.major_plot_point_summary:
            summary += f" Context/Lore: {effects.major_plot_point_summary}"
        involved = [world.character.name] + effects.involved_entity_ids_for_plot_point
        if target_effect:
            involved.append(target_npc_id)
        self.session.chronicle.add(summary, list(dict.fromkeys(involved)), world.location.name)
        self._finish()
        return EventOutcome("concluded", event=event, lead_ids=lead_ids)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve_attempt(self, command_text: str, world: WorldSnapshot) -> ResolutionOutcome:
        """Judge a player command against the event awaiting their action.

        Raises:
            EventInvariantError: If no event is awaiting action.
            OracleCallFailed: If the verdict could not be obtained. The event keeps waiting.
        """
        if not self.awaiting_action or self.active_event is None:
            raise EventInvariantError(f"No event awaiting action (slot is {self.phase.value})")

        event = self.active_event
        context = self.session.context.build_event_context(world)
        verdict = (await self.event_master.evaluate_resolution(event, command_text, world, context)).unwrap()

        log = self.session.game_log
        log.add("narration", verdict.resolution_narration)
        lead_ids = await self._register_leads(verdict.potential_discoveries_generated, event.title, world)
        if lead_ids:
            event = event.model_copy(update={"generated_lead_ids": event.generated_lead_ids + lead_ids})
            self.session.event_state.active = event

        if verdict.outcome == "resolved":
            log.add("game_event", f"Event \"{event.title}\" has been resolved!")
            change = verdict.updated_npc_disposition or event.effects.resolution_npc_disposition_change
            if change is not None:
                npc = world.npc(change.npc_id)
                name = npc.name if npc else change.npc_id
                log.add("system", f"{name}'s disposition is now {change.new_disposition}.")
            awards = verdict.items_awarded_to_player or event.effects.resolution_items_awarded_to_player
            for item in awards:
                log.add("game_event", f"You received: {item.name} ({item.rarity}).")
                await self._record_item(item, f"Awarded for resolving \"{event.title}\"", world)
            if verdict.major_plot_point_summary:
                self.session.chronicle.add(
                    verdict.major_plot_point_summary,
                    [world.character.name, event.title],
                    world.location.name,
                )
            self._finish()
            return ResolutionOutcome("resolved", verdict.resolution_narration, event, lead_ids)

        if verdict.outcome == "progressed":
            log.add("game_event", f"Event \"{event.title}\" has progressed!")
            updated = event.model_copy(update={
                "narration": verdict.next_stage_narration or event.narration,
                "resolution_criteria_prompt": verdict.updated_resolution_criteria_prompt or event.resolution_criteria_prompt,
                "visual_hint": verdict.updated_visual_prompt_hint_for_event_image or event.visual_hint,
            })
            self.session.event_state.active = updated
            if verdict.next_stage_narration:
                log.add("narration", verdict.next_stage_narration)
            return ResolutionOutcome("progressed", verdict.resolution_narration, updated, lead_ids)

        log.add("system", "Your action didn't seem to change the course of the event.")
        return ResolutionOutcome("unchanged", verdict.resolution_narration, event, lead_ids)

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def _activate(self, effects: EventEffects, origin: str, target_npc_id: Optional[str] = None) -> ActiveEvent:
        event = ActiveEvent(
            title=effects.event_title,
            narration=effects.narration,
            requires_player_action_to_resolve=effects.requires_player_action_to_resolve,
            resolution_criteria_prompt=effects.resolution_criteria_prompt,
            visual_hint=effects.visual_prompt_hint_for_event_image,
            plot_point_summary=effects.major_plot_point_summary,
            origin=origin,
            target_npc_id=target_npc_id,
            effects=effects,
        )
        self.session.event_state.active = event
        return event

    def _await_action(self, effects: EventEffects, message: str):
        self._transition(EventPhase.AWAITING_ACTION)
        log = self.session.game_log
        log.add("system", message)
        if effects.resolution_criteria_prompt:
            log.add("system", f"Hint: {effects.resolution_criteria_prompt}")

    def _log_narration(self, effects: EventEffects):
        log = self.session.game_log
        log.add("narration", effects.narration)
        if effects.combat_narration:
            log.add("combat", effects.combat_narration)

    @staticmethod
    def _player_defeated(effects: EventEffects, world: WorldSnapshot) -> bool:
        if world.character.is_defeated:
            return True
        change = effects.character_effects.health_change if effects.character_effects else None
        return bool(change) and world.character.health + change <= 0

    async def _record_item(self, item: GeneratedItem, context: str, world: WorldSnapshot) -> Optional[str]:
        entity = GeneratedEntity(
            name=item.name,
            type="item",
            rarity=item.rarity,
            description=item.description,
            detail=item.item_type_guess,
        )
        return await self.session.matcher.record_generated_entity(entity, "item", context, world)

    async def _apply_effects(self, effects: EventEffects, world: WorldSnapshot) -> List[str]:
        """Apply everything an event changes, in a fixed order.

        Generated entities first (memory and lead matching), then narrated
        character, location, NPC and world effects, then the plot point,
        then newly rumored leads.

        Returns:
            Ids of the leads this event registered.
        """
        log = self.session.game_log
        location = world.location

        items = effects.item_effects
        if items is not None:
            for item in items.items_added_to_inventory:
                log.add("game_event", f"You acquired: {item.name} ({item.rarity}).")
                await self._record_item(item, "Acquired from event", world)
            for item in items.items_added_to_location:
                log.add("game_event", f"{item.name} ({item.rarity}) appeared in the area!")
                await self._record_item(item, f"Appeared in {location.name} from event", world)
            for name in items.items_removed_from_inventory_by_name:
                log.add("game_event", f"You lost: {name}.")
            for name in items.items_removed_from_location_by_name:
                log.add("game_event", f"{name} vanished from the area.")

        loc_effects = effects.location_effects
        if loc_effects is not None and loc_effects.new_temporary_npc is not None:
            npc = loc_effects.new_temporary_npc
            log.add("game_event", f"{npc.name} ({npc.rarity}) appears due to the event!")
            entity = GeneratedEntity(
                name=npc.name,
                type="npc",
                rarity=npc.rarity,
                description=npc.description,
                detail=npc.appearance_details or None,
            )
            await self.session.matcher.record_generated_entity(
                entity, "npc", f"Appeared in {location.name} during event", world
            )

        self._narrate_character_effects(effects, world)

        if loc_effects is not None:
            if loc_effects.description_change:
                log.add("narration", f"The area changes: {loc_effects.description_change}")
            if loc_effects.environment_tag_added:
                log.add("system", f"Area environment is now also: {loc_effects.environment_tag_added}")
            if loc_effects.environment_tag_removed:
                log.add("system", f"Area environment is no longer: {loc_effects.environment_tag_removed}")

        for npc_effect in effects.npc_effects:
            npc = world.npc(npc_effect.npc_id_targeted)
            if npc is None:
                logger.warning(f"Event targets unknown NPC {npc_effect.npc_id_targeted}; skipping")
                continue
            if npc_effect.health_change:
                log.add("combat", f"{npc.name}'s health changes by {npc_effect.health_change}.")
            if npc_effect.is_defeated is not None:
                state = "defeated" if npc_effect.is_defeated else "no longer defeated"
                log.add("combat", f"{npc.name} is now {state}.")
            if npc_effect.disposition_change:
                log.add("system", f"{npc.name}'s disposition towards you is now {npc_effect.disposition_change}.")
            if npc_effect.dialogue_override:
                log.add("narration", f"{npc.name} exclaims: \"{npc_effect.dialogue_override}\"")
            if npc_effect.is_hidden_during_event is not None:
                state = "hidden by the event" if npc_effect.is_hidden_during_event else "no longer hidden"
                log.add("system", f"{npc.name} is now {state}.")

        if has_content(effects.world_effects):
            if effects.world_effects.time_passes:
                log.add("system", f"Time passes: {effects.world_effects.time_passes}")
            if effects.world_effects.weather_changes:
                log.add("system", f"The weather changes: {effects.world_effects.weather_changes}")

        if effects.major_plot_point_summary:
            self.session.chronicle.add(
                effects.major_plot_point_summary,
                effects.involved_entity_ids_for_plot_point,
                location.name,
            )

        return await self._register_leads(effects.potential_discoveries_generated, effects.event_title, world)

    async def _register_leads(
        self,
        candidates: List[DiscoveryCandidate],
        event_title: str,
        world: WorldSnapshot,
    ) -> List[str]:
        """Register leads an event's narration rumored, sourced to the event title."""
        lead_ids = []
        for candidate in candidates:
            mention = candidate.model_copy(update={
                "source_type": "event_narration",
                "source_entity_id": event_title,
            })
            result = await self.session.ledger.register_mention(mention, world.location.key, world)
            if result.outcome != "duplicate_prevented":
                lead_ids.append(result.lead_id)
        return lead_ids

    def _narrate_character_effects(self, effects: EventEffects, world: WorldSnapshot):
        char_effects = effects.character_effects
        if char_effects is None:
            return
        log = self.session.game_log
        character = world.character
        if char_effects.health_change:
            health = max(0, min(character.max_health, character.health + char_effects.health_change))
            log.add("game_event", f"Your overall health changes by {char_effects.health_change}. Now: {health}HP.")
            if health <= 0 and not character.is_defeated:
                log.add("game_event", "The effects are overwhelming. You have been defeated.")
        if char_effects.energy_change:
            energy = max(0, min(character.max_energy, character.energy + char_effects.energy_change))
            log.add("game_event", f"Your energy changes by {char_effects.energy_change}. Now: {energy}EN.")
        for gain in char_effects.skill_xp_gains:
            log.add("game_event", f"You gained {gain.amount} XP in {gain.skill_name}.")
        if char_effects.status_effect_added:
            log.add("game_event", f"You are now affected by: {char_effects.status_effect_added}.")
        if char_effects.status_effect_removed:
            log.add("game_event", f"You are no longer affected by: {char_effects.status_effect_removed}.")
