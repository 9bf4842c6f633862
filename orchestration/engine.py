"""
NarrativeEngine — The facade the host game talks to.

Wires one OracleClient into the three agents, keeps a SessionRegistry,
and builds an EventLifecycle and turn pipeline per session. Every call
that mutates a session runs under that session's turn lock, so one
turn's effects are fully applied before the next turn reads them as
context. The host command handler may call back into the facade for the
session whose command it is handling; those calls join the running turn.
"""

import logging
import re
import time
from typing import Callable, Dict, List, Optional, Tuple

from agents.event_master import EventMasterAgent
from agents.game_director import GameDirectorAgent
from agents.lore_keeper import LoreKeeperAgent
from models.memory import GeneratedEntity, RegistrationResult
from models.world import WorldSnapshot
from pipeline.event_machine import EventLifecycle, EventOutcome
from pipeline.graph import build_turn_pipeline
from tools.errors import OracleCallFailed
from tools.oracle import OracleClient, describe_failure
from tools.rate_limiter import oracle_limiter
from tools.session import NarrativeSession, SessionRegistry

logger = logging.getLogger('NarrativeEngine')


class NarrativeEngine:
    """Session-sharded entry point for the narrative consistency engine.

    Args:
        gemini_client: A `genai.Client`, or None to run with the oracle unavailable.
        model_id: Gemini model for every oracle call.
        command_handler: Host command interpreter `(command, world) -> Optional[trigger_context]`.
        limiter: RateLimiter awaited before each oracle request.
        retry_backoff: Seconds per attempt number between oracle retries.
        director_command_interval: Commands between scheduled director analyses.
        director_min_seconds: Minimum seconds between scheduled director analyses.
        checkpoint_dir: If set, sessions are restored from and saved to JSON files here.
        clock: Time source for the director cadence.
    """

    def __init__(
        self,
        gemini_client=None,
        model_id: str = "gemini-2.0-flash",
        command_handler: Optional[Callable] = None,
        limiter=oracle_limiter,
        retry_backoff: float = 1.0,
        director_command_interval: int = 21,
        director_min_seconds: float = 360,
        checkpoint_dir: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.oracle = OracleClient(
            gemini_client, model_id=model_id, limiter=limiter, retry_backoff=retry_backoff
        )
        self.lore_keeper = LoreKeeperAgent(self.oracle)
        self.event_master = EventMasterAgent(self.oracle)
        self.director = GameDirectorAgent(
            self.oracle,
            command_interval=director_command_interval,
            min_interval_seconds=director_min_seconds,
            clock=clock,
        )
        self.command_handler = command_handler
        self.registry = SessionRegistry(self.lore_keeper, checkpoint_dir)
        self._lifecycles: Dict[str, EventLifecycle] = {}
        self._pipelines: Dict[str, object] = {}

        if not self.oracle.available:
            logger.warning("No Gemini client configured; generation-dependent features will narrate failures.")

    # ------------------------------------------------------------------
    # Per-session wiring
    # ------------------------------------------------------------------

    def session(self, session_id: str) -> NarrativeSession:
        return self.registry.get_or_create(session_id)

    def lifecycle(self, session_id: str) -> EventLifecycle:
        lifecycle = self._lifecycles.get(session_id)
        if lifecycle is None:
            lifecycle = EventLifecycle(self.session(session_id), self.event_master)
            self._lifecycles[session_id] = lifecycle
        return lifecycle

    def _pipeline(self, session_id: str):
        pipeline = self._pipelines.get(session_id)
        if pipeline is None:
            pipeline = build_turn_pipeline(
                self.session(session_id),
                self.lifecycle(session_id),
                self.director,
                self.command_handler,
            )
            self._pipelines[session_id] = pipeline
        return pipeline

    def close_session(self, session_id: str):
        self.registry.save(session_id)
        self.registry.drop(session_id)
        self._lifecycles.pop(session_id, None)
        self._pipelines.pop(session_id, None)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def process_command(self, session_id: str, command: str, world: WorldSnapshot) -> dict:
        """Run one player command through the turn pipeline.

        Returns:
            The final TurnState (route, outcome, narration, error...).
        """
        session = self.session(session_id)
        pipeline = self._pipeline(session_id)
        async with session.turn():
            session.record_command(command)
            result = await pipeline.ainvoke({"command": command, "world": world})
            self.registry.save(session_id)
        return result

    async def start_game(self, session_id: str, world: WorldSnapshot) -> EventOutcome:
        """Seed the opening leads, run the first director analysis and offer a game-start event."""
        session = self.session(session_id)
        lifecycle = self.lifecycle(session_id)
        async with session.turn():
            await session.ledger.seed_initial_leads(world)
            await self.director.analyze(world, session)
            location = re.sub(r"\s+", "_", world.location.name)
            outcome = await self._trigger(session, lifecycle, f"game_start_in_{location}_{world.location.rarity}", world)
            self.registry.save(session_id)
        return outcome

    async def trigger_event(self, session_id: str, trigger_context: str, world: WorldSnapshot) -> EventOutcome:
        """Offer a trigger context to the event slot. A busy slot ignores it."""
        session = self.session(session_id)
        lifecycle = self.lifecycle(session_id)
        async with session.turn():
            outcome = await self._trigger(session, lifecycle, trigger_context, world)
            self.registry.save(session_id)
        return outcome

    async def _trigger(self, session, lifecycle, trigger_context, world) -> EventOutcome:
        if not lifecycle.can_trigger:
            logger.info(f"Event slot busy; ignoring trigger '{trigger_context}'")
            return EventOutcome("ignored")
        try:
            return await lifecycle.attempt_trigger(trigger_context, world, session.directive)
        except OracleCallFailed as e:
            session.game_log.add("error", describe_failure(e))
            return EventOutcome("failed")

    async def player_action_event(self, session_id: str, target_npc_id: str, world: WorldSnapshot) -> EventOutcome:
        """The player attacks an NPC: generate the consequences as an event."""
        session = self.session(session_id)
        lifecycle = self.lifecycle(session_id)
        async with session.turn():
            if not lifecycle.can_trigger:
                session.game_log.add("system", "Cannot initiate major actions now due to an ongoing event.")
                return EventOutcome("ignored")
            try:
                outcome = await lifecycle.begin_player_action_event(target_npc_id, world, session.directive)
            except OracleCallFailed as e:
                session.game_log.add("error", describe_failure(e))
                outcome = EventOutcome("failed")
            self.registry.save(session_id)
        return outcome

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    async def ingest_text(
        self,
        session_id: str,
        text: str,
        source_type: str,
        source_entity_id: str,
        world: WorldSnapshot,
    ) -> Tuple[str, List[RegistrationResult]]:
        """Register the lore mentioned in dialogue, item text or examination results.

        Returns:
            The text with [lore] markup (or unchanged) and the registration results.
        """
        session = self.session(session_id)
        async with session.turn():
            processed, results = await session.ledger.register_mentions_from_text(
                text, source_type, source_entity_id, world.location.key, world
            )
            self.registry.save(session_id)
        return processed, results

    async def seed_initial_leads(self, session_id: str, world: WorldSnapshot) -> List[RegistrationResult]:
        session = self.session(session_id)
        async with session.turn():
            results = await session.ledger.seed_initial_leads(world)
            self.registry.save(session_id)
        return results

    async def record_generated_entity(
        self,
        session_id: str,
        entity: GeneratedEntity,
        context: str,
        world: Optional[WorldSnapshot] = None,
    ) -> Optional[str]:
        """Remember a host-generated item, NPC or location and fulfill its lead, if any."""
        session = self.session(session_id)
        async with session.turn():
            lead_id = await session.matcher.record_generated_entity(entity, entity.type, context, world)
            self.registry.save(session_id)
        return lead_id

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def context_summary(self, session_id: str) -> str:
        return self.session(session_id).ledger.build_context_summary()

    def active_event(self, session_id: str) -> Optional[dict]:
        event = self.session(session_id).event_state.active
        return event.display_payload() if event else None
