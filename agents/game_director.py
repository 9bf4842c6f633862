"""
Game Director Agent — Reads the shape of play and nudges the other systems.

Every so often (a command-count threshold plus a minimum wall-clock gap,
or on demand at game start and after an event resolves) the director
classifies what kind of game the player is currently having and issues a
directive: prompt enhancements aimed at specific generation systems plus
a few parameter tweaks. A new directive replaces the old one wholesale;
a failed analysis leaves the old one in force.
"""

import logging
import time
from typing import Callable, Optional, TYPE_CHECKING

from models.director import GAME_FOCUS_TYPES, TARGET_SYSTEMS, DirectorAnalysis, GameDirectorDirective
from models.world import WorldSnapshot
from tools.errors import OracleCallFailed
from tools.oracle import OracleClient

if TYPE_CHECKING:
    from tools.session import NarrativeSession

logger = logging.getLogger('GameDirector')


GAME_DIRECTOR_IDENTITY = """You are the Game Director for a text-based adventure game.
You never speak to the player. You read the game state and recent play, decide what kind of
experience the player is having, and advise the other generation systems on style, tone and
pacing. Prefer smooth transitions over rapid oscillation between focuses.
Respond with ONLY valid JSON. No markdown, no explanation."""


DIRECTOR_SCHEMA = f"""
You must respond with ONLY valid JSON matching this exact schema:
{{
  "current_game_focus": "one of: {', '.join(GAME_FOCUS_TYPES)}",
  "prompt_enhancements": [
    {{
      "target_system": "one of: {', '.join(TARGET_SYSTEMS)}",
      "suggestion": "specific advice for that system's prompts",
      "priority": "low|medium|high" or null
    }}
  ],
  "gameplay_parameter_suggestions": {{
    "focus_on_resource_scarcity": true or null,
    "adjust_energy_decay_rate": "normal|increased|decreased|none" or null,
    "adjust_health_regen_rate": "normal|slowed|none|event_driven" or null,
    "preferred_event_type": "a focus type or balanced" or null,
    "increase_narrative_length_for_scenario": "scenario name" or null,
    "trigger_chance_modifier_for_good_events": 1.0 or null,
    "trigger_chance_modifier_for_bad_events": 1.0 or null,
    "npc_disposition_volatility": "low|medium|high" or null,
    "custom_focus_description": "required when focus is CustomScenario" or null,
    "attention_to_detail_level": "low|medium|high" or null,
    "dialogue_style": "concise|descriptive|action_oriented|introspective" or null,
    "pacing": "fast|medium|slow" or null
  }},
  "reasoning": "one or two sentences" or null
}}
"""


def _focus_message(directive: GameDirectorDirective) -> str:
    message = f"Game Director's Focus: {directive.focus}"
    custom = directive.gameplay_parameter_suggestions.custom_focus_description
    if directive.focus == "CustomScenario" and custom:
        message += f" ({custom[:50]}...)"
    if directive.reasoning:
        message += f" Reasoning: {directive.reasoning[:100]}..."
    return message


class GameDirectorAgent:
    """Narrative focus analysis on a cadence.

    Args:
        oracle: The shared OracleClient.
        command_interval: Player commands between scheduled analyses.
        min_interval_seconds: Minimum seconds between scheduled analyses.
        clock: Time source, replaceable in tests.
    """

    def __init__(
        self,
        oracle: OracleClient,
        command_interval: int = 21,
        min_interval_seconds: float = 360,
        clock: Callable[[], float] = time.time,
    ):
        self.oracle = oracle
        self.command_interval = command_interval
        self.min_interval_seconds = min_interval_seconds
        self.clock = clock

    def should_analyze(self, session: "NarrativeSession", force: bool = False) -> bool:
        """Forced, first-ever, or both thresholds met since the last analysis."""
        if force or session.director_last_run_at is None:
            return True
        commands_since = session.command_count - session.director_last_command_count
        seconds_since = self.clock() - session.director_last_run_at
        return commands_since >= self.command_interval and seconds_since >= self.min_interval_seconds

    async def analyze(self, world: WorldSnapshot, session: "NarrativeSession") -> Optional[GameDirectorDirective]:
        """Run one analysis and install the resulting directive on the session.

        Returns:
            The new directive, or None if the analysis failed (the previous one stays).
        """
        session.game_log.add("system", "The winds of fate shift... (Game Director is contemplating...)")
        context = session.context.build_director_context(
            world, session.event_state.active, session.directive
        )
        prompt = f"""Analyze the current game state and recent player activity, then direct the other systems.

{context}

1. Read the recent log: what is the player actually doing and enjoying?
2. Choose current_game_focus. Use CustomScenario with custom_focus_description for a unique situation,
   NoSpecificFocus if play is generic.
3. Suggest 0-3 prompt_enhancements that guide style, tone and content toward that focus.
4. Suggest only the gameplay parameters relevant to that focus.
Consider the previous focus: shift deliberately, do not oscillate.
{DIRECTOR_SCHEMA}"""

        result = await self.oracle.invoke(
            prompt,
            DirectorAnalysis,
            "game_director_analysis",
            system_instruction=GAME_DIRECTOR_IDENTITY,
            temperature=0.6,
        )

        # The attempt counts toward the cadence whether or not it succeeds
        session.director_last_run_at = self.clock()
        session.director_last_command_count = session.command_count

        try:
            analysis = result.unwrap()
        except OracleCallFailed as e:
            logger.warning(f"Director analysis failed; keeping previous directive: {e}")
            session.game_log.add("error", "Game Director encountered an issue during contemplation.")
            return None

        directive = GameDirectorDirective.from_analysis(analysis, session.command_count)
        session.directive = directive
        session.game_log.add("system", _focus_message(directive))
        logger.info(f"New directive {directive.directive_id}: focus {directive.focus}")
        return directive

    @staticmethod
    def guidance_for(directive: Optional[GameDirectorDirective], target_system: str) -> str:
        """Prompt text carrying the directive's advice for one target system."""
        if directive is None:
            return ""
        lines = [f"Current game focus: {directive.focus}."]
        for pe in directive.enhancements_for(target_system):
            priority = f" (priority: {pe.priority})" if pe.priority else ""
            lines.append(f"- {pe.suggestion}{priority}")
        params = directive.gameplay_parameter_suggestions
        if target_system == "EventGeneration" and params.preferred_event_type:
            lines.append(f"Preferred event type: {params.preferred_event_type}.")
        if params.pacing:
            lines.append(f"Pacing: {params.pacing}.")
        if params.custom_focus_description and directive.focus == "CustomScenario":
            lines.append(f"Scenario: {params.custom_focus_description}")
        return "\n".join(lines)
