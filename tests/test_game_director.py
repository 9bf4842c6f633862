"""
Tests for GameDirectorAgent: the analysis cadence, directive replacement
and the guidance text handed to other systems.
"""

import asyncio

from agents.game_director import GameDirectorAgent
from conftest import FakeClock
from models.director import GameDirectorDirective, GameplayParameterSuggestions, PromptEnhancement


ANALYSIS = {
    "current_game_focus": "SurvivalHorror",
    "prompt_enhancements": [
        {"target_system": "EventGeneration", "suggestion": "Let the fog hide things.", "priority": "high"},
        {"target_system": "NPCInteraction", "suggestion": "Villagers are terse.", "priority": None},
    ],
    "gameplay_parameter_suggestions": {
        "focus_on_resource_scarcity": True,
        "pacing": "Slow",
        "preferred_event_type": "SurvivalHorror",
        "dialogue_style": "shouty",
        "some_unknown_knob": 3,
    },
    "reasoning": "The player keeps hiding and rationing supplies.",
}


def _director(oracle, clock, interval=5, seconds=60):
    return GameDirectorAgent(oracle, command_interval=interval, min_interval_seconds=seconds, clock=clock)


class TestShouldAnalyze:

    def test_first_run_always(self, make_session):
        session, oracle, _ = make_session()
        assert _director(oracle, FakeClock()).should_analyze(session)

    def test_both_thresholds_required(self, make_session):
        session, oracle, _ = make_session()
        clock = FakeClock()
        director = _director(oracle, clock)
        session.director_last_run_at = clock()
        session.director_last_command_count = 0

        session.command_count = 5
        assert not director.should_analyze(session)  # commands met, time not
        session.command_count = 2
        clock.advance(120)
        assert not director.should_analyze(session)  # time met, commands not
        session.command_count = 5
        assert director.should_analyze(session)

    def test_force(self, make_session):
        session, oracle, _ = make_session()
        clock = FakeClock()
        session.director_last_run_at = clock()
        assert _director(oracle, clock).should_analyze(session, force=True)


class TestAnalyze:

    def test_installs_directive(self, make_session, world):
        async def run():
            session, oracle, client = make_session([ANALYSIS])
            clock = FakeClock()
            session.command_count = 7
            directive = await _director(oracle, clock).analyze(world, session)

            assert directive is session.directive
            assert directive.focus == "SurvivalHorror"
            assert directive.analyzed_command_count == 7
            params = directive.gameplay_parameter_suggestions
            assert params.pacing == "slow"
            assert params.dialogue_style is None
            assert session.director_last_run_at == clock()
            assert session.director_last_command_count == 7

            texts = [e.text for e in session.game_log.entries()]
            assert texts[0] == "The winds of fate shift... (Game Director is contemplating...)"
            assert texts[1].startswith("Game Director's Focus: SurvivalHorror Reasoning:")
            assert "## Recent Log" in client.prompt(0)
        asyncio.run(run())

    def test_new_directive_replaces_old(self, make_session, world):
        async def run():
            second = dict(ANALYSIS, current_game_focus="DetectiveMystery", prompt_enhancements=[])
            session, oracle, client = make_session([ANALYSIS, second])
            director = _director(oracle, FakeClock())
            first = await director.analyze(world, session)
            replacement = await director.analyze(world, session)
            assert session.directive is replacement
            assert replacement.directive_id != first.directive_id
            assert replacement.prompt_enhancements == []
            assert "Previous Game Director Focus: SurvivalHorror" in client.prompt(1)
        asyncio.run(run())

    def test_failure_keeps_previous_directive(self, make_session, world):
        async def run():
            bad = dict(ANALYSIS, current_game_focus="Jazz")
            session, oracle, _ = make_session([ANALYSIS, bad, bad])
            clock = FakeClock()
            director = _director(oracle, clock)
            previous = await director.analyze(world, session)

            clock.advance(500)
            session.command_count = 30
            assert await director.analyze(world, session) is None
            assert session.directive is previous
            assert session.director_last_run_at == clock()
            assert session.director_last_command_count == 30
            assert session.game_log.entries()[-1].text == "Game Director encountered an issue during contemplation."
        asyncio.run(run())

    def test_custom_scenario_message(self, make_session, world):
        async def run():
            custom = {
                "current_game_focus": "CustomScenario",
                "gameplay_parameter_suggestions": {"custom_focus_description": "A storm-bound siege of the lighthouse"},
            }
            session, oracle, _ = make_session([custom])
            await _director(oracle, FakeClock()).analyze(world, session)
            assert "(A storm-bound siege of the lighthouse" in session.game_log.entries()[-1].text
        asyncio.run(run())


class TestGuidanceFor:

    def _directive(self):
        return GameDirectorDirective(
            focus="SurvivalHorror",
            prompt_enhancements=[
                PromptEnhancement(target_system="EventGeneration", suggestion="Let the fog hide things.", priority="high"),
                PromptEnhancement(target_system="CombatResolution", suggestion="Wounds linger."),
            ],
            gameplay_parameter_suggestions=GameplayParameterSuggestions(
                preferred_event_type="SurvivalHorror", pacing="slow"
            ),
        )

    def test_no_directive(self):
        assert GameDirectorAgent.guidance_for(None, "EventGeneration") == ""

    def test_event_generation(self):
        text = GameDirectorAgent.guidance_for(self._directive(), "EventGeneration")
        assert "Current game focus: SurvivalHorror." in text
        assert "- Let the fog hide things. (priority: high)" in text
        assert "Wounds linger." not in text
        assert "Preferred event type: SurvivalHorror." in text
        assert "Pacing: slow." in text

    def test_other_system_skips_event_type(self):
        text = GameDirectorAgent.guidance_for(self._directive(), "CombatResolution")
        assert "- Wounds linger." in text
        assert "Preferred event type" not in text
