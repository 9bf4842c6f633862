"""
Tests for the LangGraph turn pipeline: routing while an event awaits
action, the trigger hand-off from the host command handler, and how
node failures are narrated instead of raised.
"""

import asyncio

from agents.game_director import GameDirectorAgent
from conftest import DECIDE_YES, DECLINE, FakeClock, effects_payload, verdict_payload
from models.events import EventPhase
from pipeline.graph import build_turn_pipeline
from pipeline.nodes.router_node import is_mundane_command

ANALYSIS = {"current_game_focus": "ExplorationAdventure"}


class RecordingHandler:
    """Host command handler stand-in. Returns a fixed trigger context."""

    def __init__(self, trigger_context=None, error=None):
        self.trigger_context = trigger_context
        self.error = error
        self.commands = []

    def __call__(self, command, world):
        self.commands.append(command)
        if self.error:
            raise self.error
        return self.trigger_context


class TestIsMundaneCommand:

    def test_first_word_decides(self):
        assert is_mundane_command("inventory")
        assert is_mundane_command("  Look around")
        assert not is_mundane_command("attack the spirit")
        assert not is_mundane_command("")


class TestRouting:

    def test_command_without_trigger(self, make_lifecycle, world):
        async def run():
            lifecycle, session, client = make_lifecycle()
            handler = RecordingHandler()
            pipeline = build_turn_pipeline(session, lifecycle, None, handler)
            result = await pipeline.ainvoke({"command": "go north", "world": world})
            assert result["route"] == "command"
            assert handler.commands == ["go north"]
            assert result.get("outcome") is None
            assert result["director_ran"] is False
            assert client.call_count == 0
        asyncio.run(run())

    def test_trigger_context_goes_to_event_slot(self, make_lifecycle, world):
        async def run():
            lifecycle, session, client = make_lifecycle([DECLINE])
            pipeline = build_turn_pipeline(session, lifecycle, None, RecordingHandler("item_pickup_legendary_crown"))
            result = await pipeline.ainvoke({"command": "take crown", "world": world})
            assert result["trigger_context"] == "item_pickup_legendary_crown"
            assert result["outcome"] == "declined"
            assert client.call_count == 1
        asyncio.run(run())

    def test_async_handler(self, make_lifecycle, world):
        async def run():
            lifecycle, session, _ = make_lifecycle([DECIDE_YES, effects_payload()])

            async def handler(command, world):
                return "npc_defeated_epic_wyrm"

            pipeline = build_turn_pipeline(session, lifecycle, None, handler)
            result = await pipeline.ainvoke({"command": "strike", "world": world})
            assert result["outcome"] == "concluded"
            assert result["narration"] == effects_payload()["narration"]
        asyncio.run(run())

    def test_awaiting_event_takes_the_command(self, make_lifecycle, awaiting_event, world):
        async def run():
            lifecycle, session, _ = make_lifecycle([verdict_payload(progressed=True, next_stage_narration="It flickers.")])
            awaiting_event(session)
            handler = RecordingHandler("item_pickup_legendary_crown")
            pipeline = build_turn_pipeline(session, lifecycle, None, handler)
            result = await pipeline.ainvoke({"command": "wave the lantern", "world": world})
            assert result["route"] == "resolve_event"
            assert result["outcome"] == "progressed"
            assert handler.commands == []
            assert lifecycle.phase == EventPhase.AWAITING_ACTION
        asyncio.run(run())

    def test_mundane_command_bypasses_event(self, make_lifecycle, awaiting_event, world):
        async def run():
            lifecycle, session, client = make_lifecycle()
            awaiting_event(session)
            handler = RecordingHandler("item_pickup_legendary_crown")
            pipeline = build_turn_pipeline(session, lifecycle, None, handler)
            result = await pipeline.ainvoke({"command": "inventory", "world": world})
            assert result["route"] == "command"
            assert handler.commands == ["inventory"]
            assert result["outcome"] == "ignored"  # slot busy, trigger skipped
            assert client.call_count == 0
        asyncio.run(run())


class TestFailures:

    def test_handler_error_is_logged(self, make_lifecycle, world):
        async def run():
            lifecycle, session, _ = make_lifecycle()
            pipeline = build_turn_pipeline(session, lifecycle, None, RecordingHandler(error=KeyError("lantern")))
            result = await pipeline.ainvoke({"command": "light lantern", "world": world})
            assert "lantern" in result["error"]
            assert session.game_log.of_type("error")[-1].text.startswith("Command processing error:")
        asyncio.run(run())

    def test_trigger_oracle_failure_is_narrated(self, make_lifecycle, world):
        async def run():
            lifecycle, session, _ = make_lifecycle([ConnectionError("a"), ConnectionError("b")])
            pipeline = build_turn_pipeline(session, lifecycle, None, RecordingHandler("item_pickup_legendary_crown"))
            result = await pipeline.ainvoke({"command": "take crown", "world": world})
            assert result["outcome"] == "failed"
            assert "oracle is silent" in result["error"]
            assert lifecycle.phase == EventPhase.DORMANT
        asyncio.run(run())

    def test_resolution_failure_keeps_event(self, make_lifecycle, awaiting_event, world):
        async def run():
            lifecycle, session, _ = make_lifecycle(["nope", "still nope"])
            awaiting_event(session)
            pipeline = build_turn_pipeline(session, lifecycle)
            result = await pipeline.ainvoke({"command": "say its name", "world": world})
            assert result["outcome"] == "failed"
            assert "hazy" in session.game_log.of_type("error")[-1].text
            assert lifecycle.awaiting_action
        asyncio.run(run())


class TestDirectorStep:

    def test_resolution_forces_director(self, make_lifecycle, awaiting_event, world):
        async def run():
            lifecycle, session, client = make_lifecycle([verdict_payload(resolved=True), ANALYSIS])
            clock = FakeClock()
            director = GameDirectorAgent(lifecycle.event_master.oracle, command_interval=100, min_interval_seconds=1e9, clock=clock)
            session.director_last_run_at = clock()
            awaiting_event(session)

            pipeline = build_turn_pipeline(session, lifecycle, director)
            result = await pipeline.ainvoke({"command": "say its name", "world": world})
            assert result["outcome"] == "resolved"
            assert result["force_director"] is True
            assert result["director_ran"] is True
            assert session.directive.focus == "ExplorationAdventure"
            assert client.call_count == 2
        asyncio.run(run())

    def test_director_waits_for_cadence(self, make_lifecycle, world):
        async def run():
            lifecycle, session, client = make_lifecycle()
            clock = FakeClock()
            director = GameDirectorAgent(lifecycle.event_master.oracle, command_interval=100, min_interval_seconds=1e9, clock=clock)
            session.director_last_run_at = clock()
            pipeline = build_turn_pipeline(session, lifecycle, director, RecordingHandler())
            result = await pipeline.ainvoke({"command": "go north", "world": world})
            assert result["director_ran"] is False
            assert client.call_count == 0
        asyncio.run(run())
