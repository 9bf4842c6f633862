"""
Tests for NarrativeSession checkpoints, the SessionRegistry and the
NarrativeEngine facade.
"""

import asyncio
import json
import os

from conftest import DECIDE_YES, MockGeminiClient, effects_payload
from models.events import EventPhase
from models.memory import DiscoveryCandidate, GeneratedEntity
from orchestration.engine import NarrativeEngine
from tools.session import NarrativeSession, SessionRegistry

ANALYSIS = {"current_game_focus": "ExplorationAdventure", "reasoning": "Lots of wandering."}


def _engine(responses, **kwargs):
    client = MockGeminiClient(responses)
    engine = NarrativeEngine(client, limiter=None, retry_backoff=0, **kwargs)
    return engine, client


class TestCheckpoint:

    def test_round_trip(self, tmp_path, awaiting_event):
        async def run():
            session = NarrativeSession("s1")
            session.memory.add_or_update("npc-42", "Archivist Mel", "npc", "Epic", "Keeper of maps", "Met on the quay")
            await session.ledger.register_mention(
                DiscoveryCandidate(name="Drowned Chapel", type="location", description_hint="Under the tide",
                                   source_entity_id="npc-42"),
                "0,0",
            )
            session.chronicle.add("The bell rang.", ["Aria"])
            session.record_command("look")
            awaiting_event(session)

            path = str(tmp_path / "s1.json")
            assert session.save_checkpoint(path) is True

            restored = NarrativeSession("s1")
            assert restored.load_checkpoint(path) is True
            assert len(restored.memory) == 2
            assert restored.ledger.get("npc-42-drowned_chapel-location").status == "mentioned"
            assert restored.chronicle.all()[0].summary == "The bell rang."
            assert restored.event_state.phase == EventPhase.AWAITING_ACTION
            assert restored.event_state.active.title == "The Restless Spirit"
            assert restored.command_count == 1
            assert restored.game_log.entries()[0].text == "> look"
        asyncio.run(run())

    def test_missing_file(self, tmp_path):
        assert NarrativeSession("s1").load_checkpoint(str(tmp_path / "absent.json")) is False

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        session = NarrativeSession("s1")
        assert session.load_checkpoint(str(path)) is False
        assert len(session.memory) == 0

    def test_invalid_records(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"entities": [{"id": "x", "name": "X", "type": "weather"}]}), encoding="utf-8")
        assert NarrativeSession("s1").load_checkpoint(str(path)) is False


class TestSessionRegistry:

    def test_sessions_are_isolated(self):
        registry = SessionRegistry()
        a = registry.get_or_create("a")
        b = registry.get_or_create("b")
        assert registry.get_or_create("a") is a
        assert a is not b
        a.memory.add_or_update("npc-1", "Mel", "npc", "Common", "", "")
        assert len(b.memory) == 0
        assert len(registry) == 2

    def test_save_and_reopen(self, tmp_path):
        registry = SessionRegistry(checkpoint_dir=str(tmp_path))
        registry.get_or_create("game-1").chronicle.add("A door opened.")
        assert registry.save("game-1") is True
        assert os.path.exists(tmp_path / "game-1.json")

        registry.drop("game-1")
        assert "game-1" not in registry
        assert len(registry.get_or_create("game-1").chronicle) == 1

    def test_save_without_dir(self):
        registry = SessionRegistry()
        registry.get_or_create("a")
        assert registry.save("a") is False


class TestNarrativeEngine:

    def test_process_command_counts_and_runs_director(self, world):
        async def run():
            engine, client = _engine([ANALYSIS])
            result = await engine.process_command("g1", "look around", world)
            session = engine.session("g1")
            assert result["route"] == "command"
            assert result["director_ran"] is True
            assert session.command_count == 1
            assert session.directive.focus == "ExplorationAdventure"

            await engine.process_command("g1", "go north", world)
            assert client.call_count == 1  # cadence not yet due
            assert session.command_count == 2
        asyncio.run(run())

    def test_start_game(self, world):
        async def run():
            engine, client = _engine([
                {"leads": [{"name": "Gull Queen", "type": "npc", "description_hint": "Rules the harbor birds",
                            "source_text_snippet": "Sailors whisper of her"}]},
                ANALYSIS,
                DECIDE_YES,
                effects_payload(),
            ])
            outcome = await engine.start_game("g1", world)
            assert outcome.outcome == "concluded"
            assert "game_start_in_Sunken_Quay_Rare" in client.prompt(2)
            session = engine.session("g1")
            assert len(session.ledger) == 1
            assert session.directive is not None
        asyncio.run(run())

    def test_trigger_while_busy_is_ignored(self, world):
        async def run():
            engine, client = _engine([DECIDE_YES, effects_payload(requires_player_action_to_resolve=True)])
            first = await engine.trigger_event("g1", "item_pickup_legendary_crown", world)
            assert first.outcome == "active"
            second = await engine.trigger_event("g1", "item_pickup_legendary_crown", world)
            assert second.outcome == "ignored"
            assert client.call_count == 2
            assert engine.active_event("g1")["title"] == "The Drowned Bell"

            attack = await engine.player_action_event("g1", "npc-7", world)
            assert attack.outcome == "ignored"
        asyncio.run(run())

    def test_without_client_failures_are_narrated(self, world):
        async def run():
            engine = NarrativeEngine(None, limiter=None, retry_backoff=0)
            outcome = await engine.trigger_event("g1", "item_pickup_legendary_crown", world)
            assert outcome.outcome == "failed"
            session = engine.session("g1")
            assert "oracle is silent" in session.game_log.of_type("error")[-1].text
            assert engine.lifecycle("g1").can_trigger
        asyncio.run(run())

    def test_ingest_and_record_entity(self, world):
        async def run():
            engine, _ = _engine([
                {"entities": [{"name": "Drowned Chapel", "type": "location", "description_hint": "Chapel under the tide",
                               "original_phrase": "the drowned chapel"}],
                 "text_with_markup": "Seek [lore]the drowned chapel[/lore]."},
                {"fulfilled_lead_id": "npc-42-drowned_chapel-location", "confidence": "high"},
            ])
            text, results = await engine.ingest_text("g1", "Seek the drowned chapel.", "dialogue", "npc-42", world)
            assert results[0].outcome == "created"
            assert "[lore]" in text

            chapel = GeneratedEntity(id="loc-9", name="Chapel of the Drowned Saint", type="location")
            lead_id = await engine.record_generated_entity("g1", chapel, "Arrived by boat", world)
            assert lead_id == "npc-42-drowned_chapel-location"
            assert "Drowned Chapel" not in engine.context_summary("g1").split("Unconfirmed Leads")[1]
        asyncio.run(run())

    def test_sessions_checkpoint_after_each_turn(self, tmp_path, world):
        async def run():
            engine, _ = _engine([{"leads": []}], checkpoint_dir=str(tmp_path))
            await engine.seed_initial_leads("g1", world)
            engine.close_session("g1")
            assert os.path.exists(tmp_path / "g1.json")
            assert "g1" not in engine.registry
        asyncio.run(run())

    def test_command_handler_can_call_back_into_engine(self, world):
        async def run():
            engine, client = _engine([
                {"entities": [{"name": "Drowned Chapel", "type": "location", "description_hint": "Chapel under the tide",
                               "original_phrase": "the drowned chapel"}],
                 "text_with_markup": "The ferryman mutters about [lore]the drowned chapel[/lore]."},
                {"fulfilled_lead_id": "npc-42-drowned_chapel-location", "confidence": "high"},
                ANALYSIS,
            ])
            seen = {}

            async def handler(command, world):
                text, _ = await engine.ingest_text(
                    "g1", "The ferryman mutters about the drowned chapel.", "dialogue", "npc-42", world
                )
                seen["text"] = text
                chapel = GeneratedEntity(id="loc-9", name="Chapel of the Drowned Saint", type="location")
                seen["lead"] = await engine.record_generated_entity("g1", chapel, "Rowed out at low tide", world)
                return None

            engine.command_handler = handler
            result = await asyncio.wait_for(engine.process_command("g1", "row to the chapel", world), timeout=5)

            assert result["route"] == "command"
            assert "[lore]" in seen["text"]
            assert seen["lead"] == "npc-42-drowned_chapel-location"
            session = engine.session("g1")
            assert session.ledger.get("npc-42-drowned_chapel-location").status == "discovered"
            assert client.call_count == 3
            assert not session.turn_lock.locked()
        asyncio.run(run())

    def test_nested_turn_passes_through_but_other_callers_wait(self):
        async def run():
            session = NarrativeSession("a")
            entered = asyncio.Event()
            release = asyncio.Event()

            async def holder():
                async with session.turn():
                    async with session.turn():
                        entered.set()
                        await release.wait()

            async def other():
                async with session.turn():
                    return "ran"

            held = asyncio.ensure_future(holder())
            await entered.wait()
            waiter = asyncio.ensure_future(other())
            await asyncio.sleep(0)
            assert not waiter.done()

            release.set()
            await held
            assert await waiter == "ran"
            assert not session.turn_lock.locked()
        asyncio.run(run())
