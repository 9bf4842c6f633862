"""
Shared pytest fixtures for the narrative engine test suite.

No test talks to Gemini: MockGeminiClient plays back canned responses
(or raises queued exceptions) in order and records every request.
Oracle clients built here never sleep between retries.
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from agents.event_master import EventMasterAgent
from agents.lore_keeper import LoreKeeperAgent
from models.events import ActiveEvent, EventEffects, EventPhase, EventState
from models.world import CharacterSnapshot, LocationSnapshot, NPCSnapshot, WorldSnapshot
from pipeline.event_machine import EventLifecycle
from tools.oracle import OracleClient
from tools.session import NarrativeSession


# ---------------------------------------------------------------------------
# Gemini Mock Helpers (reusable classes)
# ---------------------------------------------------------------------------

class MockGeminiResponse:
    """Simulates a Gemini response with .text property."""

    def __init__(self, text: str):
        self.text = text


class MockGeminiClient:
    """Mock Gemini client that returns canned responses in order.

    Each canned response may be a JSON string, a dict/list (serialized for
    you), a pre-built response object, or an exception instance to raise.

    Usage:
        client = MockGeminiClient([{"similar_lead_exists": False}, RuntimeError("boom")])
        resp = await client.aio.models.generate_content(model=..., contents=...)
    """

    def __init__(self, responses=None):
        self._responses = list(responses or [])
        self._call_count = 0
        self.calls = []

    @property
    def aio(self):
        return self

    @property
    def models(self):
        return self

    @property
    def call_count(self) -> int:
        return self._call_count

    def prompt(self, index: int) -> str:
        return self.calls[index]["contents"]

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self._call_count < len(self._responses):
            resp = self._responses[self._call_count]
        else:
            resp = '{"error": "no more canned responses"}'
        self._call_count += 1
        if isinstance(resp, BaseException):
            raise resp
        if isinstance(resp, (dict, list)):
            resp = json.dumps(resp)
        if isinstance(resp, str):
            return MockGeminiResponse(resp)
        # Allow passing pre-built response objects
        return resp


class FakeAPIError(Exception):
    """Stands in for a google-genai APIError: carries an HTTP status `code`."""

    def __init__(self, code: int, message: str = "API error"):
        super().__init__(message)
        self.code = code


class FakeClock:
    """Manually advanced clock for cadence tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_oracle(responses=None):
    client = MockGeminiClient(responses)
    return OracleClient(client, limiter=None, retry_backoff=0), client


# ---------------------------------------------------------------------------
# Canned oracle payloads
# ---------------------------------------------------------------------------

NOT_SIMILAR = {"similar_lead_exists": False}
SIMILAR = {"similar_lead_exists": True}
NO_LINK = {"matched_existing_entity_id": None}
DECLINE = {"should_trigger_event": False, "event_concept": None, "event_intensity": None}
DECIDE_YES = {"should_trigger_event": True, "event_concept": "A drowned bell tolls", "event_intensity": "medium"}


def effects_payload(**overrides) -> dict:
    payload = {
        "event_title": "The Drowned Bell",
        "narration": "A bell rings from beneath the water, slow and heavy.",
        "requires_player_action_to_resolve": False,
    }
    payload.update(overrides)
    return payload


def verdict_payload(**overrides) -> dict:
    payload = {
        "resolved": False,
        "resolution_narration": "You try, but nothing changes.",
        "progressed": False,
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def world():
    """A small scene: one character, one location, two NPCs."""
    return WorldSnapshot(
        character=CharacterSnapshot(name="Aria", concept="a wandering cartographer", skills={"Perception": 3}),
        location=LocationSnapshot(key="0,0", name="Sunken Quay", rarity="Rare", description="Rotting piers over black water."),
        npcs=[
            NPCSnapshot(id="npc-42", name="Archivist Mel", rarity="Epic", disposition="Friendly"),
            NPCSnapshot(id="npc-7", name="Dock Bandit", rarity="Common", disposition="Hostile"),
        ],
    )


@pytest.fixture
def make_session():
    """Factory: (responses) -> (session, oracle, client). The session's lore keeper uses the mock."""
    def _make(responses=None, session_id="test"):
        oracle, client = make_oracle(responses)
        session = NarrativeSession(session_id, LoreKeeperAgent(oracle))
        return session, oracle, client
    return _make


@pytest.fixture
def make_lifecycle(make_session):
    """Factory: (responses) -> (lifecycle, session, client), sharing one mock oracle."""
    def _make(responses=None):
        session, oracle, client = make_session(responses)
        return EventLifecycle(session, EventMasterAgent(oracle)), session, client
    return _make


@pytest.fixture
def awaiting_event():
    """Put a session's event slot into AWAITING_ACTION with a ready-made event."""
    def _install(session, title="The Restless Spirit", criteria="Calm the spirit"):
        effects = EventEffects(
            event_title=title,
            narration="A pale spirit blocks the pier, wailing.",
            requires_player_action_to_resolve=True,
            resolution_criteria_prompt=criteria,
        )
        event = ActiveEvent(
            title=title,
            narration=effects.narration,
            requires_player_action_to_resolve=True,
            resolution_criteria_prompt=criteria,
            effects=effects,
        )
        session.event_state = EventState(phase=EventPhase.AWAITING_ACTION, active=event)
        return event
    return _install


@pytest.fixture
def mock_oracle_limiter():
    """AsyncMock for the rate limiter; acquire() is a no-op."""
    limiter = MagicMock()
    limiter.acquire = AsyncMock(return_value=0.0)
    return limiter
