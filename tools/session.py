"""
NarrativeSession — Everything one game session remembers, in one place.

Owns the four stores (Entity Memory, Discovery Ledger, Chronicle, event
state) plus the game log, matcher, current director directive and the
turn lock that serializes mutating calls. The lock is reentrant within
one turn, so a host command handler can call back into the engine for
the same session while its command is being processed.

Nothing here is process-wide: a server hosting several games keeps one
session per key in a SessionRegistry.
"""

import asyncio
import contextvars
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, Optional, TYPE_CHECKING

from models.director import GameDirectorDirective
from models.events import EventState
from tools.chronicle import Chronicle
from tools.context_assembler import ContextAssembler
from tools.discovery_ledger import DiscoveryLedger
from tools.entity_memory import EntityMemory
from tools.game_log import GameLog
from tools.lead_matcher import LeadMatcher

if TYPE_CHECKING:
    from agents.lore_keeper import LoreKeeperAgent

logger = logging.getLogger('NarrativeSession')

CHECKPOINT_VERSION = 1

# Session ids whose turn the current task (and its child tasks) already holds
_held_turns: contextvars.ContextVar[frozenset] = contextvars.ContextVar("held_turns", default=frozenset())


class NarrativeSession:
    """Per-session context object passed by handle into every component.

    Args:
        session_id: Key of this game session.
        lore_keeper: Shared LoreKeeperAgent used by the ledger and matcher.
    """

    def __init__(self, session_id: str, lore_keeper: Optional["LoreKeeperAgent"] = None):
        self.session_id = session_id
        self.memory = EntityMemory()
        self.chronicle = Chronicle()
        self.game_log = GameLog()
        self.ledger = DiscoveryLedger(self.memory, self.chronicle, lore_keeper)
        self.matcher = LeadMatcher(self.ledger, self.memory, self.game_log, lore_keeper)
        self.context = ContextAssembler(self.ledger, self.game_log)

        self.event_state = EventState()
        self.directive: Optional[GameDirectorDirective] = None
        self.command_count = 0
        self.director_last_command_count = 0
        self.director_last_run_at: Optional[float] = None

        self.turn_lock = asyncio.Lock()

    @asynccontextmanager
    async def turn(self):
        """Hold this session's turn lock.

        Nested use from inside a turn that already holds it (for example a
        host command handler recording a generated entity) passes straight
        through instead of waiting on itself.
        """
        held = _held_turns.get()
        if self.session_id in held:
            yield
            return
        async with self.turn_lock:
            token = _held_turns.set(held | {self.session_id})
            try:
                yield
            finally:
                _held_turns.reset(token)

    def record_command(self, command: str):
        """Count a player command and echo it to the log."""
        self.command_count += 1
        self.game_log.add("command", f"> {command}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "version": CHECKPOINT_VERSION,
            "session_id": self.session_id,
            "entities": self.memory.to_list(),
            "leads": self.ledger.to_list(),
            "plot_points": self.chronicle.to_list(),
            "event_state": self.event_state.model_dump(mode="json"),
            "game_log": self.game_log.to_list(),
            "recorded_entities": self.matcher.to_dict(),
            "directive": self.directive.model_dump() if self.directive else None,
            "command_count": self.command_count,
            "director_last_command_count": self.director_last_command_count,
            "director_last_run_at": self.director_last_run_at,
        }

    def load_dict(self, data: dict):
        self.memory.load(data.get("entities", []))
        self.ledger.load(data.get("leads", []))
        self.chronicle.load(data.get("plot_points", []))
        self.game_log.load(data.get("game_log", []))
        self.matcher.load(data.get("recorded_entities", {}))
        self.event_state = EventState.model_validate(data.get("event_state") or {})
        directive = data.get("directive")
        self.directive = GameDirectorDirective.model_validate(directive) if directive else None
        self.command_count = data.get("command_count", 0)
        self.director_last_command_count = data.get("director_last_command_count", 0)
        self.director_last_run_at = data.get("director_last_run_at")

    def save_checkpoint(self, filepath: str) -> bool:
        """Write all session stores to a JSON checkpoint file."""
        try:
            directory = os.path.dirname(filepath)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
            logger.info(f"Saved session {self.session_id} to {filepath}")
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save session {self.session_id}: {e}")
            return False

    def load_checkpoint(self, filepath: str) -> bool:
        """Restore session stores from a JSON checkpoint file, if one exists."""
        if not os.path.exists(filepath):
            logger.info(f"No session checkpoint found at {filepath}")
            return False
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self.load_dict(data)
            logger.info(
                f"Restored session {self.session_id}: {len(self.memory)} entities, "
                f"{len(self.ledger)} leads, {len(self.chronicle)} plot points"
            )
            return True
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load session {self.session_id}: {e}")
            return False


class SessionRegistry:
    """Shards NarrativeSessions by session key."""

    def __init__(self, lore_keeper: Optional["LoreKeeperAgent"] = None, checkpoint_dir: Optional[str] = None):
        self.lore_keeper = lore_keeper
        self.checkpoint_dir = checkpoint_dir
        self._sessions: Dict[str, NarrativeSession] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def checkpoint_path(self, session_id: str) -> Optional[str]:
        if not self.checkpoint_dir:
            return None
        return os.path.join(self.checkpoint_dir, f"{session_id}.json")

    def get_or_create(self, session_id: str) -> NarrativeSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = NarrativeSession(session_id, self.lore_keeper)
            path = self.checkpoint_path(session_id)
            if path:
                session.load_checkpoint(path)
            self._sessions[session_id] = session
            logger.info(f"Session {session_id} opened ({len(self._sessions)} active)")
        return session

    def save(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        path = self.checkpoint_path(session_id)
        if session is None or path is None:
            return False
        return session.save_checkpoint(path)

    def drop(self, session_id: str) -> Optional[NarrativeSession]:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info(f"Session {session_id} closed")
        return session
