"""
World snapshot — The read-only slice of game state the narrative engine
consumes: the player character, where they stand, what they carry and
who is around them.

The engine never mutates these; the host game rebuilds a snapshot
before each turn.
"""

import time
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


LOG_ENTRY_TYPES = ("command", "system", "game_event", "error", "combat", "narration")


class CharacterSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    concept: str = ""
    rarity: str = "Character_Self"
    health: int = 100
    max_health: int = 100
    energy: int = 100
    max_energy: int = 100
    skills: Dict[str, int] = Field(default_factory=dict)
    visual_style: str = "Pixel Art"
    game_setting: str = "Fictional"
    setting_context: Optional[str] = None
    is_defeated: bool = False


class LocationSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str = "0,0"
    name: str
    rarity: str = "Common"
    description: str = ""
    environment_tags: List[str] = Field(default_factory=list)
    visual_hint: Optional[str] = None


class ItemSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    rarity: str = "Common"
    item_type: str = ""


class NPCSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    rarity: str = "Common"
    disposition: str = "Neutral"
    description: str = ""
    is_defeated: bool = False


class WorldSnapshot(BaseModel):
    """Everything the oracle prompts need to know about the current scene."""

    model_config = ConfigDict(frozen=True)

    character: CharacterSnapshot
    location: LocationSnapshot
    inventory: List[ItemSnapshot] = Field(default_factory=list)
    npcs: List[NPCSnapshot] = Field(default_factory=list)

    def npc(self, npc_id: str) -> Optional[NPCSnapshot]:
        for npc in self.npcs:
            if npc.id == npc_id:
                return npc
        return None


class LogEntry(BaseModel):
    """A single typed line in the player-facing game log."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: str = "system"
    text: str
    timestamp: float = Field(default_factory=time.time)
    processed_text: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v.lower() not in LOG_ENTRY_TYPES:
            return "system"
        return v.lower()
