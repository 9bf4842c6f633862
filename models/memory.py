"""
Memory models — What the player knows exists, what they have only heard
rumored, and the major plot beats that shaped the story so far.

Every record that enters Entity Memory, the Discovery Ledger or the
Chronicle passes through one of these models first.
"""

import time
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


ENTITY_TYPES = ("character", "item", "location", "npc", "lore_hint")
LEAD_TYPES = ("item", "npc", "location")
RARITIES = ("Common", "Uncommon", "Rare", "Epic", "Legendary", "Lore", "Character_Self")
SOURCE_TYPES = ("dialogue", "item_text", "contextual_examination", "event_narration", "initial_setup")

HINT_MAX_CHARS = 150
CONTEXT_MAX_CHARS = 200
SUMMARY_MAX_CHARS = 250

LeadStatus = Literal["mentioned", "discovered"]


def normalize_rarity(value: Optional[str], default: Optional[str] = "Common") -> Optional[str]:
    """Map a free-form rarity string onto the known rarity names."""
    if value is None:
        return default
    for rarity in RARITIES:
        if rarity.lower() == str(value).strip().lower():
            return rarity
    return default


def _normalize_lead_type(value: str) -> str:
    lowered = str(value).strip().lower()
    if lowered not in LEAD_TYPES:
        raise ValueError(f"type must be one of {LEAD_TYPES}, got {value!r}")
    return lowered


def _require_text(value: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError("must be a non-empty string")
    return str(value).strip()


class MemorableEntity(BaseModel):
    """A confirmed, named thing the player has knowledge of.

    `lore_hint` records mirror an unconfirmed lead and share its id.
    """

    id: str
    name: str
    type: str
    rarity: str = "Common"
    description_hint: str = ""
    first_encountered_context: str = ""

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        lowered = str(v).strip().lower()
        if lowered not in ENTITY_TYPES:
            raise ValueError(f"type must be one of {ENTITY_TYPES}, got {v!r}")
        return lowered

    @field_validator("rarity")
    @classmethod
    def validate_rarity(cls, v):
        return normalize_rarity(v)

    @field_validator("description_hint")
    @classmethod
    def truncate_hint(cls, v):
        return (v or "")[:HINT_MAX_CHARS]

    @field_validator("first_encountered_context")
    @classmethod
    def truncate_context(cls, v):
        return (v or "")[:CONTEXT_MAX_CHARS]


class DiscoveryCandidate(BaseModel):
    """A rumored entity as it arrives from narration, before it becomes a lead."""

    name: str
    type: str
    description_hint: str
    rarity_hint: Optional[str] = None
    source_text_snippet: str = ""
    source_type: str = "dialogue"
    source_entity_id: str = ""

    @field_validator("name", "description_hint")
    @classmethod
    def validate_text(cls, v):
        return _require_text(v)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _normalize_lead_type(v)

    @field_validator("rarity_hint")
    @classmethod
    def validate_rarity_hint(cls, v):
        return normalize_rarity(v, default=None)

    @field_validator("source_type")
    @classmethod
    def validate_source_type(cls, v):
        lowered = str(v).strip().lower()
        if lowered not in SOURCE_TYPES:
            return "contextual_examination"
        return lowered


class PotentialDiscovery(BaseModel):
    """A lead: a rumor of an entity the player may discover later.

    The id is derived from (source_entity_id, name, type), so the same
    mention always maps to the same lead.
    """

    id: str
    name: str
    type: str
    description_hint: str
    rarity_hint: Optional[str] = None
    source_text_snippet: str = ""
    source_type: str = "dialogue"
    source_entity_id: str = ""
    status: LeadStatus = "mentioned"
    first_mentioned_timestamp: float = Field(default_factory=time.time)
    first_mentioned_location_key: str = ""
    fulfilled_by_id: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _normalize_lead_type(v)


class MajorPlotPoint(BaseModel):
    """A single chronicle entry summarizing a narrative outcome."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: float = Field(default_factory=time.time)
    summary: str
    involved_entity_ids: Optional[List[str]] = None
    location_name: Optional[str] = None

    @field_validator("summary")
    @classmethod
    def truncate_summary(cls, v):
        return _require_text(v)[:SUMMARY_MAX_CHARS]


class GeneratedEntity(BaseModel):
    """A freshly generated item, NPC or location handed to the lead matcher."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    type: str
    rarity: str = "Common"
    description: str = ""
    detail: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _normalize_lead_type(v)

    @field_validator("rarity")
    @classmethod
    def validate_rarity(cls, v):
        return normalize_rarity(v)


class RegistrationResult(BaseModel):
    """Outcome of registering a mention with the Discovery Ledger."""

    outcome: Literal["created", "preconfirmed", "duplicate_prevented"]
    lead_id: str
    lead: Optional[PotentialDiscovery] = None
    lore_hint: Optional[MemorableEntity] = None
