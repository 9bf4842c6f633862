"""
Lore oracle outputs — The small structured verdicts the lore keeper asks
for: duplicate checks, entity links, lead fulfillment and lore markup.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from models.memory import LEAD_TYPES, normalize_rarity


CONFIDENCE_LEVELS = ("low", "medium", "high")


class SimilarLeadCheck(BaseModel):
    similar_lead_exists: bool


class ExistingEntityLink(BaseModel):
    matched_existing_entity_id: Optional[str] = None

    @field_validator("matched_existing_entity_id")
    @classmethod
    def blank_is_none(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()


class LeadFulfillment(BaseModel):
    """Which open lead, if any, a generated entity fulfills."""

    fulfilled_lead_id: Optional[str] = None
    equally_plausible_lead_ids: List[str] = Field(default_factory=list)
    confidence: str = "low"

    @field_validator("fulfilled_lead_id")
    @classmethod
    def blank_is_none(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("equally_plausible_lead_ids", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v):
        if v is None or v.lower() not in CONFIDENCE_LEVELS:
            return "low"
        return v.lower()


class IdentifiedLoreEntity(BaseModel):
    name: str
    type: str
    description_hint: str
    rarity_hint: Optional[str] = None
    original_phrase: str

    @field_validator("name", "description_hint", "original_phrase")
    @classmethod
    def validate_text(cls, v):
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v.strip()

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v.lower() not in LEAD_TYPES:
            raise ValueError(f"type must be one of {LEAD_TYPES}, got {v!r}")
        return v.lower()

    @field_validator("rarity_hint")
    @classmethod
    def validate_rarity_hint(cls, v):
        return normalize_rarity(v, default=None)


class LoreIdentification(BaseModel):
    """Named entities found in a passage, plus the passage with [lore] markup."""

    entities: List[IdentifiedLoreEntity] = Field(default_factory=list)
    text_with_markup: str


class InitialLead(BaseModel):
    name: str
    type: str
    description_hint: str
    rarity_hint: Optional[str] = None
    source_text_snippet: str

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v.lower() not in LEAD_TYPES:
            raise ValueError(f"type must be one of {LEAD_TYPES}, got {v!r}")
        return v.lower()

    @field_validator("rarity_hint")
    @classmethod
    def validate_rarity_hint(cls, v):
        return normalize_rarity(v, default=None)


class InitialLeads(BaseModel):
    leads: List[InitialLead] = Field(default_factory=list)

    @field_validator("leads")
    @classmethod
    def cap_leads(cls, v):
        return v[:2]
