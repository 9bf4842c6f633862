"""
Event models — The contract between the event oracles and the event
lifecycle state machine.

A trigger decision, the generated event with its effects, and the
verdict on a player's attempt to resolve it all pass through these
models. If the oracle returns something that does not fit, validation
fails and the lifecycle never sees it.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from models.memory import DiscoveryCandidate, normalize_rarity


INTENSITIES = ("low", "medium", "high")
DISPOSITIONS = ("Neutral", "Friendly", "Hostile", "Afraid")
MAX_GENERATED_LEADS = 2


def _none_to_list(v):
    return v or []


def has_content(model: Optional[BaseModel]) -> bool:
    """True if a sub-effect model carries at least one set value."""
    if model is None:
        return False
    return any(v not in (None, "", [], {}) for v in model.model_dump().values())


def normalize_disposition(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    for disposition in DISPOSITIONS:
        if disposition.lower() == str(value).strip().lower():
            return disposition
    return "Neutral"


class EventPhase(str, Enum):
    """Explicit lifecycle phase of the single event slot."""
    DORMANT = "dormant"
    DECIDING = "deciding"
    GENERATING = "generating"
    AWAITING_ACTION = "awaiting_action"
    RESOLVED = "resolved"


class EventDecision(BaseModel):
    """Trigger-decision oracle output. Concept and intensity are set iff the event triggers."""

    should_trigger_event: bool
    event_concept: Optional[str] = None
    event_intensity: Optional[str] = None

    @field_validator("event_concept")
    @classmethod
    def blank_concept_is_none(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("event_intensity")
    @classmethod
    def validate_intensity(cls, v):
        if v is None:
            return v
        if v.lower() not in INTENSITIES:
            raise ValueError(f"event_intensity must be one of {INTENSITIES}, got {v!r}")
        return v.lower()

    @model_validator(mode="after")
    def check_concept_matches_decision(self):
        if self.should_trigger_event:
            if self.event_concept is None or self.event_intensity is None:
                raise ValueError("a triggered event needs both event_concept and event_intensity")
        elif self.event_concept is not None or self.event_intensity is not None:
            raise ValueError("event_concept and event_intensity must be null when no event triggers")
        return self


class GeneratedItem(BaseModel):
    name: str
    description: str = ""
    item_type_guess: str = "misc"
    rarity: str = "Common"
    visual_prompt_hint: Optional[str] = None

    @field_validator("rarity")
    @classmethod
    def validate_rarity(cls, v):
        return normalize_rarity(v)


class SuggestedNPC(BaseModel):
    name: str
    description: str = ""
    appearance_details: str = ""
    dialogue_greeting: str = ""
    rarity: str = "Common"
    visual_prompt_hint: Optional[str] = None

    @field_validator("rarity")
    @classmethod
    def validate_rarity(cls, v):
        return normalize_rarity(v)


class SkillXpGain(BaseModel):
    skill_name: str
    amount: int


class CharacterEffect(BaseModel):
    health_change: Optional[int] = None
    energy_change: Optional[int] = None
    skill_xp_gains: List[SkillXpGain] = Field(default_factory=list)
    status_effect_added: Optional[str] = None
    status_effect_removed: Optional[str] = None
    # Allow extra fields for flexibility (e.g. limb effects)
    model_config = {"extra": "allow"}

    @field_validator("skill_xp_gains", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return _none_to_list(v)


class ItemEffect(BaseModel):
    items_added_to_inventory: List[GeneratedItem] = Field(default_factory=list)
    items_removed_from_inventory_by_name: List[str] = Field(default_factory=list)
    items_added_to_location: List[GeneratedItem] = Field(default_factory=list)
    items_removed_from_location_by_name: List[str] = Field(default_factory=list)

    @field_validator(
        "items_added_to_inventory",
        "items_removed_from_inventory_by_name",
        "items_added_to_location",
        "items_removed_from_location_by_name",
        mode="before",
    )
    @classmethod
    def none_to_list(cls, v):
        return _none_to_list(v)


class LocationEffect(BaseModel):
    description_change: Optional[str] = None
    new_temporary_npc: Optional[SuggestedNPC] = None
    environment_tag_added: Optional[str] = None
    environment_tag_removed: Optional[str] = None


class NPCEffect(BaseModel):
    npc_id_targeted: str
    health_change: Optional[int] = None
    is_defeated: Optional[bool] = None
    disposition_change: Optional[str] = None
    dialogue_override: Optional[str] = None
    is_hidden_during_event: Optional[bool] = None

    @field_validator("disposition_change")
    @classmethod
    def validate_disposition(cls, v):
        return normalize_disposition(v)


class WorldEffect(BaseModel):
    time_passes: Optional[str] = None
    weather_changes: Optional[str] = None


class DispositionChange(BaseModel):
    npc_id: str
    new_disposition: str

    @field_validator("new_disposition")
    @classmethod
    def validate_disposition(cls, v):
        return normalize_disposition(v)


class EventEffects(BaseModel):
    """Detail-generation oracle output: one bounded event and everything it changes."""

    event_title: str
    narration: str
    combat_narration: Optional[str] = None
    character_effects: Optional[CharacterEffect] = None
    item_effects: Optional[ItemEffect] = None
    location_effects: Optional[LocationEffect] = None
    npc_effects: List[NPCEffect] = Field(default_factory=list)
    world_effects: Optional[WorldEffect] = None
    major_plot_point_summary: Optional[str] = None
    involved_entity_ids_for_plot_point: List[str] = Field(default_factory=list)
    visual_prompt_hint_for_event_image: Optional[str] = None
    requires_player_action_to_resolve: bool = False
    resolution_criteria_prompt: Optional[str] = None
    resolution_npc_disposition_change: Optional[DispositionChange] = None
    resolution_items_awarded_to_player: List[GeneratedItem] = Field(default_factory=list)
    potential_discoveries_generated: List[DiscoveryCandidate] = Field(default_factory=list)

    @field_validator("event_title", "narration")
    @classmethod
    def validate_text(cls, v):
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v.strip()

    @field_validator("major_plot_point_summary")
    @classmethod
    def blank_summary_is_none(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("requires_player_action_to_resolve", mode="before")
    @classmethod
    def none_is_false(cls, v):
        return bool(v) if v is not None else False

    @field_validator(
        "npc_effects",
        "involved_entity_ids_for_plot_point",
        "resolution_items_awarded_to_player",
        "potential_discoveries_generated",
        mode="before",
    )
    @classmethod
    def none_to_list(cls, v):
        return _none_to_list(v)

    @field_validator("potential_discoveries_generated")
    @classmethod
    def cap_leads(cls, v):
        return v[:MAX_GENERATED_LEADS]

    def has_effects(self) -> bool:
        """True if the event changes anything beyond its own narration."""
        return (
            has_content(self.character_effects)
            or has_content(self.item_effects)
            or has_content(self.location_effects)
            or bool(self.npc_effects)
            or has_content(self.world_effects)
        )


class EventResolutionResult(BaseModel):
    """Resolution oracle verdict on a player's attempt to deal with the active event."""

    resolved: bool
    resolution_narration: str
    progressed: bool = False
    next_stage_narration: Optional[str] = None
    updated_visual_prompt_hint_for_event_image: Optional[str] = None
    updated_resolution_criteria_prompt: Optional[str] = None
    updated_npc_disposition: Optional[DispositionChange] = None
    items_awarded_to_player: List[GeneratedItem] = Field(default_factory=list)
    major_plot_point_summary: Optional[str] = None
    potential_discoveries_generated: List[DiscoveryCandidate] = Field(default_factory=list)

    @field_validator("resolution_narration")
    @classmethod
    def validate_narration(cls, v):
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v.strip()

    @field_validator("progressed", mode="before")
    @classmethod
    def none_is_false(cls, v):
        return bool(v) if v is not None else False

    @field_validator("items_awarded_to_player", "potential_discoveries_generated", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return _none_to_list(v)

    @field_validator("potential_discoveries_generated")
    @classmethod
    def cap_leads(cls, v):
        return v[:MAX_GENERATED_LEADS]

    @property
    def outcome(self) -> str:
        if self.resolved:
            return "resolved"
        if self.progressed:
            return "progressed"
        return "unchanged"


class ActiveEvent(BaseModel):
    """The event currently occupying the single event slot, as shown to the player."""

    title: str
    narration: str
    requires_player_action_to_resolve: bool = False
    resolution_criteria_prompt: Optional[str] = None
    visual_hint: Optional[str] = None
    generated_lead_ids: List[str] = Field(default_factory=list)
    plot_point_summary: Optional[str] = None
    origin: Literal["triggered", "player_action"] = "triggered"
    target_npc_id: Optional[str] = None
    effects: EventEffects

    def display_payload(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "narration": self.narration,
            "visual_hint": self.visual_hint,
            "resolution_prompt": self.resolution_criteria_prompt,
        }


class EventState(BaseModel):
    """Persisted state of the event slot: the phase plus the event it holds, if any."""

    phase: EventPhase = EventPhase.DORMANT
    active: Optional[ActiveEvent] = None
