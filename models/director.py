"""
Game Director models — The focus classification and the nudges it hands
to the other generation systems.
"""

import time
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


GAME_FOCUS_TYPES = (
    "SurvivalHorror",
    "DetectiveMystery",
    "HighStakesCombat",
    "SocialIntrigue",
    "ExplorationAdventure",
    "ResourceManagement",
    "PuzzleSolving",
    "SportsMatchFocus",
    "PoliticalIntrigue",
    "StealthOperations",
    "HumorousAdventure",
    "PhilosophicalDebate",
    "RomanticPursuit",
    "TragedyUnfolding",
    "PersonalGrowthJourney",
    "FactionConflict",
    "BaseBuildingDefense",
    "NoSpecificFocus",
    "CustomScenario",
)

TARGET_SYSTEMS = (
    "EventGeneration",
    "NPCInteraction",
    "CombatResolution",
    "LocationDescription",
    "ItemGeneration",
    "PlayerVitals",
    "GameLogNarration",
    "WorldProgression",
)

PRIORITIES = ("low", "medium", "high")


def _choice_or_none(value: Optional[str], allowed) -> Optional[str]:
    if value is None:
        return None
    lowered = str(value).strip().lower()
    for option in allowed:
        if option.lower() == lowered:
            return option
    return None


class PromptEnhancement(BaseModel):
    """A style or content nudge aimed at one generation system."""

    target_system: str
    suggestion: str
    priority: Optional[str] = None

    @field_validator("target_system")
    @classmethod
    def validate_target_system(cls, v):
        if v not in TARGET_SYSTEMS:
            raise ValueError(f"target_system must be one of {TARGET_SYSTEMS}, got {v!r}")
        return v

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        if v is None:
            return v
        if v.lower() not in PRIORITIES:
            raise ValueError(f"priority must be one of {PRIORITIES}, got {v!r}")
        return v.lower()


class GameplayParameterSuggestions(BaseModel):
    """Direct parameter tweaks. Every field is optional; unknown keys are dropped."""

    focus_on_resource_scarcity: Optional[bool] = None
    adjust_energy_decay_rate: Optional[str] = None
    adjust_health_regen_rate: Optional[str] = None
    preferred_event_type: Optional[str] = None
    increase_narrative_length_for_scenario: Optional[str] = None
    trigger_chance_modifier_for_good_events: Optional[float] = None
    trigger_chance_modifier_for_bad_events: Optional[float] = None
    npc_disposition_volatility: Optional[str] = None
    custom_focus_description: Optional[str] = None
    attention_to_detail_level: Optional[str] = None
    dialogue_style: Optional[str] = None
    pacing: Optional[str] = None
    model_config = {"extra": "ignore"}

    @field_validator("adjust_energy_decay_rate")
    @classmethod
    def validate_energy_decay(cls, v):
        return _choice_or_none(v, ("normal", "increased", "decreased", "none"))

    @field_validator("adjust_health_regen_rate")
    @classmethod
    def validate_health_regen(cls, v):
        return _choice_or_none(v, ("normal", "slowed", "none", "event_driven"))

    @field_validator("preferred_event_type")
    @classmethod
    def validate_preferred_event_type(cls, v):
        return _choice_or_none(v, GAME_FOCUS_TYPES + ("balanced",))

    @field_validator("npc_disposition_volatility", "attention_to_detail_level")
    @classmethod
    def validate_level(cls, v):
        return _choice_or_none(v, PRIORITIES)

    @field_validator("dialogue_style")
    @classmethod
    def validate_dialogue_style(cls, v):
        return _choice_or_none(v, ("concise", "descriptive", "action_oriented", "introspective"))

    @field_validator("pacing")
    @classmethod
    def validate_pacing(cls, v):
        return _choice_or_none(v, ("fast", "medium", "slow"))


class DirectorAnalysis(BaseModel):
    """Raw Game Director oracle output, before it is stamped into a directive."""

    current_game_focus: str
    prompt_enhancements: List[PromptEnhancement] = Field(default_factory=list)
    gameplay_parameter_suggestions: GameplayParameterSuggestions = Field(
        default_factory=GameplayParameterSuggestions
    )
    reasoning: Optional[str] = None

    @field_validator("current_game_focus")
    @classmethod
    def validate_focus(cls, v):
        if v not in GAME_FOCUS_TYPES:
            raise ValueError(f"current_game_focus must be one of {GAME_FOCUS_TYPES}, got {v!r}")
        return v

    @field_validator("gameplay_parameter_suggestions", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or {}


class GameDirectorDirective(BaseModel):
    """The directive in force. Each analysis replaces it wholesale."""

    directive_id: str = Field(default_factory=lambda: str(uuid4()))
    focus: str
    prompt_enhancements: List[PromptEnhancement] = Field(default_factory=list)
    gameplay_parameter_suggestions: GameplayParameterSuggestions = Field(
        default_factory=GameplayParameterSuggestions
    )
    reasoning: Optional[str] = None
    analyzed_command_count: int = 0
    timestamp: float = Field(default_factory=time.time)

    @classmethod
    def from_analysis(cls, analysis: DirectorAnalysis, analyzed_command_count: int) -> "GameDirectorDirective":
        return cls(
            focus=analysis.current_game_focus,
            prompt_enhancements=analysis.prompt_enhancements,
            gameplay_parameter_suggestions=analysis.gameplay_parameter_suggestions,
            reasoning=analysis.reasoning,
            analyzed_command_count=analyzed_command_count,
        )

    def enhancements_for(self, target_system: str) -> List[PromptEnhancement]:
        return [pe for pe in self.prompt_enhancements if pe.target_system == target_system]
