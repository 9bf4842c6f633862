"""
Pydantic v2 data models — the contract for all narrative state.

Every oracle response and every write to the narrative stores passes
through these models first. If validation fails, nothing is written.
"""

from models.memory import (
    MemorableEntity,
    DiscoveryCandidate,
    PotentialDiscovery,
    MajorPlotPoint,
    GeneratedEntity,
    RegistrationResult,
)
from models.world import (
    CharacterSnapshot,
    LocationSnapshot,
    ItemSnapshot,
    NPCSnapshot,
    WorldSnapshot,
    LogEntry,
)
from models.events import (
    EventPhase,
    EventDecision,
    EventEffects,
    EventResolutionResult,
    ActiveEvent,
    EventState,
    GeneratedItem,
    SuggestedNPC,
    DispositionChange,
)
from models.director import (
    PromptEnhancement,
    GameplayParameterSuggestions,
    DirectorAnalysis,
    GameDirectorDirective,
)
from models.oracle_output import (
    SimilarLeadCheck,
    ExistingEntityLink,
    LeadFulfillment,
    LoreIdentification,
    InitialLeads,
)

__all__ = [
    "MemorableEntity",
    "DiscoveryCandidate",
    "PotentialDiscovery",
    "MajorPlotPoint",
    "GeneratedEntity",
    "RegistrationResult",
    "CharacterSnapshot",
    "LocationSnapshot",
    "ItemSnapshot",
    "NPCSnapshot",
    "WorldSnapshot",
    "LogEntry",
    "EventPhase",
    "EventDecision",
    "EventEffects",
    "EventResolutionResult",
    "ActiveEvent",
    "EventState",
    "GeneratedItem",
    "SuggestedNPC",
    "DispositionChange",
    "PromptEnhancement",
    "GameplayParameterSuggestions",
    "DirectorAnalysis",
    "GameDirectorDirective",
    "SimilarLeadCheck",
    "ExistingEntityLink",
    "LeadFulfillment",
    "LoreIdentification",
    "InitialLeads",
]
