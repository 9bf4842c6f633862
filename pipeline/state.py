"""
TurnState — The typed state that flows through every node of the turn pipeline.

Each node reads from and writes to this state dict.
LangGraph automatically merges the returned partial state.
"""

from typing import TypedDict, Optional

from models.world import WorldSnapshot


class TurnState(TypedDict, total=False):
    """State flowing through one player turn.

    Fields:
        command:         Raw command text from the player.
        world:           Read-only snapshot of the scene for this turn.
        route:           Router decision: "resolve_event" or "command".
        trigger_context: Set by the host command handler when the action may spark an event.
        outcome:         What the resolve or trigger step did (resolved, progressed, active, ...),
                         or "failed" when its oracle call failed and the error was narrated.
        narration:       Player-facing narration produced this turn, if any.
        force_director:  True when this turn should force a director analysis.
        director_ran:    Whether the director produced a new directive this turn.
        error:           If set, a node narrated a failure.
    """
    command: str
    world: WorldSnapshot
    route: str
    trigger_context: Optional[str]
    outcome: Optional[str]
    narration: Optional[str]
    force_director: bool
    director_ran: bool
    error: Optional[str]
