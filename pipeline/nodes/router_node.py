"""
Router Node — Decides who handles the player's command this turn.

While an event awaits the player's action, every command goes to the
resolution oracle instead of the normal command handler. The only
carve-out is the mundane global commands (inventory, status, help...),
which always reach the handler.
"""

import logging

from pipeline.state import TurnState

logger = logging.getLogger("pipeline.router")

MUNDANE_COMMANDS = frozenset({"inventory", "inv", "i", "status", "health", "help", "look"})


def is_mundane_command(command: str) -> bool:
    words = command.strip().lower().split()
    return bool(words) and words[0] in MUNDANE_COMMANDS


async def router_node(state: TurnState, *, lifecycle, **_kwargs) -> dict:
    """Set the route for this turn.

    Args:
        state: Current TurnState.
        lifecycle: The session's EventLifecycle.

    Returns:
        Partial state dict with `route` set.
    """
    command = state.get("command", "")
    if lifecycle.awaiting_action and not is_mundane_command(command):
        logger.info(f"Event awaiting action; routing '{command[:40]}' to resolution")
        return {"route": "resolve_event"}
    return {"route": "command"}
