"""
Command Node — Runs the host game's own command interpreter.

Interpreting "take the lantern" or "go north" is the host's job. The
handler may return a trigger context string when the action was
significant enough to possibly spark an event.
"""

import inspect
import logging

from pipeline.state import TurnState

logger = logging.getLogger("pipeline.command")


async def command_node(state: TurnState, *, command_handler, session, **_kwargs) -> dict:
    """Call the host command handler (sync or async) and collect its trigger context."""
    if command_handler is None:
        return {"trigger_context": None}
    try:
        result = command_handler(state["command"], state["world"])
        if inspect.isawaitable(result):
            result = await result
    except Exception as e:
        logger.error(f"Command handler failed for '{state['command'][:40]}': {e}", exc_info=True)
        session.game_log.add("error", f"Command processing error: {e}")
        return {"trigger_context": None, "error": str(e)}

    return {"trigger_context": result or None}
