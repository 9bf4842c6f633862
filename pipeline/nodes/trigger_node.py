"""
Trigger Node — Gives a significant action the chance to spark an event.

Checks the event slot before calling the lifecycle, so a busy slot just
skips the trigger instead of violating the one-event invariant.
"""

import logging

from pipeline.state import TurnState
from tools.errors import OracleCallFailed
from tools.oracle import describe_failure

logger = logging.getLogger("pipeline.trigger")


async def trigger_node(state: TurnState, *, lifecycle, session, **_kwargs) -> dict:
    trigger_context = state.get("trigger_context")
    if not trigger_context:
        return {}
    if not lifecycle.can_trigger:
        logger.info(f"Event slot busy ({lifecycle.phase.value}); ignoring trigger '{trigger_context}'")
        return {"outcome": "ignored"}

    try:
        result = await lifecycle.attempt_trigger(trigger_context, state["world"], session.directive)
    except OracleCallFailed as e:
        logger.warning(f"Event trigger failed at {e.call_site}: {e}")
        narration = describe_failure(e)
        session.game_log.add("error", narration)
        return {"outcome": "failed", "error": narration}

    update = {"outcome": result.outcome}
    if result.event is not None:
        update["narration"] = result.event.narration
    return update
