"""
Resolve Event Node — Hands the player's command to the active event.

A resolved event asks for a fresh director analysis. An oracle failure
is narrated and the event keeps waiting, so the player can simply try
again.
"""

import logging

from pipeline.state import TurnState
from tools.errors import OracleCallFailed
from tools.oracle import describe_failure

logger = logging.getLogger("pipeline.resolve_event")


async def resolve_event_node(state: TurnState, *, lifecycle, session, **_kwargs) -> dict:
    """Run one resolution attempt against the event awaiting action."""
    try:
        result = await lifecycle.resolve_attempt(state["command"], state["world"])
    except OracleCallFailed as e:
        logger.warning(f"Resolution attempt failed at {e.call_site}: {e}")
        narration = describe_failure(e)
        session.game_log.add("error", narration)
        return {"outcome": "failed", "error": narration}

    logger.info(f"Resolution attempt outcome: {result.outcome}")
    return {
        "outcome": result.outcome,
        "narration": result.narration,
        "force_director": result.outcome == "resolved",
    }
