"""
Director Node — Runs the Game Director when its cadence says so.

The director handles its own failures (old directive stays, error line
logged), so this node never raises.
"""

import logging

from pipeline.state import TurnState

logger = logging.getLogger("pipeline.director")


async def director_node(state: TurnState, *, director, session, **_kwargs) -> dict:
    if director is None:
        return {"director_ran": False}
    if not director.should_analyze(session, force=state.get("force_director", False)):
        return {"director_ran": False}

    directive = await director.analyze(state["world"], session)
    return {"director_ran": directive is not None}
