"""
Turn Pipeline — Compiled LangGraph graph for one player command.

    router ──> resolve_event ─────────────────────┐
       └─────> command ──> trigger (if context) ──┴──> director ──> END

Usage:
    pipeline = build_turn_pipeline(session, lifecycle, director, command_handler)
    result = await pipeline.ainvoke({"command": "...", "world": snapshot})
"""

import logging
from functools import partial

from langgraph.graph import StateGraph, END

from pipeline.state import TurnState
from pipeline.nodes.router_node import router_node
from pipeline.nodes.resolve_event_node import resolve_event_node
from pipeline.nodes.command_node import command_node
from pipeline.nodes.trigger_node import trigger_node
from pipeline.nodes.director_node import director_node

logger = logging.getLogger("pipeline.graph")


def _route_after_router(state: dict) -> str:
    return state.get("route", "command")


def _route_after_command(state: dict) -> str:
    """Only a command that produced a trigger context goes on to the trigger node."""
    if state.get("trigger_context"):
        return "trigger"
    return "director"


def build_turn_pipeline(session, lifecycle, director=None, command_handler=None):
    """Build and compile the turn pipeline for one session.

    Args:
        session: The NarrativeSession the turn mutates.
        lifecycle: The session's EventLifecycle.
        director: Optional GameDirectorAgent.
        command_handler: Host callable `(command, world) -> Optional[str]`, sync or async.
            Returns a trigger context when the action may spark an event.

    Returns:
        A compiled LangGraph Pregel object (call .ainvoke(state)).
    """
    _router = partial(router_node, lifecycle=lifecycle)
    _resolve = partial(resolve_event_node, lifecycle=lifecycle, session=session)
    _command = partial(command_node, command_handler=command_handler, session=session)
    _trigger = partial(trigger_node, lifecycle=lifecycle, session=session)
    _director = partial(director_node, director=director, session=session)

    graph = StateGraph(TurnState)

    graph.add_node("router", _router)
    graph.add_node("resolve_event", _resolve)
    graph.add_node("command", _command)
    graph.add_node("trigger", _trigger)
    graph.add_node("director", _director)

    graph.set_entry_point("router")

    graph.add_conditional_edges(
        "router",
        _route_after_router,
        {
            "resolve_event": "resolve_event",
            "command": "command",
        },
    )
    graph.add_conditional_edges(
        "command",
        _route_after_command,
        {
            "trigger": "trigger",
            "director": "director",
        },
    )

    graph.add_edge("resolve_event", "director")
    graph.add_edge("trigger", "director")
    graph.add_edge("director", END)

    compiled = graph.compile()
    logger.info(f"Turn pipeline compiled for session {session.session_id}.")
    return compiled
