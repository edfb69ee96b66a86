"""LangGraph construction and node implementations for one story turn.

narrate -> illustrate -> END; a failed narrate ends the turn without an
image call, since the image prompt comes from the chat reply.
"""

from __future__ import annotations

import time
from typing import Callable

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from narrator_core.api.service import chat_with_ai, generate_image_url
from narrator_core.config.settings import settings
from narrator_core.domain.exceptions import BusinessError, is_image_unsupported
from narrator_core.flows.state import TurnState
from narrator_core.infrastructure.logging.logger import logger


def narrate_node(state: TurnState, cfg=settings, sleep: Callable[[float], None] = time.sleep) -> TurnState:
    logger.info("narrate_node.start", extra={"extra": {"messages": len(state["history"])}})
    try:
        reply = chat_with_ai(
            state["history"],
            state.get("user_key"),
            state.get("custom_config"),
            state.get("provider_hint"),
            cfg=cfg,
            sleep=sleep,
        )
    except BusinessError as exc:
        logger.error("narrate_node.failed", extra={"extra": {"code": exc.code, "error": exc.message}})
        return {"reply": None, "chat_error": exc}
    logger.info("narrate_node.end", extra={"extra": {"choices": len(reply.choices)}})
    return {"reply": reply, "chat_error": None}


def illustrate_node(state: TurnState, cfg=settings, sleep: Callable[[float], None] = time.sleep) -> TurnState:
    prompt = state["reply"].visual_prompt
    logger.info("illustrate_node.start", extra={"extra": {"prompt": prompt}})
    try:
        url = generate_image_url(
            prompt,
            state.get("user_key"),
            state.get("custom_config"),
            state.get("provider_hint"),
            cfg=cfg,
            sleep=sleep,
        )
    except BusinessError as exc:
        unsupported = is_image_unsupported(exc, cfg.image_unsupported_markers)
        logger.error(
            "illustrate_node.failed",
            extra={"extra": {"code": exc.code, "error": exc.message, "unsupported": unsupported}},
        )
        return {"image_url": None, "image_error": exc, "image_unsupported": unsupported}
    logger.info("illustrate_node.end")
    return {"image_url": url, "image_error": None, "image_unsupported": False}


def narrate_router(state: TurnState) -> str:
    if state.get("reply") is None:
        return "end"
    return "illustrate"


def build_graph(cfg=settings, sleep: Callable[[float], None] = time.sleep) -> CompiledStateGraph:
    graph = StateGraph(TurnState)
    graph.add_node("narrate", lambda s: narrate_node(s, cfg, sleep))
    graph.add_node("illustrate", lambda s: illustrate_node(s, cfg, sleep))
    graph.set_entry_point("narrate")
    graph.add_conditional_edges("narrate", narrate_router, {"illustrate": "illustrate", "end": END})
    graph.add_edge("illustrate", END)
    return graph.compile()
