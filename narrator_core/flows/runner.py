"""High-level entry point: run one user command against a StorySession."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from narrator_core.domain.conversation import StorySession
from narrator_core.domain.exceptions import BusinessError
from narrator_core.domain.models import AIReply, ConversationMessage
from narrator_core.flows.graph import build_graph
from narrator_core.flows.state import TurnState
from narrator_core.infrastructure.logging.logger import logger

CONNECTION_LOST_MESSAGE = "CRITICAL ERROR: Connection lost. Retrying..."
TEXT_ONLY_NOTICE = "[SYSTEM] 当前接口不支持图像生成，故事将以纯文本模式继续。"

_graph = build_graph()


@dataclass
class TurnOutcome:
    reply: Optional[AIReply] = None
    image_url: Optional[str] = None
    chat_error: Optional[BusinessError] = None
    image_error: Optional[BusinessError] = None
    image_unsupported: bool = False


def run_turn(session: StorySession, command: str, *, graph=None) -> TurnOutcome:
    """Execute one command: narrate, then illustrate, then update the session.

    Raises:
        TurnInProgress: the session is still processing a previous command.
    """

    session.begin_turn()
    try:
        session.add_message(ConversationMessage(role="user", content=command))
        session.add_log("info", "User input received", {"content": command})
        session.add_log("info", "Sending request to AI...")
        state: TurnState = {
            "history": list(session.history),
            "user_key": session.api_key,
            "custom_config": session.custom_config,
            "provider_hint": session.provider_hint,
            "reply": None,
            "chat_error": None,
            "image_url": None,
            "image_error": None,
            "image_unsupported": False,
        }
        result = (graph or _graph).invoke(state)
        outcome = TurnOutcome(
            reply=result.get("reply"),
            image_url=result.get("image_url"),
            chat_error=result.get("chat_error"),
            image_error=result.get("image_error"),
            image_unsupported=bool(result.get("image_unsupported")),
        )
        _apply_outcome(session, outcome)
        logger.info(
            "turn.end",
            extra={"extra": {"chat_ok": outcome.reply is not None, "image_ok": outcome.image_url is not None}},
        )
        return outcome
    finally:
        session.end_turn()


def _apply_outcome(session: StorySession, outcome: TurnOutcome) -> None:
    if outcome.reply is None:
        error = outcome.chat_error
        session.add_log("error", "Game loop error", {"error": str(error) if error else "unknown"})
        session.add_message(ConversationMessage(role="system", content=CONNECTION_LOST_MESSAGE))
        return

    reply = outcome.reply
    session.add_log(
        "success",
        "AI response received",
        {"text_preview": reply.text[:50] + "...", "visual_prompt": reply.visual_prompt},
    )
    session.add_message(reply.to_message())
    session.add_log("info", "Generating image...", {"prompt": reply.visual_prompt})

    if outcome.image_url:
        session.add_log("info", "Image generation result", {"url": outcome.image_url})
        session.set_image(outcome.image_url, reply.visual_prompt)
    elif outcome.image_unsupported:
        session.add_log("warning", "Image generation not supported by provider", {"error": str(outcome.image_error)})
        session.add_message(ConversationMessage(role="system", content=TEXT_ONLY_NOTICE))
    else:
        # 保留上一张插画
        session.add_log("error", "Image generation failed", {"error": str(outcome.image_error)})
