"""叙事 Chat 调度器。

本模块负责：

1. 接收完整的故事历史与解析好的端点。
2. 凭证缺失时不发请求，返回固定的离线模拟回复。
3. 否则在历史前追加叙事者 system prompt，请求 {base_url}/chat/completions。
4. 把 message.content 中的 JSON 字符串解析为统一的 AIReply。

所有失败都直接抛给调用方，这一层不做重试。
"""

import json
import re
import time
from typing import Any, Callable, Dict, List, Sequence

import httpx

from narrator_core.config.settings import settings
from narrator_core.domain.exceptions import MalformedResponse, ProviderHttpError
from narrator_core.domain.models import AIReply, ConversationMessage, ResolvedEndpoint
from narrator_core.infrastructure.logging.logger import logger, redact_key
from narrator_core.prompts import load_system_prompt
from narrator_core.providers.base import (
    auth_headers,
    dump_fragment,
    is_success,
    is_usable_credential,
    network_error,
    read_json,
)

# ---- 离线模拟回复 ----

OFFLINE_TEXT = (
    "Host, I detect no valid neural link (API Key). I am running in simulation mode. "
    "I see a vast digital void waiting for your command."
)
OFFLINE_VISUAL_PROMPT = "A digital void with glowing grid lines, cyberpunk style, dark atmosphere"
OFFLINE_LOOK_TEXT = "I see endless possibilities in this digital realm. Structures could be built here."
OFFLINE_LOOK_VISUAL_PROMPT = "A wide angle shot of a digital horizon, neon grid, 80s retro sci-fi style"
OFFLINE_BUILD_TEXT = "I have initiated the construction protocols. A basic structure is taking shape."
OFFLINE_BUILD_VISUAL_PROMPT = "A wireframe construction of a building appearing on a digital grid, glowing blue lines"
OFFLINE_CHOICES = ["环顾四周", "尝试建造庇护所", "扫描附近的信号", "检查系统状态"]

# ---- 内层 JSON 缺字段时的兜底值 ----

FALLBACK_TEXT = "[DATA CORRUPTED] The narrative signal arrived incomplete."
FALLBACK_VISUAL_PROMPT = "A glitching computer screen with static noise and corrupted data"
FALLBACK_CHOICES = ["重试", "检查系统状态"]

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class ChatDispatcher:
    """对解析好的端点发起一次叙事 chat 调用。"""

    name = "chat"

    def __init__(self, cfg=settings, sleep: Callable[[float], None] = time.sleep):
        self._settings = cfg
        self._sleep = sleep

    def chat(self, history: Sequence[ConversationMessage], resolved: ResolvedEndpoint) -> AIReply:
        if not is_usable_credential(resolved.credential, self._settings.placeholder_key_markers):
            logger.warning(
                "chat.offline_mode",
                extra={"extra": {"provider": resolved.provider.value, "messages": len(history)}},
            )
            return self._offline_reply(history)

        payload = self._build_payload(history, resolved)
        url = f"{resolved.base_url}/chat/completions"
        logger.info(
            "chat.request",
            extra={
                "extra": {
                    "provider": resolved.provider.value,
                    "url": url,
                    "model": resolved.model,
                    "key": redact_key(resolved.credential),
                    "messages": len(payload["messages"]),
                }
            },
        )
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(url, json=payload, headers=auth_headers(resolved.credential))
        except httpx.RequestError as e:
            raise network_error(e, resolved.provider.value)
        if not is_success(resp.status_code):
            logger.error("chat.http_error", extra={"extra": {"status": resp.status_code}})
            raise ProviderHttpError(resp.status_code, resp.text, provider=resolved.provider.value)
        data = read_json(resp)
        reply = self._parse_response(data)
        logger.info("chat.response", extra={"extra": {"choices": len(reply.choices)}})
        return reply

    def _build_payload(self, history: Sequence[ConversationMessage], resolved: ResolvedEndpoint) -> dict:
        messages: List[Dict[str, str]] = [{"role": "system", "content": load_system_prompt()}]
        messages.extend(m.to_payload() for m in history)
        return {
            "model": resolved.model,
            "messages": messages,
            "response_format": {"type": "json_object"},
        }

    def _offline_reply(self, history: Sequence[ConversationMessage]) -> AIReply:
        self._sleep(self._settings.offline_reply_delay)
        last_user = next((m.content for m in reversed(history) if m.role == "user"), "")
        lowered = last_user.lower()
        if "look" in lowered or "环顾" in lowered:
            return AIReply(
                text=OFFLINE_LOOK_TEXT,
                visual_prompt=OFFLINE_LOOK_VISUAL_PROMPT,
                choices=list(OFFLINE_CHOICES),
            )
        if "build" in lowered or "建造" in lowered:
            return AIReply(
                text=OFFLINE_BUILD_TEXT,
                visual_prompt=OFFLINE_BUILD_VISUAL_PROMPT,
                choices=list(OFFLINE_CHOICES),
            )
        return AIReply(text=OFFLINE_TEXT, visual_prompt=OFFLINE_VISUAL_PROMPT, choices=list(OFFLINE_CHOICES))

    def _parse_response(self, data: Any) -> AIReply:
        """解析外层 chat/completions 结构与内层 JSON。

        外层缺字段或内层不是 JSON 对象时抛 MalformedResponse；
        内层缺 text/visual_prompt/choices 时用兜底值补齐。
        """

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise MalformedResponse(
                "Chat response is missing choices[0].message.content",
                raw_fragment=dump_fragment(data),
            )
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponse("Chat response content is empty", raw_fragment=dump_fragment(data))

        parsed = self._parse_inner(content)
        missing = [k for k in ("text", "visual_prompt", "choices") if k not in parsed]
        if missing:
            logger.warning("chat.partial_reply", extra={"extra": {"missing": missing}})
        return AIReply(
            text=self._text_field(parsed.get("text"), FALLBACK_TEXT),
            visual_prompt=self._text_field(parsed.get("visual_prompt"), FALLBACK_VISUAL_PROMPT),
            choices=self._choices_field(parsed.get("choices")),
        )

    @staticmethod
    def _parse_inner(content: str) -> Dict[str, Any]:
        raw = content.strip()
        fenced = _CODE_FENCE.match(raw)
        if fenced:
            raw = fenced.group(1)
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            raise MalformedResponse("Chat content is not valid JSON", raw_fragment=content)
        if not isinstance(parsed, dict):
            raise MalformedResponse("Chat content is not a JSON object", raw_fragment=content)
        return parsed

    @staticmethod
    def _text_field(value: Any, fallback: str) -> str:
        if isinstance(value, str) and value.strip():
            return value
        return fallback

    @staticmethod
    def _choices_field(value: Any) -> List[str]:
        if not isinstance(value, list):
            return list(FALLBACK_CHOICES)
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
