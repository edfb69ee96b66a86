"""对外 API 服务模块。

提供应用其余部分唯一需要调用的两个入口：chat_with_ai 与 generate_image_url。
每次调用都重新解析端点，不持有任何进程级客户端。
"""

import time
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from narrator_core.config.settings import settings
from narrator_core.domain.models import AIReply, ConversationMessage, CustomEndpointConfig
from narrator_core.infrastructure.logging.logger import logger, redact_key
from narrator_core.providers.chat_client import ChatDispatcher
from narrator_core.providers.image_client import ImageDispatcher
from narrator_core.providers.resolver import ProviderHint, resolve_chat_endpoint, resolve_image_endpoint

CustomConfigInput = Union[CustomEndpointConfig, Mapping[str, Any], None]
HistoryInput = Sequence[Union[ConversationMessage, Mapping[str, Any]]]


def _as_custom_config(custom_config: CustomConfigInput) -> Optional[CustomEndpointConfig]:
    if custom_config is None or isinstance(custom_config, CustomEndpointConfig):
        return custom_config
    return CustomEndpointConfig.from_dict(dict(custom_config))


def _as_messages(history: HistoryInput):
    messages = []
    for item in history:
        if isinstance(item, ConversationMessage):
            messages.append(item)
        else:
            messages.append(
                ConversationMessage(
                    role=item.get("role", "user"),
                    content=str(item.get("content", "")),
                    choices=item.get("choices"),
                )
            )
    return messages


def chat_with_ai(
    history: HistoryInput,
    user_key: Optional[str] = None,
    custom_config: CustomConfigInput = None,
    provider_hint: ProviderHint = None,
    *,
    cfg=settings,
    sleep: Callable[[float], None] = time.sleep,
) -> AIReply:
    """解析 chat 端点并执行一次叙事调用。

    Args:
        history: 完整故事历史（ConversationMessage 或 {"role", "content"} 字典）
        user_key: 设置面板中填写的密钥（可选）
        custom_config: 自定义端点配置（可选）
        provider_hint: 显式指定的 Provider（可选）

    Raises:
        各种 domain.exceptions 中定义的异常；无凭证时不抛错而是返回离线回复。
    """

    resolved = resolve_chat_endpoint(user_key, _as_custom_config(custom_config), provider_hint, cfg=cfg)
    logger.info("service.chat", extra={"extra": {"provider": resolved.provider.value}})
    return ChatDispatcher(cfg, sleep=sleep).chat(_as_messages(history), resolved)


def generate_image_url(
    prompt: str,
    user_key: Optional[str] = None,
    custom_config: CustomConfigInput = None,
    provider_hint: ProviderHint = None,
    *,
    cfg=settings,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """解析图像端点并生成一张插画，返回 URL 或 data: URL。"""

    resolved = resolve_image_endpoint(user_key, _as_custom_config(custom_config), provider_hint, cfg=cfg)
    logger.info("service.image", extra={"extra": {"provider": resolved.provider.value}})
    return ImageDispatcher(cfg, sleep=sleep).generate_image(prompt, resolved)


def describe_endpoints(
    user_key: Optional[str] = None,
    custom_config: CustomConfigInput = None,
    provider_hint: ProviderHint = None,
    cfg=settings,
) -> Dict[str, Dict[str, str]]:
    """给设置面板展示当前会使用的端点（凭证已脱敏）。"""

    config = _as_custom_config(custom_config)
    result = {}
    for kind, resolver in (("chat", resolve_chat_endpoint), ("image", resolve_image_endpoint)):
        resolved = resolver(user_key, config, provider_hint, cfg=cfg)
        result[kind] = {
            "provider": resolved.provider.value,
            "base_url": resolved.base_url,
            "model": resolved.model,
            "key": redact_key(resolved.credential),
        }
    return result
