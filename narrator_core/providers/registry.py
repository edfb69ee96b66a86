"""预置 Provider 配置。

预置 Provider 的主机、模型名与请求形态全部写死在这里；
其中主机地址允许通过 settings 覆盖（便于走代理）。
自定义端点不在此表中，由 resolver 直接使用用户配置。
"""

from dataclasses import dataclass
from typing import Mapping, Tuple

from narrator_core.domain.models import ProviderIdentity


@dataclass(frozen=True)
class PresetProviderConfig:
    """某个预置 Provider 的整体配置。

    - base_url_setting: settings 中保存主机地址的字段名。
    - chat_path: 拼接在主机之后的 OpenAI 兼容路径前缀。
    - key_settings: 按顺序尝试的兜底凭证字段名。
    """

    identity: ProviderIdentity
    default_base_url: str
    base_url_setting: str
    chat_path: str
    chat_model: str
    image_model: str
    key_settings: Tuple[str, ...]


DASHSCOPE_CONFIG = PresetProviderConfig(
    identity=ProviderIdentity.DASHSCOPE,
    default_base_url="https://dashscope.aliyuncs.com",
    base_url_setting="dashscope_base_url",
    chat_path="/compatible-mode/v1",
    chat_model="qwen-plus",
    image_model="wanx-v1",
    key_settings=("dashscope_api_key", "openai_api_key"),
)

GROK_CONFIG = PresetProviderConfig(
    identity=ProviderIdentity.GROK,
    default_base_url="https://api.x.ai/v1",
    base_url_setting="grok_base_url",
    chat_path="",
    chat_model="grok-2-latest",
    image_model="grok-2-image",
    key_settings=("grok_api_key",),
)

DEFAULT_PRESET = ProviderIdentity.DASHSCOPE

# Grok 凭证的固定前缀
GROK_KEY_PREFIX = "xai-"

PRESET_REGISTRY: Mapping[ProviderIdentity, PresetProviderConfig] = {
    ProviderIdentity.DASHSCOPE: DASHSCOPE_CONFIG,
    ProviderIdentity.GROK: GROK_CONFIG,
}


def get_preset_config(identity: ProviderIdentity) -> PresetProviderConfig:
    """根据标识获取预置配置；custom 没有预置项，抛出 KeyError。"""

    try:
        return PRESET_REGISTRY[identity]
    except KeyError:
        raise KeyError(f"No preset provider for: {identity!r}") from None
