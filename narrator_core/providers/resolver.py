"""端点解析：决定一次 chat / 图像调用使用哪个 Provider、主机、凭证与模型。

解析顺序（先命中者生效）：

1. 自定义端点配置完整（base_url 与 api_key 均非空）时原样使用，
   仅做尾部 "/" 和 "/chat/completions" 的归一化。
2. 否则使用 provider_hint；未提供时根据 user_key 推断。
3. 取该预置 Provider 的固定主机与模型，凭证依次取 user_key、
   settings 中的兜底密钥、空串。

这里没有任何 I/O，也不缓存结果：每次调用都从当前配置重新计算，
设置面板的修改因此立即生效。空凭证原样返回，由调用方判定为缺失。
"""

from typing import Optional, Union

from narrator_core.config.settings import settings
from narrator_core.domain.models import CustomEndpointConfig, ProviderIdentity, ResolvedEndpoint
from narrator_core.providers.detector import detect_provider
from narrator_core.providers.registry import PresetProviderConfig, get_preset_config

CHAT_COMPLETIONS_SUFFIX = "/chat/completions"
IMAGE_GENERATIONS_SUFFIX = "/images/generations"

ProviderHint = Union[ProviderIdentity, str, None]


def normalize_base_url(url: str, *suffixes: str) -> str:
    """去掉尾部的 "/" 以及给定的接口路径后缀。

    用户既可以填写裸主机，也可以直接粘贴完整的 completions URL。
    """

    base = url.strip().rstrip("/")
    for suffix in suffixes:
        if base.endswith(suffix):
            base = base[: -len(suffix)].rstrip("/")
    return base


def _coerce_hint(provider_hint: ProviderHint) -> Optional[ProviderIdentity]:
    if provider_hint is None or provider_hint == "":
        return None
    if isinstance(provider_hint, ProviderIdentity):
        return provider_hint
    try:
        return ProviderIdentity(str(provider_hint).strip().lower())
    except ValueError:
        return None


def _preset_identity(user_key: Optional[str], provider_hint: ProviderHint) -> ProviderIdentity:
    hint = _coerce_hint(provider_hint)
    # custom 提示但没有可用的自定义配置时，退回到按密钥推断
    if hint is None or hint is ProviderIdentity.CUSTOM:
        return detect_provider(user_key)
    return hint


def _preset_credential(user_key: Optional[str], preset: PresetProviderConfig, cfg) -> str:
    if user_key and user_key.strip():
        return user_key.strip()
    for name in preset.key_settings:
        value = getattr(cfg, name, None)
        if value:
            return str(value).strip()
    return ""


def _preset_host(preset: PresetProviderConfig, cfg) -> str:
    return normalize_base_url(getattr(cfg, preset.base_url_setting, None) or preset.default_base_url)


def resolve_chat_endpoint(
    user_key: Optional[str] = None,
    custom_config: Optional[CustomEndpointConfig] = None,
    provider_hint: ProviderHint = None,
    cfg=settings,
) -> ResolvedEndpoint:
    """解析 chat 调用的端点。"""

    if custom_config is not None and custom_config.chat.is_complete():
        section = custom_config.chat
        return ResolvedEndpoint(
            provider=ProviderIdentity.CUSTOM,
            base_url=normalize_base_url(section.base_url, CHAT_COMPLETIONS_SUFFIX),
            credential=section.api_key.strip(),
            model=section.chat_model.strip() or cfg.default_custom_chat_model,
        )

    preset = get_preset_config(_preset_identity(user_key, provider_hint))
    return ResolvedEndpoint(
        provider=preset.identity,
        base_url=_preset_host(preset, cfg) + preset.chat_path,
        credential=_preset_credential(user_key, preset, cfg),
        model=preset.chat_model,
    )


def resolve_image_endpoint(
    user_key: Optional[str] = None,
    custom_config: Optional[CustomEndpointConfig] = None,
    provider_hint: ProviderHint = None,
    cfg=settings,
) -> ResolvedEndpoint:
    """解析图像调用的端点，可与 chat 使用完全不同的 Provider。

    启用独立图像端点且 image 段完整时使用 image 段；否则回落到
    chat 段的 base_url/api_key，模型取 image 段的模型名或默认图像模型。
    """

    if custom_config is not None:
        image = custom_config.image
        image_model = image.image_model.strip() or cfg.default_custom_image_model
        if custom_config.use_separate_image_endpoint and image.is_complete():
            return ResolvedEndpoint(
                provider=ProviderIdentity.CUSTOM,
                base_url=normalize_base_url(image.base_url, IMAGE_GENERATIONS_SUFFIX),
                credential=image.api_key.strip(),
                model=image_model,
            )
        if custom_config.chat.is_complete():
            return ResolvedEndpoint(
                provider=ProviderIdentity.CUSTOM,
                base_url=normalize_base_url(custom_config.chat.base_url, CHAT_COMPLETIONS_SUFFIX),
                credential=custom_config.chat.api_key.strip(),
                model=image_model,
            )

    preset = get_preset_config(_preset_identity(user_key, provider_hint))
    # DashScope 的图像接口挂在主机根路径下，不经过 compatible-mode
    return ResolvedEndpoint(
        provider=preset.identity,
        base_url=_preset_host(preset, cfg),
        credential=_preset_credential(user_key, preset, cfg),
        model=preset.image_model,
    )
