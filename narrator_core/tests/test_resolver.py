from narrator_core.domain.models import (
    ChatEndpointSection,
    CustomEndpointConfig,
    ImageEndpointSection,
    ProviderIdentity,
)
from narrator_core.providers.resolver import normalize_base_url, resolve_chat_endpoint, resolve_image_endpoint


class SettingsStub:
    dashscope_api_key = None
    grok_api_key = None
    openai_api_key = None
    dashscope_base_url = "https://dashscope.aliyuncs.com"
    grok_base_url = "https://api.x.ai/v1"
    default_custom_chat_model = "gpt-4o-mini"
    default_custom_image_model = "dall-e-3"


class EnvKeySettings(SettingsStub):
    dashscope_api_key = "env-dashscope-key"


def _custom(base_url="https://x/v1", api_key="k", model="m", **kw):
    return CustomEndpointConfig(chat=ChatEndpointSection(base_url=base_url, api_key=api_key, chat_model=model), **kw)


def test_custom_chat_used_verbatim():
    resolved = resolve_chat_endpoint(None, _custom(), None, cfg=SettingsStub())
    assert resolved.provider is ProviderIdentity.CUSTOM
    assert resolved.base_url == "https://x/v1"
    assert resolved.credential == "k"
    assert resolved.model == "m"


def test_custom_chat_url_normalization():
    variants = [
        "https://x/v1",
        "https://x/v1/",
        "https://x/v1/chat/completions",
        "https://x/v1/chat/completions/",
    ]
    bases = {resolve_chat_endpoint(None, _custom(base_url=v), cfg=SettingsStub()).base_url for v in variants}
    assert bases == {"https://x/v1"}


def test_resolution_is_pure():
    cfg = SettingsStub()
    config = _custom()
    assert resolve_chat_endpoint("xai-1", config, None, cfg=cfg) == resolve_chat_endpoint("xai-1", config, None, cfg=cfg)
    assert resolve_image_endpoint(None, None, "grok", cfg=cfg) == resolve_image_endpoint(None, None, "grok", cfg=cfg)


def test_image_falls_back_to_chat_section():
    config = _custom(use_separate_image_endpoint=False)
    resolved = resolve_image_endpoint(None, config, None, cfg=SettingsStub())
    assert resolved.provider is ProviderIdentity.CUSTOM
    assert resolved.base_url == "https://x/v1"
    assert resolved.credential == "k"
    assert resolved.model == "dall-e-3"


def test_image_uses_separate_section_when_enabled():
    config = _custom(
        image=ImageEndpointSection(base_url="https://img/v1/images/generations", api_key="ik", image_model="flux"),
        use_separate_image_endpoint=True,
    )
    resolved = resolve_image_endpoint(None, config, None, cfg=SettingsStub())
    assert resolved.base_url == "https://img/v1"
    assert resolved.credential == "ik"
    assert resolved.model == "flux"


def test_separate_image_section_incomplete_uses_chat_section():
    config = _custom(
        image=ImageEndpointSection(base_url="https://img/v1", api_key="", image_model="flux"),
        use_separate_image_endpoint=True,
    )
    resolved = resolve_image_endpoint(None, config, None, cfg=SettingsStub())
    assert resolved.base_url == "https://x/v1"
    assert resolved.credential == "k"
    assert resolved.model == "flux"


def test_incomplete_custom_chat_falls_back_to_preset():
    resolved = resolve_chat_endpoint("xai-key", _custom(api_key=""), None, cfg=SettingsStub())
    assert resolved.provider is ProviderIdentity.GROK
    assert resolved.base_url == "https://api.x.ai/v1"
    assert resolved.credential == "xai-key"
    assert resolved.model == "grok-2-latest"


def test_default_preset_without_any_key():
    chat = resolve_chat_endpoint(cfg=SettingsStub())
    assert chat.provider is ProviderIdentity.DASHSCOPE
    assert chat.base_url == "https://dashscope.aliyuncs.com/compatible-mode/v1"
    assert chat.credential == ""
    assert chat.model == "qwen-plus"

    image = resolve_image_endpoint(cfg=SettingsStub())
    assert image.base_url == "https://dashscope.aliyuncs.com"
    assert image.model == "wanx-v1"
    assert image.credential == ""


def test_environment_fallback_credential():
    assert resolve_chat_endpoint(cfg=EnvKeySettings()).credential == "env-dashscope-key"
    assert resolve_chat_endpoint("sk-user", cfg=EnvKeySettings()).credential == "sk-user"


def test_provider_hint_overrides_detection():
    resolved = resolve_image_endpoint("sk-plain", None, ProviderIdentity.GROK, cfg=SettingsStub())
    assert resolved.provider is ProviderIdentity.GROK
    assert resolved.model == "grok-2-image"


def test_unknown_or_custom_hint_uses_detection():
    assert resolve_chat_endpoint("xai-1", None, "nonsense", cfg=SettingsStub()).provider is ProviderIdentity.GROK
    assert resolve_chat_endpoint(None, None, "custom", cfg=SettingsStub()).provider is ProviderIdentity.DASHSCOPE


def test_custom_config_from_camel_case_dict():
    config = CustomEndpointConfig.from_dict(
        {"chat": {"baseUrl": "https://x/v1", "apiKey": "k", "chatModel": "m"}, "useSeparateImageEndpoint": False}
    )
    resolved = resolve_image_endpoint(None, config, None, cfg=SettingsStub())
    assert (resolved.base_url, resolved.credential, resolved.model) == ("https://x/v1", "k", "dall-e-3")


def test_normalize_base_url():
    assert normalize_base_url(" https://a/b/ ") == "https://a/b"
    assert normalize_base_url("https://a/images/generations", "/images/generations") == "https://a"
