"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("NARRATOR_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class YamlConfigSource(PydanticBaseSettingsSource):
    """把 config.yaml 作为一个 settings 来源接入 pydantic-settings。"""

    def __init__(self, settings_cls):
        super().__init__(settings_cls)
        self._data = _load_config_from_yaml()

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        fields = self.settings_cls.model_fields
        return {k: v for k, v in self._data.items() if k in fields and v is not None}


class NarratorSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 预置 Provider 的兜底凭证 ----
    dashscope_api_key: Optional[str] = Field(default=None, description="DashScope API 密钥")
    grok_api_key: Optional[str] = Field(default=None, description="xAI Grok API 密钥")
    openai_api_key: Optional[str] = Field(
        default=None,
        description="默认 Provider 的次级兜底密钥",
    )

    dashscope_base_url: str = Field(
        default="https://dashscope.aliyuncs.com",
        description="DashScope 主机地址（不含 compatible-mode 路径）",
    )
    grok_base_url: str = Field(default="https://api.x.ai/v1", description="Grok API 基础URL")

    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")
    offline_reply_delay: float = Field(default=1.5, ge=0.0, description="离线模拟回复的延迟（秒）")

    # ---- 图像任务轮询 ----
    image_poll_interval: float = Field(default=1.0, ge=0.0, description="任务状态查询间隔（秒）")
    image_poll_max_attempts: int = Field(default=30, ge=1, le=600, description="任务状态查询最大次数")

    # ---- 自定义端点 ----
    default_custom_chat_model: str = Field(default="gpt-4o-mini", description="自定义端点未填写模型时的 chat 模型")
    default_custom_image_model: str = Field(default="dall-e-3", description="自定义端点的默认图像模型")
    custom_image_size: str = Field(default="1024x1024", description="自定义端点图像尺寸，留空则不发送")

    placeholder_key_markers: List[str] = Field(
        default_factory=lambda: ["your_api_key_here", "your_openai_key_here", "sk-xxxx"],
        description="视为占位符的密钥片段",
    )
    image_unsupported_markers: List[str] = Field(
        default_factory=lambda: ["not supported", "could not generate an image", "bad_response_body"],
        description="判定“接口不支持图像生成”的错误消息片段（不区分大小写）",
    )

    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("dashscope_api_key", "grok_api_key", "openai_api_key")
    @classmethod
    def strip_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSource(settings_cls),
            file_secret_settings,
        )


settings = NarratorSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = NarratorSettings
