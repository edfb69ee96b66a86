"""统一的对话、端点与生成结果数据模型。

本模块定义了编排层在不同 Provider 之间共享的标准数据结构：

- ConversationMessage: 故事对话中的一条消息（user/assistant/system）。
- CustomEndpointConfig: 用户在设置面板里填写的自定义端点（只读）。
- ResolvedEndpoint: 每次调用临时计算出的 {provider, base_url, credential, model}。
- GenerationJob: 轮询式图像任务的临时状态。
- AIReply: 所有 Provider 响应最终归一化成的结构。

所有 Provider 适配器都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


# 故事消息角色类型（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["user", "assistant", "system"]


class ProviderIdentity(str, Enum):
    """决定请求构造与响应解析策略的 Provider 标识（封闭集合）。"""

    DASHSCOPE = "dashscope"
    GROK = "grok"
    CUSTOM = "custom"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ConversationMessage:
    """一条故事消息，追加进会话后不再修改。

    - role: 消息角色。
    - content: 纯文本内容。
    - choices: 仅 assistant 消息携带，给玩家的下一步行动建议。
    """

    role: Role
    content: str
    choices: Optional[List[str]] = None

    def to_payload(self) -> Dict[str, str]:
        """转换为 chat/completions 的 message 结构（choices 不发给模型）。"""

        return {"role": self.role, "content": self.content}


@dataclass
class ChatEndpointSection:
    base_url: str = ""
    api_key: str = ""
    chat_model: str = ""

    def is_complete(self) -> bool:
        return bool(self.base_url.strip() and self.api_key.strip())


@dataclass
class ImageEndpointSection:
    base_url: str = ""
    api_key: str = ""
    image_model: str = ""

    def is_complete(self) -> bool:
        return bool(self.base_url.strip() and self.api_key.strip())


@dataclass
class CustomEndpointConfig:
    """用户自定义的 OpenAI 兼容端点配置。

    use_separate_image_endpoint 为 False 时，图像调用在解析阶段
    回落到 chat 段的 base_url/api_key，image 段只贡献模型名。
    """

    chat: ChatEndpointSection = field(default_factory=ChatEndpointSection)
    image: ImageEndpointSection = field(default_factory=ImageEndpointSection)
    use_separate_image_endpoint: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomEndpointConfig":
        """从设置面板的 JSON（camelCase 或 snake_case 均可）构造配置。"""

        def pick(section: Dict[str, Any], *names: str) -> str:
            for name in names:
                value = section.get(name)
                if value:
                    return str(value)
            return ""

        chat_raw = data.get("chat") or {}
        image_raw = data.get("image") or {}
        separate = data.get("useSeparateImageEndpoint", data.get("use_separate_image_endpoint", False))
        return cls(
            chat=ChatEndpointSection(
                base_url=pick(chat_raw, "baseUrl", "base_url"),
                api_key=pick(chat_raw, "apiKey", "api_key"),
                chat_model=pick(chat_raw, "chatModel", "chat_model"),
            ),
            image=ImageEndpointSection(
                base_url=pick(image_raw, "baseUrl", "base_url"),
                api_key=pick(image_raw, "apiKey", "api_key"),
                image_model=pick(image_raw, "imageModel", "image_model"),
            ),
            use_separate_image_endpoint=bool(separate),
        )


@dataclass(frozen=True)
class ResolvedEndpoint:
    """单次调用使用的具体端点，每次调用都从当前配置重新计算，从不持久化。"""

    provider: ProviderIdentity
    base_url: str
    credential: str
    model: str


@dataclass
class GenerationJob:
    """轮询式图像任务，仅由 JobPoller 修改。"""

    task_id: str
    status: JobStatus = JobStatus.PENDING
    attempt_count: int = 0


@dataclass(frozen=True)
class AIReply:
    """Chat 调用的归一化结果。"""

    text: str
    visual_prompt: str
    choices: List[str] = field(default_factory=list)

    def to_message(self) -> ConversationMessage:
        return ConversationMessage(role="assistant", content=self.text, choices=list(self.choices))
