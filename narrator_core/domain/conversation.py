"""单局故事的会话状态。

UI 层渲染的就是这里的数据：追加式的故事历史、调试日志、当前插画，
以及一个 processing 标志，保证同一时间只处理一条指令。
持久化不在本模块职责内。
"""

import time
from dataclasses import dataclass, field
from typing import Any, List, Literal, Optional

from narrator_core.domain.exceptions import TurnInProgress
from narrator_core.domain.models import ConversationMessage, CustomEndpointConfig, ProviderIdentity

LogType = Literal["info", "error", "success", "warning"]


@dataclass(frozen=True)
class LogEntry:
    timestamp: float
    type: LogType
    message: str
    details: Optional[Any] = None


@dataclass
class StorySession:
    """一局游戏的全部可变状态。

    - history: 只追加不修改的故事消息序列。
    - logs: 调试面板显示的日志。
    - api_key / custom_config / provider_hint: 设置面板提供的凭证输入，
      reset 时保留。
    """

    history: List[ConversationMessage] = field(default_factory=list)
    logs: List[LogEntry] = field(default_factory=list)
    current_image_url: Optional[str] = None
    current_visual_prompt: Optional[str] = None
    is_processing: bool = False
    api_key: Optional[str] = None
    custom_config: Optional[CustomEndpointConfig] = None
    provider_hint: Optional[ProviderIdentity] = None

    def add_message(self, message: ConversationMessage) -> None:
        self.history.append(message)

    def add_log(self, type: LogType, message: str, details: Optional[Any] = None) -> None:
        self.logs.append(LogEntry(timestamp=time.time(), type=type, message=message, details=details))

    def set_image(self, url: str, prompt: str) -> None:
        self.current_image_url = url
        self.current_visual_prompt = prompt

    def begin_turn(self) -> None:
        if self.is_processing:
            raise TurnInProgress()
        self.is_processing = True

    def end_turn(self) -> None:
        self.is_processing = False

    def reset(self) -> None:
        """清空故事、日志与插画，保留凭证配置。"""

        self.history = []
        self.logs = []
        self.current_image_url = None
        self.current_visual_prompt = None
        self.is_processing = False
