"""Narrator Core 顶层包。

该包提供交互式叙事客户端的 AI 编排层：多 Provider 端点解析、
叙事 chat 调用、图像生成（含异步任务轮询），以及单回合流程。
"""

from narrator_core.api.service import chat_with_ai, generate_image_url
from narrator_core.flows.runner import run_turn

__all__ = ["chat_with_ai", "generate_image_url", "run_turn"]
