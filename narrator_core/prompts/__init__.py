"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取叙事者的 system prompt，
用于构造 role="system" 的消息。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_system_prompt(locale: str = "zh") -> str:
    """读取叙事者系统提示词文本。"""

    fname = PROMPTS_DIR / locale / "narrator_system.md"
    return fname.read_text(encoding="utf-8")
