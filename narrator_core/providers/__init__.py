"""多 Provider 编排层。

该包下的模块负责：
- 维护预置 Provider 配置 (registry) 与凭证识别 (detector)。
- 计算每次调用的端点 (resolver)。
- 叙事 chat 调用 (chat_client) 与图像生成 (image_client、job_poller)。
"""

import time
from typing import Callable

from narrator_core.config.settings import settings
from narrator_core.domain.models import ProviderIdentity
from narrator_core.providers.base import ImageStrategy
from narrator_core.providers.image_client import DashScopeImageStrategy, GenericImageStrategy, GrokImageStrategy
from narrator_core.providers.job_poller import JobPoller


def create_image_strategy(
    identity: ProviderIdentity,
    cfg=None,
    sleep: Callable[[float], None] = time.sleep,
) -> ImageStrategy:
    """根据 Provider 标识创建图像策略实例。"""

    cfg = cfg or settings
    if identity is ProviderIdentity.DASHSCOPE:
        return DashScopeImageStrategy(cfg, JobPoller(cfg, sleep=sleep))
    if identity is ProviderIdentity.GROK:
        return GrokImageStrategy(cfg)
    return GenericImageStrategy(cfg)


