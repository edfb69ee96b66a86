"""根据凭证字符串的字面特征推断 Provider，不做任何网络请求。"""

from typing import Optional

from narrator_core.domain.models import ProviderIdentity
from narrator_core.providers.registry import DEFAULT_PRESET, GROK_KEY_PREFIX


def detect_provider(key: Optional[str] = None) -> ProviderIdentity:
    """xai- 前缀归为 Grok，其余（包括空值）归为默认预置 Provider。"""

    if key and key.strip().startswith(GROK_KEY_PREFIX):
        return ProviderIdentity.GROK
    return DEFAULT_PRESET
