"""Provider 抽象接口与共享的 HTTP 小工具。

图像调度器不直接依赖具体厂商的请求细节，而是依赖 ImageStrategy 协议：

- 每种生成方式实现一个策略（轮询式、同步式、OpenAI 兼容通用式）。
- 负责：把 prompt 转成具体 API 请求，并把响应归一化为单个图像引用。
"""

import json
from typing import Any, Dict, Iterable, Protocol

import httpx

from narrator_core.domain.exceptions import MalformedResponse, NetworkError
from narrator_core.domain.models import ResolvedEndpoint


class ImageStrategy(Protocol):
    """图像生成策略协议。

    - name: 策略名称，用于日志。
    - generate(prompt, resolved): 返回图片 URL 或 data: URL。
    """

    name: str

    def generate(self, prompt: str, resolved: ResolvedEndpoint) -> str:
        ...


def is_usable_credential(credential: str, placeholder_markers: Iterable[str]) -> bool:
    """空串或包含占位符片段的凭证视为不可用。"""

    if not credential or not credential.strip():
        return False
    return not any(marker and marker in credential for marker in placeholder_markers)


def auth_headers(credential: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {credential}",
        "Content-Type": "application/json",
    }


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def read_json(resp) -> Any:
    """解析响应 JSON，失败时包装为 MalformedResponse。"""

    try:
        return resp.json()
    except ValueError:
        raise MalformedResponse("Response body is not valid JSON", raw_fragment=getattr(resp, "text", ""))


def dump_fragment(data: Any) -> str:
    try:
        return json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(data)


def network_error(exc: httpx.RequestError, provider: str) -> NetworkError:
    return NetworkError(code="NETWORK_ERROR", message=str(exc) or type(exc).__name__, provider=provider)
