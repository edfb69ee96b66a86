"""图像调度器与三种生成策略。

- DashScopeImageStrategy: 提交异步任务，再交给 JobPoller 轮询。
- GrokImageStrategy: 单次同步调用 images/generations。
- GenericImageStrategy: 用户自定义的 OpenAI 兼容端点。第三方网关的响应
  形态并不统一，所以按顺序尝试一组提取器，第一个结构匹配的生效。

凭证缺失时直接抛 MissingCredential，图像生成没有离线模式。
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import httpx

from narrator_core.config.settings import settings
from narrator_core.domain.exceptions import (
    ImageUnsupportedByProvider,
    MalformedResponse,
    MissingCredential,
    ProviderHttpError,
    ProviderProtocolError,
    matches_unsupported_marker,
)
from narrator_core.domain.models import ProviderIdentity, ResolvedEndpoint
from narrator_core.infrastructure.logging.logger import logger, redact_key
from narrator_core.providers.base import (
    ImageStrategy,
    auth_headers,
    dump_fragment,
    is_success,
    is_usable_credential,
    network_error,
    read_json,
)
from narrator_core.providers.job_poller import JobPoller

DASHSCOPE_STYLE_SUFFIX = ", 2d game art, sci-fi style, high quality"
DASHSCOPE_PARAMETERS = {"style": "<auto>", "size": "1280*720", "n": 1}


def _error_message(data: Any) -> Optional[str]:
    """取出 {"error": {...}} / {"error": "..."} 信封中的错误消息。"""

    if not isinstance(data, dict) or not data.get("error"):
        return None
    error = data["error"]
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or dump_fragment(error))
    return str(error)


def _post(url: str, payload: dict, resolved: ResolvedEndpoint, timeout: float, extra_headers=None):
    headers = auth_headers(resolved.credential)
    if extra_headers:
        headers.update(extra_headers)
    try:
        with httpx.Client(timeout=timeout, trust_env=False) as client:
            return client.post(url, json=payload, headers=headers)
    except httpx.RequestError as e:
        raise network_error(e, resolved.provider.value)


def _optional_json(resp) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


class DashScopeImageStrategy:
    """DashScope 文生图：异步提交 + 轮询。"""

    name = "dashscope"

    def __init__(self, cfg=settings, poller: Optional[JobPoller] = None):
        self._settings = cfg
        self._poller = poller or JobPoller(cfg)

    def generate(self, prompt: str, resolved: ResolvedEndpoint) -> str:
        url = f"{resolved.base_url}/api/v1/services/aigc/text2image/image-synthesis"
        payload = {
            "model": resolved.model,
            "input": {"prompt": prompt + DASHSCOPE_STYLE_SUFFIX},
            "parameters": dict(DASHSCOPE_PARAMETERS),
        }
        resp = _post(url, payload, resolved, self._settings.http_timeout, {"X-DashScope-Async": "enable"})
        data = _optional_json(resp)
        if isinstance(data, dict) and data.get("code"):
            raise ProviderHttpError(
                resp.status_code,
                resp.text,
                message=f"DashScope Error: {data.get('message') or data['code']}",
                provider=self.name,
            )
        if not is_success(resp.status_code):
            raise ProviderHttpError(resp.status_code, resp.text, provider=self.name)
        if data is None:
            raise MalformedResponse("DashScope submission is not valid JSON", raw_fragment=resp.text)
        output = data.get("output") if isinstance(data, dict) else None
        task_id = output.get("task_id") if isinstance(output, dict) else None
        if not isinstance(task_id, str) or not task_id:
            raise ProviderProtocolError(
                "Failed to start image generation task: no task_id in response",
                raw_fragment=dump_fragment(data),
            )
        logger.info("image.submitted", extra={"extra": {"task_id": task_id}})
        return self._poller.poll_until_done(task_id, resolved)


class GrokImageStrategy:
    """xAI Grok：单次同步调用。"""

    name = "grok"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def generate(self, prompt: str, resolved: ResolvedEndpoint) -> str:
        url = f"{resolved.base_url}/images/generations"
        payload = {"model": resolved.model, "prompt": prompt, "n": 1, "response_format": "url"}
        resp = _post(url, payload, resolved, self._settings.http_timeout)
        if not is_success(resp.status_code):
            message = _error_message(_optional_json(resp))
            raise ProviderHttpError(
                resp.status_code,
                resp.text,
                message=f"Grok Error: {message}" if message else None,
                provider=self.name,
            )
        data = read_json(resp)
        items = data.get("data") if isinstance(data, dict) else None
        first = items[0] if isinstance(items, list) and items and isinstance(items[0], dict) else {}
        if not isinstance(first.get("url"), str) or not first["url"]:
            raise MalformedResponse("Grok response has no image url", raw_fragment=dump_fragment(data))
        return first["url"]


# ---- 通用端点的响应提取器 ----


@dataclass(frozen=True)
class ResponseExtractor:
    """一个结构探测器：匹配时返回图像引用，不匹配返回 None。"""

    name: str
    probe: Callable[[dict], Optional[str]]


def _first_item(data: dict) -> dict:
    items = data.get("data")
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _probe_data_url(data: dict) -> Optional[str]:
    url = _first_item(data).get("url")
    return url if isinstance(url, str) and url else None


def _probe_data_b64(data: dict) -> Optional[str]:
    b64 = _first_item(data).get("b64_json")
    if not isinstance(b64, str) or not b64:
        return None
    return f"data:image/png;base64,{b64}"


def _probe_top_level(data: dict) -> Optional[str]:
    for key in ("url", "image_url"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    output = data.get("output")
    if isinstance(output, dict) and isinstance(output.get("url"), str) and output["url"]:
        return output["url"]
    return None


GENERIC_EXTRACTORS: Sequence[ResponseExtractor] = (
    ResponseExtractor("data_url", _probe_data_url),
    ResponseExtractor("data_b64_json", _probe_data_b64),
    ResponseExtractor("top_level_url", _probe_top_level),
)


class GenericImageStrategy:
    """OpenAI 兼容的自定义端点。"""

    name = "custom"

    def __init__(self, cfg=settings, extractors: Sequence[ResponseExtractor] = GENERIC_EXTRACTORS):
        self._settings = cfg
        self._extractors = extractors

    def generate(self, prompt: str, resolved: ResolvedEndpoint) -> str:
        url = f"{resolved.base_url}/images/generations"
        payload = {"model": resolved.model, "prompt": prompt, "n": 1}
        size = getattr(self._settings, "custom_image_size", "")
        if size:
            payload["size"] = size
        resp = _post(url, payload, resolved, self._settings.http_timeout)
        data = _optional_json(resp)
        self._raise_on_error_envelope(resp, data)
        if not is_success(resp.status_code):
            raise ProviderHttpError(resp.status_code, resp.text, provider=self.name)
        if not isinstance(data, dict):
            raise MalformedResponse("Image response is not a JSON object", raw_fragment=resp.text)
        return self.extract(data)

    def extract(self, data: dict) -> str:
        for extractor in self._extractors:
            ref = extractor.probe(data)
            if ref:
                logger.info("image.extracted", extra={"extra": {"extractor": extractor.name}})
                return ref
        raise MalformedResponse(
            "Unrecognized image response shape",
            raw_fragment=dump_fragment(data),
        )

    def _raise_on_error_envelope(self, resp, data: Any) -> None:
        message = _error_message(data)
        if message is None:
            return
        markers = self._settings.image_unsupported_markers
        if matches_unsupported_marker(message, markers) or matches_unsupported_marker(resp.text, markers):
            raise ImageUnsupportedByProvider(
                resp.status_code,
                resp.text,
                message=f"Endpoint does not support image generation: {message}",
                provider=self.name,
            )
        raise ProviderHttpError(resp.status_code, resp.text, message=f"Image API Error: {message}", provider=self.name)


class ImageDispatcher:
    """按 ResolvedEndpoint.provider 选择策略并生成一张图片。"""

    def __init__(self, cfg=settings, sleep: Callable[[float], None] = time.sleep, strategies=None):
        self._settings = cfg
        self._sleep = sleep
        self._strategies = dict(strategies or {})

    def strategy_for(self, provider: ProviderIdentity) -> ImageStrategy:
        if provider in self._strategies:
            return self._strategies[provider]
        # 延迟导入，避免与包级工厂循环依赖
        from narrator_core.providers import create_image_strategy

        return create_image_strategy(provider, self._settings, self._sleep)

    def generate_image(self, prompt: str, resolved: ResolvedEndpoint) -> str:
        if not is_usable_credential(resolved.credential, self._settings.placeholder_key_markers):
            raise MissingCredential(f"No API key configured for {resolved.provider.value} image generation")
        strategy = self.strategy_for(resolved.provider)
        logger.info(
            "image.request",
            extra={
                "extra": {
                    "strategy": strategy.name,
                    "base_url": resolved.base_url,
                    "model": resolved.model,
                    "key": redact_key(resolved.credential),
                }
            },
        )
        return strategy.generate(prompt, resolved)
