"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在回合流程或 UI 层做统一捕获与用户提示。
"""

from typing import Iterable, Optional


MAX_BODY_CHARS = 500


def truncate_body(body: Optional[str], limit: int = MAX_BODY_CHARS) -> str:
    text = body or ""
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、task_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回了无法使用的结果。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class MissingCredential(ValidationError):
    """解析出的凭证为空或是占位符。"""

    def __init__(self, message: str = "API key not configured", **extra):
        super().__init__(code="MISSING_API_KEY", message=message, http_status=401, **extra)


class ProviderHttpError(ApiError):
    """Provider 返回非 2xx 状态或显式的错误信封。"""

    def __init__(self, status: int, body: str, message: Optional[str] = None, **extra):
        self.status = status
        self.body = truncate_body(body)
        super().__init__(
            code="PROVIDER_HTTP_ERROR",
            message=message or f"Provider returned HTTP {status}: {self.body}",
            http_status=status,
            **extra,
        )


class ImageUnsupportedByProvider(ProviderHttpError):
    """端点本身不支持图像生成，调用方应降级为纯文本继续。"""

    def __init__(self, status: int, body: str, message: Optional[str] = None, **extra):
        super().__init__(status, body, message=message, **extra)
        self.code = "IMAGE_UNSUPPORTED"


class ProviderProtocolError(ApiError):
    """成功响应的结构与协议约定不符（例如缺少 task_id）。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="PROVIDER_PROTOCOL_ERROR", message=message, http_status=502, **extra)


class MalformedResponse(ApiError):
    """响应体无法解析或缺少必要字段。"""

    def __init__(self, message: str, raw_fragment: str = "", **extra):
        self.raw_fragment = truncate_body(raw_fragment)
        super().__init__(code="MALFORMED_RESPONSE", message=message, http_status=502, **extra)


class ProviderJobFailed(ApiError):
    """异步生成任务以失败状态结束。"""

    def __init__(self, task_id: str, message: str, **extra):
        self.task_id = task_id
        super().__init__(code="JOB_FAILED", message=message, http_status=502, task_id=task_id, **extra)


class Timeout(BusinessError):
    """轮询次数耗尽，任务仍未结束。"""

    def __init__(self, task_id: str, attempts: int):
        self.task_id = task_id
        self.attempts = attempts
        super().__init__(
            code="JOB_TIMEOUT",
            message=f"Image generation timeout after {attempts} status checks",
            http_status=504,
            task_id=task_id,
        )


class TurnInProgress(BusinessError):
    """上一条指令仍在处理中，拒绝新的指令。"""

    def __init__(self):
        super().__init__(code="TURN_IN_PROGRESS", message="A command is already being processed", http_status=409)


def matches_unsupported_marker(text: Optional[str], markers: Iterable[str]) -> bool:
    lowered = (text or "").lower()
    return any(marker.lower() in lowered for marker in markers if marker)


def is_image_unsupported(exc: BaseException, markers: Iterable[str]) -> bool:
    """判断一次图像失败是否属于“端点不支持图像生成”。

    除了显式的 ImageUnsupportedByProvider，还会在错误消息、响应片段中
    查找 markers；这些片段来自 Provider 的自由文本，随时可能变化，
    因此由配置提供而不是写死。
    """

    if isinstance(exc, ImageUnsupportedByProvider):
        return True
    haystacks = [str(exc)]
    if isinstance(exc, ProviderHttpError):
        haystacks.append(exc.body)
    if isinstance(exc, MalformedResponse):
        haystacks.append(exc.raw_fragment)
    markers = list(markers)
    return any(matches_unsupported_marker(h, markers) for h in haystacks)
