"""DashScope 异步图像任务轮询器。

状态机：pending / running 继续轮询；succeeded 返回第一张图片 URL；
failed 抛 ProviderJobFailed；查询次数达到上限后抛 Timeout，
不论 Provider 当时报告的状态是什么。每次调用只跟踪一个任务，
等待函数可注入，测试中不必真的 sleep。
"""

import time
from typing import Any, Callable, Optional

import httpx

from narrator_core.config.settings import settings
from narrator_core.domain.exceptions import MalformedResponse, ProviderHttpError, ProviderJobFailed, Timeout
from narrator_core.domain.models import GenerationJob, JobStatus, ResolvedEndpoint
from narrator_core.infrastructure.logging.logger import logger
from narrator_core.providers.base import auth_headers, dump_fragment, is_success, network_error, read_json

# DashScope 的 CANCELED / UNKNOWN（任务过期或不存在）都视为失败终态
_STATUS_MAP = {
    "PENDING": JobStatus.PENDING,
    "RUNNING": JobStatus.RUNNING,
    "SUCCEEDED": JobStatus.SUCCEEDED,
    "FAILED": JobStatus.FAILED,
    "CANCELED": JobStatus.FAILED,
    "UNKNOWN": JobStatus.FAILED,
}


class JobPoller:
    """按固定间隔查询任务状态，直到终态或次数耗尽。"""

    def __init__(
        self,
        cfg=settings,
        sleep: Callable[[float], None] = time.sleep,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self._settings = cfg
        self._sleep = sleep
        self.interval = cfg.image_poll_interval if interval is None else interval
        self.max_attempts = cfg.image_poll_max_attempts if max_attempts is None else max_attempts

    def poll_until_done(self, task_id: str, resolved: ResolvedEndpoint) -> str:
        job = GenerationJob(task_id=task_id)
        url = f"{resolved.base_url}/api/v1/tasks/{task_id}"
        with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
            while job.attempt_count < self.max_attempts:
                self._sleep(self.interval)
                job.attempt_count += 1
                try:
                    resp = client.get(url, headers=auth_headers(resolved.credential))
                except httpx.RequestError as e:
                    raise network_error(e, resolved.provider.value)
                if resp.status_code == 429:
                    # 限流时本次不计入状态变化，继续等下一轮
                    logger.warning("image.poll_rate_limited", extra={"extra": {"task_id": task_id}})
                    continue
                if not is_success(resp.status_code):
                    raise ProviderHttpError(resp.status_code, resp.text, provider=resolved.provider.value)
                data = read_json(resp)
                self._advance(job, data)
                logger.info(
                    "image.poll",
                    extra={"extra": {"task_id": task_id, "status": job.status.value, "attempt": job.attempt_count}},
                )
                if job.status is JobStatus.SUCCEEDED:
                    return self._result_url(job, data)
                if job.status is JobStatus.FAILED:
                    output = data.get("output") or {}
                    message = output.get("message") or data.get("message") or "Image generation task failed"
                    raise ProviderJobFailed(task_id, f"DashScope task failed: {message}")
        logger.error("image.poll_timeout", extra={"extra": {"task_id": task_id, "attempts": job.attempt_count}})
        raise Timeout(task_id, job.attempt_count)

    @staticmethod
    def _advance(job: GenerationJob, data: Any) -> None:
        output = data.get("output") if isinstance(data, dict) else None
        raw_status = output.get("task_status") if isinstance(output, dict) else None
        if isinstance(raw_status, str):
            # 未识别的状态保持原状继续轮询
            job.status = _STATUS_MAP.get(raw_status.upper(), job.status)

    @staticmethod
    def _result_url(job: GenerationJob, data: dict) -> str:
        output = data.get("output")
        results = output.get("results") if isinstance(output, dict) else None
        first = results[0] if isinstance(results, list) and results and isinstance(results[0], dict) else {}
        url = first.get("url")
        if not isinstance(url, str) or not url:
            raise MalformedResponse(
                f"Task {job.task_id} succeeded without a result url",
                raw_fragment=dump_fragment(data),
            )
        return url
