import pytest

from narrator_core.domain.exceptions import MalformedResponse, ProviderJobFailed, Timeout
from narrator_core.domain.models import ProviderIdentity, ResolvedEndpoint
from narrator_core.providers.job_poller import JobPoller


class SettingsStub:
    http_timeout = 1.0
    image_poll_interval = 1.0
    image_poll_max_attempts = 30


RESOLVED = ResolvedEndpoint(
    provider=ProviderIdentity.DASHSCOPE, base_url="https://dashscope.aliyuncs.com", credential="sk-real", model="wanx-v1"
)


class Resp:
    def __init__(self, body, status_code=200):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        return self._body


def _status(status, **output):
    return Resp({"output": {"task_status": status, **output}})


def _install_client(monkeypatch, responses, calls):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def get(self, url, headers=None, **_):
            calls.append((url, headers))
            return next(responses)

    monkeypatch.setattr("httpx.Client", Client)


def test_poll_until_succeeded(monkeypatch):
    calls, sleeps = [], []
    responses = iter([
        _status("PENDING"),
        _status("RUNNING"),
        _status("SUCCEEDED", results=[{"url": "https://img/1.png"}]),
    ])
    _install_client(monkeypatch, responses, calls)

    url = JobPoller(SettingsStub(), sleep=sleeps.append).poll_until_done("task-1", RESOLVED)

    assert url == "https://img/1.png"
    assert len(calls) == 3
    assert sleeps == [1.0, 1.0, 1.0]
    assert calls[0][0] == "https://dashscope.aliyuncs.com/api/v1/tasks/task-1"
    assert calls[0][1]["Authorization"] == "Bearer sk-real"


def test_always_running_times_out_at_ceiling(monkeypatch):
    calls, sleeps = [], []

    def forever():
        while True:
            yield _status("RUNNING")

    _install_client(monkeypatch, forever(), calls)
    poller = JobPoller(SettingsStub(), sleep=sleeps.append, max_attempts=5)

    with pytest.raises(Timeout) as exc_info:
        poller.poll_until_done("task-2", RESOLVED)

    assert exc_info.value.attempts == 5
    assert len(calls) == 5
    assert len(sleeps) == 5


def test_default_ceiling_comes_from_settings(monkeypatch):
    calls = []

    def forever():
        while True:
            yield _status("PENDING")

    _install_client(monkeypatch, forever(), calls)

    with pytest.raises(Timeout):
        JobPoller(SettingsStub(), sleep=lambda s: None).poll_until_done("task-3", RESOLVED)

    assert len(calls) == 30


def test_failed_task(monkeypatch):
    calls = []
    responses = iter([_status("RUNNING"), _status("FAILED", message="content moderation")])
    _install_client(monkeypatch, responses, calls)

    with pytest.raises(ProviderJobFailed) as exc_info:
        JobPoller(SettingsStub(), sleep=lambda s: None).poll_until_done("task-4", RESOLVED)

    assert exc_info.value.task_id == "task-4"
    assert "content moderation" in exc_info.value.message


def test_succeeded_without_results_is_malformed(monkeypatch):
    calls = []
    _install_client(monkeypatch, iter([_status("SUCCEEDED", results=[])]), calls)

    with pytest.raises(MalformedResponse):
        JobPoller(SettingsStub(), sleep=lambda s: None).poll_until_done("task-5", RESOLVED)


def test_rate_limited_check_counts_as_attempt(monkeypatch):
    calls = []
    responses = iter([Resp({}, status_code=429), _status("SUCCEEDED", results=[{"url": "u"}])])
    _install_client(monkeypatch, responses, calls)

    url = JobPoller(SettingsStub(), sleep=lambda s: None, max_attempts=2).poll_until_done("task-6", RESOLVED)

    assert url == "u"
    assert len(calls) == 2


@pytest.mark.parametrize(
    "output",
    [
        {"task_status": "SUCCEEDED", "results": {"url": "u"}},
        {"task_status": "SUCCEEDED", "results": [{"url": {"href": "u"}}]},
        {"task_status": "SUCCEEDED", "results": ["u"]},
    ],
)
def test_succeeded_with_odd_results_shape_is_malformed(monkeypatch, output):
    calls = []
    _install_client(monkeypatch, iter([Resp({"output": output})]), calls)

    with pytest.raises(MalformedResponse) as exc_info:
        JobPoller(SettingsStub(), sleep=lambda s: None).poll_until_done("task-7", RESOLVED)

    assert "SUCCEEDED" in exc_info.value.raw_fragment
