import pytest

from narrator_core.config.settings import NarratorSettings
from narrator_core.domain.conversation import StorySession
from narrator_core.domain.exceptions import MalformedResponse, MissingCredential, ProviderHttpError, TurnInProgress
from narrator_core.domain.models import AIReply
from narrator_core.flows import graph as graph_module
from narrator_core.flows.runner import CONNECTION_LOST_MESSAGE, TEXT_ONLY_NOTICE, run_turn
from narrator_core.providers.chat_client import OFFLINE_LOOK_TEXT

REPLY = AIReply(text="A door opens.", visual_prompt="an open door", choices=["进入", "离开"])


def _settings():
    return NarratorSettings(dashscope_api_key=None, grok_api_key=None, openai_api_key=None)


def _patch(monkeypatch, chat=None, image=None):
    calls = {"chat": 0, "image": 0}

    def fake_chat(history, *a, **kw):
        calls["chat"] += 1
        if isinstance(chat, Exception):
            raise chat
        return chat or REPLY

    def fake_image(prompt, *a, **kw):
        calls["image"] += 1
        if isinstance(image, Exception):
            raise image
        return image or "https://img/new.png"

    monkeypatch.setattr(graph_module, "chat_with_ai", fake_chat)
    monkeypatch.setattr(graph_module, "generate_image_url", fake_image)
    return calls


def test_successful_turn(monkeypatch):
    calls = _patch(monkeypatch)
    session = StorySession()

    outcome = run_turn(session, "open the door", graph=graph_module.build_graph(_settings()))

    assert outcome.reply == REPLY
    assert [m.role for m in session.history] == ["user", "assistant"]
    assert session.history[1].choices == ["进入", "离开"]
    assert session.current_image_url == "https://img/new.png"
    assert session.current_visual_prompt == "an open door"
    assert not session.is_processing
    assert calls == {"chat": 1, "image": 1}


def test_chat_failure_appends_connection_lost(monkeypatch):
    calls = _patch(monkeypatch, chat=ProviderHttpError(500, "boom"))
    session = StorySession()

    outcome = run_turn(session, "look", graph=graph_module.build_graph(_settings()))

    assert outcome.reply is None
    assert isinstance(outcome.chat_error, ProviderHttpError)
    assert session.history[-1].role == "system"
    assert session.history[-1].content == CONNECTION_LOST_MESSAGE
    assert calls["image"] == 0
    assert not session.is_processing


def test_unsupported_image_appends_text_only_notice(monkeypatch):
    _patch(monkeypatch, image=ProviderHttpError(400, "Image generation is not supported"))
    session = StorySession(current_image_url="https://img/old.png")

    outcome = run_turn(session, "look", graph=graph_module.build_graph(_settings()))

    assert outcome.image_unsupported
    assert session.history[-1].content == TEXT_ONLY_NOTICE
    assert session.current_image_url == "https://img/old.png"


def test_other_image_failure_keeps_previous_image(monkeypatch):
    _patch(monkeypatch, image=ProviderHttpError(503, "unavailable"))
    session = StorySession(current_image_url="https://img/old.png")

    outcome = run_turn(session, "look", graph=graph_module.build_graph(_settings()))

    assert not outcome.image_unsupported
    assert session.history[-1].role == "assistant"
    assert session.current_image_url == "https://img/old.png"
    assert session.logs[-1].type == "error"


def test_turn_rejected_while_processing(monkeypatch):
    calls = _patch(monkeypatch)
    session = StorySession()
    session.begin_turn()

    with pytest.raises(TurnInProgress):
        run_turn(session, "look", graph=graph_module.build_graph(_settings()))

    assert session.history == []
    assert calls["chat"] == 0


def test_offline_turn_without_network(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            raise AssertionError("network must not be used")

    monkeypatch.setattr("httpx.Client", Client)
    session = StorySession()

    outcome = run_turn(
        session,
        "look around",
        graph=graph_module.build_graph(_settings(), sleep=lambda s: None),
    )

    assert outcome.reply.text == OFFLINE_LOOK_TEXT
    assert isinstance(outcome.image_error, MissingCredential)
    assert session.history[-1].role == "assistant"
    assert session.current_image_url is None


def test_malformed_job_result_keeps_previous_image(monkeypatch):
    _patch(monkeypatch, image=MalformedResponse("succeeded without a result url", raw_fragment='{"results": {}}'))
    session = StorySession(current_image_url="https://img/old.png")

    outcome = run_turn(session, "look", graph=graph_module.build_graph(_settings()))

    assert isinstance(outcome.image_error, MalformedResponse)
    assert session.current_image_url == "https://img/old.png"
    assert not session.is_processing
