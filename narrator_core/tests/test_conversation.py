import pytest

from narrator_core.domain.conversation import StorySession
from narrator_core.domain.exceptions import TurnInProgress
from narrator_core.domain.models import AIReply, ConversationMessage


def test_reset_keeps_credentials():
    session = StorySession(api_key="sk-1")
    session.add_message(ConversationMessage(role="user", content="hi"))
    session.add_log("info", "User input received")
    session.set_image("https://img", "prompt")

    session.reset()

    assert session.history == []
    assert session.logs == []
    assert session.current_image_url is None
    assert session.api_key == "sk-1"


def test_processing_flag_blocks_second_turn():
    session = StorySession()
    session.begin_turn()
    with pytest.raises(TurnInProgress):
        session.begin_turn()
    session.end_turn()
    session.begin_turn()
    assert session.is_processing


def test_reply_to_message_keeps_choices():
    message = AIReply(text="t", visual_prompt="v", choices=["a"]).to_message()
    assert message.role == "assistant"
    assert message.choices == ["a"]
