"""State definition for the story turn graph."""

from __future__ import annotations

from typing import List, Optional, TypedDict

from narrator_core.domain.exceptions import BusinessError
from narrator_core.domain.models import AIReply, ConversationMessage, CustomEndpointConfig, ProviderIdentity


class TurnState(TypedDict, total=False):
    """State shared across LangGraph nodes for one user command."""

    history: List[ConversationMessage]
    user_key: Optional[str]
    custom_config: Optional[CustomEndpointConfig]
    provider_hint: Optional[ProviderIdentity]
    reply: Optional[AIReply]
    chat_error: Optional[BusinessError]
    image_url: Optional[str]
    image_error: Optional[BusinessError]
    image_unsupported: bool
