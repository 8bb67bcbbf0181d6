from __future__ import annotations

from skill_agent.llm.base import (
    ChatClient,
    ChatResponse,
    ImageContent,
    Message,
    ToolCall,
    message_assistant,
    message_system,
    message_user,
)
from skill_agent.llm.openai_compat import OpenAICompatClient, create_client

__all__ = [
    "ChatClient",
    "ChatResponse",
    "ImageContent",
    "Message",
    "ToolCall",
    "message_assistant",
    "message_system",
    "message_user",
    "OpenAICompatClient",
    "create_client",
]
