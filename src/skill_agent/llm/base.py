"""Message types and the chat transport protocol."""

from __future__ import annotations

import base64
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]
ImageDetail = Literal["low", "high", "auto"]


class ImageContent(BaseModel):
    """An image attached to a user message.

    Exactly one of ``url``, ``base64_data`` or ``file_path`` is expected.
    """

    url: str | None = None
    base64_data: str | None = None
    file_path: Path | None = None
    media_type: str = "image/jpeg"
    detail: ImageDetail = "auto"

    def to_url(self) -> str | None:
        """A URL usable in an ``image_url`` content part, inlining data as a data URL."""
        if self.url:
            return self.url
        data = self.base64_data
        if data is None and self.file_path is not None:
            data = base64.b64encode(self.file_path.read_bytes()).decode("ascii")
        if data is None:
            return None
        return f"data:{self.media_type};base64,{data}"


class Message(BaseModel):
    role: Role
    content: str
    images: list[ImageContent] = Field(default_factory=list)
    name: str | None = None


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str


class ChatResponse(BaseModel):
    """A single completion returned by a chat transport."""

    content: str
    model: str | None = None
    usage: dict[str, int] = Field(default_factory=dict)
    finish_reason: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


class ChatClient(Protocol):
    """Stateless chat-completion transport.

    Implementations raise ``ChatProviderError`` when the provider call fails.
    """

    async def chat(
        self,
        messages: Sequence[Message],
        *,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> ChatResponse: ...


def message_user(content: str, images: Sequence[ImageContent] | None = None) -> Message:
    return Message(role="user", content=content, images=list(images or []))


def message_assistant(content: str) -> Message:
    return Message(role="assistant", content=content)


def message_system(content: str) -> Message:
    return Message(role="system", content=content)
