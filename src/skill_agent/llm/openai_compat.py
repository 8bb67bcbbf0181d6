"""Chat transport for OpenAI-compatible endpoints."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from typing import Any, Literal

import openai
from loguru import logger
from openai import AsyncOpenAI

from skill_agent.constant import USER_AGENT
from skill_agent.exception import ChatProviderError

from .base import ChatResponse, Message, ToolCall

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4"
DEFAULT_TIMEOUT = 120.0
DEFAULT_AZURE_API_VERSION = "2024-02-15-preview"


def _to_openai_messages(
    messages: Sequence[Message], system: str | None
) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    if system:
        out.append({"role": "system", "content": system})
    for msg in messages:
        if not msg.images:
            out.append({"role": msg.role, "content": msg.content})
            continue
        parts: list[dict[str, Any]] = []
        if msg.content:
            parts.append({"type": "text", "text": msg.content})
        for image in msg.images:
            url = image.to_url()
            if url:
                parts.append(
                    {"type": "image_url", "image_url": {"url": url, "detail": image.detail}}
                )
        out.append({"role": msg.role, "content": parts})
    return out


class OpenAICompatClient:
    """ChatClient backed by ``openai.AsyncOpenAI``.

    Settings not passed explicitly fall back to ``OPENAI_API_KEY``,
    ``OPENAI_BASE_URL`` and ``OPENAI_MODEL``.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        default_headers: Mapping[str, str] | None = None,
        default_query: Mapping[str, str] | None = None,
    ) -> None:
        api_key = api_key or os.environ.get("OPENAI_API_KEY") or None
        base_url = base_url or os.environ.get("OPENAI_BASE_URL") or DEFAULT_BASE_URL
        self.model = model or os.environ.get("OPENAI_MODEL") or DEFAULT_MODEL
        self.client = AsyncOpenAI(
            api_key=api_key or "",
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            default_headers={"User-Agent": USER_AGENT, **(default_headers or {})},
            default_query=dict(default_query) if default_query else None,
        )

    async def chat(
        self,
        messages: Sequence[Message],
        *,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> ChatResponse:
        model = kwargs.pop("model", None) or self.model
        params: dict[str, Any] = {
            "model": model,
            "messages": _to_openai_messages(messages, system),
            "temperature": temperature,
        }
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        try:
            completion = await self.client.chat.completions.create(**params)
        except openai.OpenAIError as e:
            logger.debug("Chat completion failed: {error}", error=e)
            raise ChatProviderError(f"Chat completion failed: {e}") from e

        if not completion.choices:
            return ChatResponse(content="", model=completion.model)

        choice = completion.choices[0]
        message = choice.message
        tool_calls = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments)
            for tc in message.tool_calls or []
            if getattr(tc, "function", None) is not None
        ]
        usage: dict[str, int] = {}
        if completion.usage is not None:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }
        return ChatResponse(
            content=message.content or "",
            model=completion.model,
            usage=usage,
            finish_reason=choice.finish_reason,
            tool_calls=tool_calls,
        )


def create_client(
    provider: Literal["openai", "azure"] = "openai",
    *,
    api_key: str | None = None,
    base_url: str | None = None,
    model: str | None = None,
    endpoint: str | None = None,
    deployment: str | None = None,
    api_version: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    default_headers: Mapping[str, str] | None = None,
) -> OpenAICompatClient:
    """Build a client for ``provider``.

    For ``azure`` the deployment URL is derived from ``endpoint`` and ``deployment``
    with fallbacks to the ``AZURE_OPENAI_*`` environment variables.
    """
    if provider == "azure":
        endpoint = endpoint or os.environ.get("AZURE_OPENAI_ENDPOINT", "")
        deployment = deployment or os.environ.get("AZURE_OPENAI_DEPLOYMENT") or DEFAULT_MODEL
        api_key = api_key or os.environ.get("AZURE_OPENAI_API_KEY", "")
        api_version = (
            api_version
            or os.environ.get("AZURE_OPENAI_API_VERSION")
            or DEFAULT_AZURE_API_VERSION
        )
        return OpenAICompatClient(
            api_key=api_key,
            base_url=f"{endpoint.rstrip('/')}/openai/deployments/{deployment}",
            model=deployment,
            timeout=timeout,
            default_headers={"api-key": api_key, **(default_headers or {})},
            default_query={"api-version": api_version},
        )
    return OpenAICompatClient(
        api_key=api_key,
        base_url=base_url,
        model=model,
        timeout=timeout,
        default_headers=default_headers,
    )
