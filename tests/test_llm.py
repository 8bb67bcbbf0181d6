"""Tests for the OpenAI-compatible chat transport."""

from __future__ import annotations

import base64
from pathlib import Path
from unittest.mock import AsyncMock

import openai
import pytest
from openai.types.chat import ChatCompletion

from skill_agent.exception import ChatProviderError
from skill_agent.llm import (
    ImageContent,
    OpenAICompatClient,
    create_client,
    message_assistant,
    message_user,
)
from skill_agent.llm.openai_compat import _to_openai_messages


def _completion(**message) -> ChatCompletion:
    return ChatCompletion.model_validate(
        {
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "created": 0,
            "model": "gpt-test",
            "choices": [
                {
                    "index": 0,
                    "finish_reason": "stop",
                    "message": {"role": "assistant", **message},
                }
            ],
            "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
        }
    )


class TestMessages:
    def test_system_prompt_comes_first(self):
        messages = [message_user("hi"), message_assistant("hello")]
        assert _to_openai_messages(messages, "Be kind.") == [
            {"role": "system", "content": "Be kind."},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]

    def test_images_become_content_parts(self, tmp_path: Path):
        image_file = tmp_path / "pic.png"
        image_file.write_bytes(b"png-bytes")
        message = message_user(
            "What is this?",
            images=[
                ImageContent(url="https://example.com/a.jpg", detail="low"),
                ImageContent(file_path=image_file, media_type="image/png"),
                ImageContent(),
            ],
        )
        encoded = base64.b64encode(b"png-bytes").decode()
        assert _to_openai_messages([message], None) == [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "What is this?"},
                    {
                        "type": "image_url",
                        "image_url": {"url": "https://example.com/a.jpg", "detail": "low"},
                    },
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/png;base64,{encoded}", "detail": "auto"},
                    },
                ],
            }
        ]


class TestOpenAICompatClient:
    def test_environment_fallbacks(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("OPENAI_BASE_URL", "https://llm.example.com/v1/")
        monkeypatch.setenv("OPENAI_MODEL", "env-model")

        client = OpenAICompatClient()

        assert client.model == "env-model"
        assert client.client.api_key == "sk-env"
        assert str(client.client.base_url).startswith("https://llm.example.com/v1")

    async def test_chat_maps_the_completion(self):
        client = OpenAICompatClient(api_key="sk-test", model="gpt-test")
        create = AsyncMock(
            return_value=_completion(
                content="Hello!",
                tool_calls=[
                    {
                        "id": "call_1",
                        "type": "function",
                        "function": {"name": "lookup", "arguments": '{"q": 1}'},
                    }
                ],
            )
        )
        client.client.chat.completions.create = create  # type: ignore[method-assign]

        response = await client.chat([message_user("hi")], system="Sys", max_tokens=20)

        assert response.content == "Hello!"
        assert response.model == "gpt-test"
        assert response.finish_reason == "stop"
        assert response.usage == {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}
        assert [(tc.id, tc.name, tc.arguments) for tc in response.tool_calls] == [
            ("call_1", "lookup", '{"q": 1}')
        ]
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 20
        assert kwargs["messages"][0] == {"role": "system", "content": "Sys"}

    async def test_provider_errors_are_wrapped(self):
        client = OpenAICompatClient(api_key="sk-test")
        client.client.chat.completions.create = AsyncMock(  # type: ignore[method-assign]
            side_effect=openai.OpenAIError("connection refused")
        )
        with pytest.raises(ChatProviderError, match="connection refused"):
            await client.chat([message_user("hi")])


class TestCreateClient:
    def test_openai(self):
        client = create_client(api_key="sk-test", base_url="https://x.example/v1", model="m")
        assert client.model == "m"
        assert str(client.client.base_url).startswith("https://x.example/v1")

    def test_azure(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://res.openai.azure.com/")
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "az-key")

        client = create_client("azure", deployment="gpt-4o")

        assert client.model == "gpt-4o"
        assert str(client.client.base_url).startswith(
            "https://res.openai.azure.com/openai/deployments/gpt-4o"
        )
        assert client.client.default_headers["api-key"] == "az-key"
        assert client.client.default_query == {"api-version": "2024-02-15-preview"}
