from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from skill_agent.agent import RELEVANCE_SYSTEM_PROMPT, SKILL_ROUTER_SYSTEM_PROMPT
from skill_agent.llm import ChatResponse, Message
from skill_agent.share import _resolve_share_dir


class FakeChatClient:
    """Chat client that answers routing, relevance and reply requests separately."""

    def __init__(
        self,
        reply: str = "Done.",
        *,
        route: str = "NONE",
        relevance: str = "",
        reply_error: Exception | None = None,
        aux_error: Exception | None = None,
    ) -> None:
        self.reply = reply
        self.route = route
        self.relevance = relevance
        self.reply_error = reply_error
        self.aux_error = aux_error
        self.calls: list[dict[str, Any]] = []

    async def chat(
        self,
        messages: Sequence[Message],
        *,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> ChatResponse:
        call = {
            "messages": list(messages),
            "system": system,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "kwargs": kwargs,
        }
        self.calls.append(call)
        if system in (SKILL_ROUTER_SYSTEM_PROMPT, RELEVANCE_SYSTEM_PROMPT):
            if self.aux_error is not None:
                raise self.aux_error
            answer = self.route if system == SKILL_ROUTER_SYSTEM_PROMPT else self.relevance
            return ChatResponse(content=answer)
        if self.reply_error is not None:
            raise self.reply_error
        return ChatResponse(content=self.reply, model="fake", usage={"total_tokens": 42})

    def _calls_with(self, system: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["system"] == system]

    @property
    def routing_calls(self) -> list[dict[str, Any]]:
        return self._calls_with(SKILL_ROUTER_SYSTEM_PROMPT)

    @property
    def relevance_calls(self) -> list[dict[str, Any]]:
        return self._calls_with(RELEVANCE_SYSTEM_PROMPT)

    @property
    def reply_calls(self) -> list[dict[str, Any]]:
        aux = (SKILL_ROUTER_SYSTEM_PROMPT, RELEVANCE_SYSTEM_PROMPT)
        return [c for c in self.calls if c["system"] not in aux]


class FakeRunner:
    """Script runner recording its calls."""

    def __init__(self, output: str = "ran", error: Exception | None = None) -> None:
        self.output = output
        self.error = error
        self.calls: list[tuple[Path, dict[str, Any]]] = []

    async def execute(self, script_path: Path, **options: Any) -> str:
        self.calls.append((script_path, options))
        if self.error is not None:
            raise self.error
        return self.output


def write_skill(root: Path, dirname: str, frontmatter: str, body: str = "Do the thing.") -> Path:
    """Create ``root/dirname/SKILL.md`` and return the skill directory."""
    skill_dir = root / dirname
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(f"---\n{frontmatter.strip()}\n---\n{body}\n")
    return skill_dir


@pytest.fixture(autouse=True)
def isolated_share_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SKILL_AGENT_SHARE_DIR", str(tmp_path / "share"))
    _resolve_share_dir.cache_clear()
    yield
    _resolve_share_dir.cache_clear()


@pytest.fixture
def skills_root(tmp_path: Path) -> Path:
    root = tmp_path / "skills"
    root.mkdir()
    return root


@pytest.fixture
def meeting_skill(skills_root: Path) -> Path:
    skill_dir = write_skill(
        skills_root,
        "meeting-summary",
        """
name: meeting-summary
description: Summarize meeting notes into decisions and action items
triggers:
  - summarize meeting
  - meeting notes
tags: [productivity]
references:
  - path: references/style.md
    mode: always
  - path: references/glossary.md
    condition: The notes use internal jargon
scripts:
  - name: save_summary
    path: scripts/save.py
    description: Save the summary to disk
    args: [title]
""",
        body="# Meeting Summary\n\nList decisions first, then action items.",
    )
    refs = skill_dir / "references"
    refs.mkdir()
    (refs / "style.md").write_text("Use bullet points.")
    (refs / "glossary.md").write_text("ARR: annual recurring revenue")
    scripts = skill_dir / "scripts"
    scripts.mkdir()
    (scripts / "save.py").write_text("import sys\nprint(sys.stdin.read().upper())\n")
    return skill_dir
