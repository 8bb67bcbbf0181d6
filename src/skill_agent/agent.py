"""Conversation orchestrator that activates skills and discloses their resources per turn."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

from skill_agent.config import AgentConfig, Config, LLMConfig, get_default_config
from skill_agent.events import AgentObserver
from skill_agent.exception import SkillParseError, SkillValidationError
from skill_agent.llm import (
    ChatClient,
    ImageContent,
    Message,
    create_client,
    message_assistant,
    message_user,
)
from skill_agent.prompt import PromptBuilder
from skill_agent.skills import (
    Reference,
    ReferenceMode,
    ScriptExecutor,
    Skill,
    SkillMatcher,
    SkillRepository,
)

# Only the head of the user input is shown to the routing and relevance prompts
ROUTING_INPUT_LIMIT = 500
ROUTING_MAX_TOKENS = 50
RELEVANCE_MAX_TOKENS = 100
DEFAULT_TEMPERATURE = 0.7

SKILL_ROUTER_SYSTEM_PROMPT = (
    "You are a skill router. Select the most appropriate skill based on the user's intent. "
    "Respond with only the skill name or NONE."
)
SKILL_ROUTER_PROMPT = """\
Based on the user's input, select the most appropriate skill from the list below.
If none of the skills are relevant, respond with "NONE".

User input:
```
{user_input}
```

Available skills:
{skills}

Respond with ONLY the skill name (e.g., "meeting-summary") or "NONE". No explanation needed."""

RELEVANCE_SYSTEM_PROMPT = (
    "You are a precise assistant. Only respond with YES or NO for each reference."
)
RELEVANCE_PROMPT = """\
For each reference, decide whether it is useful for answering the user's input.

User input:
```
{user_input}
```

References:
{references}

For each reference, respond with YES or NO only.
Respond with one line per reference in format: "1. YES" or "1. NO"
"""


class AgentState(str, Enum):
    IDLE = "idle"
    SKILL_ACTIVE = "skill_active"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


@dataclass
class ConversationContext:
    """Mutable state of one conversation."""

    messages: list[Message] = field(default_factory=list)
    active_skill: Skill | None = None
    state: AgentState = AgentState.IDLE
    disclosed_references: list[str] = field(default_factory=list)
    """Reference paths of the active skill already added to the system prompt."""
    metadata: dict[str, Any] = field(default_factory=dict)
    """Caller data, kept across ``reset``."""


@dataclass
class AgentResponse:
    content: str
    skill_used: str | None = None
    references_loaded: list[str] = field(default_factory=list)
    scripts_executed: list[str] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)


class SkillAgent:
    """Chat agent that picks skills for the user's requests.

    Each turn runs, in order: skill routing (local match, then an LLM fallback),
    reference disclosure for the active skill, the reply call, and optional
    execution of the ``[INVOKE:...]`` markers found in the reply. Only the reply
    call can fail the turn. Turns of one agent never overlap.
    """

    def __init__(
        self,
        llm_client: ChatClient,
        *,
        repository: SkillRepository | None = None,
        skill_paths: Iterable[Path | str] = (),
        base_system_prompt: str = "",
        auto_select_skill: bool = True,
        skill_match_threshold: float = 0.3,
        auto_load_references: bool = True,
        auto_execute_scripts: bool = False,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int | None = None,
        observers: Iterable[AgentObserver] = (),
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.repository = repository or SkillRepository(skill_paths)
        self.base_system_prompt = base_system_prompt
        self.auto_select_skill = auto_select_skill
        self.skill_match_threshold = skill_match_threshold
        self.auto_load_references = auto_load_references
        self.auto_execute_scripts = auto_execute_scripts
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.prompt_builder = prompt_builder or PromptBuilder()

        self._observers: list[AgentObserver] = list(observers)
        self._context = ConversationContext()
        self._initialized = False
        self._turn_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        llm_client: ChatClient,
        repository: SkillRepository,
        config: AgentConfig,
        llm_config: LLMConfig | None = None,
        observers: Iterable[AgentObserver] = (),
    ) -> SkillAgent:
        llm_config = llm_config or LLMConfig()
        return cls(
            llm_client,
            repository=repository,
            base_system_prompt=config.base_system_prompt,
            auto_select_skill=config.auto_select_skill,
            skill_match_threshold=config.skill_match_threshold,
            auto_load_references=config.auto_load_references,
            auto_execute_scripts=config.auto_execute_scripts,
            temperature=llm_config.temperature,
            max_tokens=llm_config.max_tokens,
            observers=observers,
        )

    @property
    def context(self) -> ConversationContext:
        return self._context

    @property
    def active_skill(self) -> Skill | None:
        return self._context.active_skill

    @property
    def state(self) -> AgentState:
        return self._context.state

    @property
    def available_skills(self) -> list[str]:
        return [m.name for m in self.repository.list_metadata()]

    def add_observer(self, observer: AgentObserver) -> None:
        self._observers.append(observer)

    async def initialize(self) -> int:
        """Discover skills. Returns the number of skills available."""
        skills = await self.repository.discover()
        self._initialized = True
        return len(skills)

    def reset(self) -> None:
        """Start a new conversation, keeping ``context.metadata``."""
        self._context = ConversationContext(metadata=self._context.metadata)

    async def select_skill(self, name: str) -> bool:
        """Activate a skill, loading its instruction.

        Returns False when the skill is unknown or its definition can no longer
        be parsed.
        """
        skill = self.repository.get_skill(name)
        if skill is None:
            return False
        try:
            await self.repository.load_instruction(name)
        except (SkillParseError, SkillValidationError) as e:
            logger.warning("Failed to load skill {name}: {error}", name=name, error=e)
            return False

        if self._context.active_skill is not skill:
            self._context.disclosed_references = []
        self._context.active_skill = skill
        self._context.state = AgentState.SKILL_ACTIVE
        logger.info("Activated skill: {name}", name=name)
        self._notify("on_skill_activated", skill)
        return True

    def deselect_skill(self) -> None:
        self._context.active_skill = None
        self._context.state = AgentState.IDLE
        self._context.disclosed_references = []

    def build_system_prompt(self) -> str:
        parts: list[str] = []
        if self.base_system_prompt:
            parts.append(self.base_system_prompt)

        skill = self._context.active_skill
        if skill is not None:
            parts.append(
                self.prompt_builder.build_active_skill_prompt(
                    skill, disclosed=set(self._context.disclosed_references)
                )
            )
        else:
            hints = self.prompt_builder.build_capability_hints(self.repository.list_metadata())
            if hints:
                parts.append(hints)
        return "\n\n".join(parts)

    async def chat(
        self,
        content: str,
        *,
        images: Sequence[ImageContent] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> AgentResponse:
        """Run one conversation turn.

        Raises:
            ChatProviderError: If the reply call fails
        """
        async with self._turn_lock:
            if not self._initialized:
                await self.initialize()

            self._context.messages.append(message_user(content, images))

            skill_used: str | None = None
            if self.auto_select_skill and self._context.active_skill is None:
                skill_used = await self._route(content)

            references_loaded: list[str] = []
            if self.auto_load_references and self._context.active_skill is not None:
                references_loaded = await self._disclose_references(content)

            response = await self.llm_client.chat(
                list(self._context.messages),
                system=self.build_system_prompt(),
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=self.max_tokens if max_tokens is None else max_tokens,
                **kwargs,
            )
            self._context.messages.append(message_assistant(response.content))

            scripts_executed: list[str] = []
            if self.auto_execute_scripts and self._context.active_skill is not None:
                scripts_executed = await self._run_invocations(response.content)

            active = self._context.active_skill
            return AgentResponse(
                content=response.content,
                skill_used=skill_used or (active.name if active else None),
                references_loaded=references_loaded,
                scripts_executed=scripts_executed,
                usage=dict(response.usage),
            )

    async def _route(self, content: str) -> str | None:
        results = self.repository.match_scored(content, limit=1)
        if results and results[0].score >= self.skill_match_threshold:
            best = results[0]
            logger.debug(
                "Matched skill {name} with score {score:.2f} ({matched_by})",
                name=best.metadata.name,
                score=best.score,
                matched_by=best.matched_by,
            )
            name: str | None = best.metadata.name
        else:
            name = await self._llm_select_skill(content)

        if name and await self.select_skill(name):
            return name
        return None

    async def _llm_select_skill(self, content: str) -> str | None:
        metadata = self.repository.list_metadata()
        if not metadata:
            return None

        skills = "\n".join(f"{i}. {m.name}: {m.description}" for i, m in enumerate(metadata, 1))
        prompt = SKILL_ROUTER_PROMPT.format(
            user_input=content[:ROUTING_INPUT_LIMIT], skills=skills
        )
        try:
            response = await self.llm_client.chat(
                [message_user(prompt)],
                system=SKILL_ROUTER_SYSTEM_PROMPT,
                temperature=0,
                max_tokens=ROUTING_MAX_TOKENS,
            )
        except Exception as e:
            logger.warning("Skill routing failed: {error}", error=e)
            return None

        answer = response.content.strip().strip("\"'").lower()
        for m in metadata:
            if m.name.lower() == answer:
                logger.debug("Router selected skill: {name}", name=m.name)
                return m.name
        return None

    async def _disclose_references(self, content: str) -> list[str]:
        skill = self._context.active_skill
        if skill is None:
            return []

        loaded: list[str] = []
        pending = [
            ref
            for ref in skill.resources.references
            if ref.path not in self._context.disclosed_references
        ]
        for ref in pending:
            if ref.mode is ReferenceMode.ALWAYS:
                await self._disclose(skill, ref, loaded)

        candidates = [ref for ref in pending if ref.mode is not ReferenceMode.ALWAYS]
        if candidates:
            verdicts = await self._evaluate_relevance(content, candidates)
            for ref, relevant in zip(candidates, verdicts, strict=True):
                if relevant:
                    await self._disclose(skill, ref, loaded)
        return loaded

    async def _disclose(self, skill: Skill, ref: Reference, loaded: list[str]) -> None:
        content = await self.repository.load_reference(skill.name, ref.path)
        if content is None:
            return
        if ref.content is None:
            ref.content = content
        self._context.disclosed_references.append(ref.path)
        loaded.append(ref.path)
        logger.debug("Disclosed reference {path} of {skill}", path=ref.path, skill=skill.name)
        self._notify("on_reference_disclosed", skill, ref, content)

    async def _evaluate_relevance(
        self, content: str, references: Sequence[Reference]
    ) -> list[bool]:
        """Ask the model which references help with ``content``, one YES/NO per reference."""
        listing = "\n".join(
            f"{i}. Path: {ref.path}\n   Condition: {ref.condition or '(none, general reference)'}"
            for i, ref in enumerate(references, 1)
        )
        prompt = RELEVANCE_PROMPT.format(
            user_input=content[:ROUTING_INPUT_LIMIT], references=listing
        )
        try:
            response = await self.llm_client.chat(
                [message_user(prompt)],
                system=RELEVANCE_SYSTEM_PROMPT,
                temperature=0,
                max_tokens=RELEVANCE_MAX_TOKENS,
            )
        except Exception as e:
            logger.warning("Reference relevance check failed: {error}", error=e)
            return [False] * len(references)

        lines = [line.strip() for line in response.content.strip().splitlines()]
        verdicts: list[bool] = []
        for i in range(1, len(references) + 1):
            line = next((ln for ln in lines if ln.startswith((f"{i}.", f"{i}:"))), None)
            # A reference without an answer line is not relevant
            verdicts.append(line is not None and "yes" in line.lower())
        return verdicts

    async def _run_invocations(self, reply: str) -> list[str]:
        skill = self._context.active_skill
        if skill is None:
            return []

        executed: list[str] = []
        for script_name, args in self.prompt_builder.extract_script_invocations(reply):
            input_data = args or self.prompt_builder.strip_invocations(reply)
            try:
                output = await self.repository.execute_script(
                    skill.name, script_name, input_data=input_data
                )
            except Exception as e:
                logger.warning(
                    "Script {script} of {skill} failed: {error}",
                    script=script_name,
                    skill=skill.name,
                    error=e,
                )
                continue
            executed.append(script_name)
            logger.info("Executed script {script} of {skill}", script=script_name, skill=skill.name)
            self._notify("on_script_executed", skill, script_name, output)
        return executed

    def _notify(self, event: str, *args: Any) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, event)(*args)
            except Exception as e:
                logger.warning(
                    "Observer {observer} failed on {event}: {error}",
                    observer=type(observer).__name__,
                    event=event,
                    error=e,
                )


def client_from_config(llm: LLMConfig, **overrides: Any) -> ChatClient:
    """Build the OpenAI-compatible client described by ``llm``."""
    options: dict[str, Any] = {
        "api_key": llm.api_key.get_secret_value() if llm.api_key else None,
        "base_url": llm.base_url,
        "model": llm.model,
        "timeout": llm.timeout,
    }
    if llm.provider == "azure":
        options.update(endpoint=llm.endpoint, deployment=llm.model, api_version=llm.api_version)
        options.pop("base_url")
        options.pop("model")
    options.update(overrides)
    return create_client(llm.provider, **options)


async def create_agent(
    skill_paths: Iterable[Path | str] | None = None,
    *,
    config: Config | None = None,
    llm_client: ChatClient | None = None,
    observers: Iterable[AgentObserver] = (),
    **client_options: Any,
) -> SkillAgent:
    """Build a ready-to-use agent and discover its skills.

    Args:
        skill_paths: Skill roots, overriding ``config.skill_paths``
        config: Settings, defaults when omitted
        llm_client: Transport to use instead of the configured OpenAI-compatible one
        observers: Notification receivers
        **client_options: Overrides passed to ``create_client``
    """
    config = config or get_default_config()
    paths = list(skill_paths) if skill_paths is not None else config.resolved_skill_paths()
    repository = SkillRepository(
        paths,
        matcher=SkillMatcher(config.min_match_score),
        runner=ScriptExecutor(
            default_timeout=config.scripts.default_timeout,
            max_output_size=config.scripts.max_output_size,
            redacted_env_vars=config.scripts.redacted_env_vars,
        ),
    )
    client = llm_client or client_from_config(config.llm, **client_options)
    agent = SkillAgent.from_config(client, repository, config.agent, config.llm, observers)
    count = await agent.initialize()
    logger.info("Agent ready with {count} skill(s)", count=count)
    return agent
