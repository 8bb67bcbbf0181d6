"""Notifications emitted by the agent during a turn."""

from __future__ import annotations

from collections.abc import Callable

from skill_agent.skills.models import Reference, Skill


class AgentObserver:
    """Receives agent notifications. Override the methods of interest.

    Handlers run synchronously inside the turn. Exceptions they raise are logged
    by the agent and otherwise ignored.
    """

    def on_skill_activated(self, skill: Skill) -> None:
        pass

    def on_reference_disclosed(self, skill: Skill, reference: Reference, content: str) -> None:
        pass

    def on_script_executed(self, skill: Skill, script_name: str, output: str) -> None:
        pass


class CallbackObserver(AgentObserver):
    """Observer built from plain callables."""

    def __init__(
        self,
        *,
        on_skill_activated: Callable[[Skill], None] | None = None,
        on_reference_disclosed: Callable[[str, str], None] | None = None,
        on_script_executed: Callable[[str, str], None] | None = None,
    ) -> None:
        self._skill_activated = on_skill_activated
        self._reference_disclosed = on_reference_disclosed
        self._script_executed = on_script_executed

    def on_skill_activated(self, skill: Skill) -> None:
        if self._skill_activated:
            self._skill_activated(skill)

    def on_reference_disclosed(self, skill: Skill, reference: Reference, content: str) -> None:
        if self._reference_disclosed:
            self._reference_disclosed(reference.path, content)

    def on_script_executed(self, skill: Skill, script_name: str, output: str) -> None:
        if self._script_executed:
            self._script_executed(script_name, output)
