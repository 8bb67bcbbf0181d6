"""Rendering of skills into system prompt sections, and invocation marker parsing."""

from __future__ import annotations

import re
from collections.abc import Collection, Sequence

from skill_agent.skills.models import Skill, SkillMetadata

# [INVOKE:name] or [INVOKE:name(args)], args may nest one level of parentheses
INVOKE_MARKER_RE = re.compile(
    r"\[INVOKE:([A-Za-z0-9_]+)(?:\(([^()\]]*(?:\([^()\]]*\)[^()\]]*)*)\))?\]"
)

DEFAULT_HINT_LIMIT = 5


class PromptBuilder:
    """Stateless renderer shared by every agent."""

    def build_skill_catalog(self, metadata: Sequence[SkillMetadata]) -> str:
        """Catalog of all skills with their triggers."""
        if not metadata:
            return ""

        lines: list[str] = []
        for m in metadata:
            triggers = ", ".join(m.triggers) if m.triggers else "N/A"
            lines.append(f"- **{m.name}**: {m.description}")
            lines.append(f"  Triggers: {triggers}")

        return "\n".join(
            [
                "## Available Skills",
                "",
                "You have access to the following skills. "
                "When the user's request matches a skill, you should use it.",
                "",
                *lines,
                "",
                "To use a skill, indicate which skill you want to use "
                "and I will provide the detailed instructions.",
            ]
        )

    def build_active_skill_prompt(
        self,
        skill: Skill,
        include_scripts: bool = True,
        include_references: bool = True,
        disclosed: Collection[str] | None = None,
    ) -> str:
        """Render the instruction, action hints and loaded reference bodies of a skill.

        Args:
            skill: The active skill
            include_scripts: Render the "Available Actions" section
            include_references: Render bodies of loaded references
            disclosed: When given, only references with these paths are rendered

        Returns:
            Markdown section for the system prompt
        """
        body = skill.instruction.content if skill.instruction else skill.description
        parts = [f"## Active Skill: {skill.name}\n\n{body}"]

        scripts = skill.resources.scripts
        if include_scripts and scripts:
            hints = "\n".join(f"- `{s.name}`: {s.invocation_hint()}" for s in scripts)
            parts.append(
                "\n## Available Actions\n\n"
                "You can invoke the following scripts when needed:\n\n"
                f"{hints}\n\n"
                "To invoke a script, use the format: `[INVOKE:script_name]`, "
                "or `[INVOKE:script_name(arguments)]` to pass arguments."
            )

        if include_references:
            for ref in skill.resources.references:
                if not ref.content:
                    continue
                if disclosed is not None and ref.path not in disclosed:
                    continue
                parts.append(f"\n## Reference: {ref.path}\n\n{ref.content}")

        return "\n".join(parts)

    def build_capability_hints(
        self, metadata: Sequence[SkillMetadata], limit: int = DEFAULT_HINT_LIMIT
    ) -> str:
        """Short hint listing a few skills, used while no skill is active."""
        if not metadata:
            return ""
        hints = [f"- {m.name}: {m.description}" for m in metadata[:limit]]
        return "Available capabilities:\n" + "\n".join(hints)

    @staticmethod
    def extract_script_invocations(text: str) -> list[tuple[str, str]]:
        """All ``(script_name, raw_args)`` pairs in order of appearance."""
        return [(m.group(1), m.group(2) or "") for m in INVOKE_MARKER_RE.finditer(text)]

    @staticmethod
    def strip_invocations(text: str) -> str:
        """``text`` without invocation markers."""
        return INVOKE_MARKER_RE.sub("", text).strip()
