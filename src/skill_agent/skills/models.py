"""Data models for the skills system.

A skill is disclosed to the model in three layers:

1. ``SkillMetadata`` is always resident and drives matching.
2. ``SkillInstruction`` is loaded when the skill is activated.
3. ``SkillResources`` (references and scripts) are loaded only when relevant.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ReferenceMode(str, Enum):
    """When a reference is disclosed to the model."""

    EXPLICIT = "explicit"
    IMPLICIT = "implicit"
    ALWAYS = "always"


class SkillMetadata(BaseModel):
    """Layer 1 metadata parsed from the front matter."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Unique skill identifier")
    description: str = Field(min_length=1, description="What the skill does")
    version: str = Field(default="1.0.0", description="Skill version")
    triggers: tuple[str, ...] = Field(
        default=(), description="Phrases that strongly indicate the skill is relevant"
    )
    tags: tuple[str, ...] = Field(default=(), description="Free-form classification tags")
    author: str | None = Field(default=None, description="Skill author")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "triggers": list(self.triggers),
            "tags": list(self.tags),
            "author": self.author,
        }


class SkillInstruction(BaseModel):
    """Layer 2 instruction body, loaded on activation."""

    model_config = ConfigDict(frozen=True)

    content: str
    raw_content: str | None = None

    @property
    def system_prompt(self) -> str:
        return self.content.strip()

    @property
    def token_estimate(self) -> int:
        """Rough token count (four characters per token)."""
        return len(self.content) // 4


class Reference(BaseModel):
    """A supplementary document shipped with a skill."""

    path: str = Field(description="Path relative to the skill directory")
    condition: str | None = Field(
        default=None, description="When the reference is useful, judged by the LLM"
    )
    description: str | None = None
    mode: ReferenceMode = ReferenceMode.IMPLICIT
    content: str | None = Field(default=None, description="Cached file content")

    @property
    def is_loaded(self) -> bool:
        return self.content is not None


class Script(BaseModel):
    """An executable action declared by a skill."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    description: str = ""
    args: tuple[str, ...] = ()
    timeout: float = Field(default=30, gt=0, description="Timeout in seconds")
    sandbox: bool = True
    outputs: tuple[str, ...] = ()

    def invocation_hint(self) -> str:
        """Human-readable sentence telling the model when and how to call the script."""
        args_hint = f" with arguments: {', '.join(self.args)}" if self.args else ""
        description = self.description.strip().rstrip(".")
        if not description:
            return f"Invoke the '{self.name}' script{args_hint}."
        purpose = description[0].lower() + description[1:]
        return f"To {purpose}, invoke the '{self.name}' script{args_hint}."


class SkillDependency(BaseModel):
    """Declared requirements. Informational only, never installed automatically."""

    model_config = ConfigDict(frozen=True)

    python: tuple[str, ...] = ()
    system: tuple[str, ...] = ()

    @property
    def has_dependencies(self) -> bool:
        return bool(self.python or self.system)

    def pip_install_command(self) -> str | None:
        if not self.python:
            return None
        return "pip install " + " ".join(f'"{p}"' for p in self.python)


class SkillResources(BaseModel):
    """Layer 3 resources."""

    references: list[Reference] = Field(default_factory=list)
    scripts: list[Script] = Field(default_factory=list)
    dependency: SkillDependency = Field(default_factory=SkillDependency)


class Skill(BaseModel):
    """A discovered skill with its lazily populated layers."""

    metadata: SkillMetadata = Field(description="Skill metadata from frontmatter")
    instruction: SkillInstruction | None = Field(
        default=None, description="Instruction body, populated on activation"
    )
    resources: SkillResources = Field(default_factory=SkillResources)
    source_path: Path | None = Field(
        default=None, description="Definition file, None for programmatic skills"
    )

    @property
    def name(self) -> str:
        """Get skill name."""
        return self.metadata.name

    @property
    def description(self) -> str:
        """Get skill description."""
        return self.metadata.description

    @property
    def is_instruction_loaded(self) -> bool:
        return self.instruction is not None

    @property
    def base_path(self) -> Path | None:
        """Directory containing the definition file."""
        return self.source_path.parent if self.source_path else None

    def get_reference(self, path: str) -> Reference | None:
        for ref in self.resources.references:
            if ref.path == path:
                return ref
        return None

    def get_script(self, name: str) -> Script | None:
        for script in self.resources.scripts:
            if script.name == name:
                return script
        return None

    def resolve_reference_path(self, ref: Reference) -> Path | None:
        base = self.base_path
        return (base / ref.path).resolve() if base else None

    def resolve_script_path(self, script: Script) -> Path | None:
        base = self.base_path
        return (base / script.path).resolve() if base else None

    def to_summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "version": self.metadata.version,
            "triggers": list(self.metadata.triggers),
            "has_instruction": self.is_instruction_loaded,
            "reference_count": len(self.resources.references),
            "script_count": len(self.resources.scripts),
            "source": str(self.source_path) if self.source_path else None,
        }
