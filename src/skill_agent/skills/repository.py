"""Skill repository: discovery, lazy hydration, resources and matching."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import aiofiles
from loguru import logger

from skill_agent.exception import (
    ScriptFileNotFoundError,
    ScriptNotFoundError,
    SkillNotFoundError,
    SkillParseError,
    SkillValidationError,
)

from .executor import ScriptExecutor, ScriptRunner
from .matcher import DEFAULT_LIMIT, MatchResult, SkillMatcher
from .models import Skill, SkillInstruction, SkillMetadata
from .parser import SkillParser, find_skill_md


class SkillRepository:
    """Discovers skills under root directories and serves them to agents.

    Discovery only keeps layer 1 metadata and layer 3 declarations in memory.
    Instructions and reference contents are read on demand and cached on the
    Skill objects.

    The registry is replaced with a single assignment on every discovery, so
    readers always see a complete snapshot. Callers only ever get copies.
    """

    def __init__(
        self,
        skill_paths: Iterable[Path | str],
        *,
        parser: SkillParser | None = None,
        matcher: SkillMatcher | None = None,
        runner: ScriptRunner | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            skill_paths: Root directories to scan, ``~`` is expanded
            parser: Definition file parser
            matcher: Matching engine used by ``match``
            runner: Script runner used by ``execute_script``
        """
        self.skill_paths = [Path(p).expanduser().absolute() for p in skill_paths]
        self.parser = parser or SkillParser()
        self.matcher = matcher or SkillMatcher()
        self.runner: ScriptRunner = runner or ScriptExecutor()

        self._skills: dict[str, Skill] = {}
        self._discovered = False
        self._discover_lock = asyncio.Lock()

    @property
    def skills(self) -> dict[str, Skill]:
        """Snapshot of the registry keyed by skill name."""
        return dict(self._skills)

    @property
    def is_discovered(self) -> bool:
        return self._discovered

    def get_skill(self, name: str) -> Skill | None:
        return self._skills.get(name)

    def list_metadata(self) -> list[SkillMetadata]:
        return [skill.metadata for skill in self._skills.values()]

    def catalog(self) -> list[tuple[str, str, tuple[str, ...]]]:
        """``(name, description, triggers)`` for every registered skill."""
        return [(m.name, m.description, m.triggers) for m in self.list_metadata()]

    async def discover(self, force: bool = False) -> list[SkillMetadata]:
        """Scan the skill roots and rebuild the registry.

        Each root may contain skill folders one level deep and may itself hold a
        definition file. Skills that fail to parse are logged and skipped.

        Args:
            force: Re-scan even if a previous discovery succeeded

        Returns:
            Metadata of all registered skills
        """
        if self._discovered and not force:
            return self.list_metadata()

        async with self._discover_lock:
            registry: dict[str, Skill] = {}
            for root in self.skill_paths:
                if not _is_dir(root):
                    logger.debug("Skills directory does not exist: {dir}", dir=root)
                    continue
                logger.info("Scanning for skills in: {dir}", dir=root)
                for skill in await self._scan_directory(root):
                    self._register_into(registry, skill)

            self._skills = registry
            self._discovered = True

        logger.info("Discovered {count} skill(s)", count=len(registry))
        return self.list_metadata()

    def register(self, skill: Skill) -> None:
        """Add a skill built in code. A later discovery replaces it."""
        registry = dict(self._skills)
        self._register_into(registry, skill)
        self._skills = registry

    async def load_instruction(self, name: str) -> SkillInstruction | None:
        """Load the instruction body of a discovered skill.

        Returns:
            The cached or freshly parsed instruction, None for an unknown skill

        Raises:
            SkillParseError: If the definition file can no longer be parsed
            SkillValidationError: If the definition file lost a required field
        """
        skill = self._skills.get(name)
        if skill is None:
            return None
        if skill.instruction is not None:
            return skill.instruction
        if skill.source_path is None:
            return None

        full = await self.parser.parse_file(skill.source_path)
        if skill.instruction is None:
            skill.instruction = full.instruction
            logger.debug("Loaded instruction for skill: {name}", name=name)
        return skill.instruction

    async def load_reference(self, skill_name: str, path: str) -> str | None:
        """Content of a declared reference, read from disk at most once.

        Returns None when the skill, the declaration or the file is missing.
        """
        skill = self._skills.get(skill_name)
        if skill is None:
            return None
        ref = skill.get_reference(path)
        if ref is None:
            logger.debug("Skill {skill} declares no reference {path}", skill=skill_name, path=path)
            return None
        if ref.content is not None:
            return ref.content

        resolved = skill.resolve_reference_path(ref)
        if resolved is None:
            return None
        try:
            async with aiofiles.open(resolved, encoding="utf-8") as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read reference {path}: {error}", path=resolved, error=e)
            return None

        if ref.content is None:
            ref.content = content
        return ref.content

    async def execute_script(self, skill_name: str, script_name: str, **options: Any) -> str:
        """Run a declared script through the configured runner.

        The script's declared ``timeout`` and ``sandbox`` apply unless overridden
        by ``options``.

        Raises:
            SkillNotFoundError: Unknown skill
            ScriptNotFoundError: The skill declares no such script
            ScriptFileNotFoundError: The script file does not exist
            ScriptExecutionError: Raised by the runner
        """
        skill = self._skills.get(skill_name)
        if skill is None:
            raise SkillNotFoundError(skill_name)
        script = skill.get_script(script_name)
        if script is None:
            raise ScriptNotFoundError(skill_name, script_name)

        resolved = skill.resolve_script_path(script)
        if resolved is None or not resolved.is_file():
            raise ScriptFileNotFoundError(str(resolved or script.path))

        run_options: dict[str, Any] = {"timeout": script.timeout, "sandbox": script.sandbox}
        run_options.update(options)
        run_options.pop("script_path", None)
        return await self.runner.execute(resolved, **run_options)

    def match_scored(self, query: str, limit: int = DEFAULT_LIMIT) -> list[MatchResult]:
        results = self.matcher.match_results(query, self.list_metadata(), limit)
        registry = self._skills
        return [r for r in results if r.metadata.name in registry]

    def match(self, query: str, limit: int = DEFAULT_LIMIT) -> list[Skill]:
        """Skills matching ``query``, best first."""
        results = self.matcher.match_results(query, self.list_metadata(), limit)
        registry = self._skills
        return [registry[r.metadata.name] for r in results if r.metadata.name in registry]

    async def _scan_directory(self, directory: Path) -> list[Skill]:
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            logger.debug("Cannot list {dir}: {error}", dir=directory, error=e)
            return []

        candidates = [find_skill_md(entry) for entry in entries if _is_dir(entry)]
        candidates.append(find_skill_md(directory))

        skills: list[Skill] = []
        for skill_md in candidates:
            if skill_md is None:
                continue
            skill = await self._parse_metadata(skill_md)
            if skill is not None:
                skills.append(skill)
        return skills

    async def _parse_metadata(self, skill_md: Path) -> Skill | None:
        try:
            skill = await self.parser.parse_file(skill_md, metadata_only=True)
        except SkillParseError as e:
            logger.warning("Failed to parse skill in {path}: {error}", path=skill_md, error=e)
            return None
        except SkillValidationError as e:
            logger.warning("Invalid skill in {path}: {error}", path=skill_md, error=e)
            return None
        except Exception as e:
            logger.error(
                "Unexpected error loading skill from {path}: {error}", path=skill_md, error=e
            )
            return None
        logger.debug("Discovered skill: {name}", name=skill.name)
        return skill

    @staticmethod
    def _register_into(registry: dict[str, Skill], skill: Skill) -> None:
        if skill.name in registry:
            logger.warning(
                "Skill '{name}' from {path} overrides an earlier definition",
                name=skill.name,
                path=skill.source_path,
            )
            del registry[skill.name]
        registry[skill.name] = skill


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError as e:
        logger.debug("Cannot access {path}: {error}", path=path, error=e)
        return False
