"""Parsing of skill definition files (SKILL.md) into Skill objects."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Any, cast

import aiofiles
from loguru import logger

from skill_agent.constant import REFERENCES_DIRNAME, SKILL_FILENAMES
from skill_agent.exception import SkillParseError, SkillValidationError
from skill_agent.utils.frontmatter import FrontmatterParser, parse_frontmatter

from .models import (
    Reference,
    ReferenceMode,
    Script,
    Skill,
    SkillDependency,
    SkillInstruction,
    SkillMetadata,
    SkillResources,
)

REQUIRED_FIELDS = ("name", "description")
SUPPORTED_REFERENCE_EXTENSIONS = frozenset({".md", ".txt", ".json", ".yaml", ".yml"})
DEFAULT_VERSION = "1.0.0"
DEFAULT_SCRIPT_TIMEOUT = 30


def find_skill_md(skill_dir: Path) -> Path | None:
    """Find the definition file in a skill directory.

    Prefers SKILL.md (uppercase) but accepts skill.md (lowercase).

    Args:
        skill_dir: Path to the skill directory

    Returns:
        Path to the definition file, or None if not found
    """
    for name in SKILL_FILENAMES:
        path = skill_dir / name
        try:
            if path.is_file():
                return path
        except OSError as e:
            logger.debug("Cannot read {dir}: {error}", dir=skill_dir, error=e)
            return None
    return None


def is_valid_skill_name(name: str) -> bool:
    """Check the recommended skill name format.

    Valid names:
    - 1-64 characters
    - Lowercase letters, numbers, hyphens and underscores only
    - Cannot start or end with a separator
    """
    if len(name) < 1 or len(name) > 64:
        return False
    return bool(re.match(r"^[a-z0-9]([a-z0-9_-]*[a-z0-9])?$", name))


class SkillParser:
    """Turns skill definition documents into Skill objects.

    In metadata-only mode the instruction body is discarded so that discovery
    keeps only layer 1 and the layer 3 declarations in memory.
    """

    def __init__(self, frontmatter_parser: FrontmatterParser = parse_frontmatter) -> None:
        self._split = frontmatter_parser

    async def parse_file(self, path: Path, *, metadata_only: bool = False) -> Skill:
        """Read and parse a definition file.

        Raises:
            SkillParseError: If the file cannot be read or its front matter is malformed
            SkillValidationError: If a required field is missing or empty
        """
        path = path.absolute()
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise SkillParseError(f"Cannot read {path}: {e}") from e
        return self.parse_content(content, source_path=path, metadata_only=metadata_only)

    def parse_content(
        self,
        content: str,
        source_path: Path | None = None,
        *,
        metadata_only: bool = False,
    ) -> Skill:
        """Parse definition text. ``source_path`` anchors relative resource paths."""
        fields, body = self._split(content)
        self._validate_required(fields, source_path)

        skill = Skill(
            metadata=self._parse_metadata(fields),
            resources=self._parse_resources(fields, source_path),
            source_path=source_path,
        )
        if not metadata_only:
            skill.instruction = SkillInstruction(content=body, raw_content=content)
        return skill

    @staticmethod
    def _validate_required(fields: dict[str, Any], source_path: Path | None) -> None:
        missing = [name for name in REQUIRED_FIELDS if not _is_scalar(fields.get(name))]
        if missing:
            where = f" in {source_path}" if source_path else ""
            raise SkillValidationError(
                f"Missing required fields in frontmatter{where}: {', '.join(missing)}"
            )

    def _parse_metadata(self, fields: dict[str, Any]) -> SkillMetadata:
        version = fields.get("version")
        author = fields.get("author")
        return SkillMetadata(
            name=str(fields["name"]).strip(),
            description=str(fields["description"]).strip(),
            version=str(version).strip() if _is_scalar(version) else DEFAULT_VERSION,
            triggers=_coerce_str_list(fields.get("triggers")),
            tags=_coerce_str_list(fields.get("tags")),
            author=str(author).strip() if _is_scalar(author) else None,
        )

    def _parse_resources(self, fields: dict[str, Any], source_path: Path | None) -> SkillResources:
        references = self._parse_references(fields.get("references"))
        if source_path is not None:
            declared = {_normalize_ref_path(ref.path) for ref in references}
            references.extend(
                _discover_references(source_path.parent / REFERENCES_DIRNAME, declared)
            )
        return SkillResources(
            references=references,
            scripts=self._parse_scripts(fields.get("scripts")),
            dependency=self._parse_dependency(fields.get("dependency")),
        )

    @staticmethod
    def _parse_references(raw: object) -> list[Reference]:
        if not isinstance(raw, list):
            return []
        references: list[Reference] = []
        for item in cast(list[Any], raw):
            if isinstance(item, str) and item.strip():
                references.append(Reference(path=item.strip()))
                continue
            if not isinstance(item, dict):
                logger.debug("Ignoring malformed reference entry: {item}", item=item)
                continue
            entry = cast(dict[str, Any], item)
            path = entry.get("path")
            if not isinstance(path, str) or not path.strip():
                logger.debug("Ignoring reference without path: {item}", item=entry)
                continue
            references.append(
                Reference(
                    path=path.strip(),
                    condition=_optional_str(entry.get("condition")),
                    description=_optional_str(entry.get("description")),
                    mode=_parse_mode(entry.get("mode")),
                )
            )
        return references

    @staticmethod
    def _parse_scripts(raw: object) -> list[Script]:
        if not isinstance(raw, list):
            return []
        scripts: list[Script] = []
        seen: set[str] = set()
        for item in cast(list[Any], raw):
            if not isinstance(item, dict):
                continue
            entry = cast(dict[str, Any], item)
            name = _optional_str(entry.get("name"))
            path = _optional_str(entry.get("path"))
            if not name or not path:
                logger.debug("Ignoring script without name or path: {item}", item=entry)
                continue
            if name in seen:
                logger.warning("Duplicate script '{name}' ignored", name=name)
                continue
            seen.add(name)

            timeout = entry.get("timeout")
            if isinstance(timeout, bool) or not isinstance(timeout, int | float) or timeout <= 0:
                timeout = DEFAULT_SCRIPT_TIMEOUT
            scripts.append(
                Script(
                    name=name,
                    path=path,
                    description=_optional_str(entry.get("description")) or "",
                    args=_coerce_str_list(entry.get("args")),
                    timeout=timeout,
                    sandbox=entry.get("sandbox") is not False,
                    outputs=_coerce_str_list(entry.get("outputs")),
                )
            )
        return scripts

    @staticmethod
    def _parse_dependency(raw: object) -> SkillDependency:
        if not isinstance(raw, dict):
            return SkillDependency()
        data = cast(dict[str, Any], raw)
        return SkillDependency(
            python=_coerce_str_list(data.get("python")),
            system=_coerce_str_list(data.get("system")),
        )


def _discover_references(references_dir: Path, declared: set[str]) -> list[Reference]:
    """Collect undeclared reference files below ``references/``."""
    discovered: list[Reference] = []
    try:
        if not references_dir.is_dir():
            return []
        candidates = [
            file
            for file in sorted(references_dir.rglob("*"))
            if file.suffix.lower() in SUPPORTED_REFERENCE_EXTENSIONS and file.is_file()
        ]
    except OSError as e:
        logger.debug("Cannot scan {dir}: {error}", dir=references_dir, error=e)
        return []
    for file in candidates:
        rel = file.relative_to(references_dir).as_posix()
        ref_path = f"{REFERENCES_DIRNAME}/{rel}"
        if ref_path in declared:
            continue
        discovered.append(
            Reference(
                path=ref_path,
                description=f"Auto-discovered: {file.name}",
                mode=ReferenceMode.IMPLICIT,
            )
        )
    return discovered


def _normalize_ref_path(path: str) -> str:
    return PurePosixPath(path.replace("\\", "/")).as_posix()


def _parse_mode(raw: object) -> ReferenceMode:
    if isinstance(raw, str):
        try:
            return ReferenceMode(raw.strip().lower())
        except ValueError:
            logger.debug("Unknown reference mode '{mode}', using implicit", mode=raw)
    return ReferenceMode.IMPLICIT


def _is_scalar(value: object) -> bool:
    return value is not None and not isinstance(value, dict | list) and bool(str(value).strip())


def _optional_str(value: object) -> str | None:
    if not _is_scalar(value):
        return None
    return str(value).strip()


def _coerce_str_list(value: object) -> tuple[str, ...]:
    """Coerce a front matter value to a tuple of non-empty strings.

    A bare string becomes a one-item tuple; nested mappings and lists are dropped.
    """
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    if not isinstance(value, list):
        return ()
    items: list[str] = []
    for item in cast(list[Any], value):
        if _is_scalar(item) and not isinstance(item, bool):
            items.append(str(item).strip())
    return tuple(items)
