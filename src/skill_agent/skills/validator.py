"""Skill validation utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

from skill_agent.exception import SkillParseError
from skill_agent.utils.frontmatter import parse_frontmatter

from .parser import find_skill_md, is_valid_skill_name

MAX_DESCRIPTION_LENGTH = 1024


def validate_skill(skill_dir: Path) -> list[str]:
    """Validate a skill directory.

    Args:
        skill_dir: Path to the skill directory

    Returns:
        List of validation error messages. Empty list means valid.
    """
    errors: list[str] = []
    skill_dir = Path(skill_dir)

    if not skill_dir.exists():
        return [f"Path does not exist: {skill_dir}"]

    if not skill_dir.is_dir():
        return [f"Not a directory: {skill_dir}"]

    skill_md = find_skill_md(skill_dir)
    if skill_md is None:
        return ["Missing required file: SKILL.md"]

    try:
        content = skill_md.read_text(encoding="utf-8")
        metadata, body = parse_frontmatter(content)
    except (OSError, UnicodeDecodeError) as e:
        return [f"Cannot read {skill_md}: {e}"]
    except SkillParseError as e:
        return [str(e)]

    name = metadata.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append("Missing required field: name")
    elif not is_valid_skill_name(name):
        errors.append(
            f"Invalid name '{name}': must be lowercase letters, numbers, hyphens or "
            "underscores, 1-64 characters, not starting/ending with a separator"
        )

    description = metadata.get("description")
    if not isinstance(description, str) or not description.strip():
        errors.append("Missing required field: description")
    elif len(description) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description exceeds {MAX_DESCRIPTION_LENGTH} character limit")

    for key in ("triggers", "tags"):
        value = metadata.get(key)
        if value is not None and not isinstance(value, list | str):
            errors.append(f"'{key}' must be a list of strings")

    errors.extend(_check_declared_files(skill_dir, metadata.get("references"), "Reference"))
    errors.extend(_check_declared_files(skill_dir, metadata.get("scripts"), "Script"))

    if not body.strip():
        errors.append("SKILL.md body is empty - add instructions for the agent")

    return errors


def _check_declared_files(skill_dir: Path, raw: object, kind: str) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        return [f"{kind}s must be a list"]

    errors: list[str] = []
    for item in cast(list[Any], raw):
        entry: dict[str, Any] = {}
        if isinstance(item, str) and kind == "Reference":
            path = item
        elif isinstance(item, dict):
            entry = cast(dict[str, Any], item)
            path = entry.get("path")
        else:
            errors.append(f"Invalid {kind.lower()} entry: {item!r}")
            continue
        if not isinstance(path, str) or not path.strip():
            errors.append(f"{kind} entry is missing 'path'")
        elif kind == "Script" and not entry.get("name"):
            errors.append(f"Script '{path}' is missing 'name'")
        elif not (skill_dir / path).is_file():
            errors.append(f"{kind} file not found: {path}")
    return errors
