"""YAML front matter splitting for skill definition files."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import frontmatter
import yaml

from skill_agent.exception import SkillParseError

FrontmatterParser = Callable[[str], tuple[dict[str, Any], str]]
"""``parse(text) -> (fields, body)``; raise SkillParseError on malformed input."""


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split a document into its front matter mapping and free-text body.

    A document without a front matter block yields an empty mapping and the
    whole text as body.

    Raises:
        SkillParseError: If the front matter is not valid YAML or not a mapping
    """
    text = content.lstrip("\ufeff").lstrip()
    try:
        post = frontmatter.loads(text)
    except yaml.YAMLError as e:
        raise SkillParseError(f"Invalid YAML in frontmatter: {e}") from e
    except (TypeError, ValueError) as e:
        # a scalar or list block cannot be spread into Post metadata
        raise SkillParseError(f"Frontmatter must be a YAML mapping: {e}") from e

    return dict(post.metadata), post.content.strip()
