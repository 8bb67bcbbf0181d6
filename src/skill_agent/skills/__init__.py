"""Skill model, repository and matching engine.

A skill is a folder holding a SKILL.md definition file, optional reference
documents and optional scripts, disclosed to the model progressively.
"""

from __future__ import annotations

from skill_agent.skills.executor import ScriptExecutor, ScriptRunner
from skill_agent.skills.matcher import MatchResult, SkillMatcher, extract_keywords, tokenize
from skill_agent.skills.models import (
    Reference,
    ReferenceMode,
    Script,
    Skill,
    SkillDependency,
    SkillInstruction,
    SkillMetadata,
    SkillResources,
)
from skill_agent.skills.parser import SkillParser, find_skill_md
from skill_agent.skills.repository import SkillRepository
from skill_agent.skills.validator import validate_skill

__all__ = [
    # Models
    "Reference",
    "ReferenceMode",
    "Script",
    "Skill",
    "SkillDependency",
    "SkillInstruction",
    "SkillMetadata",
    "SkillResources",
    # Parsing
    "SkillParser",
    "find_skill_md",
    # Matching
    "MatchResult",
    "SkillMatcher",
    "extract_keywords",
    "tokenize",
    # Execution
    "ScriptExecutor",
    "ScriptRunner",
    # Repository
    "SkillRepository",
    # Validator
    "validate_skill",
]
