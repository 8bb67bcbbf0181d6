from __future__ import annotations

import importlib.metadata

try:
    VERSION = importlib.metadata.version("skill-agent")
except importlib.metadata.PackageNotFoundError:  # pragma: no cover - running from a checkout
    VERSION = "0.0.0"

NAME = "skill-agent"
USER_AGENT = f"SkillAgent/{VERSION}"

SKILL_FILENAMES = ("SKILL.md", "skill.md")
REFERENCES_DIRNAME = "references"
SANDBOX_ENV_FLAG = "SKILL_AGENT_SANDBOX"
