from loguru import logger

# Disable logging by default for library usage.
# Application entry points (e.g., skill_agent.cli) call configure_logging,
# which enables logging for "skill_agent".
logger.disable("skill_agent")

from skill_agent.agent import (  # noqa: E402
    AgentResponse,
    AgentState,
    ConversationContext,
    SkillAgent,
    create_agent,
)
from skill_agent.events import AgentObserver, CallbackObserver  # noqa: E402
from skill_agent.prompt import PromptBuilder  # noqa: E402
from skill_agent.skills import (  # noqa: E402
    Skill,
    SkillMetadata,
    SkillParser,
    SkillRepository,
)

__all__ = [
    "AgentObserver",
    "AgentResponse",
    "AgentState",
    "CallbackObserver",
    "ConversationContext",
    "PromptBuilder",
    "Skill",
    "SkillAgent",
    "SkillMetadata",
    "SkillParser",
    "SkillRepository",
    "create_agent",
]
