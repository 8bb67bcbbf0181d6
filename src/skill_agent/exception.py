from __future__ import annotations


class SkillAgentError(Exception):
    """Base exception class for skill-agent."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigError(SkillAgentError, ValueError):
    """Configuration error."""

    pass


class SkillParseError(SkillAgentError, ValueError):
    """Raised when a skill definition file cannot be parsed."""

    pass


class SkillValidationError(SkillAgentError, ValueError):
    """Raised when a skill definition is missing required fields."""

    pass


class SkillNotFoundError(SkillAgentError, LookupError):
    """Raised when a skill name is not registered."""

    def __init__(self, skill_name: str):
        self.skill_name = skill_name
        super().__init__(f"Skill not found: {skill_name}")


class ScriptNotFoundError(SkillAgentError, LookupError):
    """Raised when a skill does not declare the requested script."""

    def __init__(self, skill_name: str, script_name: str):
        self.skill_name = skill_name
        self.script_name = script_name
        super().__init__(f"Script not found: {script_name} (skill: {skill_name})")


class ScriptFileNotFoundError(SkillAgentError, FileNotFoundError):
    """Raised when a declared script does not exist on disk."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Script file not found: {path}")


class ScriptExecutionError(SkillAgentError, RuntimeError):
    """Script exited with a non-zero code or could not be spawned."""

    def __init__(self, message: str, returncode: int = -1, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class ScriptTimeoutError(ScriptExecutionError):
    """Script did not finish within its timeout and was killed."""

    def __init__(self, timeout: float, stderr: str = ""):
        self.timeout = timeout
        super().__init__(f"Script execution timed out after {timeout} seconds", -1, stderr)


class UnsupportedScriptError(ScriptExecutionError):
    """No interpreter is known for the script's file extension."""

    def __init__(self, suffix: str):
        self.suffix = suffix
        super().__init__(f"Unsupported script type: {suffix or '(no extension)'}")


class ChatProviderError(SkillAgentError, RuntimeError):
    """The chat transport failed to produce a reply."""

    pass
