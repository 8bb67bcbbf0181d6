from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, Field, SecretStr, ValidationError

from skill_agent.exception import ConfigError
from skill_agent.share import get_default_skills_dir, get_share_dir
from skill_agent.skills.executor import (
    DEFAULT_MAX_OUTPUT_SIZE,
    DEFAULT_TIMEOUT,
    SENSITIVE_ENV_VARS,
)
from skill_agent.skills.matcher import DEFAULT_MIN_SCORE


class LLMConfig(BaseModel):
    """Chat transport settings. Unset values fall back to environment variables."""

    provider: Literal["openai", "azure"] = Field(default="openai", description="Provider type")
    model: str | None = Field(default=None, description="Model or Azure deployment name")
    api_key: SecretStr | None = Field(default=None, description="API key")
    base_url: str | None = Field(default=None, description="API base URL")
    endpoint: str | None = Field(default=None, description="Azure OpenAI endpoint")
    api_version: str | None = Field(default=None, description="Azure OpenAI API version")
    timeout: float = Field(default=120.0, gt=0, description="Request timeout in seconds")
    temperature: float = Field(default=0.7, ge=0, le=2, description="Reply temperature")
    max_tokens: int | None = Field(default=None, gt=0, description="Reply token limit")


class AgentConfig(BaseModel):
    """Conversation behavior."""

    base_system_prompt: str = Field(default="", description="Prepended to every system prompt")
    auto_select_skill: bool = Field(default=True, description="Route each idle turn to a skill")
    skill_match_threshold: float = Field(
        default=DEFAULT_MIN_SCORE, ge=0, le=1, description="Minimum local match score"
    )
    auto_load_references: bool = Field(default=True, description="Disclose relevant references")
    auto_execute_scripts: bool = Field(default=False, description="Run scripts the model invokes")


class ScriptConfig(BaseModel):
    """Limits of the default script executor."""

    default_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    max_output_size: int = Field(default=DEFAULT_MAX_OUTPUT_SIZE, gt=0)
    redacted_env_vars: list[str] = Field(default_factory=lambda: list(SENSITIVE_ENV_VARS))


class Config(BaseModel):
    """Main configuration structure."""

    skill_paths: list[Path] = Field(
        default_factory=list,
        description="Skill roots, the user skills directory when empty",
    )
    min_match_score: float = Field(default=DEFAULT_MIN_SCORE, ge=0, le=1)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    scripts: ScriptConfig = Field(default_factory=ScriptConfig)

    def resolved_skill_paths(self) -> list[Path]:
        if self.skill_paths:
            return [p.expanduser() for p in self.skill_paths]
        return [get_default_skills_dir()]


def get_config_file() -> Path:
    """Get the configuration file path."""
    return get_share_dir() / "config.toml"


def get_default_config() -> Config:
    """Get the default configuration."""
    return Config()


def load_config(config_file: Path | None = None) -> Config:
    """Load configuration from a TOML, JSON or YAML file.

    A missing default file yields the default configuration.

    Raises:
        ConfigError: If the file is missing, malformed or invalid
    """
    explicit = config_file is not None
    config_file = config_file or get_config_file()
    if not config_file.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_file}")
        logger.debug("No config file at {file}, using defaults", file=config_file)
        return get_default_config()

    logger.debug("Loading config from file: {file}", file=config_file)
    try:
        text = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_file}: {e}") from e

    suffix = config_file.suffix.lower()
    try:
        if suffix == ".toml":
            data: Any = tomllib.loads(text)
        elif suffix == ".json":
            data = json.loads(text)
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        else:
            raise ConfigError(f"Unsupported config file format: {config_file.suffix}")
    except (tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid configuration file {config_file}: {e}") from e

    return _validate(data)


def load_config_from_string(config_string: str) -> Config:
    """Parse configuration text, trying TOML first and then JSON."""
    try:
        data: Any = tomllib.loads(config_string)
    except tomllib.TOMLDecodeError as toml_error:
        try:
            data = json.loads(config_string)
        except json.JSONDecodeError as json_error:
            raise ConfigError(
                f"Invalid configuration text: {json_error}; {toml_error}"
            ) from json_error
    return _validate(data)


def _validate(data: Any) -> Config:
    if not isinstance(data, dict):
        raise ConfigError("Invalid configuration: top level must be a table")
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
