from __future__ import annotations

from pathlib import Path

import pytest
from inline_snapshot import snapshot

from skill_agent.config import (
    Config,
    get_config_file,
    get_default_config,
    load_config,
    load_config_from_string,
)
from skill_agent.exception import ConfigError


def test_default_config_dump():
    config = get_default_config()
    dumped = config.model_dump()
    dumped["scripts"].pop("redacted_env_vars")
    assert dumped == snapshot(
        {
            "skill_paths": [],
            "min_match_score": 0.3,
            "agent": {
                "base_system_prompt": "",
                "auto_select_skill": True,
                "skill_match_threshold": 0.3,
                "auto_load_references": True,
                "auto_execute_scripts": False,
            },
            "llm": {
                "provider": "openai",
                "model": None,
                "api_key": None,
                "base_url": None,
                "endpoint": None,
                "api_version": None,
                "timeout": 120.0,
                "temperature": 0.7,
                "max_tokens": None,
            },
            "scripts": {"default_timeout": 30.0, "max_output_size": 1048576},
        }
    )


def test_default_skill_path_is_in_share_dir(tmp_path: Path):
    assert get_default_config().resolved_skill_paths() == [tmp_path / "share" / "skills"]
    assert get_config_file() == tmp_path / "share" / "config.toml"


def test_load_config_text_toml():
    config = load_config_from_string('min_match_score = 0.3\n')
    assert config == get_default_config()


def test_load_config_text_json():
    config = load_config_from_string('{"agent": {"auto_execute_scripts": true}}')
    assert config.agent.auto_execute_scripts is True


def test_load_config_text_invalid():
    with pytest.raises(ConfigError, match="Invalid configuration text"):
        load_config_from_string("not valid {")


def test_load_config_threshold_out_of_range():
    with pytest.raises(ConfigError, match="skill_match_threshold"):
        load_config_from_string('{"agent": {"skill_match_threshold": 1.5}}')


def test_api_key_is_secret():
    config = load_config_from_string('[llm]\napi_key = "sk-secret"\n')
    assert config.llm.api_key is not None
    assert config.llm.api_key.get_secret_value() == "sk-secret"
    assert "sk-secret" not in repr(config)


@pytest.mark.parametrize(
    ("filename", "text"),
    [
        ("config.toml", 'skill_paths = ["~/skills"]\n[agent]\nauto_select_skill = false\n'),
        ("config.json", '{"skill_paths": ["~/skills"], "agent": {"auto_select_skill": false}}'),
        ("config.yaml", "skill_paths: [~/skills]\nagent:\n  auto_select_skill: false\n"),
    ],
)
def test_load_config_file_formats(tmp_path: Path, filename: str, text: str):
    path = tmp_path / filename
    path.write_text(text)

    config = load_config(path)

    assert config.skill_paths == [Path("~/skills")]
    assert config.agent.auto_select_skill is False
    assert config.resolved_skill_paths() == [Path("~/skills").expanduser()]


def test_load_config_missing_default_file():
    assert load_config() == get_default_config()


def test_load_config_missing_explicit_file(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.toml")


def test_load_config_unsupported_format(tmp_path: Path):
    path = tmp_path / "config.ini"
    path.write_text("[agent]")
    with pytest.raises(ConfigError, match="Unsupported config file format"):
        load_config(path)


def test_load_config_malformed_file(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("agent: [unclosed")
    with pytest.raises(ConfigError, match="Invalid configuration file"):
        load_config(path)


def test_top_level_must_be_a_table(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2]")
    with pytest.raises(ConfigError, match="top level"):
        load_config(path)


def test_config_model_is_constructible():
    config = Config(skill_paths=[Path("/opt/skills")], min_match_score=0.5)
    assert config.resolved_skill_paths() == [Path("/opt/skills")]
