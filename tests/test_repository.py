"""Tests for skill discovery, lazy loading and script delegation."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import FakeRunner, write_skill

from skill_agent.exception import (
    ScriptFileNotFoundError,
    ScriptNotFoundError,
    SkillNotFoundError,
    SkillParseError,
)
from skill_agent.skills import (
    Script,
    Skill,
    SkillMetadata,
    SkillRepository,
    SkillResources,
)


class TestDiscover:
    async def test_discovers_subdirectories_and_root(self, skills_root: Path):
        write_skill(skills_root, "alpha", "name: alpha\ndescription: First skill")
        write_skill(skills_root, "beta", "name: beta\ndescription: Second skill")
        (skills_root / "SKILL.md").write_text("---\nname: root\ndescription: Root skill\n---\n")
        (skills_root / "not-a-skill").mkdir()

        repository = SkillRepository([skills_root])
        metadata = await repository.discover()

        assert [m.name for m in metadata] == ["alpha", "beta", "root"]
        assert repository.get_skill("alpha") is not None

    async def test_discovery_keeps_metadata_only(self, meeting_skill: Path):
        repository = SkillRepository([meeting_skill.parent])
        await repository.discover()

        skill = repository.get_skill("meeting-summary")
        assert skill is not None
        assert skill.instruction is None
        assert [r.path for r in skill.resources.references] == [
            "references/style.md",
            "references/glossary.md",
        ]
        assert skill.source_path == meeting_skill / "SKILL.md"

    async def test_invalid_skill_does_not_block_siblings(self, skills_root: Path):
        write_skill(skills_root, "broken", "name: broken")
        write_skill(skills_root, "bad-yaml", "name: [unclosed")
        write_skill(skills_root, "good", "name: good\ndescription: Works")

        repository = SkillRepository([skills_root])
        metadata = await repository.discover()

        assert [m.name for m in metadata] == ["good"]

    async def test_missing_roots_are_skipped(self, tmp_path: Path, skills_root: Path):
        write_skill(skills_root, "alpha", "name: alpha\ndescription: First skill")
        repository = SkillRepository([tmp_path / "missing", skills_root])
        assert [m.name for m in await repository.discover()] == ["alpha"]

    @pytest.mark.skipif(os.geteuid() == 0, reason="root bypasses directory permissions")
    async def test_unreadable_skill_folder_is_skipped(self, skills_root: Path):
        write_skill(skills_root, "good", "name: good\ndescription: Works")
        locked = skills_root / "locked"
        locked.mkdir()
        locked.chmod(0)
        try:
            metadata = await SkillRepository([skills_root]).discover()
        finally:
            locked.chmod(0o755)

        assert [m.name for m in metadata] == ["good"]

    @pytest.mark.skipif(os.geteuid() == 0, reason="root bypasses directory permissions")
    async def test_root_below_unsearchable_parent_is_skipped(self, tmp_path: Path):
        private = tmp_path / "private"
        (private / "skills").mkdir(parents=True)
        other = tmp_path / "other"
        write_skill(other, "alpha", "name: alpha\ndescription: First skill")
        private.chmod(0)
        try:
            repository = SkillRepository([private / "skills", other])
            metadata = await repository.discover()
        finally:
            private.chmod(0o755)

        assert [m.name for m in metadata] == ["alpha"]

    async def test_cached_until_forced(self, skills_root: Path):
        write_skill(skills_root, "alpha", "name: alpha\ndescription: First skill")
        repository = SkillRepository([skills_root])
        first = await repository.discover()

        write_skill(skills_root, "beta", "name: beta\ndescription: Second skill")
        with patch.object(repository, "_scan_directory") as scan:
            second = await repository.discover()
        scan.assert_not_called()
        assert second == first

        forced = await repository.discover(force=True)
        assert [m.name for m in forced] == ["alpha", "beta"]

    async def test_forced_discovery_drops_removed_skills(self, skills_root: Path):
        beta = write_skill(skills_root, "beta", "name: beta\ndescription: Second skill")
        write_skill(skills_root, "alpha", "name: alpha\ndescription: First skill")
        repository = SkillRepository([skills_root])
        await repository.discover()

        (beta / "SKILL.md").unlink()
        await repository.discover(force=True)

        assert repository.get_skill("beta") is None
        assert repository.match("beta") == []

    async def test_duplicate_names_last_wins(self, tmp_path: Path):
        first_root = tmp_path / "first"
        second_root = tmp_path / "second"
        write_skill(first_root, "dup", "name: dup\ndescription: From first")
        write_skill(second_root, "dup", "name: dup\ndescription: From second")

        repository = SkillRepository([first_root, second_root])
        metadata = await repository.discover()

        assert len(metadata) == 1
        assert metadata[0].description == "From second"

    async def test_expands_home(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        write_skill(tmp_path / "my-skills", "alpha", "name: alpha\ndescription: First skill")
        repository = SkillRepository(["~/my-skills"])
        assert repository.skill_paths == [tmp_path / "my-skills"]
        assert len(await repository.discover()) == 1

    async def test_snapshots_are_copies(self, skills_root: Path):
        write_skill(skills_root, "alpha", "name: alpha\ndescription: First skill")
        repository = SkillRepository([skills_root])
        await repository.discover()

        repository.skills.clear()
        repository.list_metadata().clear()

        assert repository.catalog() == [("alpha", "First skill", ())]


class TestRegister:
    def test_register_programmatic_skill(self):
        repository = SkillRepository([])
        skill = Skill(metadata=SkillMetadata(name="inline", description="Built in code"))
        repository.register(skill)
        assert repository.get_skill("inline") is skill
        assert [s.name for s in repository.match("inline")] == ["inline"]


class TestLoadInstruction:
    async def test_loads_and_caches(self, meeting_skill: Path):
        repository = SkillRepository([meeting_skill.parent])
        await repository.discover()

        instruction = await repository.load_instruction("meeting-summary")
        assert instruction is not None
        assert instruction.content.startswith("# Meeting Summary")

        (meeting_skill / "SKILL.md").write_text("---\nname: meeting-summary\n---\n")
        again = await repository.load_instruction("meeting-summary")
        assert again is instruction

    async def test_unknown_skill(self):
        assert await SkillRepository([]).load_instruction("missing") is None

    async def test_source_removed_after_discovery(self, meeting_skill: Path):
        repository = SkillRepository([meeting_skill.parent])
        await repository.discover()
        (meeting_skill / "SKILL.md").unlink()

        with pytest.raises(SkillParseError):
            await repository.load_instruction("meeting-summary")


class TestLoadReference:
    async def test_reads_file_once(self, meeting_skill: Path):
        repository = SkillRepository([meeting_skill.parent])
        await repository.discover()

        content = await repository.load_reference("meeting-summary", "references/style.md")
        assert content == "Use bullet points."

        (meeting_skill / "references" / "style.md").write_text("changed")
        again = await repository.load_reference("meeting-summary", "references/style.md")
        assert again == "Use bullet points."

        skill = repository.get_skill("meeting-summary")
        assert skill is not None
        ref = skill.get_reference("references/style.md")
        assert ref is not None and ref.is_loaded

    async def test_failures_return_none(self, meeting_skill: Path):
        repository = SkillRepository([meeting_skill.parent])
        await repository.discover()
        (meeting_skill / "references" / "glossary.md").unlink()

        assert await repository.load_reference("missing", "references/style.md") is None
        assert await repository.load_reference("meeting-summary", "undeclared.md") is None
        assert await repository.load_reference("meeting-summary", "references/glossary.md") is None

    async def test_programmatic_skill_has_no_files(self):
        repository = SkillRepository([])
        skill = Skill(
            metadata=SkillMetadata(name="inline", description="Built in code"),
            resources=SkillResources(),
        )
        repository.register(skill)
        assert await repository.load_reference("inline", "anything.md") is None


class TestExecuteScript:
    async def test_delegates_with_declared_options(self, meeting_skill: Path):
        runner = FakeRunner(output="saved")
        repository = SkillRepository([meeting_skill.parent], runner=runner)
        await repository.discover()

        output = await repository.execute_script(
            "meeting-summary", "save_summary", input_data="notes"
        )

        assert output == "saved"
        script_path, options = runner.calls[0]
        assert script_path == (meeting_skill / "scripts" / "save.py").resolve()
        assert options == {"timeout": 30, "sandbox": True, "input_data": "notes"}

    async def test_caller_options_win_except_path(self, meeting_skill: Path):
        runner = FakeRunner()
        repository = SkillRepository([meeting_skill.parent], runner=runner)
        await repository.discover()

        await repository.execute_script(
            "meeting-summary",
            "save_summary",
            timeout=2,
            sandbox=False,
            script_path="/bin/evil",
        )

        script_path, options = runner.calls[0]
        assert script_path == (meeting_skill / "scripts" / "save.py").resolve()
        assert options == {"timeout": 2, "sandbox": False}

    async def test_resolution_errors_before_spawning(self, meeting_skill: Path):
        runner = FakeRunner()
        repository = SkillRepository([meeting_skill.parent], runner=runner)
        await repository.discover()

        with pytest.raises(SkillNotFoundError):
            await repository.execute_script("missing", "save_summary")
        with pytest.raises(ScriptNotFoundError):
            await repository.execute_script("meeting-summary", "missing")

        os.remove(meeting_skill / "scripts" / "save.py")
        with pytest.raises(ScriptFileNotFoundError):
            await repository.execute_script("meeting-summary", "save_summary")
        assert runner.calls == []

    async def test_programmatic_skill_script_has_no_file(self):
        runner = FakeRunner()
        repository = SkillRepository([], runner=runner)
        repository.register(
            Skill(
                metadata=SkillMetadata(name="inline", description="Built in code"),
                resources=SkillResources(scripts=[Script(name="run", path="run.py")]),
            )
        )
        with pytest.raises(ScriptFileNotFoundError):
            await repository.execute_script("inline", "run")


class TestMatch:
    async def test_match_returns_skills(self, meeting_skill: Path):
        repository = SkillRepository([meeting_skill.parent])
        await repository.discover()

        skills = repository.match("can you summarize meeting notes?")
        assert [s.name for s in skills] == ["meeting-summary"]

        results = repository.match_scored("summarize meeting")
        assert results[0].score == 1.0
        assert repository.match("") == []
