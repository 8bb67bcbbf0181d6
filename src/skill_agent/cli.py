import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from skill_agent.constant import VERSION

_LOG_LEVEL_OPTION = "--log-level"
_DEFAULT_LOG_LEVEL_KEY = "default"
_EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit"}

console = Console()


@dataclass
class _CliState:
    config_file: Path | None
    skill_paths: tuple[Path, ...]


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(VERSION)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Log debug information. Default: no.",
)
@click.option(
    "--log-level",
    "-L",
    "log_level_override",
    multiple=True,
    help=(
        "Override log level per module. Use `module=LEVEL` to target a specific module "
        "(e.g. `-L skill_agent.skills=DEBUG`) or just `LEVEL` to change the default level."
    ),
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (TOML, JSON or YAML). Default: ~/.skill-agent/config.toml.",
)
@click.option(
    "--skills-dir",
    "-s",
    "skill_paths",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    multiple=True,
    help="Skill root directory. Add this option multiple times to scan several roots.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    debug: bool,
    log_level_override: tuple[str, ...],
    config_file: Path | None,
    skill_paths: tuple[Path, ...],
):
    """Skill-aware LLM agent."""
    from skill_agent.share import get_share_dir
    from skill_agent.utils.logging import configure_logging

    base_level = "DEBUG" if debug else "INFO"
    try:
        configure_logging(
            base_level=base_level,
            module_levels=_parse_log_level_overrides(log_level_override),
            log_file=get_share_dir() / "logs" / "skill-agent.log",
        )
    except ValueError as exc:
        raise click.BadOptionUsage(_LOG_LEVEL_OPTION, str(exc)) from exc

    ctx.obj = _CliState(config_file=config_file, skill_paths=skill_paths)


def _load_config(state: _CliState):
    from skill_agent.config import load_config
    from skill_agent.exception import ConfigError

    try:
        config = load_config(state.config_file)
    except ConfigError as exc:
        raise click.BadParameter(str(exc), param_hint="--config") from exc
    if state.skill_paths:
        config.skill_paths = list(state.skill_paths)
    return config


def _build_repository(state: _CliState):
    from skill_agent.skills import ScriptExecutor, SkillMatcher, SkillRepository

    config = _load_config(state)
    return SkillRepository(
        config.resolved_skill_paths(),
        matcher=SkillMatcher(config.min_match_score),
        runner=ScriptExecutor(
            default_timeout=config.scripts.default_timeout,
            max_output_size=config.scripts.max_output_size,
            redacted_env_vars=config.scripts.redacted_env_vars,
        ),
    )


@cli.command("list")
@click.pass_obj
def list_skills(state: _CliState):
    """List discovered skills."""
    repository = _build_repository(state)
    metadata = asyncio.run(repository.discover())
    if not metadata:
        roots = ", ".join(str(p) for p in repository.skill_paths)
        console.print(f"No skills found in {roots}")
        return

    table = Table(title="Skills")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Description")
    table.add_column("Triggers")
    for m in sorted(metadata, key=lambda m: m.name):
        table.add_row(m.name, m.version, m.description, ", ".join(m.triggers) or "-")
    console.print(table)


@cli.command("match")
@click.argument("query")
@click.option("--limit", "-n", type=click.IntRange(min=1), default=5, show_default=True)
@click.pass_obj
def match_skills(state: _CliState, query: str, limit: int):
    """Show which skills match QUERY."""
    repository = _build_repository(state)
    asyncio.run(repository.discover())
    results = repository.match_scored(query, limit=limit)
    if not results:
        console.print("No matching skills")
        return

    table = Table()
    table.add_column("Skill", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Matched by")
    for result in results:
        table.add_row(result.metadata.name, f"{result.score:.2f}", result.matched_by)
    console.print(table)


@cli.command("show")
@click.argument("name")
@click.pass_obj
def show_skill(state: _CliState, name: str):
    """Show details and instructions of a skill."""
    from skill_agent.exception import SkillAgentError

    repository = _build_repository(state)

    async def _load():
        await repository.discover()
        return await repository.load_instruction(name)

    try:
        instruction = asyncio.run(_load())
    except SkillAgentError as exc:
        raise click.ClickException(str(exc)) from exc
    skill = repository.get_skill(name)
    if skill is None:
        raise click.ClickException(f"Skill not found: {name}")

    summary = skill.to_summary()
    console.print(f"[bold cyan]{skill.name}[/bold cyan] {summary['version']}")
    console.print(skill.description)
    if skill.metadata.author:
        console.print(f"Author: {skill.metadata.author}")
    console.print(f"Source: {summary['source']}")
    for ref in skill.resources.references:
        console.print(escape(f"  reference [{ref.mode.value}] {ref.path}"))
    for script in skill.resources.scripts:
        console.print(f"  script {script.name} -> {script.path} (timeout {script.timeout}s)")
    install = skill.resources.dependency.pip_install_command()
    if install:
        console.print(f"Install: {install}")
    if instruction is not None:
        console.print(f"Instruction (~{instruction.token_estimate} tokens):")
        console.print(Markdown(instruction.content))


@cli.command("validate")
@click.argument(
    "skill_dirs",
    nargs=-1,
    required=True,
    type=click.Path(path_type=Path),
)
def validate_skills(skill_dirs: tuple[Path, ...]):
    """Validate skill directories."""
    from skill_agent.skills import validate_skill

    failed = False
    for skill_dir in skill_dirs:
        errors = validate_skill(skill_dir)
        if errors:
            failed = True
            console.print(f"[red]✗[/red] {skill_dir}")
            for error in errors:
                console.print(f"    {error}")
        else:
            console.print(f"[green]✓[/green] {skill_dir}")
    if failed:
        sys.exit(1)


@cli.command("chat")
@click.option("--message", "-m", default=None, help="Send one message and exit.")
@click.option(
    "--execute-scripts/--no-execute-scripts",
    default=None,
    help="Run scripts invoked by the model. Default: from configuration.",
)
@click.pass_obj
def chat(state: _CliState, message: str | None, execute_scripts: bool | None):
    """Chat with the agent."""
    from loguru import logger

    from skill_agent.agent import create_agent
    from skill_agent.exception import ChatProviderError

    config = _load_config(state)
    if execute_scripts is not None:
        config.agent.auto_execute_scripts = execute_scripts

    async def _send(agent, text: str) -> bool:
        try:
            response = await agent.chat(text)
        except ChatProviderError as exc:
            logger.error("Chat failed: {error}", error=exc)
            console.print(f"[red]{exc}[/red]")
            return False
        if response.skill_used:
            console.print(f"[dim]skill: {response.skill_used}[/dim]")
        for path in response.references_loaded:
            console.print(f"[dim]reference: {path}[/dim]")
        console.print(Markdown(response.content))
        for script in response.scripts_executed:
            console.print(f"[dim]executed: {script}[/dim]")
        return True

    async def _run() -> bool:
        agent = await create_agent(config=config)
        if message is not None:
            return await _send(agent, message)

        console.print(f"{len(agent.available_skills)} skill(s) available. Type 'exit' to quit.")
        while True:
            try:
                text = await asyncio.to_thread(console.input, "[bold]> [/bold]")
            except (EOFError, KeyboardInterrupt):
                return True
            text = text.strip()
            if not text:
                continue
            if text.lower() in _EXIT_COMMANDS:
                return True
            if text == "/reset":
                agent.reset()
                console.print("[dim]conversation reset[/dim]")
                continue
            await _send(agent, text)

    if not asyncio.run(_run()):
        sys.exit(1)


def _parse_log_level_overrides(values: tuple[str, ...]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for raw in values:
        entry = raw.strip()
        if not entry:
            raise click.BadOptionUsage(_LOG_LEVEL_OPTION, "Log level override cannot be empty")
        if "=" in entry:
            module, level = entry.split("=", 1)
            module = module.strip()
            if not module:
                raise click.BadOptionUsage(
                    _LOG_LEVEL_OPTION,
                    "Module name is required before '=' when using --log-level",
                )
        else:
            module = _DEFAULT_LOG_LEVEL_KEY
            level = entry
        level = level.strip()
        if not level:
            raise click.BadOptionUsage(_LOG_LEVEL_OPTION, "Log level cannot be empty")
        overrides[_normalize_module_key(module)] = level
    return overrides


def _normalize_module_key(module: str) -> str:
    cleaned = module.strip().rstrip(".")
    normalized = cleaned.lower()
    if not normalized:
        return _DEFAULT_LOG_LEVEL_KEY
    return normalized


def main():
    cli()


if __name__ == "__main__":
    main()
