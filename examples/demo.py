"""Minimal programmatic use of skill-agent.

Run with an OpenAI-compatible endpoint configured::

    OPENAI_API_KEY=... python examples/demo.py
"""

import asyncio
from pathlib import Path

from rich.console import Console

from skill_agent import CallbackObserver, create_agent
from skill_agent.config import get_default_config

console = Console()

NOTES = """Please summarize meeting notes from today:
- agreed to ship v2 on 2026-11-02
- Ana owns the migration script, due EOD Friday
- still unclear whether ARR reporting moves to the new dashboard
"""


async def main() -> None:
    observer = CallbackObserver(
        on_skill_activated=lambda skill: console.print(f"[cyan]activated[/cyan] {skill.name}"),
        on_reference_disclosed=lambda path, _: console.print(f"[dim]reference {path}[/dim]"),
        on_script_executed=lambda name, output: console.print(f"[green]{name}[/green] {output}"),
    )
    config = get_default_config()
    config.agent.auto_execute_scripts = True
    agent = await create_agent(
        [Path(__file__).parent / "skills"], config=config, observers=[observer]
    )
    console.print(f"Skills: {', '.join(agent.available_skills)}")

    response = await agent.chat(NOTES)
    console.print(response.content)

    follow_up = await agent.chat("Looks good, save it as 'v2 launch sync'.")
    console.print(follow_up.content)
    console.print(f"scripts executed: {follow_up.scripts_executed}")


if __name__ == "__main__":
    asyncio.run(main())
