"""Script executor for running skill scripts in a subprocess."""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from skill_agent.constant import SANDBOX_ENV_FLAG
from skill_agent.exception import (
    ScriptExecutionError,
    ScriptTimeoutError,
    UnsupportedScriptError,
)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_OUTPUT_SIZE = 1024 * 1024
TRUNCATION_MARKER = "\n... (output truncated)"

INTERPRETERS: dict[str, tuple[str, ...]] = {
    ".py": (sys.executable,),
    ".sh": ("/bin/bash",),
    ".bash": ("/bin/bash",),
    ".js": ("node",),
    ".ts": ("npx", "ts-node"),
}

SENSITIVE_ENV_VARS = (
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "GITHUB_TOKEN",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "DATABASE_URL",
    "DB_PASSWORD",
)


class ScriptRunner(Protocol):
    """Runs a resolved script and returns its standard output."""

    async def execute(
        self,
        script_path: Path,
        *,
        timeout: float | None = None,
        sandbox: bool = True,
        input_data: str | None = None,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        **extra: Any,
    ) -> str: ...


class ScriptExecutor:
    """Default ScriptRunner backed by asyncio subprocesses.

    The interpreter is chosen from the file extension and the script runs with
    its own directory as working directory. In sandbox mode credential-bearing
    environment variables are removed before spawning.
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT,
        max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE,
        redacted_env_vars: Sequence[str] = SENSITIVE_ENV_VARS,
    ) -> None:
        self.default_timeout = default_timeout
        self.max_output_size = max_output_size
        self.redacted_env_vars = tuple(redacted_env_vars)

    async def execute(
        self,
        script_path: Path,
        *,
        timeout: float | None = None,
        sandbox: bool = True,
        input_data: str | None = None,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        **extra: Any,
    ) -> str:
        """Run ``script_path`` and return its captured stdout.

        Keyword options not recognized here are sent as a JSON object on stdin
        when no ``input_data`` is given.

        Raises:
            UnsupportedScriptError: No interpreter for the file extension
            ScriptTimeoutError: The script exceeded ``timeout`` and was killed
            ScriptExecutionError: Non-zero exit, or the process could not be spawned
        """
        script_path = Path(script_path)
        interpreter = INTERPRETERS.get(script_path.suffix.lower())
        if interpreter is None:
            raise UnsupportedScriptError(script_path.suffix)

        timeout = timeout or self.default_timeout
        stdin_data = input_data
        if not stdin_data and extra:
            stdin_data = json.dumps(extra, default=str)

        cmd = [*interpreter, str(script_path), *args]
        logger.debug(
            "Executing script {path} (timeout={timeout}s, sandbox={sandbox})",
            path=script_path,
            timeout=timeout,
            sandbox=sandbox,
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._prepare_env(env or {}, sandbox),
                cwd=str(script_path.parent),
            )
        except OSError as e:
            raise ScriptExecutionError(f"Failed to start script {script_path}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(input=stdin_data.encode() if stdin_data else None),
                timeout=timeout,
            )
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            logger.warning(
                "Script {path} timed out after {timeout}s", path=script_path, timeout=timeout
            )
            raise ScriptTimeoutError(timeout) from None

        stderr_text = stderr.decode(errors="replace")
        if proc.returncode != 0:
            raise ScriptExecutionError(
                f"Script failed with exit code {proc.returncode}",
                returncode=proc.returncode if proc.returncode is not None else -1,
                stderr=stderr_text,
            )
        return self._truncate(stdout.decode(errors="replace"))

    def _truncate(self, output: str) -> str:
        if len(output) <= self.max_output_size:
            return output
        return output[: self.max_output_size] + TRUNCATION_MARKER

    def _prepare_env(self, extra: Mapping[str, str], sandbox: bool) -> dict[str, str]:
        env = os.environ.copy()
        env.update(extra)
        if sandbox:
            for name in self.redacted_env_vars:
                env.pop(name, None)
            env[SANDBOX_ENV_FLAG] = "1"
        return env
