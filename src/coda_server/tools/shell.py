"""Shell command tool.

The tool delegates to a ``ShellRunner``. The host runner shipped here runs
commands as local subprocesses; a sandboxed runner can be injected instead
without touching the tool or the scheduler.
"""

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from coda_server.tools.base import Tool, ToolError

logger = logging.getLogger(__name__)


@dataclass
class ShellResult:
    """Combined output and exit code of a finished command."""

    output: str
    exit_code: int


class ShellRunner(Protocol):
    async def run(self, command: str, cwd: Path) -> ShellResult: ...


class HostShellRunner:
    """Runs commands with the host shell.

    Attributes:
        timeout: Seconds before a command is killed, None for no limit
    """

    def __init__(self, timeout: float | None = 120.0):
        self.timeout = timeout

    async def run(self, command: str, cwd: Path) -> ShellResult:
        if sys.platform == "win32":
            argv = ["cmd.exe", "/c", command]
        else:
            argv = ["bash", "-c", command]

        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ToolError(f"command timed out after {self.timeout}s")
        except asyncio.CancelledError:
            logger.warning(f"Killing shell command after cancellation: {command[:80]}")
            process.kill()
            await process.wait()
            raise

        output = stdout.decode(errors="replace")
        err = stderr.decode(errors="replace")
        if err:
            output = f"{output}\n{err}" if output else err

        return ShellResult(output=output, exit_code=process.returncode or 0)


class RunInShellArgs(BaseModel):
    command: str = Field(description="Shell command to run")
    description: str = Field(default="", description="Short description of the command")
    path: str = Field(default="", description="Working directory for the command")


class RunInShellTool(Tool):
    name = "run_in_shell"
    description = (
        "Executes a shell command and returns a JSON object with the combined "
        "output and the exit code."
    )
    args_model = RunInShellArgs

    def __init__(self, runner: ShellRunner, root: Path):
        self.runner = runner
        self.root = root

    async def run(self, params: RunInShellArgs) -> str:
        if not params.command.strip():
            raise ToolError("command must not be empty")

        cwd = self.root
        if params.path:
            cwd = Path(params.path).expanduser()
            if not cwd.is_absolute():
                cwd = self.root / cwd

        logger.info(f"Running shell command in {cwd}: {params.command[:80]}")
        result = await self.runner.run(params.command, cwd)
        return json.dumps({"output": result.output, "exitCode": str(result.exit_code)})
