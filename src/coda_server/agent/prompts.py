"""System prompt construction.

The system prompt is rendered from a template with two placeholders,
``$tools`` (comma separated tool names) and ``$env`` (an ``<env>`` block
describing the host). A custom template file configured in the settings
replaces the built-in one.
"""

import logging
import os
import platform
from pathlib import Path
from string import Template

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TEMPLATE = """\
You are Coda, an autonomous coding agent working in a software project on
the user's machine. You help with software engineering tasks: reading and
changing code, running commands and explaining what you find.

# Working rules
- Use the available tools to inspect files before changing them.
- Prefer small, targeted edits with replace_text over rewriting whole files.
- Run commands to verify your changes when that is possible.
- Do not repeat the same tool call with the same arguments; if a call does
  not give you what you need, change your approach.
- When the task is done, answer with a short summary of what you did.

# Tools
You can call these tools: $tools

# Environment
$env
"""

PROJECT_ROOT_MARKERS = (".git", "pyproject.toml", "go.mod", "package.json")


def find_project_root(start: Path) -> Path:
    """Walk up from ``start`` to the nearest directory holding a project marker.

    Returns ``start`` itself when no marker is found.
    """
    start = start.resolve()
    for directory in (start, *start.parents):
        if any((directory / marker).exists() for marker in PROJECT_ROOT_MARKERS):
            return directory
    return start


def build_env_block(workspace: Path) -> str:
    shell = os.environ.get("SHELL") or ("cmd.exe" if platform.system() == "Windows" else "bash")
    return (
        "<env>\n"
        f" <os>{platform.system().lower()}</os>\n"
        f" <shell>{shell}</shell>\n"
        " <paths>\n"
        f"  <cwd>{workspace.resolve()}</cwd>\n"
        f"  <project_root>{find_project_root(workspace)}</project_root>\n"
        f"  <home>{Path.home()}</home>\n"
        " </paths>\n"
        "</env>"
    )


def build_system_prompt(
    tool_names: list[str],
    workspace: Path,
    template_path: Path | None = None,
) -> str:
    """Render the system prompt.

    Args:
        tool_names: Names of the tools offered to the model
        workspace: Directory the agent works in
        template_path: Optional file whose content replaces the built-in template

    Returns:
        The rendered system prompt

    Raises:
        FileNotFoundError: If template_path is set but does not exist
    """
    template = SYSTEM_PROMPT_TEMPLATE
    if template_path is not None:
        template = template_path.read_text(encoding="utf-8")
        logger.info(f"Using system prompt template from {template_path}")

    return Template(template).safe_substitute(
        tools=", ".join(tool_names),
        env=build_env_block(workspace),
    )
