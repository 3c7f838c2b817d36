"""Tool capability layer.

This package provides the tool contract, the ordered registry that keeps the
model-facing schema catalog and the executable catalog in sync, and the
built-in file system and shell tools.
"""

from pathlib import Path

from coda_server.tools.base import Tool, ToolError, ToolRegistry
from coda_server.tools.filesystem import (
    ListFilesTool,
    ReadFileTool,
    ReadManyFilesTool,
    ReplaceTextTool,
    WriteFileTool,
)
from coda_server.tools.shell import HostShellRunner, RunInShellTool, ShellResult, ShellRunner


def build_default_registry(root: Path, shell_runner: ShellRunner | None = None) -> ToolRegistry:
    """Build the registry of built-in tools rooted at a workspace directory.

    Args:
        root: Directory that relative tool paths resolve against
        shell_runner: Runner for shell commands (default: HostShellRunner)

    Returns:
        ToolRegistry with all built-in tools in a stable order
    """
    runner = shell_runner or HostShellRunner()
    return ToolRegistry(
        [
            ReadFileTool(root),
            WriteFileTool(root),
            ListFilesTool(root),
            ReplaceTextTool(root),
            RunInShellTool(runner, root),
            ReadManyFilesTool(root),
        ]
    )


__all__ = [
    "HostShellRunner",
    "ListFilesTool",
    "ReadFileTool",
    "ReadManyFilesTool",
    "ReplaceTextTool",
    "RunInShellTool",
    "ShellResult",
    "ShellRunner",
    "Tool",
    "ToolError",
    "ToolRegistry",
    "WriteFileTool",
    "build_default_registry",
]
