"""File system tools: reading, writing, listing and editing files.

Relative paths resolve against the workspace root the tool was created
with. Blocking file I/O runs in a worker thread so the event loop keeps
serving streams while a tool works.
"""

import asyncio
import glob
import logging
from pathlib import Path

from pydantic import BaseModel, Field

from coda_server.tools.base import Tool, ToolError

logger = logging.getLogger(__name__)


def _clean_path(raw: str) -> str:
    # Models sometimes wrap paths in quotes
    return raw.strip().strip("\"'")


class _WorkspaceTool(Tool):
    def __init__(self, root: Path):
        self.root = root

    def resolve(self, raw: str) -> Path:
        path = Path(_clean_path(raw) or ".").expanduser()
        if not path.is_absolute():
            path = self.root / path
        return path


class ReadFileArgs(BaseModel):
    path: str = Field(description="Absolute or relative path to the file")
    offset: int = Field(default=0, ge=0, description="Line number to start from (1-based)")
    limit: int = Field(default=0, ge=0, description="Number of lines to read")


class ReadFileTool(_WorkspaceTool):
    name = "read_file"
    description = (
        "Reads a file and returns its content. Optionally specify 'offset' "
        "(line number to start from, 1-based) and 'limit' (number of lines to read)."
    )
    args_model = ReadFileArgs

    async def run(self, params: ReadFileArgs) -> str:
        path = self.resolve(params.path)
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")

        if params.offset == 0 and params.limit == 0:
            return content

        lines = content.split("\n")
        start = params.offset - 1 if params.offset > 0 else 0
        if start >= len(lines):
            return ""
        end = min(start + params.limit, len(lines)) if params.limit > 0 else len(lines)
        return "\n".join(lines[start:end])


class WriteFileArgs(BaseModel):
    path: str = Field(description="Target file path")
    content: str = Field(description="File contents to write")


class WriteFileTool(_WorkspaceTool):
    name = "write_file"
    description = "Writes content to a file, creating or overwriting it."
    args_model = WriteFileArgs

    async def run(self, params: WriteFileArgs) -> str:
        path = self.resolve(params.path)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(params.content, encoding="utf-8")

        await asyncio.to_thread(_write)
        logger.info(f"Wrote {len(params.content)} characters to {path}")
        return f"Successfully wrote to {params.path}"


class ListFilesArgs(BaseModel):
    path: str = Field(default=".", description="Directory path (defaults to '.')")


class ListFilesTool(_WorkspaceTool):
    name = "list_files"
    description = "Lists the contents of a directory."
    args_model = ListFilesArgs

    async def run(self, params: ListFilesArgs) -> str:
        path = self.resolve(params.path)
        entries = await asyncio.to_thread(lambda: sorted(entry.name for entry in path.iterdir()))
        return "\n".join(entries)


class ReplaceTextArgs(BaseModel):
    path: str = Field(description="File path")
    old_text: str = Field(description="Text to replace")
    new_text: str = Field(description="Replacement text")


class ReplaceTextTool(_WorkspaceTool):
    name = "replace_text"
    description = "Replaces all occurrences of a string in a file with another string."
    args_model = ReplaceTextArgs

    async def run(self, params: ReplaceTextArgs) -> str:
        path = self.resolve(params.path)

        if params.old_text == params.new_text:
            return f"No changes to apply. The old_text and new_text are identical in file: {params.path}"
        if not params.old_text:
            raise ToolError("old_text must not be empty")

        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        occurrences = content.count(params.old_text)
        if occurrences == 0:
            return f"No occurrences of '{params.old_text}' found in {params.path}"

        updated = content.replace(params.old_text, params.new_text)
        await asyncio.to_thread(path.write_text, updated, encoding="utf-8")
        return f"Successfully modified file: {params.path} ({occurrences} replacements)"


class ReadManyFilesArgs(BaseModel):
    paths: list[str] = Field(description="Array of file paths or glob patterns to read")


class ReadManyFilesTool(_WorkspaceTool):
    name = "read_many_files"
    description = "Reads content from multiple files specified by paths or glob patterns (** supported)."
    args_model = ReadManyFilesArgs

    def _expand(self, patterns: list[str]) -> list[Path]:
        seen: set[Path] = set()
        matches: list[Path] = []
        for pattern in patterns:
            resolved = self.resolve(pattern)
            for match in sorted(glob.glob(str(resolved), recursive=True)):
                path = Path(match)
                if path in seen or not path.is_file():
                    continue
                seen.add(path)
                matches.append(path)
        return matches

    def _read_all(self, patterns: list[str]) -> str:
        chunks = []
        for path in self._expand(patterns):
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Skipping unreadable file {path}: {e}")
                continue
            chunks.append(f"---\t{path}---\n{content}\n")
        return "".join(chunks)

    async def run(self, params: ReadManyFilesArgs) -> str:
        return await asyncio.to_thread(self._read_all, params.paths)
