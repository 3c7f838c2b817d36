"""Tool capability contract and registry.

A tool is a named unit of work that takes a JSON argument string and
returns a result string, raising on failure. Each tool declares its
arguments as a pydantic model, which gives both the JSON schema offered to
the model and the validation applied before the tool runs.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ValidationError

from coda_server.agent.model import ToolSchema

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """A tool could not complete its work."""


class Tool(ABC):
    """Base class for executable tools.

    Subclasses set ``name``, ``description`` and ``args_model`` and
    implement ``run`` with the validated arguments.
    """

    name: str
    description: str
    args_model: type[BaseModel]

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON schema of the tool's arguments."""
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        return schema

    def schema(self) -> ToolSchema:
        return ToolSchema(name=self.name, description=self.description, parameters=self.parameters)

    def parse_arguments(self, arguments: str) -> BaseModel:
        """Validate a JSON argument string against the args model.

        Raises:
            ToolError: If the arguments are not valid JSON for this tool
        """
        try:
            return self.args_model.model_validate_json(arguments or "{}")
        except ValidationError as e:
            raise ToolError(f"invalid arguments for {self.name}: {e.errors(include_url=False)}") from e

    async def call(self, arguments: str) -> str:
        """Execute the tool with a JSON argument string."""
        params = self.parse_arguments(arguments)
        logger.debug(f"Running tool {self.name}")
        return await self.run(params)

    @abstractmethod
    async def run(self, params: Any) -> str:
        """Execute the tool with validated arguments."""


class ToolRegistry:
    """Ordered catalog of tools keyed by name.

    The same registry produces the schema catalog handed to the model and
    resolves the tools the engine executes, so the two never drift apart.
    """

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        if tool.name in self._tools:
            logger.warning(f"Replacing registered tool: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[ToolSchema]:
        return [tool.schema() for tool in self]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())
