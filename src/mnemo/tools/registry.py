"""Tool registry for managing and dispatching tools."""

import logging
from typing import Any

from .base import Tool, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for available tools.

    Built explicitly and handed to the agent loop, so each deployment (or
    test) decides which tools exist.
    """

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_tools_schema(self) -> list[dict[str, Any]]:
        """Get schemas for all tools, without the arguments the loop fills in."""
        schemas = []
        for tool in self._tools.values():
            schema = tool.get_schema()
            if tool.scope_args:
                params = dict(schema["function"]["parameters"])
                params["properties"] = {
                    k: v
                    for k, v in params.get("properties", {}).items()
                    if k not in tool.scope_args
                }
                params["required"] = [
                    r for r in params.get("required", []) if r not in tool.scope_args
                ]
                schema["function"]["parameters"] = params
            schemas.append(schema)
        return schemas

    async def dispatch(self, tool_name: str, args: dict[str, Any]) -> ToolResult:
        """Dispatch a tool call by name with arguments.

        Never raises: unknown names, invalid arguments and exceptions from
        the tool all come back as a failed ToolResult.
        """
        tool = self._tools.get(tool_name)

        if tool is None:
            return ToolResult(
                success=False,
                output="",
                error=f"Unknown tool: {tool_name}",
            )

        # Validate arguments
        valid, error = tool.validate_args(args)
        if not valid:
            return ToolResult(
                success=False,
                output="",
                error=error,
            )

        # Execute tool
        try:
            return await tool.execute(**args)
        except Exception as e:
            logger.warning(f"Tool '{tool_name}' raised: {e}")
            return ToolResult(
                success=False,
                output="",
                error=f"Tool execution failed: {e}",
            )
