"""Tool registry for managing the executable tool implementations."""

import inspect
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel

from ..errors import AgentError, ToolExecutionError
from ..interrupt import TaskCancelled
from ..logger import get_logger, log_exception

log = get_logger("tools")


class ToolResult(BaseModel):
    """Result of a tool execution."""

    success: bool
    output: Any = None
    error: Optional[str] = None
    terminal: bool = False          # attempt_completion accepted; the task ends
    user_rejected: bool = False     # the user declined, not a model mistake

    @classmethod
    def ok(cls, output: Any, **kwargs) -> "ToolResult":
        return cls(success=True, output=output, **kwargs)

    @classmethod
    def fail(cls, error: str, **kwargs) -> "ToolResult":
        return cls(success=False, error=error, **kwargs)

    def to_message(self) -> str:
        """Convert result to a message string for the model."""
        if self.success:
            if isinstance(self.output, str):
                return self.output
            return json.dumps(self.output, indent=2, default=str)
        error = self.error or "Unknown error"
        return error if error.startswith("Error") else f"Error: {error}"


ToolFunction = Callable[[Dict[str, Any]], Awaitable[ToolResult]]


@dataclass
class Tool:
    """An executable tool bound to its implementation."""

    name: str
    description: str
    function: ToolFunction

    async def execute(self, params: Dict[str, Any]) -> ToolResult:
        """Run the tool; failures come back as a failed ToolResult.

        Returning anything other than a ToolResult is a programming error
        and raises TypeError.
        """
        try:
            result = self.function(params)
            if inspect.isawaitable(result):
                result = await result
        except TaskCancelled:
            raise
        except AgentError as e:
            return ToolResult.fail(e.to_tool_result())
        except Exception as e:
            log_exception(log, f"Tool {self.name} raised", e)
            return ToolResult.fail(
                ToolExecutionError(self.name, f"{type(e).__name__}: {e}").to_tool_result()
            )

        if not isinstance(result, ToolResult):
            raise TypeError(
                f"Tool {self.name!r} returned {type(result).__name__}, expected ToolResult"
            )
        return result


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def register_function(self, name: str, description: str = "") -> Callable:
        """Decorator to register a function as a tool."""
        def decorator(func: ToolFunction) -> ToolFunction:
            self.register(Tool(name=name, description=description, function=func))
            return func
        return decorator

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> List[Tool]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools)

    async def execute(self, name: str, params: Dict[str, Any]) -> ToolResult:
        """Execute a tool by name."""
        tool = self.get(name)
        if not tool:
            return ToolResult.fail(
                f"Unknown tool '{name}'. Available tools: {', '.join(self._tools)}."
            )
        return await tool.execute(params)
