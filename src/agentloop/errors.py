"""Error taxonomy for the orchestration core.

None of these are fatal to the process. Each one renders itself as a
tool-result text via to_tool_result() so the loop can hand it back to
the model and let it retry or adapt.
"""

from typing import List, Optional


class AgentError(Exception):
    """Base class for recoverable orchestration errors."""

    def to_tool_result(self) -> str:
        return f"Error: {self}"


class MalformedToolCall(AgentError):
    """The assistant turn did not contain exactly one well-formed tool call."""

    def __init__(self, reason: str, tool_name: Optional[str] = None,
                 missing_params: Optional[List[str]] = None, found: int = 0):
        super().__init__(reason)
        self.reason = reason
        self.tool_name = tool_name
        self.missing_params = missing_params or []
        self.found = found

    def to_tool_result(self) -> str:
        if self.missing_params:
            names = ", ".join(f"'{p}'" for p in self.missing_params)
            return (
                f"Error: Missing value for required parameter {names} "
                f"of tool '{self.tool_name}'. Please retry with a complete response."
            )
        return f"Error: {self.reason}"


class PermissionDenied(AgentError):
    """A tool is not callable in the active mode."""

    def __init__(self, tool_name: str, mode: str, reason: str):
        super().__init__(reason)
        self.tool_name = tool_name
        self.mode = mode
        self.reason = reason


class NoDiffBlocksFound(AgentError):
    """A patch contained no SEARCH/REPLACE blocks."""

    def __init__(self, message: str = "No valid SEARCH/REPLACE blocks found in diff."):
        super().__init__(message)

    def to_tool_result(self) -> str:
        return (
            f"Error: {self}\nExpected format:\n"
            "<<<<<<< SEARCH\nold content\n=======\nnew content\n>>>>>>> REPLACE"
        )


class DiffApplyError(AgentError):
    """One or more SEARCH blocks were not found in the file.

    `partial_content` is the buffer with the successful blocks applied. It
    is for diagnostic display only and must never be persisted.
    """

    def __init__(self, failed_indices: List[int], total_blocks: int,
                 partial_content: str, diagnostics: Optional[List[str]] = None):
        self.failed_indices = list(failed_indices)
        self.total_blocks = total_blocks
        self.partial_content = partial_content
        self.diagnostics = diagnostics or []
        super().__init__(
            f"Failed to apply {len(self.failed_indices)} of {total_blocks} diff block(s). "
            "Search content not found in file."
        )

    @property
    def failed_count(self) -> int:
        return len(self.failed_indices)

    def to_tool_result(self) -> str:
        parts = [f"Error: {self}"]
        parts.extend(self.diagnostics)
        return "\n\n".join(parts)


class InvalidTodoTransition(AgentError):
    """A todo item was asked to move backward or skip a state."""

    def __init__(self, item_id: str, current: str, requested: str):
        self.item_id = item_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move todo '{item_id}' from {current} to {requested}. "
            "Status may only advance pending -> in_progress -> completed."
        )


class ToolExecutionError(AgentError):
    """Opaque failure reported by a tool implementation."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(message)

    def to_tool_result(self) -> str:
        return f"Error executing {self.tool_name}: {self}"
