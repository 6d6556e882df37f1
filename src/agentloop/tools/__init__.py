"""Tool implementations and the registry that binds them to a session."""

from functools import partial

from ..interaction import UserInteraction
from ..session import TaskSession
from ..tool_registry import TOOL_BY_NAME
from .edit_tools import apply_diff, approve_everything
from .file_tools import (
    WorkspaceFileStore,
    list_files,
    read_file,
    resolve_path,
    search_files,
    write_to_file,
)
from .registry import Tool, ToolRegistry, ToolResult
from .shell_tools import execute_command, kill_process_tree
from .task_tools import ask_followup_question, attempt_completion, switch_mode, update_todo_list


def build_default_registry(session: TaskSession, interaction: UserInteraction) -> ToolRegistry:
    """Bind every built-in tool to `session` and `interaction`."""
    workspace = session.workspace
    approver = approve_everything if session.config.auto_approve_edits else interaction.approve_edits

    functions = {
        "read_file": partial(read_file, workspace),
        "write_to_file": partial(write_to_file, workspace),
        "apply_diff": partial(apply_diff, WorkspaceFileStore(workspace), approver),
        "list_files": partial(list_files, workspace),
        "search_files": partial(search_files, workspace),
        "execute_command": partial(
            execute_command, workspace,
            timeout=session.config.command_timeout, token=session.cancel_token,
        ),
        "update_todo_list": partial(update_todo_list, session),
        "switch_mode": partial(switch_mode, session),
        "ask_followup_question": partial(ask_followup_question, interaction),
        "attempt_completion": partial(attempt_completion, session),
    }

    registry = ToolRegistry()
    for name, function in functions.items():
        registry.register(Tool(name=name, description=TOOL_BY_NAME[name].description, function=function))
    return registry


__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "WorkspaceFileStore",
    "build_default_registry",
    "resolve_path",
    "kill_process_tree",
]
