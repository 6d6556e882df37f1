"""Tool-use orchestration core for XML-speaking coding agents."""

from .agent import AgentLoop, AgentResult
from .batch_diff import ApprovalResponse, BatchDiffApplier, OperationStatus
from .config import Config
from .conversation import ConversationWindow, Message, truncate_conversation
from .diff_engine import apply_patch, parse_diff_blocks
from .dispatcher import DispatchOutcome, ToolDispatcher
from .errors import (
    AgentError,
    DiffApplyError,
    InvalidTodoTransition,
    MalformedToolCall,
    NoDiffBlocksFound,
    PermissionDenied,
    ToolExecutionError,
)
from .modes import Mode, ModeRegistry
from .permissions import check_tool_permission, is_tool_allowed
from .session import TaskSession
from .todo_list import TodoItem, TodoList, TodoStatus
from .tool_parser import ParseResult, ToolCall, parse_tool_call

__version__ = "0.1.0"
__all__ = [
    "AgentLoop",
    "AgentResult",
    "ApprovalResponse",
    "BatchDiffApplier",
    "OperationStatus",
    "Config",
    "ConversationWindow",
    "Message",
    "truncate_conversation",
    "apply_patch",
    "parse_diff_blocks",
    "DispatchOutcome",
    "ToolDispatcher",
    "AgentError",
    "DiffApplyError",
    "InvalidTodoTransition",
    "MalformedToolCall",
    "NoDiffBlocksFound",
    "PermissionDenied",
    "ToolExecutionError",
    "Mode",
    "ModeRegistry",
    "check_tool_permission",
    "is_tool_allowed",
    "TaskSession",
    "TodoItem",
    "TodoList",
    "TodoStatus",
    "ParseResult",
    "ToolCall",
    "parse_tool_call",
]
