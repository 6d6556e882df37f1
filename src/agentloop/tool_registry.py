"""Single source of truth for all tool definitions.

Every tool known to the runtime is defined ONCE here. The parser's
required-parameter check, the greedy-match decision for payload tools,
the system prompt and the tool registry descriptions all read from this
module.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import time
import threading
from .logger import get_logger

log = get_logger("registry")


# ── Tool Definition ──────────────────────────────────────────────

@dataclass
class ToolParam:
    """Metadata for a single tool parameter."""
    name: str
    required: bool = False
    description: str = ""
    structured: bool = False          # value is a list of child-element mappings
    unless: Optional[str] = None      # requirement waived when this param is present


@dataclass
class ToolDef:
    """Canonical definition of a tool.

    complex_content tools carry payloads (file bodies, patches) that may
    themselves contain XML, so the parser matches their closing tag
    greedily.
    """
    name: str
    category: str = "general"         # read, edit, command, flow
    complex_content: bool = False
    params: List[ToolParam] = field(default_factory=list)
    description: str = ""

    def required_params(self, present: Optional[set] = None) -> List[str]:
        """Names of required params, honoring `unless` waivers for `present`."""
        present = present or set()
        return [
            p.name for p in self.params
            if p.required and not (p.unless and p.unless in present)
        ]


# ── The Registry ─────────────────────────────────────────────────

TOOL_DEFS: List[ToolDef] = [
    # --- Read ---
    ToolDef("read_file", category="read",
            params=[ToolParam("path", required=True,
                              description="File path relative to the workspace"),
                    ToolParam("start_line", description="1-based first line"),
                    ToolParam("end_line", description="1-based last line (inclusive)")],
            description="Read a file's contents with line numbers."),
    ToolDef("list_files", category="read",
            params=[ToolParam("path", required=True, description="Directory to list"),
                    ToolParam("recursive", description="true to list recursively")],
            description="List files and directories."),
    ToolDef("search_files", category="read",
            params=[ToolParam("path", required=True, description="Directory to search"),
                    ToolParam("regex", required=True, description="Regular expression"),
                    ToolParam("file_pattern", description="Glob filter, e.g. *.py")],
            description="Regex search across files, returning matching lines."),

    # --- Edit ---
    ToolDef("write_to_file", category="edit", complex_content=True,
            params=[ToolParam("path", required=True, description="File path"),
                    ToolParam("content", required=True, description="COMPLETE file content")],
            description="Create or overwrite a file."),
    ToolDef("apply_diff", category="edit", complex_content=True,
            params=[ToolParam("path", required=True, unless="args", description="File path"),
                    ToolParam("diff", required=True, unless="args",
                              description="One or more SEARCH/REPLACE blocks"),
                    ToolParam("args", structured=True,
                              description="Batch form: repeated <file><path/><diff/></file>")],
            description="Apply SEARCH/REPLACE blocks to one or more files."),

    # --- Command ---
    ToolDef("execute_command", category="command",
            params=[ToolParam("command", required=True, description="Shell command"),
                    ToolParam("cwd", description="Working directory relative to the workspace")],
            description="Run a shell command in the workspace."),

    # --- Flow (always available) ---
    ToolDef("update_todo_list", category="flow",
            params=[ToolParam("todos", required=True,
                              description="Markdown checklist: [ ] pending, [-] in progress, [x] done")],
            description="Replace the task's todo list."),
    ToolDef("switch_mode", category="flow",
            params=[ToolParam("mode_slug", required=True, description="Target mode"),
                    ToolParam("reason", description="Why the switch is needed")],
            description="Switch the session to another mode."),
    ToolDef("ask_followup_question", category="flow",
            params=[ToolParam("question", required=True, description="Question for the user")],
            description="Ask the user for missing information."),
    ToolDef("attempt_completion", category="flow",
            params=[ToolParam("result", required=True, description="Final result of the task"),
                    ToolParam("command", description="Optional command demonstrating the result")],
            description="Present the final result and end the task."),
]

# Derived lookups (computed once at import time)
TOOL_NAMES: List[str] = [t.name for t in TOOL_DEFS]
TOOL_BY_NAME: Dict[str, ToolDef] = {t.name: t for t in TOOL_DEFS}
COMPLEX_CONTENT_TOOLS: set = {t.name for t in TOOL_DEFS if t.complex_content}
COMPLEX_PARAMS: set = {"content", "diff", "args"}


def get_complex_content_tools() -> set:
    """Return tool names that may contain nested XML in their content."""
    return COMPLEX_CONTENT_TOOLS


def get_tool_def(name: str) -> Optional[ToolDef]:
    """Return tool definition by name, or None if unknown."""
    return TOOL_BY_NAME.get(name)


# ── Observability: ToolMetrics ───────────────────────────────────

@dataclass
class ToolStats:
    calls: int = 0
    errors: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_error: Optional[str] = None


class ToolMetrics:
    """Per-tool call counts, timing, and error rate for one task."""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats: Dict[str, ToolStats] = {}
        self._started = time.time()

    def record(self, tool_name: str, elapsed_ms: float, success: bool,
               error: Optional[str] = None, result_size: int = 0) -> None:
        with self._lock:
            stats = self._stats.setdefault(tool_name, ToolStats())
            stats.calls += 1
            stats.total_ms += elapsed_ms
            stats.max_ms = max(stats.max_ms, elapsed_ms)
            if not success:
                stats.errors += 1
                stats.last_error = error
        log.debug("tool_metric: %s elapsed=%.1fms success=%s result_size=%d",
                  tool_name, elapsed_ms, success, result_size)

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            total_calls = sum(s.calls for s in self._stats.values())
            total_errors = sum(s.errors for s in self._stats.values())
            per_tool = {
                name: {
                    "count": s.calls,
                    "errors": s.errors,
                    "avg_ms": round(s.total_ms / s.calls, 1) if s.calls else 0,
                    "max_ms": round(s.max_ms, 1),
                }
                for name, s in self._stats.items()
            }
        return {
            "elapsed_s": round(time.time() - self._started, 1),
            "total_calls": total_calls,
            "total_errors": total_errors,
            "per_tool": per_tool,
        }
