"""System prompt generator and the canned texts fed back as tool results."""

import os
import platform
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .logger import get_logger
from .modes import Mode
from .permissions import is_tool_allowed
from .todo_list import TodoItem, todo_list_to_markdown
from .tool_registry import TOOL_DEFS, ToolDef

_log = get_logger("prompts")

_USAGE_EXAMPLES: Dict[str, str] = {
    "read_file": "<read_file>\n<path>src/main.py</path>\n<start_line>1</start_line>\n"
                 "<end_line>100</end_line>\n</read_file>",
    "write_to_file": "<write_to_file>\n<path>src/new_file.py</path>\n<content>\n"
                     "file content here\n</content>\n</write_to_file>",
    "apply_diff": "<apply_diff>\n<path>src/main.py</path>\n<diff>\n<<<<<<< SEARCH\nold code\n"
                  "=======\nnew code\n>>>>>>> REPLACE\n</diff>\n</apply_diff>",
    "execute_command": "<execute_command>\n<command>pytest -q</command>\n</execute_command>",
    "update_todo_list": "<update_todo_list>\n<todos>\n- [x] read the code\n- [-] fix the bug\n"
                        "- [ ] run the tests\n</todos>\n</update_todo_list>",
    "switch_mode": "<switch_mode>\n<mode_slug>code</mode_slug>\n<reason>Need to edit files</reason>\n"
                   "</switch_mode>",
    "attempt_completion": "<attempt_completion>\n<result>What was done</result>\n</attempt_completion>",
}

_DIFF_RULES = """Rules:
1. SEARCH must match EXACTLY, including whitespace and indentation.
2. Each block replaces only the FIRST match. Use several blocks for several changes, in file order.
3. Keep blocks small: the changing lines plus 2-3 lines of context so the match is unique.
4. To edit several files in one call, use <args> with one <file><path>...</path><diff>...</diff></file> per file."""


def load_agent_rules(workspace_path: str) -> str:
    """Return the workspace's agent.md content, or an empty string."""
    agent_md = Path(workspace_path) / "agent.md"
    if agent_md.exists():
        try:
            content = agent_md.read_text(encoding="utf-8").strip()
            if content:
                _log.debug("Loaded agent.md (%d chars) from %s", len(content), workspace_path)
                return content
        except OSError as e:
            _log.warning("Failed to read agent.md: %s", e)
    return ""


def describe_tool(tool: ToolDef) -> str:
    lines = [f"## {tool.name}", tool.description, "Parameters:"]
    for p in tool.params:
        if p.required and p.unless:
            flag = f"required unless {p.unless} is given"
        else:
            flag = "required" if p.required else "optional"
        lines.append(f"- {p.name}: ({flag}) {p.description}")
    if tool.name == "apply_diff":
        lines.append(_DIFF_RULES)
    example = _USAGE_EXAMPLES.get(tool.name)
    if example:
        lines.append("Usage:")
        lines.append(example)
    return "\n".join(lines)


def available_tools(mode: Mode, custom_modes: Iterable[Mode] = (),
                    tool_requirements: Optional[Dict[str, bool]] = None) -> List[ToolDef]:
    custom = list(custom_modes)
    return [t for t in TOOL_DEFS if is_tool_allowed(t.name, mode, custom, tool_requirements)]


def get_system_prompt(workspace_path: str, mode: Mode, custom_modes: Iterable[Mode] = (),
                      tool_requirements: Optional[Dict[str, bool]] = None,
                      all_modes: Iterable[Mode] = ()) -> str:
    """Build the system prompt for `mode`, listing only the tools it allows."""
    os_name = platform.system()
    shell = os.path.basename(os.environ.get("SHELL", "bash")) if os_name != "Windows" else "PowerShell"
    tools = available_tools(mode, custom_modes, tool_requirements)
    tool_docs = "\n\n".join(describe_tool(t) for t in tools)
    modes_list = "\n".join(
        f"- {m.slug}: {m.display_name}" + (f" ({m.description})" if m.description else "")
        for m in all_modes
    )
    agent_rules = load_agent_rules(workspace_path)

    prompt = f"""You are a careful software engineer working inside a sandboxed workspace.

====

TOOL USE

Tools use XML tags. Use exactly ONE tool per message and wait for its result,
which arrives in the next message. Format:

<tool_name>
<param>value</param>
</tool_name>

# Tools

{tool_docs}

====

MODES

Current mode: {mode.slug} ({mode.display_name})
{modes_list}

====

RULES

- Working directory: {workspace_path}. All paths are relative to it; paths outside it are rejected.
- Read a file before editing it, and copy SEARCH text exactly from what you read.
- Track multi-step work with update_todo_list and finish with attempt_completion.

SYSTEM: {os_name} {platform.release()} | Shell: {shell}
"""
    if agent_rules:
        prompt += f"\n====\n\nAGENT RULES (from agent.md)\n\n{agent_rules}\n"
    return prompt


# ── Tool-result texts ───────────────────────────────────────────

def no_tools_used() -> str:
    return (
        "[ERROR] You did not use a tool in your previous response! "
        "Please retry with a tool use.\n\n"
        "Reminder: tool uses are formatted as XML tags, one per message:\n"
        "<tool_name>\n<param>value</param>\n</tool_name>\n\n"
        "If the task is done, use attempt_completion. If you need information "
        "from the user, use ask_followup_question."
    )


def too_many_mistakes(feedback: Optional[str] = None) -> str:
    if feedback:
        return ("You seem to be having trouble proceeding. "
                f"The user has provided the following guidance:\n<feedback>\n{feedback}\n</feedback>")
    return ("You seem to be having trouble proceeding. Step back, re-read the relevant "
            "files, and try a different approach.")


def context_condense_notice(task: str, todos_markdown: str = "") -> str:
    text = (
        "[NOTE] Earlier conversation history was removed to stay within the context window. "
        f"The original task was:\n<task>\n{task}\n</task>"
    )
    if todos_markdown:
        text += f"\nCurrent todo list:\n{todos_markdown}"
    return text


def completion_blocked_by_todos(items: List[TodoItem]) -> str:
    return (
        "Cannot complete the task while todo items are unfinished:\n"
        f"{todo_list_to_markdown(items)}\n"
        "Finish them, or update the todo list to reflect what is actually left."
    )


def task_cancelled() -> str:
    return "Task was cancelled by the user. The running tool was stopped."
