"""Flow tools: todo updates, mode switches, questions, and completion."""

from typing import Any, Dict

from ..interaction import UserInteraction
from ..logger import get_logger
from ..prompts import completion_blocked_by_todos
from ..session import TaskSession
from ..todo_list import parse_markdown_checklist
from .registry import ToolResult

log = get_logger("task_tools")


async def update_todo_list(session: TaskSession, params: Dict[str, Any]) -> ToolResult:
    """Replace the todo list.

    A checklist the user already approved (session.pending_todo_list)
    takes precedence over the model's and is consumed by this call.
    """
    if session.pending_todo_list is not None:
        items = session.pending_todo_list
        session.pending_todo_list = None
        source = "user-approved"
    else:
        items = parse_markdown_checklist(params.get("todos", ""))
        source = "model"
        if not items:
            return ToolResult.fail(
                "No checklist items found in <todos>. Use lines like '- [ ] task', "
                "'- [-] task' (in progress) or '- [x] task' (done)."
            )

    update = session.todos.replace_all(items)
    if not update.success:
        return ToolResult.fail(update.message)

    log.info("Todo list replaced from %s list: %s", source, session.todos.progress_summary())
    return ToolResult.ok(
        f"Todo list updated. {session.todos.progress_summary()}\n{session.todos.to_markdown()}"
    )


async def switch_mode(session: TaskSession, params: Dict[str, Any]) -> ToolResult:
    target = params.get("mode_slug", "").strip()
    reason = params.get("reason", "").strip()
    switch = session.modes.validate_switch(session.mode, target)
    if not switch.success:
        return ToolResult.fail(switch.error)

    previous = session.current_mode.display_name
    session.set_mode(target)
    text = f"Successfully switched from {previous} mode to {session.current_mode.display_name} mode"
    if reason:
        text += f" because: {reason}"
    return ToolResult.ok(text + ".")


async def ask_followup_question(interaction: UserInteraction, params: Dict[str, Any]) -> ToolResult:
    question = params.get("question", "")
    answer = await interaction.ask(question)
    if not answer:
        return ToolResult.ok("The user did not answer. Proceed with your best judgement.")
    return ToolResult.ok(f"<answer>\n{answer}\n</answer>")


async def attempt_completion(session: TaskSession, params: Dict[str, Any]) -> ToolResult:
    """End the task, unless open todos block completion."""
    if session.config.prevent_completion_with_open_todos and session.todos.has_incomplete():
        remaining = session.todos.incomplete()
        log.info("Completion blocked: %d todo(s) open", len(remaining))
        return ToolResult.fail(completion_blocked_by_todos(remaining))
    return ToolResult.ok(params.get("result", ""), terminal=True)
