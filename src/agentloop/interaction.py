"""User-interaction collaborators: edit approval, questions, and progress."""

import asyncio
from typing import Iterable, List, Optional, Protocol

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.syntax import Syntax

from .batch_diff import ApprovalResponse, BatchPreviewRow
from .logger import get_logger

log = get_logger("interaction")


class UserInteraction(Protocol):
    async def approve_edits(self, rows: List[BatchPreviewRow]) -> ApprovalResponse:
        """Return the set of approved paths for one batch of edits."""

    async def ask(self, question: str) -> Optional[str]:
        """Answer a follow-up question from the model; None when unanswered."""

    async def confirm_continue(self, message: str) -> Optional[str]:
        """Decide whether a struggling task keeps going.

        None stops the task. Any string continues, a non-empty one is
        passed to the model as guidance.
        """

    def show(self, kind: str, text: str) -> None:
        """Display progress ("assistant", "tool", "result", "error", "info")."""


class AutoApproveInteraction:
    """Non-interactive collaborator: approves every edit and never stops.

    Follow-up questions are answered from `answers` in order, then with
    None.
    """

    def __init__(self, answers: Optional[Iterable[str]] = None, console: Optional[Console] = None):
        self.answers = list(answers or [])
        self.console = console
        self.questions: List[str] = []

    async def approve_edits(self, rows: List[BatchPreviewRow]) -> ApprovalResponse:
        return ApprovalResponse.approve_all(row.path for row in rows)

    async def ask(self, question: str) -> Optional[str]:
        self.questions.append(question)
        return self.answers.pop(0) if self.answers else None

    async def confirm_continue(self, message: str) -> Optional[str]:
        log.info("auto-continue after: %s", message)
        return ""

    def show(self, kind: str, text: str) -> None:
        if self.console is not None:
            _render(self.console, kind, text)


_STYLES = {
    "assistant": "white",
    "tool": "cyan",
    "result": "dim",
    "error": "red",
    "info": "yellow",
}


def _render(console: Console, kind: str, text: str) -> None:
    style = _STYLES.get(kind, "white")
    if kind == "tool":
        console.print(f"  [dim]•[/dim] [{style}]{text}[/{style}]")
    elif kind == "result":
        preview = text if len(text) <= 600 else text[:600] + " ..."
        console.print(f"[{style}]{preview}[/{style}]")
    else:
        console.print(f"[{style}]{text}[/{style}]")


class ConsoleInteraction:
    """Terminal collaborator built on rich prompts."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    async def _confirm(self, prompt: str, default: bool = True) -> bool:
        return await asyncio.to_thread(Confirm.ask, prompt, console=self.console, default=default)

    async def _prompt(self, prompt: str, default: str = "") -> str:
        return await asyncio.to_thread(Prompt.ask, prompt, console=self.console, default=default)

    def _preview(self, row: BatchPreviewRow) -> None:
        self.console.print(Panel(
            Syntax(row.diff, "diff", theme="ansi_dark", word_wrap=True),
            title=row.key,
            border_style="cyan",
        ))

    async def approve_edits(self, rows: List[BatchPreviewRow]) -> ApprovalResponse:
        for row in rows:
            self._preview(row)

        if len(rows) == 1:
            approved = await self._confirm(f"Apply changes to {rows[0].path}?")
            if approved:
                return ApprovalResponse.approve_all([rows[0].path])
        else:
            choice = await self._prompt(
                "Apply these changes? [y]es all / [n]o / [s]elect", default="y")
            choice = choice.strip().lower()[:1]
            if choice == "y":
                return ApprovalResponse.approve_all(row.path for row in rows)
            if choice == "s":
                selected = set()
                for row in rows:
                    if await self._confirm(f"  Apply {row.key}?"):
                        selected.add(row.path)
                return ApprovalResponse(approved=selected)

        feedback = await self._prompt("Feedback for the model (optional)")
        return ApprovalResponse.deny_all(feedback.strip() or None)

    async def ask(self, question: str) -> Optional[str]:
        self.console.print(Panel(question, title="Question", border_style="yellow"))
        answer = await self._prompt("Your answer")
        return answer.strip() or None

    async def confirm_continue(self, message: str) -> Optional[str]:
        self.console.print(Panel(message, title="Agent is struggling", border_style="red"))
        if not await self._confirm("Keep going?"):
            return None
        guidance = await self._prompt("Guidance for the model (optional)")
        return guidance.strip()

    def show(self, kind: str, text: str) -> None:
        _render(self.console, kind, text)
