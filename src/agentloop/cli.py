"""Command-line entry point: run one task against a workspace."""

import argparse
import asyncio
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel

from .agent import AgentLoop, AgentResult
from .config import Config
from .interaction import AutoApproveInteraction, ConsoleInteraction
from .llm_client import ModelClientError, OpenAICompatibleClient
from .logger import get_log_path, get_logger, init_logging
from .session import TaskSession

log = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agentloop", description="Run a tool-using agent on a task")
    parser.add_argument("task", nargs="?", help="Task description (read from stdin when omitted)")
    parser.add_argument("--mode", "-m", help="Mode to start in (code, architect, ask, or a custom slug)")
    parser.add_argument("--workspace", "-w", default=".", help="Workspace directory")
    parser.add_argument("--yes", "-y", action="store_true",
                        help="Approve every edit and never pause for confirmation")
    parser.add_argument("--session", "-s", help="Session file to resume from and save to")
    parser.add_argument("--todos", "-t",
                        help="Markdown checklist applied at the model's next update_todo_list call")
    return parser


async def run_task(session: TaskSession, task: str, console: Console, auto_approve: bool) -> AgentResult:
    interaction = AutoApproveInteraction(console=console) if auto_approve else ConsoleInteraction(console)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.cancel_token.cancel, "user")
    except (NotImplementedError, RuntimeError):
        pass  # Windows

    async with OpenAICompatibleClient(session.config) as client:
        return await AgentLoop(session, client, interaction).run(task)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console()

    workspace = Path(os.path.abspath(args.workspace))
    if not workspace.is_dir():
        console.print(f"[red]Workspace not found: {workspace}[/red]")
        return 2

    task = args.task
    if not task and not sys.stdin.isatty():
        task = sys.stdin.read().strip()
    if not task:
        console.print("[red]No task provided.[/red]")
        return 2

    init_logging(str(workspace))
    config = Config.load(workspace)
    if args.mode:
        config.mode = args.mode
    if args.yes:
        config.auto_approve_edits = True
    try:
        config.validate()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return 2

    session_path = Path(args.session) if args.session else None
    if session_path and session_path.exists():
        session = TaskSession.load(session_path, config)
        console.print(f"[dim]Resumed session {session.task_id} ({len(session.window)} messages)[/dim]")
    else:
        session = TaskSession.from_config(config)

    if args.todos:
        try:
            session.load_pending_todos(Path(args.todos))
        except (OSError, ValueError) as e:
            console.print(f"[red]Cannot use todo file: {e}[/red]")
            return 2

    console.print(f"[dim]Workspace: {workspace} | Mode: {session.mode} | Log: {get_log_path()}[/dim]")
    try:
        result = asyncio.run(run_task(session, task, console, args.yes))
    except ModelClientError as e:
        log.error("Model request failed: %s", e)
        console.print(f"[red]Model request failed: {e}[/red]")
        return 1
    finally:
        if session_path:
            session.save(session_path)

    if result.completed:
        console.print(Panel(result.result or "(no result text)", title="Result", border_style="green"))
        return 0
    console.print(Panel(result.result, title=result.status.replace("_", " ").title(), border_style="yellow"))
    return 1


if __name__ == "__main__":
    sys.exit(main())
