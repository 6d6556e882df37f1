"""Shell command execution tool."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil

from ..interrupt import CancellationToken, TaskCancelled
from ..logger import get_logger, truncate as log_truncate
from .file_tools import resolve_path
from .registry import ToolResult

log = get_logger("shell")

MAX_OUTPUT_CHARS = 20000
READ_CHUNK_BYTES = 4096


def kill_process_tree(pid: int, timeout: float = 3.0) -> None:
    """Kill a process and all its descendants, children first."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    try:
        children = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        children = []

    for proc in reversed(children + [parent]):
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    psutil.wait_procs(children + [parent], timeout=timeout)


def clip_output(text: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    """Keep the head and tail of long output."""
    if len(text) <= limit:
        return text
    half = limit // 2
    omitted = len(text) - limit
    return f"{text[:half]}\n\n... ({omitted:,} characters omitted) ...\n\n{text[-half:]}"


@dataclass
class ShellResult:
    """Result of a shell command execution."""

    output: str
    return_code: int
    timed_out: bool = False

    def to_tool_result(self, timeout: float) -> ToolResult:
        output = clip_output(self.output.strip()) or "(no output)"
        if self.timed_out:
            return ToolResult.fail(
                f"Command timed out after {timeout:g} seconds and was killed.\nOutput:\n{output}"
            )
        if self.return_code != 0:
            return ToolResult.fail(f"Command exited with code {self.return_code}.\nOutput:\n{output}")
        return ToolResult.ok(f"Command executed successfully.\nOutput:\n{output}")


async def run_shell_command(command: str, cwd: Path, timeout: float,
                            token: Optional[CancellationToken] = None) -> ShellResult:
    """Run `command` through the shell, stdout and stderr merged.

    Output is collected as it arrives. On timeout or cancellation the
    whole process tree is killed. Timeout yields a ShellResult with
    timed_out set and whatever output was read so far; cancellation
    re-raises TaskCancelled once the process is gone.
    """
    token = token or CancellationToken()
    proc = await asyncio.create_subprocess_shell(
        command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        cwd=str(cwd),
    )
    log.info("Process launched: PID=%d cmd=%s", proc.pid, log_truncate(command, 200))

    chunks: List[bytes] = []

    async def collect() -> None:
        while True:
            chunk = await proc.stdout.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            chunks.append(chunk)
        await proc.wait()

    try:
        await token.run(collect(), timeout=timeout)
    except asyncio.TimeoutError:
        kill_process_tree(proc.pid)
        await proc.wait()
        log.warning("Command timed out after %ss: %s", timeout, log_truncate(command, 120))
        return ShellResult(output=_decode(chunks), return_code=-1, timed_out=True)
    except (TaskCancelled, asyncio.CancelledError):
        kill_process_tree(proc.pid)
        await proc.wait()
        log.info("Command cancelled: %s", log_truncate(command, 120))
        raise

    return ShellResult(output=_decode(chunks), return_code=proc.returncode or 0)


def _decode(chunks: List[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


async def execute_command(workspace: Path, params: Dict[str, Any], timeout: float = 120.0,
                          token: Optional[CancellationToken] = None) -> ToolResult:
    command = params.get("command", "")
    if not command.strip():
        return ToolResult.fail("execute_command requires a non-empty <command> parameter.")
    cwd = resolve_path(workspace, params.get("cwd") or ".", "execute_command")
    if not cwd.is_dir():
        return ToolResult.fail(f"Working directory not found: {params.get('cwd')}")

    result = await run_shell_command(command, cwd, timeout, token)
    return result.to_tool_result(timeout)
