"""File operation tools. Every path resolves inside the workspace."""

import fnmatch
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from ..errors import ToolExecutionError
from ..logger import get_logger
from .registry import ToolResult

log = get_logger("file_tools")

MAX_FULL_READ_LINES = 2000
MAX_LIST_ITEMS = 200
MAX_SEARCH_RESULTS = 100
MAX_SEARCH_FILES = 2000
SKIP_DIRS = {".git", ".hg", ".svn", "node_modules", "__pycache__", "venv", ".venv",
             ".agentloop", ".tox", ".mypy_cache", ".pytest_cache", "dist", "build"}


def resolve_path(workspace: Path, path: str, tool_name: str = "file") -> Path:
    """Resolve `path` against the workspace, rejecting anything outside it."""
    root = Path(workspace).resolve()
    p = Path(path or ".")
    if not p.is_absolute():
        p = root / p
    p = p.resolve()
    if p != root and root not in p.parents:
        raise ToolExecutionError(tool_name, f"Path is outside the workspace: {path}")
    return p


def relative_to_workspace(workspace: Path, path: Path) -> str:
    try:
        return str(path.relative_to(Path(workspace).resolve()))
    except ValueError:
        return str(path)


def _should_skip(path: Path, root: Path) -> bool:
    return any(part in SKIP_DIRS for part in path.relative_to(root).parts)


def _parse_line(value: Any, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ToolExecutionError("read_file", f"{name} must be an integer, got '{value}'")


class WorkspaceFileStore:
    """FileStore over the workspace directory.

    Text is read and written with newline="" so a file's line endings
    survive an edit.
    """

    def __init__(self, workspace: Path):
        self.workspace = Path(workspace)

    async def read(self, path: str) -> Optional[str]:
        target = resolve_path(self.workspace, path, "apply_diff")
        if not target.is_file():
            return None
        async with aiofiles.open(target, "r", encoding="utf-8", errors="replace", newline="") as f:
            return await f.read()

    async def write(self, path: str, content: str) -> None:
        target = resolve_path(self.workspace, path, "apply_diff")
        target.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(target, "w", encoding="utf-8", newline="") as f:
            await f.write(content)


async def read_file(workspace: Path, params: Dict[str, Any]) -> ToolResult:
    """Read a file with line numbers, optionally limited to a line range.

    Files longer than MAX_FULL_READ_LINES must be read by range.
    """
    path = resolve_path(workspace, params.get("path", ""), "read_file")
    rel_path = relative_to_workspace(workspace, path)
    start_line = _parse_line(params.get("start_line"), "start_line")
    end_line = _parse_line(params.get("end_line"), "end_line")
    log.debug("read_file: path=%s start_line=%s end_line=%s", rel_path, start_line, end_line)

    if not path.is_file():
        return ToolResult.fail(f"File not found: {rel_path}")

    async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as f:
        content = await f.read()
    all_lines = content.splitlines()
    total_lines = len(all_lines)
    has_range = start_line is not None or end_line is not None

    if not has_range and total_lines > MAX_FULL_READ_LINES:
        return ToolResult.fail(
            f"File is too large to read in full ({total_lines:,} lines). "
            "Use start_line and end_line to read specific sections."
        )

    start_idx = max(0, start_line - 1) if start_line else 0
    end_idx = min(total_lines, end_line) if end_line else total_lines
    if has_range and total_lines and start_idx >= total_lines:
        return ToolResult.fail(
            f"start_line {start_line} is beyond end of file ({total_lines} lines)"
        )

    numbered = [f"{start_idx + i + 1:4d} | {line}" for i, line in enumerate(all_lines[start_idx:end_idx])]
    return ToolResult.ok("\n".join(numbered) if numbered else "(empty file)")


async def write_to_file(workspace: Path, params: Dict[str, Any]) -> ToolResult:
    """Create or overwrite a file with the complete content given."""
    path = resolve_path(workspace, params.get("path", ""), "write_to_file")
    rel_path = relative_to_workspace(workspace, path)
    content = params.get("content", "")
    if content and not content.endswith("\n"):
        content += "\n"
    log.info("write_to_file: path=%s content_len=%d", rel_path, len(content))

    was_overwrite = path.exists()
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(content)

    if was_overwrite:
        return ToolResult.ok(
            f"Successfully wrote to {rel_path}\nNote: this file already existed. "
            "Prefer apply_diff for edits to existing files."
        )
    return ToolResult.ok(f"Successfully wrote to {rel_path}")


async def list_files(workspace: Path, params: Dict[str, Any]) -> ToolResult:
    """List a directory, optionally recursively."""
    path = resolve_path(workspace, params.get("path", "."), "list_files")
    recursive = str(params.get("recursive", "")).lower() == "true"

    if not path.is_dir():
        return ToolResult.fail(f"Directory not found: {relative_to_workspace(workspace, path)}")

    iterator = sorted(path.rglob("*")) if recursive else sorted(path.iterdir())
    items: List[str] = []
    truncated = False
    for p in iterator:
        if _should_skip(p, path):
            continue
        if len(items) >= MAX_LIST_ITEMS:
            truncated = True
            break
        suffix = "/" if p.is_dir() else ""
        items.append(f"{p.relative_to(path)}{suffix}")

    result = "\n".join(items) or "(empty directory)"
    if truncated:
        result += f"\n\n... (truncated at {MAX_LIST_ITEMS} items, use a more specific path)"
    return ToolResult.ok(result)


async def search_files(workspace: Path, params: Dict[str, Any]) -> ToolResult:
    """Regex search over files below a directory, optionally filtered by glob."""
    path = resolve_path(workspace, params.get("path", "."), "search_files")
    regex = params.get("regex", "")
    file_pattern = params.get("file_pattern") or "*"
    log.debug("search_files: path=%s regex=%s file_pattern=%s", path, regex, file_pattern)

    if not path.is_dir():
        return ToolResult.fail(f"Directory not found: {relative_to_workspace(workspace, path)}")
    try:
        pattern = re.compile(regex)
    except re.error as e:
        return ToolResult.fail(f"Invalid regex: {e}")

    results: List[str] = []
    files_scanned = 0
    for file in sorted(path.rglob("*")):
        if len(results) >= MAX_SEARCH_RESULTS or files_scanned >= MAX_SEARCH_FILES:
            break
        if not file.is_file() or _should_skip(file, path):
            continue
        if not fnmatch.fnmatch(file.name, file_pattern):
            continue
        files_scanned += 1
        try:
            if file.stat().st_size > 1024 * 1024:
                continue
            async with aiofiles.open(file, "r", encoding="utf-8", errors="ignore") as f:
                content = await f.read()
        except OSError:
            continue
        rel = file.relative_to(path)
        for i, line in enumerate(content.splitlines(), 1):
            if pattern.search(line):
                results.append(f"{rel}:{i}: {line[:150]}")
                if len(results) >= MAX_SEARCH_RESULTS:
                    break

    return ToolResult.ok("\n".join(results) if results else "(no matches)")
