"""apply_diff: single-file and batch SEARCH/REPLACE edits behind approval."""

from typing import Any, Dict, List, Tuple

from ..batch_diff import ApprovalResponse, Approver, BatchDiffApplier, BatchPreviewRow, OperationStatus
from ..errors import MalformedToolCall
from ..logger import get_logger
from .file_tools import WorkspaceFileStore
from .registry import ToolResult

log = get_logger("edit_tools")


def diff_entries(params: Dict[str, Any]) -> List[Tuple[str, str]]:
    """(path, diff) pairs from either the single-file or the `args` form."""
    files = params.get("args")
    if files is None:
        return [(params.get("path", ""), params.get("diff", ""))]

    entries = []
    for i, entry in enumerate(files, 1):
        path = (entry.get("path") or "").strip()
        if not path:
            raise MalformedToolCall(
                f"apply_diff <file> entry {i} is missing its <path>.", tool_name="apply_diff", found=1)
        entries.append((path, entry.get("diff", "")))
    if not entries:
        raise MalformedToolCall(
            "apply_diff <args> contained no <file> entries.", tool_name="apply_diff", found=1)
    return entries


async def approve_everything(rows: List[BatchPreviewRow]) -> ApprovalResponse:
    return ApprovalResponse.approve_all(row.path for row in rows)


async def apply_diff(store: WorkspaceFileStore, approver: Approver, params: Dict[str, Any]) -> ToolResult:
    entries = diff_entries(params)
    log.info("apply_diff: %d file(s): %s", len(entries), [p for p, _ in entries])

    result = await BatchDiffApplier(store, approver).apply(entries)
    text = result.to_tool_result()
    if result.success:
        return ToolResult.ok(text)

    # denials only, no engine or write failures
    rejected = result.has_any_denial and all(
        op.written or op.status == OperationStatus.DENIED for op in result.operations
    )
    return ToolResult.fail(text, user_rejected=rejected)
