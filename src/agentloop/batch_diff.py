"""Applies SEARCH/REPLACE patches to several files behind one approval.

Each file is handled on its own. Missing files are `blocked`, patches
that do not apply are `error`, and the rest go to a single approval
prompt. Approved files are written one after another. A failure or
denial on one path never rolls back or blocks another.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from .diff_engine import SINGLE_BLOCK_NOTICE, apply_patch, count_search_markers
from .errors import AgentError
from .logger import get_logger

log = get_logger("batch_diff")


class OperationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    BLOCKED = "blocked"
    ERROR = "error"


@dataclass
class FileOperation:
    """One file's share of a batch."""
    path: str
    diff: str
    status: OperationStatus = OperationStatus.PENDING
    result: str = ""
    block_count: int = 0
    new_content: Optional[str] = None
    written: bool = False


@dataclass(frozen=True)
class BatchPreviewRow:
    """What the approval prompt shows for one file."""
    path: str
    change_count: int
    diff: str

    @property
    def key(self) -> str:
        changes = "1 change" if self.change_count == 1 else f"{self.change_count} changes"
        return f"{self.path} ({changes})"


@dataclass
class ApprovalResponse:
    """The user's verdict: the set of approved paths plus optional feedback."""
    approved: Set[str] = field(default_factory=set)
    feedback: Optional[str] = None

    @classmethod
    def approve_all(cls, paths: Iterable[str], feedback: Optional[str] = None) -> "ApprovalResponse":
        return cls(approved=set(paths), feedback=feedback)

    @classmethod
    def deny_all(cls, feedback: Optional[str] = None) -> "ApprovalResponse":
        return cls(approved=set(), feedback=feedback)

    @classmethod
    def from_button(cls, response: str, text: Optional[str], paths: Iterable[str]) -> "ApprovalResponse":
        """Interpret a UI reply.

        "yesButtonClicked" approves everything, "noButtonClicked" denies
        everything, anything else must be JSON of the form
        {"action": "applyDiff", "approvedFiles": {path: true}}. Unparseable
        replies deny everything.
        """
        paths = list(paths)
        if response == "yesButtonClicked":
            return cls.approve_all(paths)
        if response == "noButtonClicked":
            return cls.deny_all()
        try:
            parsed = json.loads(text or "{}")
        except json.JSONDecodeError:
            log.warning("Unparseable batch approval reply; denying all")
            return cls.deny_all()
        if not isinstance(parsed, dict) or parsed.get("action") != "applyDiff":
            return cls.deny_all()
        approved_files = parsed.get("approvedFiles") or {}
        return cls(approved={p for p in paths if approved_files.get(p) is True})


Approver = Callable[[List[BatchPreviewRow]], Awaitable[ApprovalResponse]]


class FileStore(Protocol):
    async def read(self, path: str) -> Optional[str]:
        """Return file text, or None when the file does not exist."""

    async def write(self, path: str, content: str) -> None:
        ...


@dataclass
class BatchDiffResult:
    operations: List[FileOperation]

    @property
    def statuses(self) -> Dict[str, OperationStatus]:
        return {op.path: op.status for op in self.operations}

    @property
    def has_any_denial(self) -> bool:
        return any(op.status == OperationStatus.DENIED for op in self.operations)

    @property
    def success(self) -> bool:
        return bool(self.operations) and all(op.written for op in self.operations)

    def to_tool_result(self) -> str:
        if len(self.operations) == 1:
            lines = [self.operations[0].result]
        else:
            lines = [f"{op.path}: {op.status.value}. {op.result}".rstrip() for op in self.operations]
        total_blocks = sum(count_search_markers(op.diff) for op in self.operations)
        if total_blocks == 1 and self.success:
            lines.append(SINGLE_BLOCK_NOTICE)
        return "\n\n".join(lines)


def create_preview_rows(operations: Iterable[FileOperation]) -> List[BatchPreviewRow]:
    return [BatchPreviewRow(op.path, op.block_count, op.diff) for op in operations]


class BatchDiffApplier:
    """Drives one batch through prepare -> approve -> write."""

    def __init__(self, store: FileStore, approver: Approver):
        self.store = store
        self.approver = approver

    async def prepare(self, op: FileOperation) -> None:
        try:
            original = await self.store.read(op.path)
        except AgentError as e:
            op.status = OperationStatus.ERROR
            op.result = e.to_tool_result()
            return
        if original is None:
            op.status = OperationStatus.BLOCKED
            op.result = f"File does not exist: {op.path}"
            return
        try:
            result = apply_patch(original, op.diff)
        except AgentError as e:
            op.status = OperationStatus.ERROR
            op.result = e.to_tool_result()
            return
        op.block_count = result.applied
        op.new_content = result.content

    async def apply(self, entries: Iterable[Tuple[str, str]]) -> BatchDiffResult:
        operations = [FileOperation(path=path, diff=diff) for path, diff in entries]
        for op in operations:
            await self.prepare(op)

        pending = [op for op in operations if op.status == OperationStatus.PENDING]
        if pending:
            response = await self.approver(create_preview_rows(pending))
            for op in pending:
                if op.path in response.approved:
                    op.status = OperationStatus.APPROVED
                else:
                    op.status = OperationStatus.DENIED
                    op.result = f"Changes to {op.path} were not approved by user"
                    if response.feedback:
                        op.result += f"\n<feedback>\n{response.feedback}\n</feedback>"

        for op in operations:
            if op.status != OperationStatus.APPROVED:
                continue
            try:
                await self.store.write(op.path, op.new_content)
            except OSError as e:
                op.status = OperationStatus.ERROR
                op.result = f"Failed to write {op.path}: {e}"
                log.warning("batch write failed for %s: %s", op.path, e)
                continue
            op.written = True
            op.result = f"Successfully applied {op.block_count} diff block(s) to '{op.path}'"

        log.info("batch diff: %s", {op.path: op.status.value for op in operations})
        return BatchDiffResult(operations)
