"""SEARCH/REPLACE patch engine.

A patch is a sequence of blocks:

    <<<<<<< SEARCH
    old text
    =======
    new text
    >>>>>>> REPLACE

Blocks are applied in document order against the progressively mutated
buffer. Each block replaces the FIRST literal occurrence of its search
text anywhere in the current buffer. There is no context disambiguation,
so a search text that also occurs earlier than the intended spot edits
the earlier one.

The engine works on strings only. Callers persist `DiffResult.content`
only when apply_patch() returned without raising.
"""

import difflib
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import DiffApplyError, NoDiffBlocksFound
from .logger import get_logger

log = get_logger("diff")

# Either section may be empty; both separators must start a line.
_BLOCK_RE = re.compile(
    r"<{7}[ \t]*SEARCH[ \t]*\n(?:(.*?)\n)??={7}[ \t]*\n(?:(.*?)\n)??>{7}[ \t]*REPLACE",
    re.DOTALL,
)
_SEARCH_MARKER_RE = re.compile(r"<{7}[ \t]*SEARCH")

SINGLE_BLOCK_NOTICE = (
    "<notice>Making multiple related changes in a single apply_diff is more efficient. "
    "If other changes are needed in this file, include them as additional "
    "SEARCH/REPLACE blocks.</notice>"
)


@dataclass(frozen=True)
class DiffBlock:
    search: str
    replace: str


@dataclass
class DiffResult:
    """Outcome of applying every block of a patch."""
    content: str
    applied: int
    failed_indices: List[int] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed_indices

    @property
    def total(self) -> int:
        return self.applied + len(self.failed_indices)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_diff_blocks(patch: str) -> List[DiffBlock]:
    """Extract SEARCH/REPLACE blocks in document order."""
    patch = normalize_newlines(patch or "")
    return [DiffBlock(search, replace) for search, replace in _BLOCK_RE.findall(patch)]


def count_search_markers(patch: str) -> int:
    return len(_SEARCH_MARKER_RE.findall(patch or ""))


def apply_blocks(content: str, blocks: List[DiffBlock]) -> DiffResult:
    """Apply blocks in order, continuing past misses so every failure is reported.

    An empty search text only matches an empty buffer.
    """
    result = content
    applied = 0
    failed: List[int] = []
    for index, block in enumerate(blocks):
        at = result.find(block.search) if block.search or not result else -1
        if at == -1:
            failed.append(index)
            continue
        result = result[:at] + block.replace + result[at + len(block.search):]
        applied += 1
    return DiffResult(content=result, applied=applied, failed_indices=failed)


def apply_patch(content: str, patch: str) -> DiffResult:
    """Apply a patch to `content`.

    Raises NoDiffBlocksFound when the patch has no blocks and DiffApplyError
    (carrying the partially applied buffer and per-block diagnostics) when
    any block's search text is missing.
    """
    blocks = parse_diff_blocks(patch)
    if not blocks:
        raise NoDiffBlocksFound()

    if "\r\n" in content:
        # Keep the file's own line endings
        blocks = [
            DiffBlock(b.search.replace("\n", "\r\n"), b.replace.replace("\n", "\r\n"))
            for b in blocks
        ]

    result = apply_blocks(content, blocks)
    if not result.success:
        diagnostics = [
            f"Block {i + 1}:\n" + build_diagnostic(result.content, blocks[i].search)
            for i in result.failed_indices
        ]
        log.warning("apply_patch: %d/%d blocks failed (indices=%s)",
                    len(result.failed_indices), len(blocks), result.failed_indices)
        raise DiffApplyError(result.failed_indices, len(blocks), result.content, diagnostics)

    log.debug("apply_patch: applied %d block(s)", result.applied)
    return result


# ── Failure diagnostics ──────────────────────────────────────────

def find_closest_region(content: str, search: str) -> Optional[Tuple[int, int, float]]:
    """Locate the region of `content` most similar to `search`.

    Returns (start_line_idx, end_line_idx, ratio) or None. Used for error
    messages only; never to apply an edit.
    """
    search_lines = search.split("\n")
    content_lines = content.split("\n")
    search_len = len(search_lines)
    if not search.strip() or not content_lines:
        return None

    best_ratio = 0.0
    best_start = 0
    best_window = search_len

    min_window = max(1, int(search_len * 0.7))
    max_window = int(search_len * 1.3) + 1
    for window_size in range(min_window, min(max_window, len(content_lines)) + 1):
        for i in range(len(content_lines) - window_size + 1):
            candidate = content_lines[i:i + window_size]
            # Cheap pre-filter: some lines must already agree
            shared = sum(1 for a, b in zip(search_lines, candidate) if a.strip() == b.strip())
            if shared < min(3, search_len * 0.3):
                continue
            ratio = difflib.SequenceMatcher(
                None, "\n".join(search_lines), "\n".join(candidate)
            ).ratio()
            if ratio > best_ratio:
                best_ratio, best_start, best_window = ratio, i, window_size

    if best_ratio > 0.4:
        return best_start, best_start + best_window, best_ratio
    return None


def build_diagnostic(content: str, search: str) -> str:
    """Describe a failed SEARCH block and the closest text in the buffer."""
    search_lines = search.split("\n")
    content_lines = content.split("\n")
    parts = [f"SEARCH block not found ({len(search_lines)} lines):"]
    parts.extend(f"    {line}" for line in search_lines[:5])
    if len(search_lines) > 5:
        parts.append(f"    ... ({len(search_lines) - 5} more lines)")

    match = find_closest_region(content, search)
    if match:
        start, end, ratio = match
        parts.append(f"Closest match (lines {start + 1}-{end}, {ratio:.0%} similar):")
        for i in range(start, min(end, start + 10)):
            parts.append(f"  {i + 1:4d} | {content_lines[i]}")
        if end - start > 10:
            parts.append(f"  ... ({end - start - 10} more lines)")
        parts.append(f"Tip: re-read lines {start + 1}-{end} and retry with the exact content.")
    else:
        parts.append("Tip: use read_file to see the exact current content, then retry.")
    return "\n".join(parts)
