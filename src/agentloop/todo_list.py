"""Todo list tracking task progress across turns.

The list is the model's own plan for the task. Items only move forward
(pending -> in_progress -> completed); a rejected update leaves the list
unchanged and tells the caller why. The list round-trips through a
markdown checklist, which is also the update_todo_list tool's input:

    - [ ] write the parser
    - [-] wire the dispatcher
    - [x] sketch the data model
"""

import hashlib
import re
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional

from .errors import InvalidTodoTransition
from .logger import get_logger

log = get_logger("todo")


class TodoStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


_ORDER = {TodoStatus.PENDING: 0, TodoStatus.IN_PROGRESS: 1, TodoStatus.COMPLETED: 2}

_BOX_FOR_STATUS = {
    TodoStatus.PENDING: "[ ]",
    TodoStatus.IN_PROGRESS: "[-]",
    TodoStatus.COMPLETED: "[x]",
}

_CHECKLIST_RE = re.compile(r"^(?:-\s*)?\[\s*([ xX\-~])\s*\]\s+(.+)$")


def is_legal_transition(current: TodoStatus, requested: TodoStatus) -> bool:
    """Same-state, or exactly one step forward."""
    return _ORDER[requested] - _ORDER[current] in (0, 1)


def checklist_id(content: str, status: TodoStatus) -> str:
    return hashlib.md5((content + status.value).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TodoItem:
    """A single todo item."""
    id: str
    content: str
    status: TodoStatus = TodoStatus.PENDING

    def to_dict(self) -> dict:
        return {"id": self.id, "content": self.content, "status": self.status.value}

    @classmethod
    def from_dict(cls, data: dict) -> "TodoItem":
        return cls(
            id=data["id"],
            content=data["content"],
            status=TodoStatus(data.get("status", "pending")),
        )


@dataclass
class TodoUpdate:
    """Outcome of a mutation. On rejection the list is unchanged."""
    success: bool
    item: Optional[TodoItem] = None
    error: Optional[InvalidTodoTransition] = None
    message: str = ""


def parse_markdown_checklist(md: str) -> List[TodoItem]:
    """Parse checklist lines; lines that are not checklist entries are skipped."""
    if not isinstance(md, str):
        return []
    todos = []
    for raw in re.split(r"\r?\n", md):
        line = raw.strip()
        if not line:
            continue
        m = _CHECKLIST_RE.match(line)
        if not m:
            continue
        mark, content = m.group(1), m.group(2)
        if mark in ("x", "X"):
            status = TodoStatus.COMPLETED
        elif mark in ("-", "~"):
            status = TodoStatus.IN_PROGRESS
        else:
            status = TodoStatus.PENDING
        todos.append(TodoItem(id=checklist_id(content, status), content=content, status=status))
    return todos


def todo_list_to_markdown(todos: List[TodoItem]) -> str:
    return "\n".join(f"- {_BOX_FOR_STATUS[t.status]} {t.content}" for t in todos)


class TodoList:
    """Ordered todo items owned by one task."""

    def __init__(self, items: Optional[List[TodoItem]] = None):
        self._items: List[TodoItem] = list(items or [])

    @property
    def items(self) -> List[TodoItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def _index(self, item_id: str) -> int:
        for i, item in enumerate(self._items):
            if item.id == item_id:
                return i
        return -1

    def get(self, item_id: str) -> Optional[TodoItem]:
        i = self._index(item_id)
        return self._items[i] if i != -1 else None

    def add(self, content: str, status: TodoStatus = TodoStatus.PENDING,
            item_id: Optional[str] = None) -> TodoItem:
        """Append an item, assigning a random id when none is given."""
        item = TodoItem(id=item_id or uuid.uuid4().hex, content=content, status=TodoStatus(status))
        self._items.append(item)
        return item

    def remove(self, item_id: str) -> bool:
        i = self._index(item_id)
        if i == -1:
            return False
        del self._items[i]
        return True

    def update_status(self, item_id: str, status: TodoStatus) -> TodoUpdate:
        i = self._index(item_id)
        if i == -1:
            return TodoUpdate(success=False, message=f"Todo '{item_id}' not found.")

        requested = TodoStatus(status)
        current = self._items[i]
        if not is_legal_transition(current.status, requested):
            error = InvalidTodoTransition(item_id, current.status.value, requested.value)
            log.info("Rejected todo transition: %s", error)
            return TodoUpdate(success=False, item=current, error=error, message=str(error))

        updated = replace(current, status=requested)
        self._items[i] = updated
        return TodoUpdate(success=True, item=updated)

    def replace_all(self, items: List[TodoItem]) -> TodoUpdate:
        """Swap in a whole new list.

        Rejected when an item whose content is already tracked would move
        backward or skip a state, the same rule update_status applies.
        """
        current_by_content: Dict[str, TodoItem] = {t.content: t for t in self._items}
        for item in items:
            existing = current_by_content.get(item.content)
            if existing is not None and not is_legal_transition(existing.status, item.status):
                error = InvalidTodoTransition(existing.id, existing.status.value, item.status.value)
                log.info("Rejected todo list replacement: %s", error)
                return TodoUpdate(
                    success=False, item=existing, error=error,
                    message=f"'{item.content}' is already {existing.status.value} "
                            f"and cannot move to {item.status.value}.",
                )
        self._items = list(items)
        return TodoUpdate(success=True)

    def replace_from_markdown(self, md: str) -> TodoUpdate:
        return self.replace_all(parse_markdown_checklist(md))

    def to_markdown(self) -> str:
        return todo_list_to_markdown(self._items)

    def incomplete(self) -> List[TodoItem]:
        return [t for t in self._items if t.status != TodoStatus.COMPLETED]

    def has_incomplete(self) -> bool:
        return bool(self.incomplete())

    def progress_summary(self) -> str:
        """Get a concise progress summary for context injection."""
        if not self._items:
            return "No todos defined."
        total = len(self._items)
        completed = sum(1 for t in self._items if t.status == TodoStatus.COMPLETED)
        in_progress = sum(1 for t in self._items if t.status == TodoStatus.IN_PROGRESS)
        pending = total - completed - in_progress

        summary = f"Progress: {completed}/{total} complete"
        if in_progress:
            summary += f", {in_progress} in progress"
        if pending:
            summary += f", {pending} pending"
        return summary

    def to_dict(self) -> dict:
        """Serialize for session persistence."""
        return {"items": [t.to_dict() for t in self._items]}

    @classmethod
    def from_dict(cls, data: dict) -> "TodoList":
        return cls([TodoItem.from_dict(d) for d in data.get("items", [])])

    def clear(self):
        self._items.clear()
