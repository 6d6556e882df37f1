"""Per-task state: conversation, mode, todos, and cancellation.

Nothing here is shared between tasks. The pending approved todo list (a
checklist the user edited, waiting to be applied by the next
update_todo_list call) lives on the session rather than at module level.
"""

import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .config import Config
from .conversation import ConversationWindow
from .interrupt import CancellationToken
from .logger import get_logger
from .modes import DEFAULT_MODE_SLUG, Mode, ModeRegistry
from .permissions import PermissionDecision, check_tool_permission
from .prompts import get_system_prompt
from .todo_list import TodoItem, TodoList, parse_markdown_checklist

log = get_logger("session")


@dataclass
class TaskSession:
    config: Config
    modes: ModeRegistry = field(default_factory=ModeRegistry)
    mode: str = DEFAULT_MODE_SLUG
    window: ConversationWindow = field(default_factory=ConversationWindow)
    todos: TodoList = field(default_factory=TodoList)
    pending_todo_list: Optional[List[TodoItem]] = None
    tool_requirements: Dict[str, bool] = field(default_factory=dict)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    task: str = ""

    @classmethod
    def from_config(cls, config: Config) -> "TaskSession":
        modes = ModeRegistry.from_dicts(config.custom_modes)
        mode = config.mode
        if modes.get(mode) is None:
            log.warning("Unknown mode %r in config, using %r", mode, DEFAULT_MODE_SLUG)
            mode = DEFAULT_MODE_SLUG
        return cls(config=config, modes=modes, mode=mode,
                   tool_requirements=dict(config.tool_requirements))

    @property
    def workspace(self) -> Path:
        return Path(self.config.workspace_path)

    @property
    def current_mode(self) -> Mode:
        return self.modes.get(self.mode) or Mode(self.mode)

    def check_permission(self, tool_name: str) -> PermissionDecision:
        return check_tool_permission(
            tool_name, self.current_mode, self.modes.custom_modes, self.tool_requirements
        )

    def system_prompt(self) -> str:
        return get_system_prompt(
            str(self.workspace), self.current_mode, self.modes.custom_modes,
            self.tool_requirements, self.modes.all_modes(),
        )

    def set_mode(self, slug: str) -> None:
        """Switch mode and rewrite the system prompt to match."""
        self.mode = slug
        if len(self.window):
            self.window.replace_system_prompt(self.system_prompt())
        log.info("Mode switched to %s", slug)

    def load_pending_todos(self, path: Path) -> List[TodoItem]:
        """Queue a user-written checklist for the next update_todo_list call."""
        items = parse_markdown_checklist(Path(path).read_text(encoding="utf-8"))
        if not items:
            raise ValueError(f"No checklist items found in {path}.")
        self.pending_todo_list = items
        log.info("Queued %d user todo(s) from %s", len(items), path)
        return items

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "task": self.task,
            "mode": self.mode,
            "messages": self.window.to_list(),
            "todos": self.todos.to_dict(),
        }

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        log.debug("Session %s saved to %s", self.task_id, path)

    @classmethod
    def load(cls, path: Path, config: Config) -> "TaskSession":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        session = cls.from_config(config)
        session.task_id = data.get("task_id", session.task_id)
        session.task = data.get("task", "")
        session.mode = data.get("mode", session.mode)
        session.window = ConversationWindow.from_list(data.get("messages", []))
        session.todos = TodoList.from_dict(data.get("todos", {}))
        log.debug("Session %s loaded from %s", session.task_id, path)
        return session
