"""Operating modes: named permission profiles restricting callable tools."""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .logger import get_logger

log = get_logger("modes")

DEFAULT_MODE_SLUG = "code"

# Usable in every built-in mode so a task can always ask, plan, and finish.
ALWAYS_AVAILABLE_TOOLS: FrozenSet[str] = frozenset({
    "ask_followup_question",
    "attempt_completion",
    "switch_mode",
    "update_todo_list",
})

_READ_TOOLS = frozenset({"read_file", "list_files", "search_files"})
_EDIT_TOOLS = frozenset({"write_to_file", "apply_diff"})
_COMMAND_TOOLS = frozenset({"execute_command"})

BUILTIN_TOOL_TABLE: Dict[str, FrozenSet[str]] = {
    "code": _READ_TOOLS | _EDIT_TOOLS | _COMMAND_TOOLS | ALWAYS_AVAILABLE_TOOLS,
    "architect": _READ_TOOLS | ALWAYS_AVAILABLE_TOOLS,
    "ask": _READ_TOOLS | ALWAYS_AVAILABLE_TOOLS,
}


@dataclass(frozen=True)
class Mode:
    """A mode definition. Either tool list may be absent (None)."""
    slug: str
    name: str = ""
    allowed_tools: Optional[FrozenSet[str]] = None
    denied_tools: Optional[FrozenSet[str]] = None
    description: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.slug

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mode":
        """Build from a config mapping; accepts camelCase or snake_case keys."""
        allowed = data.get("allowedTools", data.get("allowed_tools"))
        denied = data.get("deniedTools", data.get("denied_tools"))
        slug = data.get("slug")
        if not slug:
            raise ValueError(f"Mode definition is missing 'slug': {data!r}")
        return cls(
            slug=slug,
            name=data.get("name", ""),
            allowed_tools=frozenset(allowed) if allowed is not None else None,
            denied_tools=frozenset(denied) if denied is not None else None,
            description=data.get("description", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"slug": self.slug, "name": self.name}
        if self.allowed_tools is not None:
            data["allowedTools"] = sorted(self.allowed_tools)
        if self.denied_tools is not None:
            data["deniedTools"] = sorted(self.denied_tools)
        if self.description:
            data["description"] = self.description
        return data


BUILTIN_MODES: List[Mode] = [
    Mode("code", "Code", description="Write, modify and refactor code"),
    Mode("architect", "Architect", description="Plan and design before implementing"),
    Mode("ask", "Ask", description="Answer questions without changing anything"),
]


@dataclass
class ModeSwitch:
    """Outcome of validating a mode switch."""
    success: bool
    previous_mode: Optional[str] = None
    new_mode: Optional[str] = None
    error: Optional[str] = None


class ModeRegistry:
    """Read-only source of built-in and custom mode definitions."""

    def __init__(self, custom_modes: Optional[Iterable[Mode]] = None):
        self._custom: Dict[str, Mode] = {}
        for mode in custom_modes or []:
            self._custom[mode.slug] = mode
        self._builtin: Dict[str, Mode] = {m.slug: m for m in BUILTIN_MODES}

    @classmethod
    def from_dicts(cls, definitions: Iterable[Dict[str, Any]]) -> "ModeRegistry":
        modes = []
        for data in definitions:
            try:
                modes.append(Mode.from_dict(data))
            except ValueError as e:
                log.warning("Skipping custom mode: %s", e)
        return cls(modes)

    @property
    def custom_modes(self) -> List[Mode]:
        return list(self._custom.values())

    def get(self, slug: str) -> Optional[Mode]:
        """Resolve a slug; custom definitions shadow built-in ones."""
        return self._custom.get(slug) or self._builtin.get(slug)

    def all_modes(self) -> List[Mode]:
        modes = [m for m in BUILTIN_MODES if m.slug not in self._custom]
        modes.extend(self._custom.values())
        return modes

    def validate_switch(self, current: str, target: str) -> ModeSwitch:
        target_mode = self.get(target)
        if target_mode is None:
            return ModeSwitch(success=False, error=f"Invalid mode: {target}")
        if current == target:
            return ModeSwitch(success=False, error=f"Already in {target_mode.display_name} mode.")
        return ModeSwitch(success=True, previous_mode=current, new_mode=target)
