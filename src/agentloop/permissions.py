"""Decides whether a tool may be called in the active mode.

Resolution is a flat precedence chain:

    custom deniedTools -> custom allowedTools -> built-in table -> allow

The decision depends only on its arguments. Callers surface a denial to
the model as a tool result instead of aborting the task.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

from .errors import PermissionDenied
from .modes import BUILTIN_TOOL_TABLE, Mode


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    tool_name: str
    mode: str
    reason: str = ""

    def to_error(self) -> PermissionDenied:
        return PermissionDenied(self.tool_name, self.mode, self.reason)


def _deny(tool_name: str, mode: str, reason: str) -> PermissionDecision:
    return PermissionDecision(False, tool_name, mode, reason)


def check_tool_permission(
    tool_name: str,
    mode: Union[str, Mode],
    custom_modes: Optional[Iterable[Mode]] = None,
    tool_requirements: Optional[Dict[str, bool]] = None,
) -> PermissionDecision:
    """Return the allow/deny decision for `tool_name` in `mode`.

    `tool_requirements` maps a tool to whether its capability (an API key,
    a configured server) is available; a False entry denies the tool.
    """
    slug = mode.slug if isinstance(mode, Mode) else mode
    custom = next((m for m in custom_modes or [] if m.slug == slug), None)

    if custom is not None and custom.denied_tools is not None and tool_name in custom.denied_tools:
        return _deny(tool_name, slug,
                     f'Tool "{tool_name}" is not allowed in {slug} mode (denied by mode configuration).')

    if custom is not None and custom.allowed_tools is not None:
        if tool_name not in custom.allowed_tools:
            return _deny(tool_name, slug,
                         f'Tool "{tool_name}" is not allowed in {slug} mode '
                         f'(allowed: {", ".join(sorted(custom.allowed_tools)) or "none"}).')
    elif slug in BUILTIN_TOOL_TABLE and tool_name not in BUILTIN_TOOL_TABLE[slug]:
        return _deny(tool_name, slug, f'Tool "{tool_name}" is not allowed in {slug} mode.')

    if tool_requirements is not None and tool_requirements.get(tool_name) is False:
        return _deny(tool_name, slug,
                     f'Tool "{tool_name}" is unavailable: its required capability is not configured.')

    return PermissionDecision(True, tool_name, slug)


def is_tool_allowed(
    tool_name: str,
    mode: Union[str, Mode],
    custom_modes: Optional[Iterable[Mode]] = None,
    tool_requirements: Optional[Dict[str, bool]] = None,
) -> bool:
    return check_tool_permission(tool_name, mode, custom_modes, tool_requirements).allowed
