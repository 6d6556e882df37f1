"""Conversation history and sliding-window truncation.

After the system prompt the protocol requires user -> assistant -> user
-> ... ordering, so any cut must land on a user message. Tool results
are stored as user turns tagged with the tool name.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from .logger import get_logger

log = get_logger("conversation")

ROLES = ("system", "user", "assistant", "tool")


@dataclass(frozen=True)
class Message:
    """One conversation entry. Never mutated after it is appended."""
    role: str
    content: Union[str, List[Dict[str, Any]]]
    name: Optional[str] = None   # tool name on tool results

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            block.get("text", "") for block in self.content if isinstance(block, dict)
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(role=data["role"], content=data["content"], name=data.get("name"))


def tool_result_text(name: Optional[str], text: str) -> str:
    return f"[{name or 'tool'} result]\n{text}"


def estimate_tokens(text: str) -> int:
    """Estimate token count. Rough approximation: ~4 chars per token."""
    return len(text) // 4


def estimate_messages_tokens(messages: Sequence[Message]) -> int:
    """Estimate total tokens in message history."""
    return sum(estimate_tokens(m.text) + 4 for m in messages)  # +4 per-message overhead


def messages_to_remove(count: int, frac_to_remove: float) -> int:
    """Even number of messages to drop after the system prompt.

    `frac_to_remove` is clamped to [0, 1]; NaN removes nothing.
    """
    if count <= 1 or math.isnan(frac_to_remove):
        return 0
    frac = min(max(frac_to_remove, 0.0), 1.0)
    raw = math.floor((count - 1) * frac)
    return raw - (raw % 2)


def truncate_conversation(messages: Sequence[Message], frac_to_remove: float) -> List[Message]:
    """Drop the oldest messages after the system prompt.

    Removes `messages_to_remove()` messages from the front of the
    remainder, then advances to the first user message. If no user
    message remains only the system prompt is kept. The input sequence is
    not modified.
    """
    if len(messages) <= 1:
        return list(messages)

    remaining = list(messages[messages_to_remove(len(messages), frac_to_remove) + 1:])
    start = next((i for i, m in enumerate(remaining) if m.role == "user"), len(remaining))
    return [messages[0]] + remaining[start:]


@dataclass
class TruncationResult:
    """Result of a truncation operation."""
    messages: List[Message]
    removed_count: int


class ConversationWindow:
    """Owns one task's message list."""

    def __init__(self, system_prompt: Optional[str] = None):
        self._messages: List[Message] = []
        self.truncations: List[int] = []
        if system_prompt is not None:
            self._messages.append(Message("system", system_prompt))

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: Message) -> None:
        if not self._messages and message.role != "system":
            raise ValueError("The first message must be the system prompt.")
        self._messages.append(message)

    def add(self, role: str, content: Union[str, List[Dict[str, Any]]],
            name: Optional[str] = None) -> Message:
        message = Message(role, content, name)
        self.append(message)
        return message

    def add_tool_result(self, name: Optional[str], text: str) -> Message:
        """Append a tool result as a user turn tagged with the tool name."""
        return self.add("user", tool_result_text(name, text), name=name)

    def insert_after_system(self, message: Message) -> None:
        if not self._messages:
            raise ValueError("The first message must be the system prompt.")
        self._messages.insert(1, message)

    def replace_system_prompt(self, prompt: str) -> None:
        self._messages[0] = Message("system", prompt)

    def token_count(self) -> int:
        return estimate_messages_tokens(self._messages)

    def truncate(self, frac_to_remove: float) -> TruncationResult:
        before = len(self._messages)
        self._messages = truncate_conversation(self._messages, frac_to_remove)
        removed = before - len(self._messages)
        if removed:
            self.truncations.append(removed)
            log.info("Truncated conversation: removed %d of %d messages", removed, before)
        return TruncationResult(messages=self.messages, removed_count=removed)

    def truncate_if_needed(self, max_tokens: int, frac_to_remove: float) -> TruncationResult:
        """Truncate once when the estimated size exceeds `max_tokens`."""
        tokens = self.token_count()
        if tokens <= max_tokens:
            return TruncationResult(messages=self.messages, removed_count=0)
        log.debug("Context over budget: ~%d tokens > %d", tokens, max_tokens)
        return self.truncate(frac_to_remove)

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> "ConversationWindow":
        window = cls()
        for item in data:
            window.append(Message.from_dict(item))
        return window
