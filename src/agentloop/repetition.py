"""Detects the model calling the same tool with identical parameters."""

import json
from dataclasses import dataclass
from typing import Optional

from .logger import get_logger
from .tool_parser import ToolCall

log = get_logger("repetition")


@dataclass
class RepetitionCheck:
    allow: bool
    message: str = ""


class ToolRepetitionDetector:
    """Refuses a call once it has repeated `limit` times in a row (limit <= 0 disables)."""

    def __init__(self, limit: int = 3):
        self.limit = limit
        self._previous: Optional[str] = None
        self._repeats = 0

    @staticmethod
    def _key(call: ToolCall) -> str:
        return json.dumps({"name": call.name, "input": call.parameters}, sort_keys=True, default=str)

    def check(self, call: ToolCall) -> RepetitionCheck:
        key = self._key(call)
        if key == self._previous:
            self._repeats += 1
        else:
            self._repeats = 0
            self._previous = key

        if self.limit > 0 and self._repeats >= self.limit:
            self._repeats = 0
            self._previous = None
            log.info("Repetition limit hit for %s", call.name)
            return RepetitionCheck(
                allow=False,
                message=(
                    f"Tool {call.name} has been repeated {self.limit} times in a row with identical "
                    "parameters. This approach is not producing new information; "
                    "try a different tool or approach."
                ),
            )
        return RepetitionCheck(allow=True)

    def reset(self) -> None:
        self._previous = None
        self._repeats = 0
