"""Turns one parsed assistant turn into one tool-result message.

Order of checks: parse result, repetition, permission, execution. Every
failure along the way becomes result text for the model. Only a
cancellation, a completion, or a programming error leaves the normal
path.
"""

import time
from dataclasses import dataclass
from typing import Optional

from .interrupt import TaskCancelled
from .logger import get_logger
from .prompts import no_tools_used, task_cancelled
from .repetition import ToolRepetitionDetector
from .session import TaskSession
from .tool_parser import ParseResult
from .tool_registry import ToolMetrics
from .tools.registry import ToolRegistry

log = get_logger("dispatcher")


@dataclass
class DispatchOutcome:
    """What the loop needs to know after a turn."""
    tool_name: Optional[str]
    result: str
    success: bool
    is_completion: bool = False
    mistake: bool = False
    cancelled: bool = False


class ToolDispatcher:
    def __init__(self, session: TaskSession, registry: ToolRegistry,
                 metrics: Optional[ToolMetrics] = None,
                 repetition: Optional[ToolRepetitionDetector] = None):
        self.session = session
        self.registry = registry
        self.metrics = metrics or ToolMetrics()
        self.repetition = repetition or ToolRepetitionDetector(session.config.repetition_limit)

    async def dispatch(self, parsed: ParseResult) -> DispatchOutcome:
        if not parsed.ok:
            error = parsed.error
            text = no_tools_used() if error.found == 0 else error.to_tool_result()
            return DispatchOutcome(error.tool_name, text, success=False, mistake=True)

        call = parsed.tool_call
        repeat = self.repetition.check(call)
        if not repeat.allow:
            return DispatchOutcome(call.name, f"Error: {repeat.message}", success=False, mistake=True)

        decision = self.session.check_permission(call.name)
        if not decision.allowed:
            log.info("Permission denied: %s in %s mode", call.name, decision.mode)
            return DispatchOutcome(call.name, decision.to_error().to_tool_result(),
                                   success=False, mistake=True)

        start = time.perf_counter()
        try:
            result = await self.session.cancel_token.run(
                self.registry.execute(call.name, call.parameters)
            )
        except TaskCancelled:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.metrics.record(call.name, elapsed_ms, False, error="cancelled")
            log.info("Tool %s cancelled after %.0fms", call.name, elapsed_ms)
            return DispatchOutcome(call.name, task_cancelled(), success=False, cancelled=True)

        text = result.to_message()
        elapsed_ms = (time.perf_counter() - start) * 1000
        self.metrics.record(call.name, elapsed_ms, result.success,
                            error=None if result.success else text[:200],
                            result_size=len(text))

        return DispatchOutcome(
            call.name,
            text,
            success=result.success,
            is_completion=result.success and result.terminal,
            mistake=not result.success and not result.user_rejected,
        )
