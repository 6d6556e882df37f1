"""The orchestration loop: model turn, one tool, result, repeat.

Exactly one tool call is in flight at a time and the model is not asked
for its next turn until the previous result is in the conversation.
"""

from dataclasses import dataclass
from typing import Optional

from .conversation import Message
from .dispatcher import DispatchOutcome, ToolDispatcher
from .interaction import UserInteraction
from .interrupt import TaskCancelled
from .llm_client import ModelClient
from .logger import get_logger, truncate as log_truncate
from .prompts import available_tools, context_condense_notice, too_many_mistakes
from .repetition import ToolRepetitionDetector
from .session import TaskSession
from .tool_parser import parse_tool_call
from .tool_registry import ToolMetrics
from .tools import build_default_registry
from .tools.registry import ToolRegistry

log = get_logger("agent")


@dataclass
class AgentResult:
    """How a task ended: completed, cancelled, user_stopped or max_iterations."""
    status: str
    result: str = ""
    iterations: int = 0

    @property
    def completed(self) -> bool:
        return self.status == "completed"


class AgentLoop:
    def __init__(self, session: TaskSession, client: ModelClient, interaction: UserInteraction,
                 registry: Optional[ToolRegistry] = None, metrics: Optional[ToolMetrics] = None):
        self.session = session
        self.client = client
        self.interaction = interaction
        self.registry = registry or build_default_registry(session, interaction)
        self.metrics = metrics or ToolMetrics()
        self.dispatcher = ToolDispatcher(
            session, self.registry, self.metrics,
            ToolRepetitionDetector(session.config.repetition_limit),
        )
        self.consecutive_mistakes = 0
        self._anchor: Optional[Message] = None

    def _start(self, task: str) -> None:
        session = self.session
        session.task = task
        if not len(session.window):
            session.window.add("system", session.system_prompt())
        self._anchor = session.window.add("user", f"<task>\n{task}\n</task>")

    def _fit_context(self) -> None:
        """Truncate once if over budget, then restore the task statement if it was cut."""
        config = self.session.config
        window = self.session.window
        truncation = window.truncate_if_needed(config.max_context_tokens, config.truncation_fraction)
        if not truncation.removed_count or any(m is self._anchor for m in truncation.messages):
            return
        self._anchor = Message(
            "user", context_condense_notice(self.session.task, self.session.todos.to_markdown())
        )
        window.insert_after_system(self._anchor)

    async def _handle_mistakes(self, outcome: DispatchOutcome) -> Optional[str]:
        """Track consecutive mistakes; returns None when the user stops the task."""
        if not outcome.mistake:
            self.consecutive_mistakes = 0
            return outcome.result

        self.consecutive_mistakes += 1
        limit = self.session.config.consecutive_mistake_limit
        if limit <= 0 or self.consecutive_mistakes < limit:
            return outcome.result

        log.warning("Consecutive mistake limit reached (%d)", self.consecutive_mistakes)
        guidance = await self.interaction.confirm_continue(
            f"The model made {self.consecutive_mistakes} mistakes in a row. Last error:\n{outcome.result}"
        )
        if guidance is None:
            return None
        self.consecutive_mistakes = 0
        return f"{outcome.result}\n\n{too_many_mistakes(guidance or None)}"

    async def run(self, task: str) -> AgentResult:
        session = self.session
        token = session.cancel_token
        self._start(task)
        log.info("Task %s started in %s mode: %s", session.task_id, session.mode, log_truncate(task, 120))

        for iteration in range(1, session.config.max_iterations + 1):
            if token.cancelled:
                return self._finish("cancelled", "Task was cancelled.", iteration - 1)

            self._fit_context()
            tools = available_tools(session.current_mode, session.modes.custom_modes,
                                    session.tool_requirements)
            try:
                reply = await token.run(self.client.send(session.window.messages, tools))
            except TaskCancelled:
                return self._finish("cancelled", "Task was cancelled.", iteration - 1)

            session.window.append(Message("assistant", reply.content))
            self.interaction.show("assistant", reply.text)

            parsed = parse_tool_call(reply.text)
            if parsed.ok:
                self.interaction.show("tool", parsed.tool_call.name)
            outcome = await self.dispatcher.dispatch(parsed)
            tool_name = outcome.tool_name or "error"

            if outcome.cancelled:
                session.window.add_tool_result(tool_name, outcome.result)
                return self._finish("cancelled", outcome.result, iteration)

            if outcome.is_completion:
                session.window.add_tool_result(tool_name, "Task completed.")
                return self._finish("completed", outcome.result, iteration)

            text = await self._handle_mistakes(outcome)
            if text is None:
                session.window.add_tool_result(tool_name, outcome.result)
                return self._finish("user_stopped", outcome.result, iteration)

            session.window.add_tool_result(tool_name, text)
            self.interaction.show("result" if outcome.success else "error", text)

        return self._finish("max_iterations",
                            f"Stopped after {session.config.max_iterations} iterations.",
                            session.config.max_iterations)

    def _finish(self, status: str, result: str, iterations: int) -> AgentResult:
        log.info("Task %s finished: %s after %d iteration(s)", self.session.task_id, status, iterations)
        log.debug("tool metrics: %s", self.metrics.summary())
        return AgentResult(status=status, result=result, iterations=iterations)
