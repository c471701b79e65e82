"""Agent loop orchestration: budget check, provider turn, tool dispatch."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .conversation import Conversation
from .errors import (
    BudgetUnsatisfiable,
    InvariantViolation,
    MiniAgentError,
    ProviderError,
    StepLimitExceeded,
)
from .llm.types import LLMProvider, LLMResponse
from .messages import Message, ToolCallRequest, ToolResult
from .observer import AgentObserver
from .retry import RetryPolicy, call_with_retry
from .run_log import RunLog
from .summarizer import Summarizer
from .tokens import ApproxEstimator, TokenEstimator
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 50
CANCELLED_PAYLOAD = "Cancelled: the run was stopped before this tool call executed."


class LoopState(str, Enum):
    READY = "ready"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class Budget:
    """Context window budget; summarization triggers at ``token_limit - completion_reserve``."""

    token_limit: int = 80_000
    completion_reserve: int = 2_048

    def __post_init__(self) -> None:
        if self.token_limit <= 0:
            raise ValueError("token_limit must be positive")
        if not 0 <= self.completion_reserve < self.token_limit:
            raise ValueError("completion_reserve must be between 0 and token_limit")

    @property
    def trigger(self) -> int:
        return self.token_limit - self.completion_reserve


@dataclass(slots=True, frozen=True)
class AgentSettings:
    """Immutable run parameters handed to the loop at construction."""

    max_steps: int = DEFAULT_MAX_STEPS
    budget: Budget = field(default_factory=Budget)
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(slots=True)
class AgentRunResult:
    """What a single ``AgentLoop.run`` call produced."""

    state: LoopState
    content: str = ""
    steps: int = 0
    condition: MiniAgentError | None = None
    budget_warnings: list[BudgetUnsatisfiable] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    latency_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.state is LoopState.DONE

    def accumulate(self, response: LLMResponse) -> None:
        self.latency_seconds += response.latency_seconds
        usage = response.token_usage or {}
        self.input_tokens += max(int(usage.get("input_tokens") or usage.get("prompt_tokens") or 0), 0)
        self.output_tokens += max(
            int(usage.get("output_tokens") or usage.get("completion_tokens") or 0), 0
        )


class AgentLoop:
    """Drives one conversation between the provider and the tool registry.

    The loop owns its ``Conversation`` for the duration of a run. Tool calls
    in a batch are dispatched one at a time in request order. ``cancel()``
    may be called from another thread; it takes effect between steps and
    between tool calls, never in the middle of one.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        conversation: Conversation,
        *,
        settings: AgentSettings | None = None,
        estimator: TokenEstimator | None = None,
        observer: AgentObserver | None = None,
        run_log: RunLog | None = None,
        summarizer: Summarizer | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._conversation = conversation
        self._settings = settings or AgentSettings()
        self._estimator = estimator or ApproxEstimator()
        self._observer = observer or AgentObserver()
        self._run_log = run_log or RunLog(None)
        self._sleep = sleep
        self._summarizer = summarizer or Summarizer(
            provider,
            self._estimator,
            policy=self._settings.retry,
            sleep=sleep,
        )
        self._cancel_event = threading.Event()
        self.state = LoopState.READY

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def settings(self) -> AgentSettings:
        return self._settings

    @property
    def estimator(self) -> TokenEstimator:
        return self._estimator

    def estimated_tokens(self) -> int:
        return self._conversation.estimated_tokens(self._estimator)

    def cancel(self) -> None:
        """Request that the current run stop at the next safe point."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    def run(self, task: str | None = None) -> AgentRunResult:
        """Run until a final answer, the step ceiling, cancellation, or a fatal error.

        Fatal provider errors, exhausted retries and invariant violations are
        raised after the state moves to ``ERROR``. The step ceiling and
        cancellation are reported on the returned result.
        """
        self._cancel_event.clear()
        if task is not None:
            self._conversation.add_user_message(task)
        self.state = LoopState.READY
        result = AgentRunResult(state=self.state)

        log_path = self._run_log.start()
        if log_path is not None:
            self._observer.on_log_file(log_path)

        max_steps = self._settings.max_steps
        try:
            while True:
                if self.cancelled:
                    return self._finish(result, LoopState.CANCELLED)
                if result.steps >= max_steps:
                    condition = StepLimitExceeded(max_steps)
                    logger.warning("%s", condition)
                    result.condition = condition
                    result.content = str(condition)
                    return self._finish(result, LoopState.ERROR)

                self._enforce_budget(result)

                self.state = LoopState.AWAITING_MODEL
                result.steps += 1
                self._observer.on_step(result.steps, max_steps, self.estimated_tokens())
                response = self._request_turn()
                result.accumulate(response)

                for thought in response.thinking:
                    self._observer.on_thinking(thought)
                if response.text:
                    self._observer.on_assistant_text(response.text)
                self._conversation.append(Message.assistant(response.text, response.tool_calls))

                if not response.has_tool_calls:
                    result.content = response.text
                    return self._finish(result, LoopState.DONE)

                self.state = LoopState.EXECUTING_TOOLS
                self._execute_batch(response.tool_calls)
        except KeyboardInterrupt:
            logger.info("Agent run interrupted")
            self._cancel_event.set()
            self._close_pending_calls()
            return self._finish(result, LoopState.CANCELLED)
        except (ProviderError, InvariantViolation):
            self.state = LoopState.ERROR
            raise

    def _finish(self, result: AgentRunResult, state: LoopState) -> AgentRunResult:
        self.state = state
        result.state = state
        logger.debug("Agent run finished: state=%s steps=%d", state.value, result.steps)
        return result

    def _request_turn(self) -> LLMResponse:
        messages = self._conversation.messages
        tools = self._registry.schema_list()
        self._run_log.log_request(messages, tools)
        response = call_with_retry(
            lambda: self._provider.complete(messages, tools),
            self._settings.retry,
            sleep=self._sleep,
            on_retry=self._observer.on_retry,
        )
        self._run_log.log_response(response)
        return response

    def _enforce_budget(self, result: AgentRunResult) -> None:
        trigger = self._settings.budget.trigger
        estimated = self.estimated_tokens()
        if estimated < trigger:
            return
        self._observer.on_summarize_start(estimated, trigger)
        report = self._summarizer.compact(
            self._conversation,
            trigger,
            on_retry=self._observer.on_retry,
        )
        self._observer.on_summarize_done(report)
        if not report.satisfied:
            condition = BudgetUnsatisfiable(report.tokens_after, trigger)
            result.budget_warnings.append(condition)
            self._observer.on_budget_unsatisfiable(condition)

    def _execute_batch(self, calls: list[ToolCallRequest]) -> None:
        for call in calls:
            if self.cancelled:
                logger.info("Cancellation requested; skipping remaining tool calls")
                self._close_pending_calls()
                return
            self._observer.on_tool_call(call)
            result = self._registry.dispatch(call)
            self._run_log.log_tool_result(result, call.arguments)
            self._conversation.append(Message.tool(result))
            self._observer.on_tool_result(call, result)

    def _close_pending_calls(self) -> None:
        for call in self._conversation.pending_calls:
            result = ToolResult(
                call_id=call.id,
                status="error",
                payload=CANCELLED_PAYLOAD,
                tool_name=call.tool_name,
            )
            self._conversation.append(Message.tool(result))


def summarize_usage(result: AgentRunResult) -> dict[str, Any]:
    return {
        "steps": result.steps,
        "input_tokens": result.input_tokens,
        "output_tokens": result.output_tokens,
        "latency_seconds": round(result.latency_seconds, 2),
    }


__all__ = [
    "AgentLoop",
    "AgentRunResult",
    "AgentSettings",
    "Budget",
    "CANCELLED_PAYLOAD",
    "DEFAULT_MAX_STEPS",
    "LoopState",
    "summarize_usage",
]
