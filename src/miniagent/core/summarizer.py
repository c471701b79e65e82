"""Token-budgeted summarization of closed conversation segments."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .conversation import Conversation, Segment
from .llm.types import LLMProvider
from .messages import Message
from .retry import RetryCallback, RetryPolicy, call_with_retry
from .tokens import TokenEstimator

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = "You are an assistant skilled at summarizing Agent execution processes."
SUMMARY_INSTRUCTIONS = """Please provide a concise summary of the following Agent execution process:

{transcript}

Requirements:
1. State the key facts that were established and what was completed
2. Keep tool results that remain relevant for later steps (paths, values, decisions)
3. List any open questions or unfinished work
4. Be concise and clear, within 1000 words
5. Do not restate the user's request, only summarize the Agent's execution process"""

TOOL_RESULT_PREVIEW_CHARS = 2_000
FALLBACK_SUMMARY_CHARS = 4_000


@dataclass(slots=True)
class CompactionReport:
    """Outcome of one compaction pass."""

    tokens_before: int
    tokens_after: int
    threshold: int
    summarized: int = 0

    @property
    def satisfied(self) -> bool:
        return self.tokens_after < self.threshold


class Summarizer:
    """Collapses closed segments, oldest first, through the provider."""

    def __init__(
        self,
        provider: LLMProvider,
        estimator: TokenEstimator,
        *,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._provider = provider
        self._estimator = estimator
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    def compact(
        self,
        conversation: Conversation,
        threshold: int,
        *,
        on_retry: RetryCallback | None = None,
    ) -> CompactionReport:
        """Summarize until the estimate drops below ``threshold`` or nothing is left.

        The caller inspects ``report.satisfied`` to detect an unsatisfiable
        budget; no exception is raised for that case.
        """
        before = conversation.estimated_tokens(self._estimator)
        report = CompactionReport(tokens_before=before, tokens_after=before, threshold=threshold)
        while report.tokens_after >= threshold:
            segment = self._next_candidate(conversation)
            if segment is None:
                break
            summary = self.summarize_segment(conversation, segment, on_retry=on_retry)
            conversation.replace_segment(segment, [Message.execution_summary(summary)])
            report.summarized += 1
            report.tokens_after = conversation.estimated_tokens(self._estimator)
            logger.info(
                "Summarized segment %d (now %d estimated tokens, threshold %d)",
                report.summarized,
                report.tokens_after,
                threshold,
            )
        if not report.satisfied:
            logger.warning(
                "Context still over budget after summarization: %d >= %d",
                report.tokens_after,
                threshold,
            )
        return report

    def summarize_segment(
        self,
        conversation: Conversation,
        segment: Segment,
        *,
        on_retry: RetryCallback | None = None,
    ) -> str:
        round_number = self._round_number(conversation, segment)
        transcript = render_segment(conversation.segment_messages(segment), round_number)
        prompt = SUMMARY_INSTRUCTIONS.format(transcript=transcript)
        request = [Message.system(SUMMARY_SYSTEM_PROMPT), Message.user(prompt)]
        response = call_with_retry(
            lambda: self._provider.complete(request, ()),
            self._policy,
            sleep=self._sleep,
            on_retry=on_retry,
        )
        text = (response.text or "").strip()
        if not text:
            logger.warning("Provider returned an empty summary; keeping a truncated transcript")
            text = transcript[:FALLBACK_SUMMARY_CHARS]
        return text

    def _next_candidate(self, conversation: Conversation) -> Segment | None:
        for segment in conversation.closed_segments():
            body = conversation.segment_messages(segment)[1:]
            if not body:
                continue
            if len(body) == 1 and body[0].summary:
                continue
            return segment
        return None

    @staticmethod
    def _round_number(conversation: Conversation, segment: Segment) -> int:
        return sum(1 for message in conversation.messages[: segment.start + 1] if message.role == "user")


def render_segment(messages: list[Message], round_number: int) -> str:
    """Plain-text transcript of a segment body for the summary prompt."""
    lines = [f"Round {round_number} execution process:", ""]
    for message in messages:
        if message.role == "user":
            continue
        if message.role == "assistant":
            text = message.text().strip()
            if text:
                lines.append(f"Assistant: {text}")
            if message.tool_calls:
                names = ", ".join(call.tool_name for call in message.tool_calls)
                lines.append(f"  -> Called tools: {names}")
                for call in message.tool_calls:
                    lines.append(f"     {call.tool_name}({call.arguments_json()})")
        elif message.role == "tool":
            preview = message.text()
            if len(preview) > TOOL_RESULT_PREVIEW_CHARS:
                preview = preview[:TOOL_RESULT_PREVIEW_CHARS] + "..."
            marker = "error" if message.is_error else "returned"
            lines.append(f"  <- Tool {message.name or ''} {marker}: {preview}")
    return "\n".join(lines)


__all__ = ["CompactionReport", "Summarizer", "render_segment"]
