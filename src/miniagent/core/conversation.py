"""Conversation store: ordered, append-only message history with segments."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from .errors import InvariantViolation
from .messages import Message, ToolCallRequest
from .tokens import TokenEstimator

logger = logging.getLogger(__name__)

MESSAGE_OVERHEAD_TOKENS = 4


@dataclass(slots=True, frozen=True)
class Segment:
    """Half-open index range ``[start, end)`` of the conversation."""

    start: int
    end: int
    closed: bool
    is_system: bool = False

    def __len__(self) -> int:
        return self.end - self.start


class Conversation:
    """Owns the message list for one agent.

    The leading system message is fixed at construction. Tool results must
    answer an outstanding call from the latest assistant message, exactly
    once each, and no other message may be appended while calls are pending.
    """

    def __init__(self, system_prompt: str) -> None:
        self._messages: list[Message] = [Message.system(system_prompt)]
        self._pending: dict[str, ToolCallRequest] = {}
        self._resolved: set[str] = set()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def system_message(self) -> Message:
        return self._messages[0]

    @property
    def pending_calls(self) -> list[ToolCallRequest]:
        return list(self._pending.values())

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def role_counts(self) -> dict[str, int]:
        counts = {"system": 0, "user": 0, "assistant": 0, "tool": 0}
        for message in self._messages:
            counts[message.role] = counts.get(message.role, 0) + 1
        return counts

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def append(self, message: Message) -> None:
        if message.role == "system":
            raise InvariantViolation("Only the leading system message may have the system role")
        if message.role == "tool":
            self._accept_tool_result(message)
        else:
            if self._pending:
                missing = ", ".join(self._pending)
                raise InvariantViolation(
                    f"Cannot append a {message.role} message while tool calls are unresolved: {missing}"
                )
            if message.role == "assistant":
                self._register_calls(message.tool_calls)
            elif message.tool_calls:
                raise InvariantViolation("Only assistant messages may request tool calls")
        self._messages.append(message)

    def add_user_message(self, text: str) -> Message:
        message = Message.user(text)
        self.append(message)
        return message

    def reset(self) -> None:
        """Drop everything except the system message."""
        self._messages = [self._messages[0]]
        self._pending.clear()
        self._resolved.clear()

    def replace_segment(self, segment: Segment, replacement: Sequence[Message]) -> None:
        """Swap the non-user body of a closed segment for ``replacement``.

        The segment's leading user message is kept; only messages after it are
        replaced. Only closed, non-system segments may be rewritten.
        """
        if segment.is_system or not segment.closed:
            raise InvariantViolation("Only closed user segments can be replaced")
        if self._messages[segment.start].role != "user":
            raise InvariantViolation(f"Segment at {segment.start} does not start with a user message")
        for message in replacement:
            if message.role in {"system", "user", "tool"} or message.tool_calls:
                raise InvariantViolation("Segment replacements must be plain assistant messages")
        body_start = segment.start + 1
        self._messages[body_start : segment.end] = list(replacement)

    def _register_calls(self, calls: Sequence[ToolCallRequest]) -> None:
        seen: set[str] = set()
        for call in calls:
            if call.id in seen or call.id in self._resolved:
                raise InvariantViolation(f"Duplicate tool call id '{call.id}'")
            seen.add(call.id)
        for call in calls:
            self._pending[call.id] = call

    def _accept_tool_result(self, message: Message) -> None:
        call_id = message.tool_call_id
        if not call_id:
            raise InvariantViolation("Tool message is missing tool_call_id")
        if call_id in self._resolved:
            raise InvariantViolation(f"Tool call '{call_id}' already has a result")
        if call_id not in self._pending:
            raise InvariantViolation(f"Tool result '{call_id}' has no matching request")
        expected = next(iter(self._pending))
        if call_id != expected:
            raise InvariantViolation(
                f"Tool result '{call_id}' arrived before result for '{expected}'"
            )
        call = self._pending.pop(call_id)
        if message.name is None:
            message.name = call.tool_name
        self._resolved.add(call_id)

    # ------------------------------------------------------------------
    # Segmentation & budgeting
    # ------------------------------------------------------------------
    def segments(self) -> Iterator[Segment]:
        """Yield the system segment followed by one segment per user message.

        Each call returns a fresh generator over the current messages.
        """
        messages = self._messages
        user_indices = [idx for idx, message in enumerate(messages) if message.role == "user"]
        first_user = user_indices[0] if user_indices else len(messages)
        yield Segment(0, first_user, closed=True, is_system=True)
        for position, start in enumerate(user_indices):
            is_last = position + 1 == len(user_indices)
            end = len(messages) if is_last else user_indices[position + 1]
            yield Segment(start, end, closed=not is_last)

    def closed_segments(self) -> list[Segment]:
        return [segment for segment in self.segments() if segment.closed and not segment.is_system]

    def segment_messages(self, segment: Segment) -> list[Message]:
        return list(self._messages[segment.start : segment.end])

    def estimated_tokens(self, estimator: TokenEstimator) -> int:
        total = 0
        for message in self._messages:
            total += max(estimator.count(message.estimation_text()), 0)
            total += MESSAGE_OVERHEAD_TOKENS
        return total


__all__ = ["Conversation", "MESSAGE_OVERHEAD_TOKENS", "Segment"]
