from __future__ import annotations

import pytest

from conftest import CharEstimator
from miniagent.core.conversation import MESSAGE_OVERHEAD_TOKENS, Conversation
from miniagent.core.errors import InvariantViolation
from miniagent.core.messages import Message, ToolCallRequest, ToolResult


def _tool_message(call_id: str, payload: str = "ok", status: str = "ok") -> Message:
    return Message.tool(ToolResult(call_id=call_id, status=status, payload=payload))  # type: ignore[arg-type]


def _calls(*ids: str) -> list[ToolCallRequest]:
    return [ToolCallRequest(id=call_id, tool_name="echo", arguments={"n": call_id}) for call_id in ids]


def test_system_message_is_fixed() -> None:
    conversation = Conversation("be helpful")
    conversation.add_user_message("hi")

    assert conversation[0].role == "system"
    assert conversation.system_message.content == "be helpful"
    with pytest.raises(InvariantViolation):
        conversation.append(Message.system("replacement"))


def test_tool_results_must_follow_request_order() -> None:
    conversation = Conversation("sys")
    conversation.add_user_message("task")
    conversation.append(Message.assistant("", _calls("a", "b")))

    with pytest.raises(InvariantViolation):
        conversation.append(_tool_message("b"))

    conversation.append(_tool_message("a"))
    conversation.append(_tool_message("b"))
    assert [message.tool_call_id for message in conversation.messages[-2:]] == ["a", "b"]
    assert conversation.messages[-1].name == "echo"
    assert conversation.pending_calls == []


def test_unmatched_and_duplicate_results_are_rejected() -> None:
    conversation = Conversation("sys")
    conversation.add_user_message("task")
    with pytest.raises(InvariantViolation):
        conversation.append(_tool_message("ghost"))

    conversation.append(Message.assistant("", _calls("a")))
    conversation.append(_tool_message("a"))
    with pytest.raises(InvariantViolation):
        conversation.append(_tool_message("a"))


def test_cannot_append_while_calls_pending() -> None:
    conversation = Conversation("sys")
    conversation.add_user_message("task")
    conversation.append(Message.assistant("", _calls("a")))

    with pytest.raises(InvariantViolation):
        conversation.add_user_message("next")
    with pytest.raises(InvariantViolation):
        conversation.append(Message.assistant("again"))


def test_duplicate_call_ids_in_one_request_are_rejected() -> None:
    conversation = Conversation("sys")
    conversation.add_user_message("task")
    with pytest.raises(InvariantViolation):
        conversation.append(Message.assistant("", _calls("a", "a")))


def test_segments_mark_only_trailing_segment_open() -> None:
    conversation = Conversation("sys")
    conversation.add_user_message("one")
    conversation.append(Message.assistant("done one"))
    conversation.add_user_message("two")
    conversation.append(Message.assistant("", _calls("x")))
    conversation.append(_tool_message("x"))

    segments = list(conversation.segments())

    assert segments[0].is_system and (segments[0].start, segments[0].end) == (0, 1)
    assert [(s.start, s.end, s.closed) for s in segments[1:]] == [(1, 3, True), (3, 6, False)]
    assert conversation.closed_segments() == [segments[1]]


def test_replace_segment_keeps_user_message() -> None:
    conversation = Conversation("sys")
    conversation.add_user_message("one")
    conversation.append(Message.assistant("", _calls("x")))
    conversation.append(_tool_message("x", payload="long output"))
    conversation.append(Message.assistant("finished"))
    conversation.add_user_message("two")

    segment = conversation.closed_segments()[0]
    conversation.replace_segment(segment, [Message.execution_summary("did x")])

    assert [message.role for message in conversation.messages] == ["system", "user", "assistant", "user"]
    assert conversation[1].content == "one"
    assert conversation[2].summary is True
    assert conversation[2].content.startswith("[Assistant Execution Summary]")


def test_replace_segment_rejects_open_segment_and_bad_replacements() -> None:
    conversation = Conversation("sys")
    conversation.add_user_message("one")
    conversation.append(Message.assistant("a"))
    conversation.add_user_message("two")
    segments = list(conversation.segments())

    with pytest.raises(InvariantViolation):
        conversation.replace_segment(segments[-1], [Message.assistant("x")])
    with pytest.raises(InvariantViolation):
        conversation.replace_segment(segments[0], [Message.assistant("x")])
    with pytest.raises(InvariantViolation):
        conversation.replace_segment(segments[1], [Message.user("x")])


def test_estimated_tokens_counts_overhead_and_tool_arguments() -> None:
    conversation = Conversation("abcd")
    conversation.add_user_message("hello")
    conversation.append(Message.assistant("", [ToolCallRequest(id="1", tool_name="t", arguments={"k": 1})]))
    estimator = CharEstimator()

    expected = 4 + 5 + len('t {"k": 1}') + 3 * MESSAGE_OVERHEAD_TOKENS
    assert conversation.estimated_tokens(estimator) == expected


def test_reset_keeps_only_system_message() -> None:
    conversation = Conversation("sys")
    conversation.add_user_message("task")
    conversation.append(Message.assistant("", _calls("a")))

    conversation.reset()

    assert len(conversation) == 1
    assert conversation.pending_calls == []
    conversation.add_user_message("fresh")
    assert conversation.role_counts() == {"system": 1, "user": 1, "assistant": 0, "tool": 0}
