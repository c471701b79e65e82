import json

import httpx
import pytest

from miniagent.core.agent_loop import AgentLoop, AgentSettings, LoopState
from miniagent.core.conversation import Conversation
from miniagent.core.errors import FatalProviderError, RetryableProviderError
from miniagent.core.llm import LLMClient, LLMResponse, LLMSettings
from miniagent.core.messages import Message, ToolCallRequest, ToolResult
from miniagent.core.retry import RetryPolicy
from miniagent.core.tool_registry import ToolRegistry

ECHO_SCHEMA = {
    "name": "echo",
    "description": "Echo text back",
    "parameters": {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]},
}


def _settings(provider: str = "openai", **overrides: object) -> LLMSettings:
    values: dict[str, object] = {
        "provider": provider,
        "base_url": "",
        "model": "test-model",
        "api_key": "test-key",
    }
    values.update(overrides)
    return LLMSettings(**values)  # type: ignore[arg-type]


def _client(handler, settings: LLMSettings | None = None) -> LLMClient:
    transport = httpx.MockTransport(handler)
    return LLMClient(settings or _settings(), client=httpx.Client(transport=transport))


def _conversation() -> list[Message]:
    call = ToolCallRequest(id="call_1", tool_name="echo", arguments={"text": "hi"})
    return [
        Message.system("be brief"),
        Message.user("say hi"),
        Message.assistant("", [call]),
        Message.tool(ToolResult(call_id="call_1", status="ok", payload="hi", tool_name="echo")),
    ]


def test_openai_request_and_tool_call_parsing() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["payload"] = json.loads(request.content.decode())
        return httpx.Response(
            200,
            json={
                "choices": [
                    {
                        "finish_reason": "tool_calls",
                        "message": {
                            "content": None,
                            "reasoning_content": "need the echo tool",
                            "tool_calls": [
                                {
                                    "id": "call_2",
                                    "type": "function",
                                    "function": {"name": "echo", "arguments": "{\"text\": \"again\"}"},
                                }
                            ],
                        },
                    }
                ],
                "usage": {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16},
            },
        )

    client = _client(handler)
    response = client.complete(_conversation(), [ECHO_SCHEMA])

    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["auth"] == "Bearer test-key"
    payload = captured["payload"]
    assert isinstance(payload, dict)
    assert payload["model"] == "test-model"
    assert [m["role"] for m in payload["messages"]] == ["system", "user", "assistant", "tool"]
    assert payload["messages"][2]["tool_calls"][0]["function"]["arguments"] == "{\"text\": \"hi\"}"
    assert payload["messages"][3]["tool_call_id"] == "call_1"
    assert payload["tools"][0] == {"type": "function", "function": ECHO_SCHEMA}

    assert isinstance(response, LLMResponse)
    assert response.text == ""
    assert response.has_tool_calls
    assert response.tool_calls[0] == ToolCallRequest(id="call_2", tool_name="echo", arguments={"text": "again"})
    assert response.thinking == ["need the echo tool"]
    assert response.finish_reason == "tool_calls"
    assert response.token_usage == {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16}


def test_anthropic_request_uses_messages_api() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = dict(request.headers)
        captured["payload"] = json.loads(request.content.decode())
        return httpx.Response(
            200,
            json={
                "content": [
                    {"type": "thinking", "thinking": "plan"},
                    {"type": "text", "text": "Done."},
                ],
                "stop_reason": "end_turn",
                "usage": {"input_tokens": 20, "output_tokens": 2},
            },
        )

    client = _client(handler, _settings("anthropic", base_url="https://proxy.example.com/v1/"))
    response = client.complete(_conversation(), [ECHO_SCHEMA])

    assert captured["url"] == "https://proxy.example.com/v1/messages"
    headers = captured["headers"]
    assert isinstance(headers, dict)
    assert headers["x-api-key"] == "test-key"
    assert headers["anthropic-version"] == "2023-06-01"
    payload = captured["payload"]
    assert isinstance(payload, dict)
    assert payload["system"] == "be brief"
    assert [m["role"] for m in payload["messages"]] == ["user", "assistant", "user"]
    assert payload["messages"][1]["content"][0] == {
        "type": "tool_use",
        "id": "call_1",
        "name": "echo",
        "input": {"text": "hi"},
    }
    assert payload["messages"][2]["content"][0]["type"] == "tool_result"
    assert payload["messages"][2]["content"][0]["tool_use_id"] == "call_1"
    assert payload["tools"][0]["input_schema"] == ECHO_SCHEMA["parameters"]

    assert response.text == "Done."
    assert response.thinking == ["plan"]
    assert not response.has_tool_calls
    assert response.finish_reason == "end_turn"


@pytest.mark.parametrize("status", [408, 429, 500, 503, 529])
def test_transient_status_codes_are_retryable(status: int) -> None:
    client = _client(lambda _request: httpx.Response(status, json={"error": {"message": "busy"}}))

    with pytest.raises(RetryableProviderError) as exc_info:
        client.complete([Message.user("ping")])

    assert exc_info.value.retryable
    assert exc_info.value.status_code == status


@pytest.mark.parametrize("status", [400, 401, 403, 404])
def test_client_errors_are_fatal(status: int) -> None:
    client = _client(lambda _request: httpx.Response(status, json={"error": {"message": "bad key"}}))

    with pytest.raises(FatalProviderError) as exc_info:
        client.complete([Message.user("ping")])

    assert not exc_info.value.retryable
    assert exc_info.value.detail == {"error": {"message": "bad key"}}


def test_network_error_is_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(RetryableProviderError):
        client.complete([Message.user("ping")])


def test_timeout_is_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RetryableProviderError):
        _client(handler).complete([Message.user("ping")])


def test_invalid_json_body_is_fatal() -> None:
    client = _client(lambda _request: httpx.Response(200, content=b"<html>oops</html>"))

    with pytest.raises(FatalProviderError):
        client.complete([Message.user("ping")])


def test_missing_choices_is_fatal() -> None:
    client = _client(lambda _request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(FatalProviderError):
        client.complete([Message.user("ping")])


def test_unparseable_tool_arguments_are_preserved() -> None:
    body = {
        "choices": [
            {
                "message": {
                    "content": "",
                    "tool_calls": [{"id": "c", "function": {"name": "echo", "arguments": "{not json"}}],
                }
            }
        ]
    }
    client = _client(lambda _request: httpx.Response(200, json=body))

    response = client.complete([Message.user("ping")], [ECHO_SCHEMA])

    assert response.tool_calls[0].arguments == {"_raw_arguments": "{not json"}


def test_openai_compatible_uses_configured_base_url() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"choices": [{"message": {"content": "hi"}, "finish_reason": "stop"}]})

    settings = _settings("openai-compatible", base_url="http://localhost:11434/v1")
    response = _client(handler, settings).complete([Message.user("ping")])

    assert seen == ["http://localhost:11434/v1/chat/completions"]
    assert response.text == "hi"
    assert response.latency_seconds >= 0


def test_missing_tool_call_ids_stay_unique_across_turns() -> None:
    tool_turn = {
        "choices": [
            {
                "finish_reason": "tool_calls",
                "message": {
                    "content": None,
                    "tool_calls": [{"type": "function", "function": {"name": "echo", "arguments": "{\"text\": \"x\"}"}}],
                },
            }
        ]
    }
    final_turn = {"choices": [{"finish_reason": "stop", "message": {"content": "done"}}]}
    bodies = [tool_turn, tool_turn, final_turn]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=bodies.pop(0))

    registry = ToolRegistry()
    registry.register("echo", ECHO_SCHEMA["parameters"], lambda payload: payload["text"], description="Echo")
    loop = AgentLoop(
        _client(handler),
        registry,
        Conversation("be brief"),
        settings=AgentSettings(retry=RetryPolicy(enabled=False)),
        sleep=lambda _s: None,
    )

    result = loop.run("echo twice")

    assert result.state is LoopState.DONE
    ids = [message.tool_call_id for message in loop.conversation.messages if message.role == "tool"]
    assert len(ids) == 2
    assert len(set(ids)) == 2
    assert all(call_id and call_id.startswith("call_") for call_id in ids)


def test_anthropic_tool_use_without_id_gets_generated_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"content": [{"type": "tool_use", "name": "echo", "input": {"text": "hi"}}], "stop_reason": "tool_use"},
        )

    client = _client(handler, _settings("anthropic"))

    first = client.complete([Message.user("hi")], [ECHO_SCHEMA])
    second = client.complete([Message.user("hi")], [ECHO_SCHEMA])

    assert first.tool_calls[0].id != "None"
    assert first.tool_calls[0].id != second.tool_calls[0].id
