"""HTTP wire-format helpers for the LLM client."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Sequence
from typing import Any

from miniagent.core.errors import FatalProviderError
from miniagent.core.messages import Message, ToolCallRequest

from .types import LLMResponse, LLMSettings, ToolSchema

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
RETRYABLE_STATUS_CODES = frozenset({408, 409, 425, 429})

DEFAULT_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com/v1",
    "minimax": "https://api.minimax.io/v1",
    "minimaxi": "https://api.minimaxi.com/v1",
    "google": "https://generativelanguage.googleapis.com/v1beta/openai",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai",
}


def is_anthropic(settings: LLMSettings) -> bool:
    return settings.provider.lower() in {"anthropic", "claude"}


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def build_endpoint(settings: LLMSettings) -> str:
    base = (settings.base_url or DEFAULT_BASE_URLS.get(settings.provider.lower(), "")).rstrip("/")
    if is_anthropic(settings):
        return f"{base}/messages"
    return f"{base}/chat/completions"


def build_headers(settings: LLMSettings) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if is_anthropic(settings):
        headers["x-api-key"] = settings.api_key or ""
        headers["anthropic-version"] = ANTHROPIC_VERSION
    elif settings.api_key:
        headers["Authorization"] = f"Bearer {settings.api_key}"
    return headers


def build_payload(
    settings: LLMSettings,
    messages: Sequence[Message],
    tools: Sequence[ToolSchema],
) -> dict[str, Any]:
    payload: dict[str, Any] = {"model": settings.model}
    if is_anthropic(settings):
        system, converted = _anthropic_messages(messages)
        if system:
            payload["system"] = system
        payload["messages"] = converted
        payload["max_tokens"] = max(settings.max_output_tokens, 1)
        if tools:
            payload["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "input_schema": tool.get("parameters") or {"type": "object", "properties": {}},
                }
                for tool in tools
            ]
        return payload

    payload["messages"] = [_openai_message(message) for message in messages]
    payload["max_tokens"] = max(settings.max_output_tokens, 1)
    if tools:
        payload["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
                },
            }
            for tool in tools
        ]
    return payload


def parse_response(settings: LLMSettings, body: Any) -> LLMResponse:
    if not isinstance(body, dict):
        raise FatalProviderError(f"Unexpected LLM response payload: {body!r}")
    if is_anthropic(settings):
        return _parse_anthropic(body)
    return _parse_openai(body)


# ----------------------------------------------------------------------
# OpenAI chat completions
# ----------------------------------------------------------------------
def _openai_message(message: Message) -> dict[str, Any]:
    if message.role == "tool":
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "content": message.text(),
        }
    if message.role == "assistant" and message.tool_calls:
        return {
            "role": "assistant",
            "content": message.text() or None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.tool_name, "arguments": call.arguments_json()},
                }
                for call in message.tool_calls
            ],
        }
    return {"role": message.role, "content": message.text()}


def _parse_openai(body: dict[str, Any]) -> LLMResponse:
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise FatalProviderError("LLM response contained no choices", detail=body)
    choice = choices[0] if isinstance(choices[0], dict) else {}
    message = choice.get("message") or {}
    text = message.get("content") if isinstance(message.get("content"), str) else ""
    thinking: list[str] = []
    reasoning = message.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning.strip():
        thinking.append(reasoning)
    calls: list[ToolCallRequest] = []
    for raw_call in message.get("tool_calls") or []:
        if not isinstance(raw_call, dict):
            continue
        function = raw_call.get("function") or {}
        calls.append(
            ToolCallRequest(
                id=_call_id(raw_call.get("id")),
                tool_name=str(function.get("name", "")),
                arguments=_decode_arguments(function.get("arguments")),
            )
        )
    return LLMResponse(
        text=text or "",
        tool_calls=calls,
        thinking=thinking,
        finish_reason=choice.get("finish_reason"),
        token_usage=_parse_usage(body.get("usage")),
    )


def _call_id(raw: Any) -> str:
    """Provider call id, or a fresh one when the provider omitted it."""
    if raw is None or not str(raw).strip():
        return f"call_{uuid.uuid4().hex}"
    return str(raw)


def _decode_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Tool call arguments were not valid JSON: %s", raw)
        return {"_raw_arguments": raw}
    return decoded if isinstance(decoded, dict) else {"value": decoded}


# ----------------------------------------------------------------------
# Anthropic messages
# ----------------------------------------------------------------------
def _anthropic_messages(messages: Sequence[Message]) -> tuple[str, list[dict[str, Any]]]:
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    def push(role: str, blocks: list[dict[str, Any]]) -> None:
        if converted and converted[-1]["role"] == role:
            converted[-1]["content"].extend(blocks)
        else:
            converted.append({"role": role, "content": blocks})

    for message in messages:
        if message.role == "system":
            system_parts.append(message.text())
        elif message.role == "tool":
            push(
                "user",
                [
                    {
                        "type": "tool_result",
                        "tool_use_id": message.tool_call_id,
                        "content": message.text(),
                        "is_error": message.is_error,
                    }
                ],
            )
        elif message.role == "assistant":
            blocks: list[dict[str, Any]] = []
            if message.text():
                blocks.append({"type": "text", "text": message.text()})
            for call in message.tool_calls:
                blocks.append(
                    {"type": "tool_use", "id": call.id, "name": call.tool_name, "input": call.arguments}
                )
            if blocks:
                push("assistant", blocks)
        else:
            push("user", [{"type": "text", "text": message.text()}])
    return "\n\n".join(part for part in system_parts if part), converted


def _parse_anthropic(body: dict[str, Any]) -> LLMResponse:
    content = body.get("content")
    if not isinstance(content, list):
        raise FatalProviderError("LLM response contained no content blocks", detail=body)
    texts: list[str] = []
    thinking: list[str] = []
    calls: list[ToolCallRequest] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        kind = block.get("type")
        if kind == "text" and isinstance(block.get("text"), str):
            texts.append(block["text"])
        elif kind == "thinking" and isinstance(block.get("thinking"), str):
            thinking.append(block["thinking"])
        elif kind == "tool_use":
            calls.append(
                ToolCallRequest(
                    id=_call_id(block.get("id")),
                    tool_name=str(block.get("name", "")),
                    arguments=_decode_arguments(block.get("input")),
                )
            )
    return LLMResponse(
        text="\n".join(texts),
        tool_calls=calls,
        thinking=thinking,
        finish_reason=body.get("stop_reason"),
        token_usage=_parse_usage(body.get("usage")),
    )


def _parse_usage(usage_payload: object) -> dict[str, int] | None:
    if not isinstance(usage_payload, dict):
        return None
    usage: dict[str, int] = {}
    for key, value in usage_payload.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            usage[key] = value
        elif isinstance(value, float):
            usage[key] = int(value)
    return usage or None


__all__ = [
    "DEFAULT_BASE_URLS",
    "build_endpoint",
    "build_headers",
    "build_payload",
    "is_retryable_status",
    "parse_response",
]
