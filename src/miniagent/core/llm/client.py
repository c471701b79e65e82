"""Concrete LLM client implementation."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Sequence

import httpx

from miniagent.core.errors import FatalProviderError, ProviderError, RetryableProviderError
from miniagent.core.messages import Message

from .transport import (
    build_endpoint,
    build_headers,
    build_payload,
    is_retryable_status,
    parse_response,
)
from .types import LLMResponse, LLMSettings, ToolSchema

logger = logging.getLogger(__name__)


class LLMClient:
    """Single-attempt chat client with classified failures.

    Retrying is left to the caller so that turn calls and summarization
    calls share one backoff policy.
    """

    def __init__(
        self,
        settings: LLMSettings,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=settings.timeout_seconds)

    @property
    def settings(self) -> LLMSettings:
        return self._settings

    def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema] = (),
    ) -> LLMResponse:
        """Send the conversation and return the assistant reply."""

        url = build_endpoint(self._settings)
        headers = build_headers(self._settings)
        payload = build_payload(self._settings, messages, tools)

        start_time = time.perf_counter()
        try:
            response = self._client.post(url, headers=headers, json=payload)
            response.raise_for_status()
        except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as exc:
            raise RetryableProviderError(f"{type(exc).__name__}: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise _status_error(exc) from exc
        except httpx.HTTPError as exc:
            raise FatalProviderError(f"LLM transport error: {exc}") from exc

        try:
            body = response.json()
        except json.JSONDecodeError as exc:
            raise FatalProviderError(f"LLM returned invalid JSON: {exc}") from exc

        result = parse_response(self._settings, body)
        result.latency_seconds = time.perf_counter() - start_time
        logger.debug(
            "LLM call successful (model=%s, latency=%.2fs, tool_calls=%d, usage=%s)",
            self._settings.model,
            result.latency_seconds,
            len(result.tool_calls),
            result.token_usage,
        )
        return result

    def close(self) -> None:
        """Dispose the underlying HTTP client if owned by this instance."""

        if self._owns_client:
            self._client.close()


def _status_error(exc: httpx.HTTPStatusError) -> ProviderError:
    status = exc.response.status_code
    detail: str | dict[str, object] | None = None
    try:
        raw = exc.response.read()
        if raw:
            try:
                detail = json.loads(raw.decode("utf-8", errors="replace"))
            except json.JSONDecodeError:
                detail = raw.decode("utf-8", errors="replace")
    except Exception as read_exc:  # noqa: BLE001
        logger.debug("Unable to read error payload: %s", read_exc)
    if detail is None:
        detail = exc.response.reason_phrase
    message = f"LLM request failed with status {status}: {detail}"
    if is_retryable_status(status):
        return RetryableProviderError(message, status_code=status, detail=detail)
    return FatalProviderError(message, status_code=status, detail=detail)


__all__ = ["LLMClient"]
