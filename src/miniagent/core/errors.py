"""Error taxonomy shared by the agent runtime."""

from __future__ import annotations

from typing import Any


class MiniAgentError(RuntimeError):
    """Base error for all miniagent failures."""


class ConfigurationError(MiniAgentError):
    """Raised when configuration loading or validation fails."""


# ----------------------------------------------------------------------
# Provider errors
# ----------------------------------------------------------------------
class ProviderError(MiniAgentError):
    """Raised when the LLM provider cannot complete a request."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class RetryableProviderError(ProviderError):
    """Transient provider failure (timeouts, rate limits, 5xx)."""

    retryable = True


class FatalProviderError(ProviderError):
    """Provider failure that retrying cannot fix (auth, malformed request)."""


class RetryExhaustedError(ProviderError):
    """Raised once a retryable failure persists past the attempt ceiling."""

    def __init__(self, attempts: int, last_error: ProviderError) -> None:
        super().__init__(
            f"LLM request failed after {attempts} attempts: {last_error}",
            status_code=last_error.status_code,
            detail=last_error.detail,
        )
        self.attempts = attempts
        self.last_error = last_error


# ----------------------------------------------------------------------
# Tool errors
# ----------------------------------------------------------------------
class ToolRegistryError(MiniAgentError):
    """Base error for tool registry failures."""


class DuplicateToolError(ToolRegistryError):
    """Raised when attempting to register a tool with a duplicate name."""


class ToolError(ToolRegistryError):
    """Base error raised by tool handlers; always reported back to the model."""


class ToolNotFoundError(ToolError):
    """Raised when invoking an unknown tool."""


class ToolExecutionError(ToolError):
    """Raised when a tool handler fails."""


class ToolTimeoutError(ToolError):
    """Raised when a tool exceeds its time allowance."""


# ----------------------------------------------------------------------
# Loop conditions
# ----------------------------------------------------------------------
class InvariantViolation(MiniAgentError):
    """Malformed tool call pairing in the conversation."""


class StepLimitExceeded(MiniAgentError):
    """The loop reached its step ceiling before a final answer."""

    def __init__(self, max_steps: int) -> None:
        super().__init__(f"Task couldn't be completed after {max_steps} steps.")
        self.max_steps = max_steps


class BudgetUnsatisfiable(MiniAgentError):
    """No closed segment is left to summarize while still over budget."""

    def __init__(self, estimated_tokens: int, threshold: int) -> None:
        super().__init__(
            f"Conversation still estimated at {estimated_tokens} tokens "
            f"(threshold {threshold}) with nothing left to summarize."
        )
        self.estimated_tokens = estimated_tokens
        self.threshold = threshold


__all__ = [
    "MiniAgentError",
    "ConfigurationError",
    "ProviderError",
    "RetryableProviderError",
    "FatalProviderError",
    "RetryExhaustedError",
    "ToolRegistryError",
    "DuplicateToolError",
    "ToolError",
    "ToolNotFoundError",
    "ToolExecutionError",
    "ToolTimeoutError",
    "InvariantViolation",
    "StepLimitExceeded",
    "BudgetUnsatisfiable",
]
