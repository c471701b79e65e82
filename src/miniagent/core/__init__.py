"""Core services for miniagent."""

from .agent_loop import AgentLoop, AgentRunResult, AgentSettings, Budget, LoopState
from .config import ConfigManager, MiniAgentConfig
from .conversation import Conversation, Segment
from .errors import (
    BudgetUnsatisfiable,
    ConfigurationError,
    DuplicateToolError,
    FatalProviderError,
    InvariantViolation,
    MiniAgentError,
    ProviderError,
    RetryableProviderError,
    RetryExhaustedError,
    StepLimitExceeded,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolTimeoutError,
)
from .messages import Message, ToolCallRequest, ToolResult
from .observer import AgentObserver
from .retry import RetryPolicy, call_with_retry
from .summarizer import CompactionReport, Summarizer
from .tokens import ApproxEstimator, TiktokenEstimator, TokenEstimator, build_estimator
from .tool_registry import ToolRegistry

__all__ = [
    "AgentLoop",
    "AgentObserver",
    "AgentRunResult",
    "AgentSettings",
    "ApproxEstimator",
    "Budget",
    "BudgetUnsatisfiable",
    "CompactionReport",
    "ConfigManager",
    "ConfigurationError",
    "Conversation",
    "DuplicateToolError",
    "FatalProviderError",
    "InvariantViolation",
    "LoopState",
    "Message",
    "MiniAgentConfig",
    "MiniAgentError",
    "ProviderError",
    "RetryExhaustedError",
    "RetryPolicy",
    "RetryableProviderError",
    "Segment",
    "StepLimitExceeded",
    "Summarizer",
    "TiktokenEstimator",
    "TokenEstimator",
    "ToolCallRequest",
    "ToolError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "ToolTimeoutError",
    "build_estimator",
    "call_with_retry",
]
