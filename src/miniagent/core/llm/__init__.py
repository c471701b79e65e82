"""LLM client package.

This namespace hosts the high-level `LLMClient` along with supporting
types (`types.py`) and wire-format helpers (`transport.py`). The client
performs exactly one attempt per call and raises classified
`ProviderError`s; backoff lives in `miniagent.core.retry`.
"""

from .client import LLMClient
from .types import LLMProvider, LLMResponse, LLMSettings, ToolSchema

__all__ = ["LLMClient", "LLMProvider", "LLMResponse", "LLMSettings", "ToolSchema"]
