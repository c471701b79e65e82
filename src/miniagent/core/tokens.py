"""Pluggable token estimators."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Protocol

import tiktoken

logger = logging.getLogger(__name__)

APPROX_CHARS_PER_TOKEN = 2.5
DEFAULT_ENCODING = "cl100k_base"


class TokenEstimator(Protocol):
    """Maps text to a non-negative token count."""

    def count(self, text: str) -> int:
        ...


class ApproxEstimator:
    """Length heuristic used when no exact vocabulary is available."""

    name = "approx"

    def count(self, text: str) -> int:
        if not text:
            return 0
        return int(len(text) / APPROX_CHARS_PER_TOKEN)


@lru_cache(maxsize=8)
def _get_encoder(model: str | None) -> Any:
    if model:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            logger.debug("No tiktoken encoding registered for %s; using %s", model, DEFAULT_ENCODING)
    return tiktoken.get_encoding(DEFAULT_ENCODING)


class TiktokenEstimator:
    """Exact counts using the model's BPE vocabulary."""

    name = "tiktoken"

    def __init__(self, model: str | None = None) -> None:
        self._encoding = _get_encoder(model)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode_ordinary(text))


def build_estimator(kind: str = "auto", *, model: str | None = None) -> TokenEstimator:
    """Return the estimator named by ``kind`` ("auto", "tiktoken" or "approx")."""
    normalized = kind.strip().lower()
    if normalized == "approx":
        return ApproxEstimator()
    if normalized == "tiktoken":
        return TiktokenEstimator(model)
    if normalized != "auto":
        raise ValueError(f"Unknown tokenizer '{kind}'")
    try:
        return TiktokenEstimator(model)
    except Exception as exc:  # noqa: BLE001 - encoding download may fail offline
        logger.info("tiktoken unavailable (%s); falling back to approximate token counts", exc)
        return ApproxEstimator()


__all__ = [
    "ApproxEstimator",
    "TiktokenEstimator",
    "TokenEstimator",
    "build_estimator",
]
