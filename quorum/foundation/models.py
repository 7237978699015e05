"""
Data model shared by the pipeline, the adapters and the host surfaces.

Request and Response are frozen: enrichment builds a replaced copy rather
than mutating, and the cache hands out deep copies.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional
import time

from quorum.foundation.errors import error_from
from quorum.foundation.types import Error


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a score into [low, high]."""
    return max(low, min(high, value))


@dataclass(frozen=True)
class Request:
    """A single model request. Immutable once constructed."""
    text: str = ""
    payload: Optional[bytes] = None
    context: Dict[str, Any] = field(default_factory=dict)
    operation: Optional[str] = None
    stream: bool = False
    cacheable: bool = True

    def with_text(self, text: str) -> Request:
        return replace(self, text=text)


@dataclass(frozen=True)
class SearchResult:
    """One semantic search hit."""
    text: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelOutput:
    """What an adapter produces before the pipeline enriches it."""
    text: str = ""
    embeddings: Optional[List[List[float]]] = None
    search_results: Optional[List[SearchResult]] = None
    confidence: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    usage: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Response:
    """
    The value every `execute` call hands back.

    Degraded responses carry `metadata["error"]`, a confidence of 0 and the
    full Error chain in `error` (which `to_dict` leaves out).
    """
    model_id: str
    text: str = ""
    confidence: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)
    embeddings: Optional[List[List[float]]] = None
    search_results: Optional[List[SearchResult]] = None
    created_at: float = field(default_factory=time.time)
    processing_time_ms: float = 0.0
    token_count: int = 0
    error: Optional[Error] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp(float(self.confidence)))

    @property
    def is_degraded(self) -> bool:
        return "error" in self.metadata

    def raise_for_error(self) -> None:
        """Raise the matching QuorumError if this response is degraded."""
        if self.error is not None:
            raise error_from(self.error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "text": self.text,
            "confidence": self.confidence,
            "metadata": self.metadata,
            "embeddings": self.embeddings,
            "search_results": [
                {"text": r.text, "score": r.score, "metadata": r.metadata}
                for r in self.search_results
            ] if self.search_results is not None else None,
            "created_at": self.created_at,
            "processing_time_ms": self.processing_time_ms,
            "token_count": self.token_count,
            "degraded": self.is_degraded,
        }


class ModelKind(Enum):
    """What kind of endpoint a model is."""
    TEXT = "text"
    EMBEDDING = "embedding"
    TRANSCRIPTION = "transcription"
    REASONING = "reasoning"


@dataclass(frozen=True)
class ModelConfig:
    """Static description of one model endpoint."""
    model_id: str
    model_name: str
    kind: ModelKind = ModelKind.TEXT
    max_tokens: int = 2048
    temperature: float = 0.7
    optimal_latency_ms: float = 2000.0
    system_prompt: Optional[str] = None

    # Pricing per 1K tokens
    input_cost_per_1k: float = 0.0
    output_cost_per_1k: float = 0.0

    # Model-specific options
    top_k: Optional[int] = None
    top_p: Optional[float] = None
    dimensions: Optional[int] = None
    max_batch_size: int = 100
    similarity_threshold: float = 0.85
