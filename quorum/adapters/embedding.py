"""
Embedding adapter with an in-memory vector index.

Operations (Request.operation):
- "embed"  (default) embeddings for request.text, or context["texts"] in batches
- "store"  embed and insert into the index; never cached
- "search" rank indexed texts by cosine similarity to request.text
"""

import hashlib
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from quorum.foundation.backend import InferenceBackend
from quorum.foundation.models import ModelConfig, ModelOutput, Request, SearchResult
from quorum.foundation.types import Result, Ok, Err, Error, ErrorCode


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


@dataclass
class IndexedVector:
    id: str
    vector: List[float]
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class VectorIndex:
    """Brute-force cosine index. Thread-safe."""

    def __init__(self):
        self._items: Dict[str, IndexedVector] = {}
        self._lock = threading.Lock()

    def insert(self, item: IndexedVector) -> None:
        with self._lock:
            self._items[item.id] = item

    def search(self, vector: Sequence[float], top_k: int = 10, threshold: float = 0.0) -> List[SearchResult]:
        with self._lock:
            items = list(self._items.values())

        scored = [(cosine_similarity(vector, item.vector), item) for item in items]
        hits = [
            SearchResult(text=item.text, score=score, metadata={"id": item.id, **item.metadata})
            for score, item in scored
            if score >= threshold
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class EmbeddingAdapter:
    """Embeddings, storage and semantic search for the bge family."""

    def __init__(
        self,
        config: ModelConfig,
        backend: InferenceBackend,
        index: Optional[VectorIndex] = None,
    ):
        self.model_id = config.model_id
        self.config = config
        self.backend = backend
        self.index = index if index is not None else VectorIndex()

    def should_cache(self, request: Request) -> bool:
        # store mutates the index and search depends on it
        return (request.operation or "embed") == "embed"

    def _texts(self, request: Request) -> List[str]:
        texts = (request.context or {}).get("texts")
        if texts:
            return [str(t) for t in texts]
        return [request.text]

    async def _embed(self, texts: List[str]) -> Result[List[List[float]], Error]:
        batch_size = max(1, self.config.max_batch_size)
        embeddings: List[List[float]] = []

        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            result = await self.backend.invoke(self.config.model_name, {"input": batch})
            if result.is_err():
                return Err(result.unwrap_err())

            vectors = result.unwrap().embeddings or []
            if len(vectors) != len(batch):
                return Err(Error(
                    ErrorCode.INVOCATION_FAILED,
                    f"Expected {len(batch)} embeddings, got {len(vectors)}",
                ))
            embeddings.extend(vectors)

        return Ok(embeddings)

    async def process_core(self, request: Request) -> Result[ModelOutput, Error]:
        operation = request.operation or "embed"

        if operation == "embed":
            return await self._embed_texts(request)
        if operation == "store":
            return await self._store(request)
        if operation == "search":
            return await self._search(request)

        return Err(Error(ErrorCode.INVALID_INPUT, f"Unknown embedding operation: {operation}"))

    async def _embed_texts(self, request: Request) -> Result[ModelOutput, Error]:
        texts = self._texts(request)
        result = await self._embed(texts)
        if result.is_err():
            return Err(result.unwrap_err())

        embeddings = result.unwrap()
        return Ok(ModelOutput(
            embeddings=embeddings,
            confidence=1.0,
            metadata={
                "dimensions": len(embeddings[0]) if embeddings else self.config.dimensions,
                "count": len(embeddings),
            },
        ))

    async def _store(self, request: Request) -> Result[ModelOutput, Error]:
        texts = self._texts(request)
        result = await self._embed(texts)
        if result.is_err():
            return Err(result.unwrap_err())

        source = (request.context or {}).get("source")
        for text, vector in zip(texts, result.unwrap()):
            self.index.insert(IndexedVector(
                id=hashlib.sha256(text.encode()).hexdigest()[:16],
                vector=vector,
                text=text,
                metadata={"stored_at": time.time(), "source": source},
            ))

        return Ok(ModelOutput(
            text="Embedded and stored successfully.",
            confidence=1.0,
            metadata={"stored": len(texts), "index_size": len(self.index)},
        ))

    async def _search(self, request: Request) -> Result[ModelOutput, Error]:
        result = await self._embed([request.text])
        if result.is_err():
            return Err(result.unwrap_err())

        context = request.context or {}
        threshold = float(context.get("threshold", self.config.similarity_threshold))
        top_k = int(context.get("top_k", 10))
        hits = self.index.search(result.unwrap()[0], top_k=top_k, threshold=threshold)

        return Ok(ModelOutput(
            search_results=hits,
            confidence=sum(h.score for h in hits) / len(hits) if hits else 0.0,
            metadata={"total_results": len(hits), "threshold": threshold, "top_k": top_k},
        ))
