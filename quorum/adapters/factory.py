"""
Adapter and pipeline factory.

Every pipeline gets its own cache, breaker, retry policy and metrics; two
model identities never share failure or cache state.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

from quorum.foundation.backend import InferenceBackend
from quorum.foundation.cache import CacheConfig, ResponseCache
from quorum.foundation.metrics import MetricsRecorder
from quorum.foundation.models import ModelConfig, ModelKind
from quorum.foundation.pipeline import ExecutionPipeline, ModelAdapter, PipelineConfig, PromptOptimizer
from quorum.foundation.resilience import (
    CircuitBreaker, CircuitBreakerConfig, RetryConfig, RetryPolicy,
)
from quorum.foundation.types import NONE, Option, Some

from .catalog import MODEL_CATALOG, get_model_config

logger = logging.getLogger(__name__)


def create_adapter(
    model_id: str,
    backend: InferenceBackend,
    config: Optional[ModelConfig] = None,
) -> ModelAdapter:
    """
    Create the adapter for a model.

    Args:
        model_id: Catalog key, e.g. 'llama-8b'
        backend: Inference backend the adapter invokes
        config: Overrides the catalog entry (required for unknown ids)
    """
    config = config or get_model_config(model_id)
    if config is None:
        raise KeyError(f"Unknown model: {model_id}")

    if config.kind == ModelKind.EMBEDDING:
        from .embedding import EmbeddingAdapter
        return EmbeddingAdapter(config, backend)

    elif config.kind == ModelKind.TRANSCRIPTION:
        from .transcription import TranscriptionAdapter
        return TranscriptionAdapter(config, backend)

    elif config.kind == ModelKind.REASONING:
        from .reasoning import ReasoningAdapter
        return ReasoningAdapter(config, backend)

    else:
        from .text import TextGenerationAdapter
        return TextGenerationAdapter(config, backend)


def create_pipeline(
    model_id: str,
    backend: InferenceBackend,
    config: Optional[ModelConfig] = None,
    cache_config: Optional[CacheConfig] = None,
    breaker_config: Optional[CircuitBreakerConfig] = None,
    retry_config: Optional[RetryConfig] = None,
    pipeline_config: Optional[PipelineConfig] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ExecutionPipeline:
    """Adapter plus a fresh set of per-model collaborators."""
    adapter = create_adapter(model_id, backend, config)

    return ExecutionPipeline(
        adapter,
        cache=ResponseCache(cache_config),
        breaker=CircuitBreaker(adapter.model_id, breaker_config),
        retry=RetryPolicy(retry_config, sleep=sleep),
        metrics=MetricsRecorder(),
        optimizer=PromptOptimizer(max_input_tokens=adapter.config.max_tokens),
        config=pipeline_config,
    )


class ModelRegistry:
    """
    One pipeline per model identity, created on first use.

    Usage:
        registry = ModelRegistry(HttpInferenceBackend(BackendConfig.from_env()))
        pipeline = registry.get("llama-8b").unwrap()
        response = await pipeline.execute(Request(text="Hello"))
    """

    def __init__(
        self,
        backend: InferenceBackend,
        catalog: Optional[Dict[str, ModelConfig]] = None,
        cache_config: Optional[CacheConfig] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        pipeline_config: Optional[PipelineConfig] = None,
    ):
        self.backend = backend
        self.catalog = dict(catalog if catalog is not None else MODEL_CATALOG)
        self.cache_config = cache_config
        self.breaker_config = breaker_config
        self.retry_config = retry_config
        self.pipeline_config = pipeline_config
        self._pipelines: Dict[str, ExecutionPipeline] = {}
        self._lock = threading.Lock()

    def list_models(self) -> List[ModelConfig]:
        return list(self.catalog.values())

    def __contains__(self, model_id: str) -> bool:
        return model_id in self.catalog

    def get(self, model_id: str) -> Option[ExecutionPipeline]:
        """The pipeline for `model_id`, or NONE for an unknown model."""
        config = self.catalog.get(model_id)
        if config is None:
            return NONE

        with self._lock:
            pipeline = self._pipelines.get(model_id)
            if pipeline is None:
                pipeline = create_pipeline(
                    model_id,
                    self.backend,
                    config=config,
                    cache_config=self.cache_config,
                    breaker_config=self.breaker_config,
                    retry_config=self.retry_config,
                    pipeline_config=self.pipeline_config,
                )
                self._pipelines[model_id] = pipeline
                logger.info(f"Created pipeline for {model_id} ({config.kind.value})")
            return Some(pipeline)

    def get_health(self) -> Dict[str, Any]:
        """Health of every pipeline created so far."""
        with self._lock:
            pipelines = dict(self._pipelines)
        return {model_id: p.get_health() for model_id, p in pipelines.items()}

    async def close(self) -> None:
        close = getattr(self.backend, "close", None)
        if close is not None:
            await close()
