"""
PIPELINE - Resilient execution around one model adapter

Per request:

    fingerprint -> [cache hit? return copy]
                -> optimize input
                -> breaker.execute(retry.execute(adapter.process_core))
                -> enrich (model id, timestamp, blended confidence, metadata)
                -> cache store -> metric sample -> Response

Every failure except the caller's deadline becomes a degraded Response
(confidence 0, metadata["error"]); `execute` never raises anything else.
The deadline surfaces as CancellationError; asyncio.CancelledError from the
caller propagates untouched.

All collaborators are injected and owned by one pipeline, i.e. by one model
identity. Nothing here is a module-level singleton.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable
import asyncio
import logging
import re
import time

from quorum.foundation.cache import ResponseCache, fingerprint
from quorum.foundation.errors import CancellationError, InputOptimizationError, QuorumError
from quorum.foundation.metrics import CostTracker, MetricSample, MetricsRecorder, count_tokens
from quorum.foundation.models import ModelConfig, ModelOutput, Request, Response, clamp
from quorum.foundation.resilience import CircuitBreaker, RetryPolicy
from quorum.foundation.types import Result, Error, ErrorCode

logger = logging.getLogger(__name__)


# =============================================================================
# COLLABORATOR PROTOCOLS
# =============================================================================

@runtime_checkable
class ModelAdapter(Protocol):
    """
    What the pipeline needs from a model.

    Adapters are independent types; they do not inherit from a base class.
    """

    model_id: str
    config: ModelConfig

    def should_cache(self, request: Request) -> bool:
        ...

    async def process_core(self, request: Request) -> Result[ModelOutput, Error]:
        ...


@runtime_checkable
class InputOptimizer(Protocol):
    """Pre-invocation rewrite of a request. Raises InputOptimizationError."""

    async def optimize(self, request: Request) -> Request:
        ...


class PassthroughOptimizer:
    async def optimize(self, request: Request) -> Request:
        return request


class PromptOptimizer:
    """
    Normalizes whitespace and truncates text to an input token budget.

    Raises InputOptimizationError for a request with no text, payload or context.
    """

    _SPACES = re.compile(r"[ \t]+")
    _BLANK_LINES = re.compile(r"\n{3,}")

    def __init__(self, max_input_tokens: Optional[int] = None):
        self.max_input_tokens = max_input_tokens

    async def optimize(self, request: Request) -> Request:
        if not isinstance(request.text, str):
            raise InputOptimizationError(f"Request text must be str, got {type(request.text).__name__}")

        text = self._SPACES.sub(" ", request.text)
        text = self._BLANK_LINES.sub("\n\n", text).strip()

        if not text and request.payload is None and not request.context:
            raise InputOptimizationError("Request has no text, payload or context")

        if self.max_input_tokens and count_tokens(text) > self.max_input_tokens:
            text = text[:self.max_input_tokens * 4]
            logger.debug(f"Truncated request text to {self.max_input_tokens} tokens")

        return request if text == request.text else request.with_text(text)


# =============================================================================
# CONFIDENCE
# =============================================================================

def response_quality(text: str) -> float:
    """
    Fraction of four checks passed: longer than 10 chars, no literal
    "error", more than three words, ends in . ! or ?
    """
    stripped = (text or "").strip()
    checks = [
        len(text or "") > 10,
        "error" not in (text or ""),
        len((text or "").split(" ")) > 3,
        stripped[-1:] in (".", "!", "?"),
    ]
    return sum(1 for c in checks if c) / len(checks)


def compute_confidence(
    latency_ms: float,
    latency_target_ms: float,
    output_tokens: int,
    token_budget: int,
    success_rate: float,
    quality: float,
) -> float:
    """
    Weighted blend, clamped to [0, 1]:
      0.2  latency under target
      0.2  output under 80% of the token budget (0.1 otherwise)
      0.3  x recent success rate
      0.3  x text quality
    """
    score = (
        (0.2 if latency_ms < latency_target_ms else 0.0)
        + (0.2 if output_tokens < token_budget * 0.8 else 0.1)
        + success_rate * 0.3
        + quality * 0.3
    )
    return clamp(score)


# =============================================================================
# PIPELINE
# =============================================================================

@dataclass
class PipelineConfig:
    """Configuration for the execution pipeline."""
    latency_target_ms: Optional[float] = None  # defaults to the model's optimal latency
    success_rate_window: Optional[int] = None  # last N samples; whole window when None
    default_timeout: Optional[float] = None    # seconds; no deadline when None


class ExecutionPipeline:
    """
    Wraps a ModelAdapter with caching, failure isolation and scoring.

    Usage:
        pipeline = ExecutionPipeline(adapter)
        response = await pipeline.execute(Request(text="Summarize ..."))
        if response.is_degraded:
            logger.warning(response.metadata["error_message"])
    """

    def __init__(
        self,
        adapter: ModelAdapter,
        cache: Optional[ResponseCache] = None,
        breaker: Optional[CircuitBreaker] = None,
        retry: Optional[RetryPolicy] = None,
        metrics: Optional[MetricsRecorder] = None,
        optimizer: Optional[InputOptimizer] = None,
        config: Optional[PipelineConfig] = None,
        cost_tracker: Optional[CostTracker] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.adapter = adapter
        # ResponseCache defines __len__, so an empty one is falsy
        self.cache = cache if cache is not None else ResponseCache()
        self.breaker = breaker if breaker is not None else CircuitBreaker(adapter.model_id)
        self.retry = retry if retry is not None else RetryPolicy()
        self.metrics = metrics if metrics is not None else MetricsRecorder()
        self.optimizer = optimizer if optimizer is not None else PassthroughOptimizer()
        self.config = config or PipelineConfig()
        self.cost_tracker = cost_tracker if cost_tracker is not None else CostTracker(
            adapter.config.input_cost_per_1k,
            adapter.config.output_cost_per_1k,
        )
        self._clock = clock

    @property
    def model_id(self) -> str:
        return self.adapter.model_id

    @property
    def latency_target_ms(self) -> float:
        if self.config.latency_target_ms is not None:
            return self.config.latency_target_ms
        return self.adapter.config.optimal_latency_ms

    def _use_cache(self, request: Request) -> bool:
        return (
            self.cache.config.enabled
            and request.cacheable
            and not request.stream
            and self.adapter.should_cache(request)
        )

    async def execute(self, request: Request, timeout: Optional[float] = None) -> Response:
        """
        Run one request through the pipeline.

        Returns a Response for every outcome, degraded on failure. Raises
        CancellationError only when `timeout` (or the configured default)
        expires first.
        """
        deadline = timeout if timeout is not None else self.config.default_timeout
        if deadline is None:
            return await self._execute(request)

        try:
            return await asyncio.wait_for(self._execute(request), deadline)
        except asyncio.TimeoutError as e:
            logger.warning(f"{self.model_id}: request abandoned after {deadline}s deadline")
            raise CancellationError(
                f"{self.model_id} did not finish within {deadline}s",
                error=Error(ErrorCode.CANCELLED, f"Deadline of {deadline}s exceeded"),
            ) from e

    async def _execute(self, request: Request) -> Response:
        start = self._clock()
        try:
            return await self._run(request, start)
        except Exception as e:
            logger.exception(f"{self.model_id}: unexpected pipeline failure")
            return self._degraded(
                Error(ErrorCode.INTERNAL_ERROR, str(e) or type(e).__name__),
                request,
                start,
            )

    async def _run(self, request: Request, start: float) -> Response:
        use_cache = self._use_cache(request)
        key = fingerprint(request) if use_cache else None

        # 1. Cache
        if key is not None:
            cached = self.cache.lookup(key)
            if cached.is_some():
                self.metrics.record_cache_hit()
                logger.debug(f"{self.model_id}: cache hit {key[:8]}")
                response = cached.unwrap()
                return replace(response, metadata={**response.metadata, "cache_hit": True})

        # 2. Input optimization (never retried)
        try:
            optimized = await self.optimizer.optimize(request)
        except QuorumError as e:
            error = e.error if isinstance(e, InputOptimizationError) else e.error.chain(
                ErrorCode.INPUT_OPTIMIZATION_FAILED, "Input optimization failed",
            )
            return self._degraded(error, request, start)
        except Exception as e:
            return self._degraded(
                Error(ErrorCode.INPUT_OPTIMIZATION_FAILED, str(e) or type(e).__name__),
                request,
                start,
            )

        # 3. Breaker wraps retry: the breaker sees one aggregate outcome
        result = await self.breaker.execute(
            lambda: self.retry.execute(lambda: self.adapter.process_core(optimized))
        )
        if result.is_err():
            return self._degraded(result.unwrap_err(), optimized, start)

        # 4. Enrich
        response = self._enrich(result.unwrap(), optimized, start)

        # 5. Cache and record
        if key is not None:
            self.cache.store(key, response)

        self.metrics.record(MetricSample(
            duration_ms=response.processing_time_ms,
            input_tokens=response.metadata["input_tokens"],
            output_tokens=response.metadata["output_tokens"],
            success=True,
            confidence=response.confidence,
            cost=response.metadata["cost"],
        ))
        return response

    def _enrich(self, output: ModelOutput, request: Request, start: float) -> Response:
        latency_ms = (self._clock() - start) * 1000
        input_tokens = count_tokens(request.text)
        output_tokens = count_tokens(output.text)

        confidence = compute_confidence(
            latency_ms=latency_ms,
            latency_target_ms=self.latency_target_ms,
            output_tokens=output_tokens,
            token_budget=self.adapter.config.max_tokens,
            success_rate=self.metrics.recent_success_rate(self.config.success_rate_window),
            quality=response_quality(output.text),
        )
        cost = self.cost_tracker.calculate(input_tokens, output_tokens)

        metadata: Dict[str, Any] = {
            **output.metadata,
            "raw_confidence": output.confidence,
            "latency_ms": round(latency_ms, 3),
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cost": cost,
            "cache_hit": False,
        }
        if output.usage:
            metadata["usage"] = dict(output.usage)

        return Response(
            model_id=self.model_id,
            text=output.text,
            confidence=confidence,
            metadata=metadata,
            embeddings=output.embeddings,
            search_results=output.search_results,
            created_at=time.time(),
            processing_time_ms=latency_ms,
            token_count=output_tokens,
        )

    def _degraded(self, error: Error, request: Request, start: float) -> Response:
        latency_ms = (self._clock() - start) * 1000
        logger.warning(f"{self.model_id}: degraded response: {error}")

        self.metrics.record(MetricSample(
            duration_ms=latency_ms,
            input_tokens=count_tokens(request.text if isinstance(request.text, str) else ""),
            success=False,
        ))

        return Response(
            model_id=self.model_id,
            text="",
            confidence=0.0,
            metadata={
                "error": error.code,
                "error_message": error.message,
                "root_error": error.root.code,
                "degraded": True,
                "latency_ms": round(latency_ms, 3),
                "cache_hit": False,
            },
            processing_time_ms=latency_ms,
            error=error,
        )

    def get_health(self) -> Dict[str, Any]:
        """Cache, breaker and metrics state for this model."""
        return {
            "model_id": self.model_id,
            "breaker": self.breaker.get_state(),
            "cache": self.cache.get_stats(),
            "metrics": self.metrics.get_metrics(),
            "total_cost": round(self.cost_tracker.total_cost, 6),
        }
