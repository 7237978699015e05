"""
QUORUM FOUNDATION - Resilient model execution and multi-path reasoning

1. TYPES        - Result, Option, structured Error values
2. ERRORS       - Exception taxonomy for raising boundaries
3. MODELS       - Request, Response, ModelOutput, ModelConfig
4. CACHE        - Fingerprinted, bounded response cache
5. RESILIENCE   - Circuit breaker and retry policy
6. METRICS      - Rolling metrics, cost tracking, token estimate
7. BACKEND      - Inference backends (OpenAI-compatible HTTP, mock)
8. PIPELINE     - Per-model execution pipeline
9. KNOWLEDGE    - Problem and knowledge extraction
10. COMPLEXITY  - Problem complexity and processing profiles
11. REASON      - Reasoning path engine
12. CONCURRENCY - Join-all combinator

Design Principles:
- Explicit error handling (Result types; only deadlines raise)
- Immutable data (frozen dataclasses; enrichment builds copies)
- Capability protocols instead of base classes
- Collaborators injected per model identity, never module singletons
"""

from quorum.foundation.types import (
    Result, Ok, Err, Option, Some, NONE, Error, ErrorCode, UnwrapError,
)
from quorum.foundation.errors import (
    QuorumError, InputOptimizationError, InvocationError, RetryExhaustedError,
    BreakerOpenError, CancellationError, ParseError, NoViableReasoningPathError, error_from,
)
from quorum.foundation.models import (
    Request, Response, ModelOutput, SearchResult, ModelConfig, ModelKind, clamp,
)
from quorum.foundation.cache import CacheConfig, CacheEntry, ResponseCache, fingerprint
from quorum.foundation.resilience import (
    CircuitState, CircuitBreakerConfig, CircuitBreaker,
    RetryConfig, RetryPolicy, RETRYABLE_CODES, BREAKER_FAILURE_CODES,
)
from quorum.foundation.metrics import (
    MetricSample, MetricsSink, MetricsRecorder, CostTracker, count_tokens,
)
from quorum.foundation.backend import (
    RawOutput, InferenceBackend, BackendConfig, HttpInferenceBackend, MockBackend,
)
from quorum.foundation.pipeline import (
    ModelAdapter, InputOptimizer, PassthroughOptimizer, PromptOptimizer,
    PipelineConfig, ExecutionPipeline, compute_confidence, response_quality,
)
from quorum.foundation.knowledge import (
    Problem, Knowledge, extract_constraints, extract_problem, query_knowledge,
)
from quorum.foundation.complexity import (
    ComplexityAssessment, ProcessingProfile, assess_complexity,
)
from quorum.foundation.reason import (
    Strategy, PromptBuilder, build_strategy_prompt,
    ReasoningPath, parse_reasoning_path, extract_steps, extract_assumptions, lexical_confidence,
    steps_contradict, detect_contradictions, detect_fallacies, has_causal_chain,
    PathScore, PathEvaluation, score_path, evaluate_reasoning_paths,
    ReasonedResponse, ReasoningOutcome, EngineConfig, ReasoningPathEngine, extract_insights,
)
from quorum.foundation.concurrency import gather_settled

__all__ = [
    # Types
    "Result", "Ok", "Err", "Option", "Some", "NONE", "Error", "ErrorCode",
    "UnwrapError",
    # Errors
    "QuorumError", "InputOptimizationError", "InvocationError", "RetryExhaustedError",
    "BreakerOpenError", "CancellationError", "ParseError", "NoViableReasoningPathError",
    "error_from",
    # Models
    "Request", "Response", "ModelOutput", "SearchResult", "ModelConfig", "ModelKind", "clamp",
    # Cache
    "CacheConfig", "CacheEntry", "ResponseCache", "fingerprint",
    # Resilience
    "CircuitState", "CircuitBreakerConfig", "CircuitBreaker",
    "RetryConfig", "RetryPolicy", "RETRYABLE_CODES", "BREAKER_FAILURE_CODES",
    # Metrics
    "MetricSample", "MetricsSink", "MetricsRecorder", "CostTracker", "count_tokens",
    # Backend
    "RawOutput", "InferenceBackend", "BackendConfig", "HttpInferenceBackend", "MockBackend",
    # Pipeline
    "ModelAdapter", "InputOptimizer", "PassthroughOptimizer", "PromptOptimizer",
    "PipelineConfig", "ExecutionPipeline", "compute_confidence", "response_quality",
    # Knowledge / complexity
    "Problem", "Knowledge", "extract_constraints", "extract_problem", "query_knowledge",
    "ComplexityAssessment", "ProcessingProfile", "assess_complexity",
    # Reasoning
    "Strategy", "PromptBuilder", "build_strategy_prompt",
    "ReasoningPath", "parse_reasoning_path", "extract_steps", "extract_assumptions",
    "lexical_confidence", "steps_contradict", "detect_contradictions", "detect_fallacies",
    "has_causal_chain", "PathScore", "PathEvaluation", "score_path", "evaluate_reasoning_paths",
    "ReasonedResponse", "ReasoningOutcome", "EngineConfig", "ReasoningPathEngine",
    "extract_insights",
    # Concurrency
    "gather_settled",
]
