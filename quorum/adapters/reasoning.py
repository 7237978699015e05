"""
Reasoning adapter - the reasoning path engine behind the pipeline contract.

    request -> Problem -> Knowledge -> complexity/profile -> engine -> ModelOutput

The whole fan-out/fan-in runs inside one process_core call, so the
pipeline's breaker and retry see the engine as a single invocation.
"""

from typing import Optional

from quorum.foundation.backend import InferenceBackend
from quorum.foundation.complexity import ProcessingProfile, assess_complexity
from quorum.foundation.knowledge import extract_problem, query_knowledge
from quorum.foundation.models import ModelConfig, ModelOutput, Request
from quorum.foundation.reason import (
    EngineConfig, PromptBuilder, ReasoningPathEngine, build_strategy_prompt,
)
from quorum.foundation.types import Result, Ok, Err, Error


class ReasoningAdapter:
    """Multi-path reasoning for the qwq family."""

    def __init__(
        self,
        config: ModelConfig,
        backend: InferenceBackend,
        engine_config: Optional[EngineConfig] = None,
        prompt_builder: PromptBuilder = build_strategy_prompt,
    ):
        self.model_id = config.model_id
        self.config = config
        self.engine = ReasoningPathEngine(
            backend,
            engine_config or EngineConfig(
                model_name=config.model_name,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                top_k=config.top_k,
                top_p=config.top_p,
            ),
            prompt_builder=prompt_builder,
        )

    def should_cache(self, request: Request) -> bool:
        return True

    async def process_core(self, request: Request) -> Result[ModelOutput, Error]:
        problem = extract_problem(request)
        knowledge = query_knowledge(problem)
        complexity = assess_complexity(problem)
        profile = ProcessingProfile.for_assessment(complexity)

        result = await self.engine.reason(problem, knowledge, profile)
        if result.is_err():
            return Err(result.unwrap_err())

        outcome = result.unwrap()
        response = outcome.response

        return Ok(ModelOutput(
            text=response.conclusion,
            confidence=response.confidence,
            metadata={
                "reasoning_steps": list(response.steps),
                "assumptions": list(response.assumptions),
                "insights": list(response.insights),
                "alternative_paths": len(outcome.paths),
                "strategy": outcome.strategy.value if outcome.strategy else None,
                "path_scores": [score.to_dict() for score in outcome.evaluation.ranked],
                "dropped_strategies": dict(outcome.dropped),
                "synthesis_failed": response.synthesis_failed,
                "complexity": complexity.to_dict(),
                "profile": profile.value,
            },
        ))
