"""
COMPLEXITY - Problem complexity assessment

Pure scoring over a Problem's statement and constraints:

    cognitive      0.5 base, rises with length, constraints, clause density
    computational  0.3 base, rises with optimization / exhaustive-search /
                   recursion vocabulary and constraint count
    domain         0.3 base, +0.1 per technical term
    overall        0.3 * cognitive + 0.4 * computational + 0.3 * domain

The assessment picks a ProcessingProfile for the strategy invocations and
is attached to response metadata. It never influences path selection.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from quorum.foundation.knowledge import Problem
from quorum.foundation.models import clamp

TECHNICAL_TERMS = (
    "algorithm", "database", "neural", "quantum", "cryptographic",
    "distributed", "concurrent", "asynchronous", "blockchain", "machine learning",
)


@dataclass(frozen=True)
class ComplexityAssessment:
    cognitive: float
    computational: float
    domain: float
    overall: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "cognitive": self.cognitive,
            "computational": self.computational,
            "domain": self.domain,
            "overall": self.overall,
        }


def assess_cognitive(problem: Problem) -> float:
    statement = (problem.statement or "").lower()
    score = 0.5

    if len(statement) > 200:
        score += 0.1
    if len(problem.constraints) > 3:
        score += 0.15
    if "multi" in statement or "complex" in statement:
        score += 0.1
    if len(statement.split(",")) > 5:
        score += 0.1

    return clamp(score)


def assess_computational(problem: Problem) -> float:
    statement = (problem.statement or "").lower()
    score = 0.3

    if "optimize" in statement or "maximize" in statement or "minimize" in statement:
        score += 0.2
    if "all possible" in statement or "every" in statement:
        score += 0.25
    if "recursive" in statement or "iterative" in statement:
        score += 0.15
    if len(problem.constraints) > 5:
        score += 0.1

    return clamp(score)


def assess_domain(problem: Problem) -> float:
    statement = (problem.statement or "").lower()
    score = 0.3 + 0.1 * sum(1 for term in TECHNICAL_TERMS if term in statement)
    return clamp(score)


def assess_complexity(problem: Problem) -> ComplexityAssessment:
    cognitive = assess_cognitive(problem)
    computational = assess_computational(problem)
    domain = assess_domain(problem)
    overall = clamp(cognitive * 0.3 + computational * 0.4 + domain * 0.3)

    return ComplexityAssessment(
        cognitive=cognitive,
        computational=computational,
        domain=domain,
        overall=overall,
    )


# =============================================================================
# PROCESSING PROFILE
# =============================================================================

class ProcessingProfile(Enum):
    """How much budget the strategy invocations get."""
    FOCUSED = "focused"
    STANDARD = "standard"
    DEEP = "deep"

    @classmethod
    def for_assessment(cls, assessment: ComplexityAssessment) -> ProcessingProfile:
        if assessment.overall < 0.45:
            return cls.FOCUSED
        if assessment.overall < 0.6:
            return cls.STANDARD
        return cls.DEEP

    @property
    def token_fraction(self) -> float:
        """Share of the model's max_tokens each strategy may use."""
        return {"focused": 0.25, "standard": 0.5, "deep": 1.0}[self.value]

    @property
    def temperature(self) -> float:
        return {"focused": 0.5, "standard": 0.7, "deep": 0.8}[self.value]

    def max_tokens(self, model_max_tokens: int) -> int:
        return max(256, int(model_max_tokens * self.token_fraction))
