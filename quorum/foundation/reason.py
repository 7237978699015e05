"""
REASON - Multi-path reasoning with automated critique

Given a Problem and its Knowledge, the engine:

1. Builds one prompt per strategy (analytical, creative, systematic,
   first principles) and invokes all four concurrently
2. Parses each raw output into a ReasoningPath (numbered steps, else
   bullets, else sentences), dropping strategies that fail or parse empty
3. Scores every path:
       0.4 * logical consistency   contradictions, fallacy cues, causal links
     + 0.3 * completeness          step count, assumptions, connectives
     + 0.2 * simplicity            step count, step length, ordinal structure
     + 0.1 * path confidence
4. Picks the winner (score, then confidence, then strategy order)
5. Makes one synthesis call that turns the winning path into a conclusion

All detection is cue-phrase matching; nothing here understands language.
Scoring is deterministic: identical raw outputs always select the same path
with the same component scores.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging
import re

from quorum.foundation.backend import InferenceBackend, RawOutput
from quorum.foundation.complexity import ProcessingProfile
from quorum.foundation.concurrency import gather_settled
from quorum.foundation.errors import NoViableReasoningPathError
from quorum.foundation.knowledge import Knowledge, Problem
from quorum.foundation.models import clamp
from quorum.foundation.types import Result, Ok, Err, Error, ErrorCode

logger = logging.getLogger(__name__)


# =============================================================================
# 1. STRATEGIES AND PROMPTS
# =============================================================================

class Strategy(Enum):
    """Reasoning strategies, in tie-break order."""
    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    SYSTEMATIC = "systematic"
    FIRST_PRINCIPLES = "first_principles"

    @property
    def order(self) -> int:
        return list(Strategy).index(self)


PromptBuilder = Callable[[Problem, Knowledge, Strategy], str]

_STRATEGY_PLANS: Dict[Strategy, Tuple[str, Sequence[str], str]] = {
    Strategy.ANALYTICAL: (
        "Let me analyze this problem step by step.",
        (
            "Identify the key components (inputs, outputs, resources, success criteria)",
            "Analyze the relationships between them",
            "Apply logical reasoning to each part",
            "Consider edge cases (empty input, limits, concurrent access)",
            "Synthesize a solution",
        ),
        "Based on my analysis, here's my reasoning:",
    ),
    Strategy.CREATIVE: (
        "Let me approach this problem creatively, using lateral thinking and analogies from other domains.",
        (
            "Reverse the problem",
            "Remove constraints temporarily",
            "Combine unrelated concepts",
            "Question assumptions",
        ),
        "My creative solution:",
    ),
    Strategy.SYSTEMATIC: (
        "Systematic analysis of the problem.",
        (
            "Define inputs and outputs",
            "Identify variables",
            "Map dependencies",
            "Create a decision tree",
            "Optimize the path",
        ),
        "Systematic solution:",
    ),
    Strategy.FIRST_PRINCIPLES: (
        "Breaking the problem down to first principles.",
        (
            "What do we know for certain?",
            "What are the basic building blocks?",
            "What laws or rules apply?",
            "What can we derive from the basics?",
        ),
        "First principles solution:",
    ),
}


def build_strategy_prompt(problem: Problem, knowledge: Knowledge, strategy: Strategy) -> str:
    """Default prompt builder: a pure function of (problem, knowledge, strategy)."""
    intro, plan, lead = _STRATEGY_PLANS[strategy]

    lines = [
        f"Strategy: {strategy.value}",
        "<thinking>",
        intro,
        "",
        f"Problem: {problem.statement}",
        f"Context: {knowledge.context}",
        f"Constraints: {', '.join(problem.constraints) or 'none'}",
    ]
    if knowledge.facts:
        lines.append("Known facts:")
        lines.extend(f"- {fact}" for fact in knowledge.facts)

    lines.append("")
    lines.extend(f"{i}. {step}" for i, step in enumerate(plan, 1))
    lines.extend([
        "</thinking>",
        "",
        "Answer with numbered steps and state any assumptions explicitly.",
        lead,
    ])
    return "\n".join(lines)


def build_synthesis_prompt(path: ReasoningPath, problem: Problem) -> str:
    steps = "\n".join(path.steps)
    return (
        f"Given this reasoning path:\n{steps}\n\n"
        f"For the problem: {problem.statement}\n\n"
        "Provide a clear, concise conclusion with confidence score."
    )


# =============================================================================
# 2. REASONING PATHS
# =============================================================================

@dataclass(frozen=True)
class ReasoningPath:
    """One candidate solution trace. Never has zero steps."""
    steps: Tuple[str, ...]
    confidence: float = 0.5
    assumptions: Tuple[str, ...] = ()
    strategy: Optional[Strategy] = None

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError("ReasoningPath requires at least one step")
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "assumptions", tuple(self.assumptions))
        object.__setattr__(self, "confidence", clamp(float(self.confidence)))

    @property
    def strategy_order(self) -> int:
        return self.strategy.order if self.strategy is not None else len(Strategy)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value if self.strategy else None,
            "steps": list(self.steps),
            "confidence": self.confidence,
            "assumptions": list(self.assumptions),
        }


_THINKING_TAGS = re.compile(r"</?thinking>", re.IGNORECASE)
_NUMBERED_STEP = re.compile(r"^\s*(?:step\s*)?\d+[.):]\s+(.*)$", re.IGNORECASE)
_BULLET_STEP = re.compile(r"^\s*[-•*]\s+(.*)$")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
MIN_SENTENCE_LENGTH = 10

ASSUMPTION_PATTERNS = [
    re.compile(r"\bassum(?:e|es|ed|ing|ptions?)\b\s+(.+?)(?:[.,;]|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\bgiven\s+that\s+(.+?)(?:[.,;]|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\bif\s+(.+?)\s+then\b", re.IGNORECASE),
]


def _collect_marked(lines: List[str], marker: re.Pattern) -> List[str]:
    """Lines starting with `marker` open a step; following lines continue it until a blank line."""
    steps: List[str] = []
    current: Optional[List[str]] = None

    for line in lines:
        match = marker.match(line)
        if match:
            if current:
                steps.append(" ".join(current))
            current = [match.group(1).strip()] if match.group(1).strip() else []
        elif not line.strip():
            if current:
                steps.append(" ".join(current))
            current = None
        elif current is not None:
            current.append(line.strip())

    if current:
        steps.append(" ".join(current))

    return [s for s in steps if s]


def extract_steps(text: str) -> List[str]:
    """Numbered steps, else bullet steps, else sentences longer than 10 chars."""
    text = _THINKING_TAGS.sub("", text or "")
    lines = text.splitlines()

    steps = _collect_marked(lines, _NUMBERED_STEP)
    if steps:
        return steps

    steps = _collect_marked(lines, _BULLET_STEP)
    if steps:
        return steps

    sentences = (s.strip() for s in _SENTENCE_BREAK.split(" ".join(l.strip() for l in lines)))
    return [s for s in sentences if len(s) > MIN_SENTENCE_LENGTH]


def extract_assumptions(text: str) -> List[str]:
    """Phrases introduced by assume/given that/if...then, in text order."""
    found: List[Tuple[int, str]] = []
    for pattern in ASSUMPTION_PATTERNS:
        for match in pattern.finditer(text or ""):
            phrase = match.group(1).strip()
            if phrase:
                found.append((match.start(), phrase))

    found.sort(key=lambda item: item[0])
    seen = set()
    assumptions = []
    for _, phrase in found:
        if phrase not in seen:
            seen.add(phrase)
            assumptions.append(phrase)
    return assumptions


# (pattern, adjustment)
CONFIDENCE_CUES = [
    (re.compile(r"\b(?:certainly|definitely)\b", re.IGNORECASE), 0.2),
    (re.compile(r"\b(?:clear|clearly|obvious|obviously)\b", re.IGNORECASE), 0.1),
    (re.compile(r"\b(?:proven|verified)\b", re.IGNORECASE), 0.15),
    (re.compile(r"\b(?:maybe|perhaps)\b", re.IGNORECASE), -0.1),
    (re.compile(r"\b(?:unclear|uncertain)\b", re.IGNORECASE), -0.15),
    (re.compile(r"\b(?:assumptions?|guess\w*)\b", re.IGNORECASE), -0.1),
]


def lexical_confidence(text: str) -> float:
    """0.5 moved by certainty and hedging words, clamped to [0.1, 1.0]."""
    confidence = 0.5
    for pattern, adjustment in CONFIDENCE_CUES:
        if pattern.search(text or ""):
            confidence += adjustment
    return clamp(confidence, 0.1, 1.0)


def parse_reasoning_path(
    raw: str,
    strategy: Optional[Strategy] = None,
    confidence: Optional[float] = None,
) -> Result[ReasoningPath, Error]:
    """
    Reduce raw strategy output to a ReasoningPath.

    Uses the backend's confidence when it supplied one, the lexical
    heuristic otherwise. No steps -> Err(PARSE_FAILED).
    """
    steps = extract_steps(raw)
    if not steps:
        return Err(Error(
            ErrorCode.PARSE_FAILED,
            f"No reasoning steps in {strategy.value if strategy else 'output'}",
            details={"raw": (raw or "")[:200]},
        ))

    return Ok(ReasoningPath(
        steps=tuple(steps),
        confidence=clamp(confidence) if confidence is not None else lexical_confidence(raw),
        assumptions=tuple(extract_assumptions(raw)),
        strategy=strategy,
    ))


# =============================================================================
# 3. CRITIQUE
# =============================================================================

NEGATIONS = frozenset({"not", "never", "no", "cannot", "don't", "doesn't", "won't"})

FALLACY_PATTERNS = {
    "ad_hominem": re.compile(r"\b(?:attacking|personal|character)\b", re.IGNORECASE),
    "straw_man": re.compile(r"\b(?:misrepresent|distort)\w*", re.IGNORECASE),
    "false_dilemma": re.compile(r"\bonly\s+two\s+options\b|\beither\b.*\bor\s+nothing\b", re.IGNORECASE),
    "circular": re.compile(r"\bbecause\b.*\btherefore\b.*\bbecause\b", re.IGNORECASE),
    "hasty_generalization": re.compile(r"\b(?:all|every|never|always)\b", re.IGNORECASE),
}

CAUSAL_CONNECTIVES = re.compile(r"\b(?:because|therefore|thus|hence|so|consequently)\b", re.IGNORECASE)
_CONCLUSIVE = re.compile(r"\b(?:therefore|thus)\b", re.IGNORECASE)
_JUSTIFYING = re.compile(r"\b(?:because|since)\b", re.IGNORECASE)
_ORDINALS = re.compile(r"\b(?:first|second|finally)\b", re.IGNORECASE)
_TOKEN = re.compile(r"[a-z0-9']+")


def _tokens(step: str) -> List[str]:
    return _TOKEN.findall(step.lower().replace("’", "'"))


def _contains_run(haystack: List[str], needle: List[str]) -> bool:
    n = len(needle)
    return any(haystack[i:i + n] == needle for i in range(len(haystack) - n + 1))


def _negates(negated: List[str], asserted: List[str]) -> bool:
    if not any(t in NEGATIONS for t in negated) or any(t in NEGATIONS for t in asserted):
        return False
    core = [t for t in negated if t not in NEGATIONS]
    return len(core) >= 2 and _contains_run(asserted, core)


def steps_contradict(first: str, second: str) -> bool:
    """
    True when one step is the other with a negation word added.

    "The system is not scalable" contradicts "Therefore the system is scalable".
    """
    a, b = _tokens(first), _tokens(second)
    return _negates(a, b) or _negates(b, a)


def detect_contradictions(steps: Sequence[str]) -> List[Tuple[int, int]]:
    """Index pairs of contradicting steps."""
    return [
        (i, j)
        for i in range(len(steps))
        for j in range(i + 1, len(steps))
        if steps_contradict(steps[i], steps[j])
    ]


def detect_fallacies(steps: Sequence[str]) -> List[str]:
    """One entry per (step, fallacy cue) hit."""
    found = []
    for step in steps:
        for name, pattern in FALLACY_PATTERNS.items():
            if pattern.search(step):
                found.append(name)
    return found


def has_causal_chain(steps: Sequence[str]) -> bool:
    return any(CAUSAL_CONNECTIVES.search(step) for step in steps)


# =============================================================================
# 4. SCORING
# =============================================================================

def score_logical_consistency(path: ReasoningPath) -> float:
    score = 1.0
    if detect_contradictions(path.steps):
        score -= 0.3
    score -= 0.1 * len(detect_fallacies(path.steps))
    if not has_causal_chain(path.steps):
        score -= 0.2
    return max(0.0, score)


def score_completeness(path: ReasoningPath) -> float:
    # because/since also feed the causal check in score_logical_consistency.
    score = 0.0
    if len(path.steps) >= 3:
        score += 0.3
    if len(path.steps) >= 5:
        score += 0.2
    if path.assumptions:
        score += 0.2
    if any(_CONCLUSIVE.search(s) for s in path.steps):
        score += 0.15
    if any(_JUSTIFYING.search(s) for s in path.steps):
        score += 0.15
    return min(1.0, score)


def score_simplicity(path: ReasoningPath) -> float:
    score = 1.0
    if len(path.steps) > 10:
        score -= 0.2
    if len(path.steps) > 15:
        score -= 0.3

    avg_length = sum(len(s) for s in path.steps) / len(path.steps)
    if avg_length > 200:
        score -= 0.2

    if any(_ORDINALS.search(s) for s in path.steps):
        score += 0.1

    return clamp(score)


@dataclass(frozen=True)
class PathScore:
    """Component scores for one path."""
    path: ReasoningPath
    logical_consistency: float
    completeness: float
    simplicity: float
    confidence: float
    total: float
    contradictions: Tuple[Tuple[int, int], ...] = ()
    fallacies: Tuple[str, ...] = ()

    def sort_key(self) -> Tuple[float, float, int]:
        # Rounded so float noise cannot break a genuine tie.
        return (-round(self.total, 9), -round(self.confidence, 9), self.path.strategy_order)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.path.strategy.value if self.path.strategy else None,
            "logical_consistency": round(self.logical_consistency, 4),
            "completeness": round(self.completeness, 4),
            "simplicity": round(self.simplicity, 4),
            "confidence": round(self.confidence, 4),
            "total": round(self.total, 4),
            "contradictions": [list(pair) for pair in self.contradictions],
            "fallacies": list(self.fallacies),
        }


def score_path(path: ReasoningPath) -> PathScore:
    logical = score_logical_consistency(path)
    completeness = score_completeness(path)
    simplicity = score_simplicity(path)

    return PathScore(
        path=path,
        logical_consistency=logical,
        completeness=completeness,
        simplicity=simplicity,
        confidence=path.confidence,
        total=logical * 0.4 + completeness * 0.3 + simplicity * 0.2 + path.confidence * 0.1,
        contradictions=tuple(detect_contradictions(path.steps)),
        fallacies=tuple(detect_fallacies(path.steps)),
    )


@dataclass(frozen=True)
class PathEvaluation:
    """Winner plus every candidate's scores, best first."""
    winner: ReasoningPath
    ranked: Tuple[PathScore, ...]

    @property
    def winner_score(self) -> PathScore:
        return self.ranked[0]


def evaluate_reasoning_paths(paths: Sequence[ReasoningPath]) -> PathEvaluation:
    """
    Score and rank paths.

    Highest total wins; ties go to higher confidence, then to the earlier
    strategy. Raises NoViableReasoningPathError for an empty candidate set.
    """
    if not paths:
        raise NoViableReasoningPathError("No reasoning paths to evaluate")

    scored = [score_path(p) for p in paths]
    ranked = sorted(enumerate(scored), key=lambda item: (*item[1].sort_key(), item[0]))
    ranked_scores = tuple(score for _, score in ranked)

    return PathEvaluation(winner=ranked_scores[0].path, ranked=ranked_scores)


# =============================================================================
# 5. SYNTHESIS
# =============================================================================

INSIGHT_PATTERNS = [
    re.compile(r"\bkey\s+insights?:\s*(.+)", re.IGNORECASE),
    re.compile(r"\bimportant(?:ly)?[:,]\s*(.+)", re.IGNORECASE),
    re.compile(r"\bnote\s+that\s+(.+)", re.IGNORECASE),
    re.compile(r"\binterestingly,?\s*(.+)", re.IGNORECASE),
]


def extract_insights(text: str) -> List[str]:
    """Insight phrases, each running to the end of its line."""
    found: List[Tuple[int, str]] = []
    for pattern in INSIGHT_PATTERNS:
        for match in pattern.finditer(text or ""):
            phrase = match.group(1).strip()
            if phrase:
                found.append((match.start(), phrase))

    found.sort(key=lambda item: item[0])
    return [phrase for _, phrase in found]


@dataclass(frozen=True)
class ReasonedResponse:
    conclusion: str
    confidence: float
    steps: Tuple[str, ...]
    assumptions: Tuple[str, ...] = ()
    insights: Tuple[str, ...] = ()
    synthesis_failed: bool = False


@dataclass(frozen=True)
class ReasoningOutcome:
    """Everything one engine run produced."""
    response: ReasonedResponse
    evaluation: PathEvaluation
    paths: Tuple[ReasoningPath, ...]
    dropped: Dict[str, str] = field(default_factory=dict)
    profile: Optional[ProcessingProfile] = None

    @property
    def strategy(self) -> Optional[Strategy]:
        return self.evaluation.winner.strategy


# =============================================================================
# 6. ENGINE
# =============================================================================

@dataclass
class EngineConfig:
    """Configuration for the reasoning path engine."""
    model_name: str
    max_tokens: int = 4096
    temperature: float = 0.7
    top_k: Optional[int] = None
    top_p: Optional[float] = None
    strategy_timeout: Optional[float] = None  # per strategy, seconds
    synthesis_max_tokens: int = 1000
    synthesis_temperature: float = 0.5
    strategies: Tuple[Strategy, ...] = tuple(Strategy)


class ReasoningPathEngine:
    """
    Fan out one invocation per strategy, fan back in, critique, synthesize.

    Usage:
        engine = ReasoningPathEngine(backend, EngineConfig(model_name="qwq"))
        result = await engine.reason(problem, knowledge)
        if result.is_ok():
            print(result.unwrap().response.conclusion)
    """

    def __init__(
        self,
        backend: InferenceBackend,
        config: EngineConfig,
        prompt_builder: PromptBuilder = build_strategy_prompt,
    ):
        self.backend = backend
        self.config = config
        self.prompt_builder = prompt_builder

    def _parameters(self, prompt: str, profile: Optional[ProcessingProfile]) -> Dict[str, Any]:
        return {
            "prompt": prompt,
            "max_tokens": profile.max_tokens(self.config.max_tokens) if profile else self.config.max_tokens,
            "temperature": profile.temperature if profile else self.config.temperature,
            "top_k": self.config.top_k,
            "top_p": self.config.top_p,
        }

    async def _run_strategy(
        self,
        strategy: Strategy,
        problem: Problem,
        knowledge: Knowledge,
        profile: Optional[ProcessingProfile],
    ) -> Result[ReasoningPath, Error]:
        prompt = self.prompt_builder(problem, knowledge, strategy)
        result = await self.backend.invoke(self.config.model_name, self._parameters(prompt, profile))
        if result.is_err():
            return result

        raw: RawOutput = result.unwrap()
        return parse_reasoning_path(raw.text, strategy, raw.confidence)

    async def _settle_strategies(
        self,
        problem: Problem,
        knowledge: Knowledge,
        profile: Optional[ProcessingProfile],
    ) -> Tuple[List[ReasoningPath], Dict[str, str]]:
        strategies = self.config.strategies
        results = await gather_settled(
            [self._run_strategy(s, problem, knowledge, profile) for s in strategies],
            timeout=self.config.strategy_timeout,
        )

        paths: List[ReasoningPath] = []
        dropped: Dict[str, str] = {}
        for strategy, result in zip(strategies, results):
            if result.is_ok():
                paths.append(result.unwrap())
            else:
                error = result.unwrap_err()
                dropped[strategy.value] = str(error)
                logger.warning(f"Dropping {strategy.value} strategy: {error}")

        return paths, dropped

    async def generate_reasoning_paths(
        self,
        problem: Problem,
        knowledge: Knowledge,
        profile: Optional[ProcessingProfile] = None,
    ) -> List[ReasoningPath]:
        """One path per strategy that succeeded, in strategy order."""
        paths, _ = await self._settle_strategies(problem, knowledge, profile)
        return paths

    async def generate_reasoned_response(
        self,
        evaluation: PathEvaluation,
        problem: Problem,
    ) -> ReasonedResponse:
        """Summarize the winning path; falls back to its last step if synthesis fails."""
        path = evaluation.winner
        prompt = build_synthesis_prompt(path, problem)

        text = ""
        try:
            result = await self.backend.invoke(self.config.model_name, {
                "prompt": prompt,
                "max_tokens": self.config.synthesis_max_tokens,
                "temperature": self.config.synthesis_temperature,
            })
            if result.is_ok():
                text = result.unwrap().text.strip()
            else:
                logger.warning(f"Synthesis failed: {result.unwrap_err()}")
        except Exception as e:
            logger.warning(f"Synthesis raised: {e}")

        return ReasonedResponse(
            conclusion=text or path.steps[-1],
            confidence=path.confidence,
            steps=path.steps,
            assumptions=path.assumptions,
            insights=tuple(extract_insights(text)),
            synthesis_failed=not text,
        )

    async def reason(
        self,
        problem: Problem,
        knowledge: Knowledge,
        profile: Optional[ProcessingProfile] = None,
    ) -> Result[ReasoningOutcome, Error]:
        """Run the whole engine. Err(NO_VIABLE_PATH) when every strategy failed."""
        paths, dropped = await self._settle_strategies(problem, knowledge, profile)

        try:
            evaluation = evaluate_reasoning_paths(paths)
        except NoViableReasoningPathError as e:
            return Err(Error(
                ErrorCode.NO_VIABLE_PATH,
                f"All {len(self.config.strategies)} strategies failed",
                details={"dropped": dropped},
                cause=e.error,
            ))

        winner = evaluation.winner_score
        logger.info(
            f"Selected {winner.path.strategy.value if winner.path.strategy else 'path'} "
            f"(score {winner.total:.3f}) from {len(paths)} paths"
        )

        response = await self.generate_reasoned_response(evaluation, problem)

        return Ok(ReasoningOutcome(
            response=response,
            evaluation=evaluation,
            paths=tuple(paths),
            dropped=dropped,
            profile=profile,
        ))
