"""
Problem and knowledge extraction for the reasoning engine.

Both steps are cue-phrase heuristics over the request text; neither calls
a model.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple
import re

from quorum.foundation.models import Request

CONSTRAINT_PATTERNS = [
    re.compile(r"\bmust\s+(.+?)(?:[.,;]|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\bshould\s+(.+?)(?:[.,;]|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\bcannot\s+(.+?)(?:[.,;]|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\blimited\s+to\s+(.+?)(?:[.,;]|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\bwithin\s+(.+?)(?:[.,;]|$)", re.IGNORECASE | re.MULTILINE),
]

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_FACT_VERB = re.compile(r"\b(?:is|are)\b")
_PREDICATES = {"is", "are"}

Triple = Tuple[str, str, str]


@dataclass(frozen=True)
class Problem:
    """A reasoning problem: the statement plus what constrains it."""
    statement: str
    constraints: Tuple[str, ...] = ()
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Knowledge:
    """What we know going in, derived from the Problem."""
    context: str
    facts: Tuple[str, ...] = ()
    relationships: Tuple[Triple, ...] = ()


def extract_constraints(text: str) -> List[str]:
    """Constraint phrases introduced by must/should/cannot/limited to/within, in text order."""
    found: List[Tuple[int, str]] = []
    for pattern in CONSTRAINT_PATTERNS:
        for match in pattern.finditer(text or ""):
            phrase = match.group(1).strip()
            if phrase:
                found.append((match.start(), phrase))

    found.sort(key=lambda item: item[0])
    return [phrase for _, phrase in found]


def extract_problem(request: Request) -> Problem:
    statement = request.text or ""
    return Problem(
        statement=statement,
        constraints=tuple(extract_constraints(statement)),
        context=dict(request.context or {}),
    )


def _build_context(problem: Problem) -> str:
    context = f"Context for: {problem.statement}. Constraints: {', '.join(problem.constraints)}"
    if problem.context:
        extra = ", ".join(f"{k}={v}" for k, v in sorted(problem.context.items()))
        context += f". Additional: {extra}"
    return context


def _extract_facts(statement: str) -> List[str]:
    facts = []
    for sentence in _SENTENCE_SPLIT.split(statement):
        sentence = sentence.strip()
        if sentence and _FACT_VERB.search(sentence):
            facts.append(sentence)
    return facts


def _find_relationships(statement: str) -> List[Triple]:
    words = statement.split()
    triples = []
    for i in range(len(words) - 2):
        if words[i + 1] in _PREDICATES:
            triples.append((words[i], words[i + 1], words[i + 2]))
    return triples


def query_knowledge(problem: Problem) -> Knowledge:
    """
    Build the Knowledge for a problem.

    - context: statement, constraints and any request context
    - facts: sentences that state something ("is"/"are")
    - relationships: (subject, is|are, object) word triples
    """
    return Knowledge(
        context=_build_context(problem),
        facts=tuple(_extract_facts(problem.statement)),
        relationships=tuple(_find_relationships(problem.statement)),
    )
