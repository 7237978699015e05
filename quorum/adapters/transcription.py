"""
Transcription adapter - forwards the audio payload as-is (no signal processing).
"""

import math
from typing import Any, Dict, List

from quorum.foundation.backend import InferenceBackend, RawOutput
from quorum.foundation.models import ModelConfig, ModelOutput, Request, clamp
from quorum.foundation.types import Result, Ok, Err, Error, ErrorCode

DEFAULT_SEGMENT_CONFIDENCE = 0.9


def transcription_confidence(text: str, segments: List[Dict[str, Any]]) -> float:
    """
    exp(mean avg_logprob) plus bonuses for speech in every segment,
    non-trivial length and no [inaudible] markers.
    """
    logprobs = [s["avg_logprob"] for s in segments if s.get("avg_logprob") is not None]
    base = math.exp(sum(logprobs) / len(logprobs)) if logprobs else DEFAULT_SEGMENT_CONFIDENCE

    score = base
    if segments and all(s.get("no_speech_prob", 0.0) < 0.1 for s in segments):
        score += 0.2
    if len(text) > 10:
        score += 0.1
    if "[inaudible]" not in text:
        score += 0.1
    return clamp(score)


class TranscriptionAdapter:
    """Speech to text for the whisper family."""

    def __init__(self, config: ModelConfig, backend: InferenceBackend):
        self.model_id = config.model_id
        self.config = config
        self.backend = backend

    def should_cache(self, request: Request) -> bool:
        return True

    async def process_core(self, request: Request) -> Result[ModelOutput, Error]:
        if not request.payload:
            return Err(Error(ErrorCode.INVALID_INPUT, "Transcription needs an audio payload"))

        context = request.context or {}
        result = await self.backend.invoke(self.config.model_name, {
            "audio": request.payload,
            "filename": context.get("filename", "audio.wav"),
            "language": context.get("language"),
            "temperature": self.config.temperature,
        })
        if result.is_err():
            return Err(result.unwrap_err())

        raw: RawOutput = result.unwrap()
        text = raw.text.strip()

        return Ok(ModelOutput(
            text=text,
            confidence=transcription_confidence(text, raw.segments),
            metadata={
                "language": raw.raw.get("language", context.get("language")),
                "segments": len(raw.segments),
                "duration": raw.raw.get("duration"),
            },
        ))
