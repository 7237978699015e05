"""
Text generation adapter - system prompt + user text through chat completion.
"""

import re
from typing import Any, Dict

from quorum.foundation.backend import InferenceBackend
from quorum.foundation.models import ModelConfig, ModelOutput, Request
from quorum.foundation.types import Result, Ok, Error


class TextGenerationAdapter:
    """Plain text generation for the llama family."""

    _SPACES = re.compile(r"[ \t]{2,}")

    def __init__(self, config: ModelConfig, backend: InferenceBackend):
        self.model_id = config.model_id
        self.config = config
        self.backend = backend

    def should_cache(self, request: Request) -> bool:
        return True

    def _parameters(self, request: Request) -> Dict[str, Any]:
        context = request.context or {}
        return {
            "prompt": request.text,
            "system_prompt": context.get("system_prompt", self.config.system_prompt),
            "max_tokens": context.get("max_tokens", self.config.max_tokens),
            "temperature": context.get("temperature", self.config.temperature),
            "top_p": self.config.top_p,
            "top_k": self.config.top_k,
        }

    async def process_core(self, request: Request) -> Result[ModelOutput, Error]:
        result = await self.backend.invoke(self.config.model_name, self._parameters(request))
        if result.is_err():
            return result

        raw = result.unwrap()
        text = self._SPACES.sub(" ", raw.text).strip()

        return Ok(ModelOutput(
            text=text,
            confidence=raw.confidence,
            metadata={"model": self.config.model_name},
            usage=dict(raw.usage),
        ))
