"""
BACKEND - Inference backends

The pipeline treats model invocation as an opaque collaborator:

    await backend.invoke(model_name, parameters) -> Result[RawOutput, Error]

Parameter conventions (what the adapters send):
- "prompt" or "messages"  -> chat completion
- "input"                 -> embeddings
- "audio" (bytes)         -> transcription

Works with any OpenAI-compatible endpoint (llama.cpp server, vLLM, OpenAI).
A backend makes exactly one attempt per call; retrying is the pipeline's job.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import (
    Any, Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable,
)
import asyncio
import hashlib
import logging
import math
import os

import aiohttp

from quorum.foundation.types import Result, Ok, Err, Error, ErrorCode

logger = logging.getLogger(__name__)


@dataclass
class RawOutput:
    """What a backend returns. Opaque beyond these fields."""
    text: str = ""
    confidence: Optional[float] = None
    segments: List[Dict[str, Any]] = field(default_factory=list)
    embeddings: Optional[List[List[float]]] = None
    usage: Dict[str, int] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class InferenceBackend(Protocol):
    """Anything that can run a model."""

    async def invoke(
        self,
        model_name: str,
        parameters: Dict[str, Any],
    ) -> Result[RawOutput, Error]:
        ...


# =============================================================================
# HTTP BACKEND
# =============================================================================

@dataclass
class BackendConfig:
    """Connection settings for an OpenAI-compatible endpoint."""
    base_url: str = "http://localhost:8080/v1"  # llama.cpp default
    api_key: str = "not-needed"  # Not needed for local
    timeout: float = 120.0

    @classmethod
    def from_env(cls) -> BackendConfig:
        return cls(
            base_url=os.getenv("QUORUM_BACKEND_URL", "http://localhost:8080/v1"),
            api_key=os.getenv("QUORUM_API_KEY", "not-needed"),
            timeout=float(os.getenv("QUORUM_BACKEND_TIMEOUT", "120")),
        )


_STATUS_CODES = {
    408: ErrorCode.TIMEOUT,
    429: ErrorCode.RATE_LIMITED,
    502: ErrorCode.SERVICE_UNAVAILABLE,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.TIMEOUT,
}

_CHAT_OPTIONS = ("max_tokens", "temperature", "top_p", "top_k", "stop")


class HttpInferenceBackend:
    """
    Inference over an OpenAI-compatible HTTP API.

    Features:
    - One shared aiohttp session, created lazily
    - Chat, embeddings and transcription routes
    - HTTP/timeout/connection failures mapped to Error codes
    - Usage tracking
    """

    def __init__(self, config: Optional[BackendConfig] = None):
        self.config = config or BackendConfig()
        self._session: Optional[aiohttp.ClientSession] = None

        # Usage tracking
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        self.total_requests = 0
        self.failed_requests = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        """Close the session."""
        if self._session and not self._session.closed:
            await self._session.close()

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def invoke(
        self,
        model_name: str,
        parameters: Dict[str, Any],
    ) -> Result[RawOutput, Error]:
        """Route the call by the shape of `parameters`."""
        if "audio" in parameters:
            return await self._transcribe(model_name, parameters)
        if "input" in parameters:
            return await self._embed(model_name, parameters)
        if "prompt" in parameters or "messages" in parameters:
            return await self._chat(model_name, parameters)

        return Err(Error(
            ErrorCode.INVALID_INPUT,
            "parameters need one of: prompt, messages, input, audio",
            details={"keys": sorted(parameters)},
        ))

    async def _chat(self, model_name: str, parameters: Dict[str, Any]) -> Result[RawOutput, Error]:
        messages = parameters.get("messages")
        if messages is None:
            messages = []
            if parameters.get("system_prompt"):
                messages.append({"role": "system", "content": parameters["system_prompt"]})
            messages.append({"role": "user", "content": parameters["prompt"]})

        payload: Dict[str, Any] = {"model": model_name, "messages": messages}
        for key in _CHAT_OPTIONS:
            if parameters.get(key) is not None:
                payload[key] = parameters[key]

        result = await self._post("chat/completions", json=payload)
        if result.is_err():
            return result

        data = result.unwrap()
        choice = (data.get("choices") or [{}])[0]
        content = choice.get("message", {}).get("content") or choice.get("text", "")

        return Ok(RawOutput(
            text=content,
            confidence=data.get("confidence"),
            usage=data.get("usage", {}),
            raw=data,
        ))

    async def _embed(self, model_name: str, parameters: Dict[str, Any]) -> Result[RawOutput, Error]:
        texts = parameters["input"]
        if isinstance(texts, str):
            texts = [texts]

        result = await self._post("embeddings", json={"model": model_name, "input": texts})
        if result.is_err():
            return result

        data = result.unwrap()
        rows = sorted(data.get("data", []), key=lambda row: row.get("index", 0))

        return Ok(RawOutput(
            embeddings=[row.get("embedding", []) for row in rows],
            usage=data.get("usage", {}),
            raw=data,
        ))

    async def _transcribe(self, model_name: str, parameters: Dict[str, Any]) -> Result[RawOutput, Error]:
        form = aiohttp.FormData()
        form.add_field(
            "file",
            parameters["audio"],
            filename=parameters.get("filename", "audio.wav"),
            content_type="application/octet-stream",
        )
        form.add_field("model", model_name)
        form.add_field("response_format", "verbose_json")
        if parameters.get("language"):
            form.add_field("language", parameters["language"])
        if parameters.get("temperature") is not None:
            form.add_field("temperature", str(parameters["temperature"]))

        result = await self._post("audio/transcriptions", data=form)
        if result.is_err():
            return result

        data = result.unwrap()
        return Ok(RawOutput(
            text=data.get("text", ""),
            segments=data.get("segments", []),
            raw=data,
        ))

    async def _post(self, path: str, **kwargs: Any) -> Result[Dict[str, Any], Error]:
        """One POST to the endpoint; JSON body on 200, an Error otherwise."""
        session = await self._get_session()
        url = f"{self.config.base_url.rstrip('/')}/{path}"
        self.total_requests += 1

        try:
            async with session.post(url, headers=self._headers, **kwargs) as response:
                if response.status == 200:
                    try:
                        data = await response.json()
                    except (aiohttp.ContentTypeError, ValueError) as e:
                        self.failed_requests += 1
                        return Err(Error(ErrorCode.PARSE_FAILED, f"Backend returned an unreadable body: {e}"))
                    usage = data.get("usage", {})
                    self.total_prompt_tokens += usage.get("prompt_tokens", 0)
                    self.total_completion_tokens += usage.get("completion_tokens", 0)
                    return Ok(data)

                error_text = await response.text()
                self.failed_requests += 1
                return Err(Error(
                    _STATUS_CODES.get(response.status, ErrorCode.INVOCATION_FAILED),
                    f"Backend error: {response.status}",
                    details={"status": response.status, "response": error_text[:500]},
                ))

        except asyncio.TimeoutError:
            self.failed_requests += 1
            return Err(Error(
                ErrorCode.TIMEOUT,
                f"Backend request timed out after {self.config.timeout}s",
            ))

        except aiohttp.ClientError as e:
            self.failed_requests += 1
            return Err(Error(ErrorCode.CONNECTION_ERROR, f"Connection error: {e}"))

    def get_usage_stats(self) -> Dict[str, Any]:
        """Get usage statistics."""
        return {
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "total_prompt_tokens": self.total_prompt_tokens,
            "total_completion_tokens": self.total_completion_tokens,
            "total_tokens": self.total_prompt_tokens + self.total_completion_tokens,
            "success_rate": (self.total_requests - self.failed_requests) / max(1, self.total_requests),
        }


# =============================================================================
# MOCK BACKEND (for testing and demos)
# =============================================================================

Scripted = Union[str, RawOutput, Error, Exception]


def _prompt_of(parameters: Dict[str, Any]) -> str:
    if "prompt" in parameters:
        return str(parameters["prompt"])
    if "messages" in parameters:
        return "\n".join(str(m.get("content", "")) for m in parameters["messages"])
    if "input" in parameters:
        texts = parameters["input"]
        return texts if isinstance(texts, str) else "\n".join(texts)
    return ""


def fake_embedding(text: str, dimensions: int = 8) -> List[float]:
    """Deterministic unit vector derived from the text's digest."""
    digest = hashlib.sha256(text.encode()).digest()
    values = [(digest[i % len(digest)] / 255.0) - 0.5 for i in range(dimensions)]
    norm = math.sqrt(sum(v * v for v in values)) or 1.0
    return [v / norm for v in values]


class MockBackend:
    """
    Scripted backend for testing.

    Resolution order per call:
    1. `fail_first` calls fail with INVOCATION_FAILED
    2. the first rule whose substring appears in the prompt
    3. the next queued response
    4. the default (embeddings and transcriptions get synthetic output)

    A scripted str becomes RawOutput(text=...), an Error becomes Err(...),
    an Exception is raised.
    """

    def __init__(
        self,
        responses: Optional[List[Scripted]] = None,
        default: Scripted = "This is a mock response.",
        fail_first: int = 0,
        delay: float = 0.0,
        dimensions: int = 8,
    ):
        self._queue: List[Scripted] = list(responses or [])
        self._rules: List[Tuple[str, Scripted]] = []
        self.default = default
        self.fail_first = fail_first
        self.delay = delay
        self.dimensions = dimensions
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def queue(self, *responses: Scripted) -> MockBackend:
        self._queue.extend(responses)
        return self

    def when(self, substring: str, response: Scripted) -> MockBackend:
        """Answer any prompt containing `substring` with `response`."""
        self._rules.append((substring, response))
        return self

    async def invoke(
        self,
        model_name: str,
        parameters: Dict[str, Any],
    ) -> Result[RawOutput, Error]:
        self.calls.append((model_name, dict(parameters)))

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.call_count <= self.fail_first:
            return Err(Error(ErrorCode.INVOCATION_FAILED, f"Scripted failure {self.call_count}"))

        prompt = _prompt_of(parameters)
        for substring, scripted in self._rules:
            if substring in prompt:
                return self._resolve(scripted, parameters)

        if self._queue:
            return self._resolve(self._queue.pop(0), parameters)

        if "input" in parameters:
            texts = parameters["input"]
            texts = [texts] if isinstance(texts, str) else texts
            return Ok(RawOutput(
                embeddings=[fake_embedding(t, self.dimensions) for t in texts],
                usage={"prompt_tokens": sum(len(t) for t in texts) // 4},
            ))

        if "audio" in parameters:
            text = self.default if isinstance(self.default, str) else "mock transcription"
            return Ok(RawOutput(
                text=text,
                segments=[{"text": text, "avg_logprob": -0.1, "no_speech_prob": 0.02}],
            ))

        return self._resolve(self.default, parameters)

    def _resolve(self, scripted: Scripted, parameters: Dict[str, Any]) -> Result[RawOutput, Error]:
        if isinstance(scripted, Exception):
            raise scripted
        if isinstance(scripted, Error):
            return Err(scripted)
        if isinstance(scripted, RawOutput):
            return Ok(scripted)

        text = str(scripted)
        return Ok(RawOutput(
            text=text,
            usage={
                "prompt_tokens": len(_prompt_of(parameters)) // 4,
                "completion_tokens": len(text) // 4,
            },
        ))
