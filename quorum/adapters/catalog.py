"""
Model catalog - static configuration for every known model identity.

Model names are the ones an OpenAI-compatible server would expose; point
QUORUM_BACKEND_URL at a server that serves them (or override model_name).
"""

from dataclasses import replace
from typing import Dict, Optional

from quorum.foundation.models import ModelConfig, ModelKind


MODEL_CATALOG: Dict[str, ModelConfig] = {
    "llama-1b": ModelConfig(
        model_id="llama-1b",
        model_name="llama-3.2-1b-instruct",
        kind=ModelKind.TEXT,
        max_tokens=512,  # Keep small for speed
        temperature=0.5,
        optimal_latency_ms=300.0,
        input_cost_per_1k=0.00001,
        output_cost_per_1k=0.00002,
    ),
    "llama-3b": ModelConfig(
        model_id="llama-3b",
        model_name="llama-3.2-3b-instruct",
        kind=ModelKind.TEXT,
        max_tokens=2048,
        temperature=0.8,
        optimal_latency_ms=800.0,
        system_prompt="Explain complex topics in simple, accessible terms.",
        input_cost_per_1k=0.00002,
        output_cost_per_1k=0.00004,
    ),
    "llama-8b": ModelConfig(
        model_id="llama-8b",
        model_name="llama-3.1-8b-instruct",
        kind=ModelKind.TEXT,
        max_tokens=4096,
        temperature=0.9,
        optimal_latency_ms=1500.0,
        system_prompt="You are a friendly, approachable assistant who gets things done.",
        input_cost_per_1k=0.00005,
        output_cost_per_1k=0.0001,
    ),
    "llama-70b": ModelConfig(
        model_id="llama-70b",
        model_name="llama-3.1-70b-instruct",
        kind=ModelKind.TEXT,
        max_tokens=8192,
        temperature=0.8,
        optimal_latency_ms=5000.0,
        system_prompt="You are an expert assistant with deep industry knowledge.",
        input_cost_per_1k=0.0006,
        output_cost_per_1k=0.0008,
    ),
    "bge-large-en": ModelConfig(
        model_id="bge-large-en",
        model_name="bge-large-en-v1.5",
        kind=ModelKind.EMBEDDING,
        max_tokens=512,
        temperature=0.0,
        optimal_latency_ms=500.0,
        dimensions=1024,
        max_batch_size=100,
        similarity_threshold=0.85,
        input_cost_per_1k=0.00002,
    ),
    "whisper-large-v3": ModelConfig(
        model_id="whisper-large-v3",
        model_name="whisper-large-v3",
        kind=ModelKind.TRANSCRIPTION,
        max_tokens=4096,
        temperature=0.0,  # Low for accuracy
        optimal_latency_ms=3000.0,
        output_cost_per_1k=0.0001,
    ),
    "whisper-tiny": ModelConfig(
        model_id="whisper-tiny",
        model_name="whisper-tiny-en",
        kind=ModelKind.TRANSCRIPTION,
        max_tokens=1024,
        temperature=0.3,  # Trades accuracy for speed
        optimal_latency_ms=500.0,
        output_cost_per_1k=0.00002,
    ),
    "qwq-32b-preview": ModelConfig(
        model_id="qwq-32b-preview",
        model_name="qwq-32b-preview",
        kind=ModelKind.REASONING,
        max_tokens=32768,
        temperature=0.7,
        optimal_latency_ms=30000.0,
        top_k=40,
        top_p=0.9,
        input_cost_per_1k=0.0004,
        output_cost_per_1k=0.0008,
    ),
}


def get_model_config(model_id: str, model_name: Optional[str] = None) -> Optional[ModelConfig]:
    """Catalog entry for `model_id`, optionally pointed at a different served model name."""
    config = MODEL_CATALOG.get(model_id)
    if config is not None and model_name:
        config = replace(config, model_name=model_name)
    return config
