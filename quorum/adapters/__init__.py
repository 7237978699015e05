"""
Quorum model adapters

Each adapter is an independent type satisfying the ModelAdapter protocol:
- TextGenerationAdapter: chat completion (llama family)
- EmbeddingAdapter: embed / store / search (bge family)
- TranscriptionAdapter: speech to text (whisper family)
- ReasoningAdapter: multi-path reasoning engine (qwq family)
"""

from .catalog import MODEL_CATALOG, get_model_config
from .embedding import EmbeddingAdapter, VectorIndex, cosine_similarity
from .factory import ModelRegistry, create_adapter, create_pipeline
from .reasoning import ReasoningAdapter
from .text import TextGenerationAdapter
from .transcription import TranscriptionAdapter, transcription_confidence

__all__ = [
    "MODEL_CATALOG",
    "get_model_config",
    "TextGenerationAdapter",
    "EmbeddingAdapter",
    "VectorIndex",
    "cosine_similarity",
    "TranscriptionAdapter",
    "transcription_confidence",
    "ReasoningAdapter",
    "create_adapter",
    "create_pipeline",
    "ModelRegistry",
]
