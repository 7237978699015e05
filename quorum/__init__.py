"""
Quorum - Resilient model execution and multi-path reasoning

Every model runs behind its own execution pipeline:
- Response cache keyed by request fingerprint
- Circuit breaker wrapping a bounded retry policy
- Confidence scoring and rolling metrics
- Degraded responses instead of exceptions

The reasoning model fans one problem out to four strategies, scores the
resulting paths and synthesizes an answer from the winner.

Components:
- foundation: types, pipeline, resilience, reasoning engine
- adapters: text, embedding, transcription and reasoning models
- server: FastAPI host
- interfaces: command line
"""

__version__ = "0.1.0"

# Lazy imports - only load when accessed
# This keeps `import quorum` free of the server stack

_lazy_imports = {}


def __getattr__(name):
    """Lazy loading of the public entry points."""
    if name in _lazy_imports:
        return _lazy_imports[name]

    # Foundation
    if name in ("Request", "Response", "ExecutionPipeline", "MockBackend", "HttpInferenceBackend"):
        from .foundation import Request, Response, ExecutionPipeline, MockBackend, HttpInferenceBackend
        _lazy_imports.update({
            "Request": Request,
            "Response": Response,
            "ExecutionPipeline": ExecutionPipeline,
            "MockBackend": MockBackend,
            "HttpInferenceBackend": HttpInferenceBackend,
        })
        return _lazy_imports[name]

    # Adapters
    if name in ("ModelRegistry", "create_pipeline", "MODEL_CATALOG"):
        from .adapters import ModelRegistry, create_pipeline, MODEL_CATALOG
        _lazy_imports.update({
            "ModelRegistry": ModelRegistry,
            "create_pipeline": create_pipeline,
            "MODEL_CATALOG": MODEL_CATALOG,
        })
        return _lazy_imports[name]

    # Server
    if name in ("create_app", "QuorumServer", "ServerConfig"):
        from .server import create_app, QuorumServer, ServerConfig
        _lazy_imports.update({
            "create_app": create_app,
            "QuorumServer": QuorumServer,
            "ServerConfig": ServerConfig,
        })
        return _lazy_imports[name]

    raise AttributeError(f"module 'quorum' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Foundation
    "Request",
    "Response",
    "ExecutionPipeline",
    "MockBackend",
    "HttpInferenceBackend",
    # Adapters
    "ModelRegistry",
    "create_pipeline",
    "MODEL_CATALOG",
    # Server
    "create_app",
    "QuorumServer",
    "ServerConfig",
]
