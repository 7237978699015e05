"""
Quorum Server - FastAPI host for the model pipelines.

Architecture:
    Client Request -> Logging Middleware -> Model Router -> ModelRegistry
                                                               |
                                              ExecutionPipeline (per model)
                                                               |
                                              InferenceBackend (swappable)
"""

from quorum.server.config import ServerConfig, configure_logging
from quorum.server.app import create_app, QuorumServer

__all__ = [
    # Config
    "ServerConfig",
    "configure_logging",
    # App
    "create_app",
    "QuorumServer",
]
