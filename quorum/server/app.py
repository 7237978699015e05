"""
Quorum Server - FastAPI Application.

Serves every catalog model through its own execution pipeline.
"""

from __future__ import annotations
import base64
import binascii
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi import Response as HTTPResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from quorum import __version__
from quorum.adapters.factory import ModelRegistry
from quorum.foundation.backend import HttpInferenceBackend, InferenceBackend
from quorum.foundation.errors import CancellationError
from quorum.foundation.models import Request as ModelRequest
from quorum.server.config import ServerConfig
from quorum.server.middleware import LoggingMiddleware

logger = logging.getLogger(__name__)


# =============================================================================
# Request/Response Models
# =============================================================================

class ExecuteRequest(BaseModel):
    """Request model for a single model execution."""
    text: str = Field("", max_length=200_000)
    payload_base64: Optional[str] = Field(None, description="Binary payload, e.g. audio")
    context: Dict[str, Any] = Field(default_factory=dict)
    operation: Optional[str] = Field(None, description="Embedding models: embed, store, search")
    stream: bool = False
    cacheable: bool = True
    timeout: Optional[float] = Field(None, gt=0, description="Deadline in seconds")


class SearchHit(BaseModel):
    text: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExecuteResponse(BaseModel):
    """Response model for a model execution. Degraded responses return 200."""
    model_id: str
    text: str = ""
    confidence: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    embeddings: Optional[List[List[float]]] = None
    search_results: Optional[List[SearchHit]] = None
    created_at: float
    processing_time_ms: float = 0.0
    token_count: int = 0
    degraded: bool = False


class ModelInfo(BaseModel):
    model_id: str
    model_name: str
    kind: str
    max_tokens: int
    optimal_latency_ms: float
    input_cost_per_1k: float
    output_cost_per_1k: float


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    backend_url: str
    models_loaded: int
    uptime_seconds: float


# =============================================================================
# Application State
# =============================================================================

@dataclass
class AppState:
    """Application state container."""
    config: ServerConfig
    registry: ModelRegistry
    start_time: float = 0.0

    @property
    def uptime(self) -> float:
        return time.time() - self.start_time


async def get_state(request: Request) -> AppState:
    """Get application state from request."""
    return request.app.state.quorum


def _decode_payload(payload_base64: Optional[str]) -> Optional[bytes]:
    if payload_base64 is None:
        return None
    try:
        return base64.b64decode(payload_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="payload_base64 is not valid base64")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    config: Optional[ServerConfig] = None,
    backend: Optional[InferenceBackend] = None,
) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        config: Server configuration (uses env vars if not provided)
        backend: Inference backend (HTTP backend from config if not provided)

    Returns:
        Configured FastAPI application
    """
    config = config or ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager."""
        logger.info("Starting Quorum Server...")

        registry = ModelRegistry(
            backend if backend is not None else HttpInferenceBackend(config.backend),
            cache_config=config.cache,
            breaker_config=config.breaker,
            retry_config=config.retry,
            pipeline_config=config.pipeline,
        )
        app.state.quorum = AppState(config=config, registry=registry, start_time=time.time())
        logger.info(f"Quorum Server ready on {config.host}:{config.port} ({len(registry.catalog)} models)")

        yield

        logger.info("Shutting down Quorum Server...")
        await registry.close()

    app = FastAPI(
        title="Quorum API",
        description="Resilient model execution and multi-path reasoning",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=config.cors_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==========================================================================
    # Health & Info Routes
    # ==========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(state: AppState = Depends(get_state)) -> HealthResponse:
        """Check server health and get basic info."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            backend_url=state.config.backend.base_url,
            models_loaded=len(state.registry.get_health()),
            uptime_seconds=state.uptime,
        )

    @app.get("/", tags=["Health"])
    async def root() -> Dict[str, str]:
        """API root - basic info."""
        return {
            "name": "Quorum API",
            "version": __version__,
            "docs": "/docs",
        }

    # ==========================================================================
    # Model Routes
    # ==========================================================================

    @app.get("/v1/models", response_model=List[ModelInfo], tags=["Models"])
    async def list_models(state: AppState = Depends(get_state)) -> List[ModelInfo]:
        """List every model in the catalog."""
        return [
            ModelInfo(
                model_id=m.model_id,
                model_name=m.model_name,
                kind=m.kind.value,
                max_tokens=m.max_tokens,
                optimal_latency_ms=m.optimal_latency_ms,
                input_cost_per_1k=m.input_cost_per_1k,
                output_cost_per_1k=m.output_cost_per_1k,
            )
            for m in state.registry.list_models()
        ]

    @app.post("/v1/models/{model_id}/execute", response_model=ExecuteResponse, tags=["Models"])
    async def execute(
        model_id: str,
        body: ExecuteRequest,
        http_response: HTTPResponse,
        state: AppState = Depends(get_state),
    ) -> ExecuteResponse:
        """
        Run one request through the model's pipeline.

        Failures come back as a degraded response (`degraded: true`,
        `metadata.error`). Only an expired deadline is an HTTP error (504).
        The `X-Degraded` header mirrors `degraded`; `X-Error-Code` carries
        the top-level error code when set.
        """
        pipeline = state.registry.get(model_id)
        if pipeline.is_none():
            raise HTTPException(status_code=404, detail=f"Unknown model: {model_id}")

        request = ModelRequest(
            text=body.text,
            payload=_decode_payload(body.payload_base64),
            context=body.context,
            operation=body.operation,
            stream=body.stream,
            cacheable=body.cacheable,
        )

        try:
            response = await pipeline.unwrap().execute(request, timeout=body.timeout)
        except CancellationError as e:
            raise HTTPException(status_code=504, detail=str(e))

        http_response.headers["X-Degraded"] = "true" if response.is_degraded else "false"
        if response.error is not None:
            http_response.headers["X-Error-Code"] = response.error.code

        return ExecuteResponse(**response.to_dict())

    @app.get("/v1/models/{model_id}/health", tags=["Models"])
    async def model_health(
        model_id: str,
        state: AppState = Depends(get_state),
    ) -> Dict[str, Any]:
        """Breaker, cache and metrics state for one model."""
        pipeline = state.registry.get(model_id)
        if pipeline.is_none():
            raise HTTPException(status_code=404, detail=f"Unknown model: {model_id}")
        return pipeline.unwrap().get_health()

    return app


# =============================================================================
# Server Runner
# =============================================================================

class QuorumServer:
    """
    Quorum Server wrapper for easy deployment.

    Usage:
        server = QuorumServer()
        server.run()

    Or for production:
        server = QuorumServer.production()
        server.run()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        backend: Optional[InferenceBackend] = None,
    ):
        self.config = config or ServerConfig.from_env()
        self.app = create_app(self.config, backend)

    @classmethod
    def development(cls) -> QuorumServer:
        """Create development server."""
        return cls(ServerConfig.development())

    @classmethod
    def production(cls) -> QuorumServer:
        """Create production server."""
        return cls(ServerConfig.production())

    def run(self) -> None:
        """Run the server."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )

    async def run_async(self) -> None:
        """Run server asynchronously."""
        import uvicorn

        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )
        server = uvicorn.Server(config)
        await server.serve()
