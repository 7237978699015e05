"""
API Integration Tests.

Tests for the FastAPI server endpoints against a scripted backend.
"""

import base64
import logging

import pytest
from fastapi.testclient import TestClient

from quorum.foundation.backend import BackendConfig, MockBackend
from quorum.foundation.resilience import RetryConfig
from quorum.server.app import create_app
from quorum.server.config import ServerConfig
from quorum.server.middleware.logging import model_id_of


def make_config(**overrides):
    settings = dict(
        debug=True,
        backend=BackendConfig(base_url="http://localhost:9999/v1"),  # Won't be used in tests
        retry=RetryConfig(max_attempts=1),
    )
    settings.update(overrides)
    return ServerConfig(**settings)


@pytest.fixture
def config():
    """Create test configuration."""
    return make_config()


@pytest.fixture
def backend():
    """Create scripted backend."""
    return MockBackend()


@pytest.fixture
def app(config, backend):
    """Create test application."""
    return create_app(config, backend=backend)


@pytest.fixture
def client(app):
    """Create test client."""
    with TestClient(app) as client:
        yield client


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health(self, client):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["backend_url"] == "http://localhost:9999/v1"
        assert data["models_loaded"] == 0
        assert "version" in data

    def test_root(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "Quorum API"
        assert data["docs"] == "/docs"

    def test_response_time_header(self, client):
        """Test that the logging middleware stamps durations."""
        response = client.get("/health")
        assert response.headers["X-Response-Time"].endswith("ms")
        assert "X-Model-Id" not in response.headers


class TestModelEndpoints:
    """Tests for model listing and execution."""

    def test_list_models(self, client):
        """Test the catalog listing."""
        response = client.get("/v1/models")
        assert response.status_code == 200

        models = {m["model_id"]: m for m in response.json()}
        assert len(models) == 8
        assert models["bge-large-en"]["kind"] == "embedding"
        assert models["qwq-32b-preview"]["kind"] == "reasoning"

    def test_execute(self, client):
        """Test a successful text generation."""
        response = client.post("/v1/models/llama-8b/execute", json={"text": "Hello"})
        assert response.status_code == 200

        data = response.json()
        assert data["model_id"] == "llama-8b"
        assert data["text"] == "This is a mock response."
        assert data["degraded"] is False
        assert data["metadata"]["cache_hit"] is False
        assert 0.0 <= data["confidence"] <= 1.0
        assert response.headers["X-Model-Id"] == "llama-8b"
        assert response.headers["X-Degraded"] == "false"
        assert "X-Error-Code" not in response.headers

    def test_execute_cache_hit(self, client, backend):
        """Test that an identical request is served from the cache."""
        client.post("/v1/models/llama-8b/execute", json={"text": "Hello"})
        data = client.post("/v1/models/llama-8b/execute", json={"text": "Hello"}).json()

        assert data["metadata"]["cache_hit"] is True
        assert backend.call_count == 1

    def test_unknown_model(self, client):
        """Test 404 for ids outside the catalog."""
        response = client.post("/v1/models/gpt-unknown/execute", json={"text": "Hello"})
        assert response.status_code == 404

    def test_invalid_payload(self, client):
        """Test 400 for a payload that is not base64."""
        response = client.post(
            "/v1/models/whisper-large-v3/execute",
            json={"payload_base64": "not base64!!"},
        )
        assert response.status_code == 400

    def test_invalid_timeout(self, client):
        """Test request validation."""
        response = client.post("/v1/models/llama-8b/execute", json={"text": "Hi", "timeout": -1})
        assert response.status_code == 422

    def test_transcription_payload(self, client, backend):
        """Test that decoded audio reaches the backend."""
        audio = base64.b64encode(b"RIFF....WAVE").decode()
        response = client.post("/v1/models/whisper-large-v3/execute", json={"payload_base64": audio})

        assert response.status_code == 200
        assert response.json()["text"] == "This is a mock response."
        assert backend.calls[0][1]["audio"] == b"RIFF....WAVE"

    def test_store_then_search(self, client):
        """Test the embedding index across requests."""
        texts = ["Redis is an in-memory store", "Postgres is a relational database"]
        stored = client.post(
            "/v1/models/bge-large-en/execute",
            json={"operation": "store", "context": {"texts": texts}},
        )
        assert stored.json()["metadata"]["index_size"] == 2

        found = client.post(
            "/v1/models/bge-large-en/execute",
            json={"text": texts[0], "operation": "search", "context": {"top_k": 1}},
        ).json()

        assert len(found["search_results"]) == 1
        assert found["search_results"][0]["text"] == texts[0]
        assert found["search_results"][0]["score"] == pytest.approx(1.0)

    def test_model_health(self, client):
        """Test per-model breaker and metrics state."""
        client.post("/v1/models/llama-1b/execute", json={"text": "Hello"})
        response = client.get("/v1/models/llama-1b/health")
        assert response.status_code == 200

        data = response.json()
        assert data["model_id"] == "llama-1b"
        assert data["breaker"]["state"] == "CLOSED"
        assert data["metrics"]["total_requests"] == 1

    def test_model_health_unknown(self, client):
        """Test 404 for health of an unknown model."""
        assert client.get("/v1/models/nope/health").status_code == 404


class TestFailureModes:
    """Tests for degraded responses and deadlines."""

    def test_degraded_is_ok(self, caplog):
        """Test that backend failures return 200 with degraded set."""
        caplog.set_level(logging.INFO, logger="quorum.server.middleware.logging")
        app = create_app(make_config(), backend=MockBackend(fail_first=100))
        with TestClient(app) as client:
            response = client.post("/v1/models/llama-8b/execute", json={"text": "Hello"})

        assert response.status_code == 200
        data = response.json()
        assert data["degraded"] is True
        assert data["confidence"] == 0.0
        assert "error" in data["metadata"]
        assert response.headers["X-Degraded"] == "true"
        assert response.headers["X-Error-Code"] == "RETRY_EXHAUSTED"

        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING
                    and r.name == "quorum.server.middleware.logging"]
        assert len(warnings) == 1
        assert "model=llama-8b" in warnings[0]
        assert "degraded error=RETRY_EXHAUSTED" in warnings[0]

    def test_deadline_is_504(self):
        """Test that an expired request deadline maps to gateway timeout."""
        app = create_app(make_config(), backend=MockBackend(delay=1.0))
        with TestClient(app) as client:
            response = client.post(
                "/v1/models/llama-8b/execute",
                json={"text": "Hello", "timeout": 0.05},
            )

        assert response.status_code == 504

    def test_configured_deadline(self):
        """Test the server-wide request timeout."""
        app = create_app(make_config(request_timeout=0.05), backend=MockBackend(delay=1.0))
        with TestClient(app) as client:
            response = client.post("/v1/models/llama-8b/execute", json={"text": "Hello"})

        assert response.status_code == 504


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_from_env(self, monkeypatch):
        """Test environment variables."""
        monkeypatch.setenv("SERVER_PORT", "9100")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("QUORUM_REQUEST_TIMEOUT", "30")

        config = ServerConfig.from_env()

        assert config.port == 9100
        assert config.debug is True
        assert config.request_timeout == 30.0
        assert config.pipeline.default_timeout == 30.0

    def test_production_default_timeout(self, monkeypatch):
        """Test that production always has a deadline."""
        monkeypatch.delenv("QUORUM_REQUEST_TIMEOUT", raising=False)
        assert ServerConfig.production().request_timeout == 120.0


class TestLoggingMiddleware:
    """Tests for the access log."""

    def test_model_id_of(self):
        """Test extraction from per-model routes only."""
        assert model_id_of("/v1/models/llama-8b/execute") == "llama-8b"
        assert model_id_of("/v1/models/bge-large-en/health") == "bge-large-en"
        assert model_id_of("/v1/models") is None
        assert model_id_of("/health") is None

    def test_success_logs_info(self, client, caplog):
        """Test the access line for a healthy execution."""
        caplog.set_level(logging.INFO, logger="quorum.server.middleware.logging")
        client.post("/v1/models/llama-1b/execute", json={"text": "Hello"})

        records = [r for r in caplog.records if r.name == "quorum.server.middleware.logging"]
        assert len(records) == 1
        assert records[0].levelno == logging.INFO
        assert records[0].getMessage().startswith("POST /v1/models/llama-1b/execute 200 model=llama-1b")

    def test_unknown_model_logs_warning(self, client, caplog):
        """Test that 404s are warnings and still carry the id."""
        caplog.set_level(logging.INFO, logger="quorum.server.middleware.logging")
        response = client.post("/v1/models/nope/execute", json={"text": "Hello"})

        assert response.headers["X-Model-Id"] == "nope"
        records = [r for r in caplog.records if r.name == "quorum.server.middleware.logging"]
        assert records[-1].levelno == logging.WARNING
        assert "404 model=nope" in records[-1].getMessage()
