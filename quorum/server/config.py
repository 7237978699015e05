"""
Server Configuration - Backend connection and per-model resilience settings.

Supports environment variables for all deployment-specific configuration.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from quorum.foundation.backend import BackendConfig
from quorum.foundation.cache import CacheConfig
from quorum.foundation.pipeline import PipelineConfig
from quorum.foundation.resilience import CircuitBreakerConfig, RetryConfig


@dataclass
class ServerConfig:
    """Complete server configuration."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1
    debug: bool = False

    # CORS settings
    cors_origins: tuple = ("*",)
    cors_credentials: bool = True

    # Component configs
    backend: BackendConfig = field(default_factory=BackendConfig.from_env)
    cache: CacheConfig = field(default_factory=CacheConfig.from_env)
    breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig.from_env)
    retry: RetryConfig = field(default_factory=RetryConfig.from_env)

    # Deadline applied to every execute call unless the request sets one
    request_timeout: Optional[float] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def pipeline(self) -> PipelineConfig:
        return PipelineConfig(default_timeout=self.request_timeout)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Create complete config from environment variables."""
        timeout = os.getenv("QUORUM_REQUEST_TIMEOUT")
        return cls(
            host=os.getenv("SERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("SERVER_PORT", "8000")),
            workers=int(os.getenv("SERVER_WORKERS", "1")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            request_timeout=float(timeout) if timeout else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def development(cls) -> ServerConfig:
        """Development configuration with sensible defaults."""
        return cls(
            debug=True,
            log_level="DEBUG",
            backend=BackendConfig(),
            retry=RetryConfig(max_attempts=2),
        )

    @classmethod
    def production(cls) -> ServerConfig:
        """Production configuration from environment."""
        config = cls.from_env()

        if config.request_timeout is None:
            config.request_timeout = 120.0

        return config


def configure_logging(config: ServerConfig) -> None:
    """Apply the configured level and format to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format,
        force=True,
    )
