"""Server middleware."""

from quorum.server.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
