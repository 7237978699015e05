"""
Logging Middleware - one access line per request, tagged with the model.
"""

from __future__ import annotations
import logging
import re
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

_MODEL_PATH = re.compile(r"^/v1/models/(?P<model_id>[^/]+)/")


def model_id_of(path: str) -> Optional[str]:
    """The model id from a per-model route, None for anything else."""
    match = _MODEL_PATH.match(path)
    return match.group("model_id") if match else None


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Access log for the model routes.

    A degraded execution is a 200 with `X-Degraded: true` set by the route;
    it is logged at WARNING alongside 4xx/5xx so failing models stand out
    in a plain INFO log. Per-model requests echo the id in `X-Model-Id`.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        start = time.perf_counter()
        model_id = model_id_of(request.url.path)

        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        degraded = response.headers.get("X-Degraded") == "true"

        line = f"{request.method} {request.url.path} {response.status_code}"
        if model_id:
            line += f" model={model_id}"
            response.headers["X-Model-Id"] = model_id
        if degraded:
            line += f" degraded error={response.headers.get('X-Error-Code', 'unknown')}"
        line += f" {duration_ms:.1f}ms"

        level = logging.WARNING if degraded or response.status_code >= 400 else logging.INFO
        logger.log(level, line)

        response.headers["X-Response-Time"] = f"{duration_ms:.1f}ms"
        return response
