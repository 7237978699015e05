"""
Exception taxonomy for the places where raising is the contract.

Internally the pipeline passes `Error` values around; these exceptions wrap
an `Error` so it can cross an API boundary that raises (the engine's
`evaluate_reasoning_paths`, the pipeline's deadline handling, the HTTP host,
`Response.raise_for_error` and the CLI that calls it).
"""

from __future__ import annotations
from typing import Dict, Optional, Type

from quorum.foundation.types import Error, ErrorCode


class QuorumError(Exception):
    """Base class for all quorum errors."""

    code: str = ErrorCode.UNKNOWN

    def __init__(self, message: str = "", error: Optional[Error] = None):
        self.error = error or Error(self.code, message or self.__class__.__name__)
        super().__init__(message or self.error.message)


class InputOptimizationError(QuorumError):
    """Input optimization failed before any invocation. Never retried."""
    code = ErrorCode.INPUT_OPTIMIZATION_FAILED


class InvocationError(QuorumError):
    """The inference backend failed. Retried up to the configured bound."""
    code = ErrorCode.INVOCATION_FAILED


class RetryExhaustedError(QuorumError):
    """Every retry attempt failed."""
    code = ErrorCode.RETRY_EXHAUSTED


class BreakerOpenError(QuorumError):
    """The circuit breaker rejected the call without invoking anything."""
    code = ErrorCode.BREAKER_OPEN


class CancellationError(QuorumError):
    """The caller's deadline expired or the work was abandoned."""
    code = ErrorCode.CANCELLED


class ParseError(QuorumError):
    """Raw strategy output could not be reduced to a non-empty path."""
    code = ErrorCode.PARSE_FAILED


class NoViableReasoningPathError(QuorumError):
    """Every reasoning strategy failed or produced nothing usable."""
    code = ErrorCode.NO_VIABLE_PATH


_BY_CODE: Dict[str, Type[QuorumError]] = {
    cls.code: cls
    for cls in (
        InputOptimizationError,
        InvocationError,
        RetryExhaustedError,
        BreakerOpenError,
        CancellationError,
        ParseError,
        NoViableReasoningPathError,
    )
}


def error_from(error: Error) -> QuorumError:
    """Build the matching exception for an Error value."""
    cls = _BY_CODE.get(error.code, QuorumError)
    return cls(error.message, error=error)
