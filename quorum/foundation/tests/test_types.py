"""
Types, errors and data model tests.

Run with: python -m pytest quorum/foundation/tests/test_types.py -v
"""

import pytest

from quorum.foundation.types import (
    Result, Ok, Err, Some, NONE, Error, ErrorCode, UnwrapError,
)
from quorum.foundation.errors import (
    QuorumError, CancellationError, NoViableReasoningPathError, BreakerOpenError, RetryExhaustedError,
    error_from,
)
from quorum.foundation.models import Request, Response, SearchResult, clamp


class TestResult:
    """Test Result and Option types."""

    def test_result_ok(self):
        """Test Ok result."""
        result: Result[int, Error] = Ok(42)
        assert result.is_ok()
        assert not result.is_err()
        assert result.unwrap() == 42

    def test_result_err(self):
        """Test Err result."""
        result: Result[int, Error] = Err(Error(ErrorCode.TIMEOUT, "too slow"))
        assert result.is_err()
        assert result.unwrap_or(7) == 7
        assert result.unwrap_err().code == ErrorCode.TIMEOUT
        with pytest.raises(UnwrapError):
            result.unwrap()

    def test_map_and_then(self):
        """Test chaining on both variants."""
        assert Ok(2).map(lambda x: x * 3).unwrap() == 6
        assert Ok(2).and_then(lambda x: Err(Error(ErrorCode.UNKNOWN, "no"))).is_err()
        assert Err(Error(ErrorCode.UNKNOWN, "no")).map(lambda x: x * 3).is_err()

    def test_option(self):
        """Test Some and NONE."""
        assert Some(1).is_some()
        assert Some(1).unwrap() == 1
        assert NONE.is_none()
        assert NONE.unwrap_or("x") == "x"
        assert list(NONE) == []
        with pytest.raises(UnwrapError):
            NONE.unwrap()


class TestError:
    """Test structured errors."""

    def test_chain_and_root(self):
        """Test cause chaining."""
        inner = Error(ErrorCode.INVOCATION_FAILED, "503 from backend")
        outer = inner.chain(ErrorCode.RETRY_EXHAUSTED, "All 3 attempts failed")

        assert outer.code == ErrorCode.RETRY_EXHAUSTED
        assert outer.cause is inner
        assert outer.root is inner
        assert "caused by" in str(outer)

    def test_error_from_maps_code_to_exception(self):
        """Test rebuilding exceptions from Error values."""
        assert isinstance(error_from(Error(ErrorCode.CANCELLED, "late")), CancellationError)
        assert isinstance(error_from(Error(ErrorCode.BREAKER_OPEN, "open")), BreakerOpenError)

        unknown = error_from(Error("SOMETHING_ELSE", "?"))
        assert type(unknown) is QuorumError
        assert unknown.error.code == "SOMETHING_ELSE"

    def test_exception_carries_error(self):
        """Test that exceptions default their Error from the class code."""
        e = NoViableReasoningPathError("nothing parsed")
        assert e.error.code == ErrorCode.NO_VIABLE_PATH
        assert str(e) == "nothing parsed"


class TestModels:
    """Test Request and Response."""

    def test_clamp(self):
        """Test score clamping."""
        assert clamp(1.7) == 1.0
        assert clamp(-0.2) == 0.0
        assert clamp(0.4) == 0.4

    def test_request_is_immutable(self):
        """Test that requests cannot be mutated."""
        request = Request(text="hello")
        with pytest.raises(Exception):
            request.text = "changed"

        rewritten = request.with_text("bye")
        assert rewritten.text == "bye"
        assert request.text == "hello"

    def test_response_confidence_clamped(self):
        """Test that confidence always lands in [0, 1]."""
        assert Response(model_id="m", confidence=3.0).confidence == 1.0
        assert Response(model_id="m", confidence=-1.0).confidence == 0.0

    def test_degraded_flag(self):
        """Test degraded detection through metadata."""
        assert not Response(model_id="m", text="ok").is_degraded
        assert Response(model_id="m", metadata={"error": ErrorCode.TIMEOUT}).is_degraded

    def test_to_dict(self):
        """Test serialization of search results."""
        response = Response(
            model_id="bge-large-en",
            search_results=[SearchResult(text="doc", score=0.9)],
        )
        data = response.to_dict()

        assert data["model_id"] == "bge-large-en"
        assert data["search_results"] == [{"text": "doc", "score": 0.9, "metadata": {}}]
        assert data["degraded"] is False

    def test_raise_for_error(self):
        """Test that a degraded response raises its error chain."""
        cause = Error(ErrorCode.INVOCATION_FAILED, "backend down")
        response = Response(
            model_id="m",
            metadata={"error": ErrorCode.RETRY_EXHAUSTED},
            error=cause.chain(ErrorCode.RETRY_EXHAUSTED, "All 3 attempts failed"),
        )

        with pytest.raises(RetryExhaustedError) as exc_info:
            response.raise_for_error()
        assert exc_info.value.error.root is cause
        assert "error" not in response.to_dict()

        Response(model_id="m", text="ok").raise_for_error()
