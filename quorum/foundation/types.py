"""
CORE TYPES - Result, Option and structured errors

Every fallible step of the execution pipeline returns a Result instead of
raising, so the pipeline can always decide what a failure means (retry,
trip the breaker, degrade the response) in one place.

Usage:
    async def invoke(...) -> Result[RawOutput, Error]:
        if response.status != 200:
            return Err(Error(ErrorCode.INVOCATION_FAILED, "bad status"))
        return Ok(raw)

    result = await backend.invoke("model", {"prompt": "hi"})
    if result.is_err():
        logger.warning(f"Invocation failed: {result.unwrap_err()}")
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import (
    TypeVar, Generic, Callable, Union, Iterator,
    Optional, Any,
)

T = TypeVar('T')  # Success type
E = TypeVar('E')  # Error type
U = TypeVar('U')  # Mapped type


# =============================================================================
# RESULT TYPE
# =============================================================================

class ResultBase(ABC, Generic[T, E]):
    """
    Base class for Result type.

    A Result is either Ok (success) or Err (failure).
    """

    @abstractmethod
    def is_ok(self) -> bool:
        ...

    @abstractmethod
    def is_err(self) -> bool:
        ...

    @abstractmethod
    def map(self, fn: Callable[[T], U]) -> Result[U, E]:
        """Maps the success value, leaving error unchanged."""
        ...

    @abstractmethod
    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chains operations that return Result."""
        ...

    @abstractmethod
    def unwrap(self) -> T:
        """Returns value or raises UnwrapError."""
        ...

    @abstractmethod
    def unwrap_or(self, default: T) -> T:
        ...


@dataclass(frozen=True, slots=True)
class Ok(ResultBase[T, E]):
    """Success variant of Result."""
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def map(self, fn: Callable[[T], U]) -> Result[U, E]:
        return Ok(fn(self.value))

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return fn(self.value)

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_err(self) -> E:
        raise UnwrapError(f"Called unwrap_err on Ok: {self.value!r}")

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err(ResultBase[T, E]):
    """Error variant of Result."""
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def map(self, fn: Callable[[T], U]) -> Result[U, E]:
        return Err(self.error)

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return Err(self.error)

    def unwrap(self) -> T:
        raise UnwrapError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_err(self) -> E:
        return self.error

    def __repr__(self) -> str:
        return f"Err({self.error!r})"

    def __bool__(self) -> bool:
        return False


Result = Union[Ok[T, E], Err[T, E]]


class UnwrapError(Exception):
    """Raised when unwrap is called on Err or NONE."""
    pass


# =============================================================================
# OPTION TYPE
# =============================================================================

@dataclass(frozen=True, slots=True)
class Some(Generic[T]):
    """An Option holding a value."""
    value: T

    def is_some(self) -> bool:
        return True

    def is_none(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def __repr__(self) -> str:
        return f"Some({self.value!r})"

    def __bool__(self) -> bool:
        return True

    def __iter__(self) -> Iterator[T]:
        yield self.value


class _None:
    """Empty Option. Singleton."""
    _instance: Optional[_None] = None

    def __new__(cls) -> _None:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def is_some(self) -> bool:
        return False

    def is_none(self) -> bool:
        return True

    def unwrap(self) -> Any:
        raise UnwrapError("Called unwrap on NONE")

    def unwrap_or(self, default: T) -> T:
        return default

    def __repr__(self) -> str:
        return "NONE"

    def __bool__(self) -> bool:
        return False

    def __iter__(self) -> Iterator[Any]:
        return iter([])


NONE: _None = _None()

Option = Union[Some[T], _None]


# =============================================================================
# ERROR TYPES
# =============================================================================

@dataclass(frozen=True)
class Error:
    """
    Structured error value.

    `cause` chains errors, e.g. RETRY_EXHAUSTED caused by the final
    INVOCATION_FAILED.
    """
    code: str
    message: str
    details: Optional[dict] = None
    cause: Optional[Error] = None

    def chain(self, code: str, message: str) -> Error:
        """Create a new error with this one as the cause."""
        return Error(code=code, message=message, cause=self)

    @property
    def root(self) -> Error:
        """The innermost cause."""
        error = self
        while error.cause is not None:
            error = error.cause
        return error

    def __str__(self) -> str:
        if self.cause:
            return f"[{self.code}] {self.message} (caused by: {self.cause})"
        return f"[{self.code}] {self.message}"


class ErrorCode:
    # General
    UNKNOWN = "UNKNOWN"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Pipeline stages
    INPUT_OPTIMIZATION_FAILED = "INPUT_OPTIMIZATION_FAILED"
    INVOCATION_FAILED = "INVOCATION_FAILED"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    BREAKER_OPEN = "BREAKER_OPEN"
    CANCELLED = "CANCELLED"

    # Transport
    TIMEOUT = "TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Reasoning
    PARSE_FAILED = "PARSE_FAILED"
    NO_VIABLE_PATH = "NO_VIABLE_PATH"
