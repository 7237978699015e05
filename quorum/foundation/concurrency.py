"""
Join-all combinator for fan-out/fan-in work.

    results = await gather_settled([invoke(a), invoke(b)], timeout=30)
    paths = [r.unwrap() for r in results if r.is_ok()]

Each child settles into a Result on its own: an exception, a per-task
timeout or a child cancelled from elsewhere becomes an Err in its slot and
never cancels its siblings. Cancelling the caller cancels every child and
re-raises asyncio.CancelledError.
"""

from __future__ import annotations
from typing import Any, Awaitable, Iterable, List, Optional, TypeVar
import asyncio
import logging

from quorum.foundation.types import Result, Ok, Err, Error, ErrorCode, ResultBase

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def _settle(awaitable: Awaitable[Any], timeout: Optional[float]) -> Result[Any, Error]:
    try:
        if timeout is None:
            value = await awaitable
        else:
            value = await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        return Err(Error(ErrorCode.TIMEOUT, f"Task timed out after {timeout}s"))

    if isinstance(value, ResultBase):
        return value
    return Ok(value)


def _as_result(outcome: Any) -> Result[Any, Error]:
    if isinstance(outcome, asyncio.CancelledError):
        return Err(Error(ErrorCode.CANCELLED, "Task was cancelled"))
    if isinstance(outcome, Exception):
        return Err(Error(ErrorCode.INVOCATION_FAILED, str(outcome) or type(outcome).__name__))
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


async def gather_settled(
    awaitables: Iterable[Awaitable[T]],
    timeout: Optional[float] = None,
) -> List[Result[T, Error]]:
    """
    Run awaitables concurrently and wait for all of them.

    Results come back in input order. Awaitables that already return a
    Result are passed through as-is; plain values are wrapped in Ok.
    """
    tasks = [asyncio.ensure_future(_settle(aw, timeout)) for aw in awaitables]
    if not tasks:
        return []

    try:
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise

    results = [_as_result(outcome) for outcome in outcomes]
    failed = sum(1 for r in results if r.is_err())
    if failed:
        logger.debug(f"gather_settled: {failed}/{len(results)} tasks failed")
    return results
