"""Shared concurrency primitives for the retrieval fan-out.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped
   in a semaphore acquire/release and an optional per-call timeout.

2. **parallel_search** -- the fan-out-then-collect pattern used by the
   card retriever: dispatch N queries in parallel, keep each query's
   results in input order, and turn failures into empty results.

Semaphores are created per request by the caller.  Nothing here holds
state between deck builds.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from deckbuilder.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    timeout: float | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently under a semaphore.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Bounds how many awaitables run at the same time.
    timeout:
        Optional upper bound in seconds for each awaitable.  A call that
        exceeds it surfaces as :class:`asyncio.TimeoutError`.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            if timeout is None:
                return await coro
            return await asyncio.wait_for(coro, timeout=timeout)

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def parallel_search(
    search_fn: Callable[[str], Awaitable[list[Any]]],
    queries: list[str],
    semaphore: asyncio.Semaphore,
    timeout: float | None = None,
    logger: structlog.BoundLogger | None = None,
    error_msg: str = "search_query_failed",
) -> tuple[list[list[Any]], int]:
    """Execute one search per query string in parallel.

    A query that raises or times out is logged and contributes an empty
    list; it never aborts the other queries.

    Parameters
    ----------
    search_fn:
        Async function called as ``search_fn(query)``.
    queries:
        Query strings, one call each.
    semaphore:
        Request-scoped concurrency bound.
    timeout:
        Per-query timeout in seconds.
    logger:
        Optional structured logger for warnings on failures.
    error_msg:
        Log event name for failed queries.

    Returns
    -------
    tuple[list[list[Any]], int]
        Per-query result lists in input order, and the number of failed
        queries.
    """
    if logger is None:
        logger = _logger

    raw_results = await throttled_gather(
        [search_fn(q) for q in queries],
        semaphore=semaphore,
        timeout=timeout,
        return_exceptions=True,
    )

    per_query: list[list[Any]] = []
    failures = 0
    for query, result in zip(queries, raw_results):
        if isinstance(result, BaseException):
            failures += 1
            logger.warning(
                error_msg,
                query=query,
                error_type=type(result).__name__,
                error=str(result) or "timeout",
            )
            per_query.append([])
        else:
            per_query.append(list(result))

    return per_query, failures
