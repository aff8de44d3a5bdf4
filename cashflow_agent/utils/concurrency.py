"""Concurrency helpers for request-scoped pipeline work"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Set, TypeVar

from cashflow_agent.domain.exceptions import GenerationInProgressError

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], timeout: float) -> T:
    """Await with an upper bound; raises asyncio.TimeoutError when exceeded"""
    return await asyncio.wait_for(awaitable, timeout=timeout)


class SingleFlight:
    """
    At most one in-flight operation per key within this process.

    A second caller for a busy key is rejected, not queued. Callers in other
    processes are excluded by the generation lease in the database.
    """

    def __init__(self) -> None:
        self._in_flight: Set[str] = set()

    def is_busy(self, key: str) -> bool:
        return key in self._in_flight

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        # No await between check and add
        if key in self._in_flight:
            raise GenerationInProgressError(f"Suggestion generation already running for {key}")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)


# Shared by every pipeline in the process
generation_guard = SingleFlight()
