"""Bounded producer/consumer handoff for streaming IMAP fetches."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

Emit = Callable[[T], Awaitable[None]]
Producer = Callable[[Emit[T]], Awaitable[None]]

_DONE = object()


class FetchStream(Generic[T]):
    """Run *producer* in a background task and hand its items to one consumer.

    The producer receives an ``emit`` coroutine and pushes items into a
    queue of at most *maxsize* entries.  Usage::

        async with FetchStream(producer) as stream:
            async for item in stream:
                ...
            await stream.wait()

    :meth:`wait` drains whatever the consumer left behind and awaits the
    producer exactly once; its outcome is cached for later calls.  Leaving
    the ``async with`` block calls it if the consumer did not, so the
    producer task never outlives the block.
    """

    def __init__(self, producer: Producer[T], *, maxsize: int = 10) -> None:
        self._producer = producer
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task[None] | None = None
        self._exhausted = False
        self._waited = False
        self._error: Exception | None = None

    async def __aenter__(self) -> FetchStream[T]:
        self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._task is None:
            return

        if exc_type is not None and not issubclass(exc_type, Exception):
            # Cancelled or interrupted: nobody is left to consume.
            self._task.cancel()
            await asyncio.wait({self._task})
            if not self._task.cancelled() and self._task.exception() is not None:
                logger.warning("fetch_producer_failed", error=str(self._task.exception()))
            return

        if self._waited:
            return
        try:
            await self.wait()
        except Exception as err:
            if exc_type is None:
                raise
            # The consumer's exception takes precedence.
            logger.warning("fetch_producer_failed", error=str(err))

    async def _run(self) -> None:
        # No end marker after cancellation: nobody is left to read it.
        try:
            await self._producer(self._queue.put)
        except Exception:
            await self._queue.put(_DONE)
            raise
        await self._queue.put(_DONE)

    def __aiter__(self) -> FetchStream[T]:
        return self

    async def __anext__(self) -> T:
        assert self._task is not None, "Stream not started"
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _DONE:
            self._exhausted = True
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def wait(self) -> None:
        """Drain leftover items, then await producer completion.

        Raises the producer's exception, if any.
        """
        assert self._task is not None, "Stream not started"
        if not self._waited:
            self._waited = True
            discarded = 0
            async for _ in self:
                discarded += 1
            if discarded:
                logger.debug("fetch_stream_drained", discarded=discarded)
            try:
                await self._task
            except Exception as exc:
                self._error = exc
        if self._error is not None:
            raise self._error
