"""Coalesce a fast async stream into at most one batch per interval."""

import asyncio
import threading
from typing import Any, AsyncIterable, AsyncIterator, List, Optional


class _Failure:
    def __init__(self, error: Exception):
        self.error = error


_END = object()


def _is_set(cancellation: Optional[threading.Event]) -> bool:
    return cancellation is not None and cancellation.is_set()


async def throttle(
    stream: AsyncIterable[Any],
    interval: float,
    cancellation: Optional[threading.Event] = None,
) -> AsyncIterator[List[Any]]:
    """
    Re-emit ``stream`` as batches, at most one every ``interval`` seconds.

    A producer task drains ``stream`` into a queue as fast as it yields. Each
    batch holds everything received since the previous one, in stream order.
    Iteration stops quietly once ``cancellation`` is set. An error raised by
    the stream is re-raised after the elements that preceded it are emitted.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    async def _pump() -> None:
        try:
            async for item in stream:
                queue.put_nowait(item)
        except Exception as exc:
            queue.put_nowait(_Failure(exc))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        queue.put_nowait(_END)

    pump = asyncio.create_task(_pump())
    last_emit = loop.time()
    try:
        while True:
            first = await queue.get()
            if _is_set(cancellation):
                return

            delay = last_emit + interval - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            if _is_set(cancellation):
                return

            received = [first]
            while not queue.empty():
                received.append(queue.get_nowait())

            batch: List[Any] = []
            failure: Optional[_Failure] = None
            finished = False
            for item in received:
                if item is _END:
                    finished = True
                    break
                if isinstance(item, _Failure):
                    failure = item
                    break
                batch.append(item)

            if batch:
                yield batch
                last_emit = loop.time()
            if failure is not None:
                raise failure.error
            if finished:
                return
    finally:
        pump.cancel()
        await asyncio.gather(pump, return_exceptions=True)
