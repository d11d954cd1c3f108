"""
Wire - step streaming channel between a background run and its reader.

Usage:
    wire = Wire()
    task = asyncio.create_task(produce(wire))   # writes steps, then close()

    async for step in wire.read():
        ...
"""

import asyncio
from typing import AsyncIterator, Generic, TypeVar

T = TypeVar("T")


class Wire(Generic[T]):
    """
    Thin wrapper around asyncio.Queue:
    - write(): Put an item into the channel
    - read(): Async iterate over items until closed
    - close(): Signal that no more items will be written
    """

    # Sentinel value to signal end of stream
    _SENTINEL = object()

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def write(self, item: T) -> None:
        if self._closed:
            raise RuntimeError("Cannot write to a closed wire")
        await self._queue.put(item)

    async def close(self) -> None:
        """Close the wire; readers stop after draining queued items."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(self._SENTINEL)

    async def read(self) -> AsyncIterator[T]:
        while True:
            item = await self._queue.get()
            if item is self._SENTINEL:
                # Re-put sentinel for other readers (if any)
                await self._queue.put(self._SENTINEL)
                break
            yield item

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f"Wire(closed={self._closed}, qsize={self._queue.qsize()})"


__all__ = ["Wire"]
