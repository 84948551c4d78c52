from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

from customllm.runtime.chunks import done_frame, encode_chunk


class ChannelClosed(RuntimeError):
    pass


class ChunkChannel:
    """Bounded hand-off between the orchestrator and the HTTP response.

    ``send`` waits while the queue is full, so a slow client slows the
    producer down. Iteration yields encoded SSE frames and always ends with
    the ``[DONE]`` frame once ``close`` has been called.
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, chunk: dict[str, Any]) -> None:
        if self._closed:
            raise ChannelClosed("chunk channel already closed")
        await self._queue.put(encode_chunk(chunk))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(done_frame())
        await self._queue.put(None)

    def abort(self) -> None:
        """Close without waiting; pending frames are discarded."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame
