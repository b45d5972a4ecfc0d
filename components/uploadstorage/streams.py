from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, List, Optional

log = logging.getLogger("uploadstorage.streams")

_EOF = object()


class PrefixedStream:
    """Replays an already-consumed first chunk, then the rest of the source iterator."""

    def __init__(self, prefix: bytes, source: AsyncIterator[bytes]):
        self._prefix: Optional[bytes] = prefix or None
        self._source = source

    def __aiter__(self) -> "PrefixedStream":
        return self

    async def __anext__(self) -> bytes:
        if self._prefix is not None:
            chunk, self._prefix = self._prefix, None
            return chunk
        return await self._source.__anext__()


class _Failure:
    def __init__(self, exc: BaseException):
        self.exc = exc


class TeeBranch:
    """One consumer side of a StreamTee."""

    def __init__(self, tee: "StreamTee", index: int, maxsize: int):
        self.index = index
        self._tee = tee
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.detached = False
        self._finished = False

    def __aiter__(self) -> "TeeBranch":
        return self

    async def __anext__(self) -> bytes:
        if self._finished or self.detached:
            raise StopAsyncIteration
        self._tee.start()
        item = await self._queue.get()
        if item is _EOF:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._finished = True
            raise item.exc
        return item

    async def aclose(self) -> None:
        """Stop receiving data; the tee no longer waits on this branch."""
        if self.detached:
            return
        self.detached = True
        # free the pump if it is blocked on our full queue
        while not self._queue.empty():
            self._queue.get_nowait()

    async def _put(self, item) -> None:
        if not self.detached:
            await self._queue.put(item)


class StreamTee:
    """
    Reads a source stream once and feeds every chunk to N branches.

    Each branch has a bounded queue, so the source is pulled no faster than the
    slowest live branch consumes. A branch closed with ``aclose()`` is detached
    and skipped from then on. The pump starts when the first branch is read.
    """

    def __init__(self, source: AsyncIterable[bytes], n: int, maxsize: int = 8):
        self._source = source
        self.branches: List[TeeBranch] = [TeeBranch(self, i, maxsize) for i in range(n)]
        self._pump_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._pump_task is None:
            self._pump_task = asyncio.ensure_future(self._pump())

    def _live(self) -> List[TeeBranch]:
        return [b for b in self.branches if not b.detached]

    async def _pump(self) -> None:
        try:
            async for chunk in self._source:
                live = self._live()
                if not live:
                    log.debug("tee.pump stop reason=all_branches_detached")
                    return
                for branch in live:
                    await branch._put(chunk)
        except Exception as e:
            log.debug("tee.pump source_failed error=%s", e)
            for branch in self._live():
                await branch._put(_Failure(e))
            return
        for branch in self._live():
            await branch._put(_EOF)
