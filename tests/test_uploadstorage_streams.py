import asyncio

import pytest

from components.uploadstorage.streams import PrefixedStream, StreamTee


async def agen(chunks):
    for c in chunks:
        yield c


async def collect(stream):
    return [chunk async for chunk in stream]


@pytest.mark.asyncio
async def test_prefixed_stream_yields_prefix_then_source():
    source = agen([b"b", b"c"])
    assert await collect(PrefixedStream(b"a", source)) == [b"a", b"b", b"c"]


@pytest.mark.asyncio
async def test_prefixed_stream_with_empty_prefix():
    assert await collect(PrefixedStream(b"", agen([b"x"]))) == [b"x"]


@pytest.mark.asyncio
async def test_tee_feeds_every_branch_the_same_bytes():
    chunks = [bytes([i]) * 100 for i in range(40)]
    tee = StreamTee(agen(chunks), 3, maxsize=2)
    results = await asyncio.gather(*(collect(b) for b in tee.branches))
    for got in results:
        assert got == chunks


@pytest.mark.asyncio
async def test_closed_branch_does_not_stall_the_others():
    chunks = [b"a", b"b", b"c", b"d", b"e"]
    tee = StreamTee(agen(chunks), 2, maxsize=1)
    live, closed = tee.branches

    assert await closed.__anext__() == b"a"
    await closed.aclose()

    assert await collect(live) == chunks
    assert await collect(closed) == []


@pytest.mark.asyncio
async def test_source_failure_reaches_every_branch():
    async def failing():
        yield b"first"
        raise IOError("connection reset")

    tee = StreamTee(failing(), 2)
    for branch in tee.branches:
        assert await branch.__anext__() == b"first"
        with pytest.raises(IOError, match="connection reset"):
            await branch.__anext__()
