"""
Content-type sniffing from the first chunk of an upload stream.

Binary signatures come from ``filetype``. SVG has no binary signature, so text
that looks like an SVG document (optionally behind an XML declaration and a
DOCTYPE) is recognized separately. Only the first chunk is inspected; markers
further into a large file are not seen.
"""
from __future__ import annotations

import logging
import re
from typing import AsyncIterable, Tuple

import filetype

from .errors import DetectionError
from .resolvers import DEFAULT_MIME
from .streams import PrefixedStream

log = logging.getLogger("uploadstorage.sniffing")

SVG_MIME = "image/svg+xml"

_DTD_ENTITY = re.compile(r"""\s*<!Entity\s+\S*\s*(?:"|')[^"]+(?:"|')\s*>""", re.IGNORECASE | re.MULTILINE)
_DTD_MARKUP = re.compile(r"\[?(?:\s*<![A-Z]+[^>]*>\s*)*\]?")
_HTML_COMMENT = re.compile(r"<!--[\s\S]*?-->")
# the end tag may lie beyond the first chunk, so only the opening tag is required
_SVG = re.compile(r"^\s*(?:<\?xml[^>]*>\s*)?(?:<!doctype svg[^>]*>\s*)?<svg[^>]*>", re.IGNORECASE)


def is_svg(text: str) -> bool:
    text = _DTD_ENTITY.sub("", text)
    text = _DTD_MARKUP.sub("", text)
    text = _HTML_COMMENT.sub("", text)
    return _SVG.search(text) is not None


def classify(chunk: bytes) -> str:
    """MIME type of a byte prefix. Pure function of its input."""
    kind = filetype.guess(chunk) if chunk else None

    if (kind is None or kind.extension == "xml") and is_svg(chunk.decode("utf-8", errors="replace")):
        return SVG_MIME
    if kind is not None:
        return kind.mime
    return DEFAULT_MIME


async def detect(stream: AsyncIterable[bytes]) -> Tuple[str, PrefixedStream]:
    """Peek one chunk, classify it, and return a stream that still yields every byte."""
    source = stream.__aiter__()
    try:
        first = await source.__anext__()
    except StopAsyncIteration:
        first = b""
    except Exception as e:
        raise DetectionError(f"failed to read first chunk: {e}") from e

    mime = classify(bytes(first))
    log.debug("sniff mime=%s first_chunk=%s", mime, len(first))
    return mime, PrefixedStream(first, source)


async def auto_content_type(request, file) -> Tuple[str, PrefixedStream]:
    return await detect(file.stream)
