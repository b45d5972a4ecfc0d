from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Tuple

from pydantic import ValidationError

from .contracts import FileDescriptor, ResolvedParams
from .errors import ResolutionError, UploadStorageError
from .resolvers import StorageConfig

log = logging.getLogger("uploadstorage.collect")


async def _resolve(name: str, resolver: Callable[..., Awaitable[Any]], request, file) -> Any:
    try:
        return await resolver(request, file)
    except UploadStorageError:
        raise
    except Exception as e:
        raise ResolutionError(f"failed to resolve {name}: {e}", param=name) from e


async def resolve_all(resolvers: Iterable[Tuple[str, Callable[..., Awaitable[Any]]]], request, file) -> List[Any]:
    """Run resolvers concurrently; the first failure wins and later results are dropped."""
    return list(await asyncio.gather(*(_resolve(name, fn, request, file) for name, fn in resolvers)))


async def collect(config: StorageConfig, request, file: FileDescriptor) -> ResolvedParams:
    resolvers = config.parameter_resolvers()
    values = await resolve_all(resolvers, request, file)
    resolved = {name: value for (name, _), value in zip(resolvers, values)}

    # content type runs last: sniffing may hand back a replacement stream
    content_type = await _resolve("content_type", config.content_type, request, file)
    replacement_stream = None
    if isinstance(content_type, tuple):
        if len(content_type) != 2:
            raise ResolutionError(
                f"content_type resolved to a {len(content_type)}-tuple, expected (mime, stream)",
                param="content_type",
            )
        content_type, replacement_stream = content_type

    try:
        params = ResolvedParams(
            content_type=content_type,
            replacement_stream=replacement_stream,
            **resolved,
        )
    except ValidationError as e:
        raise ResolutionError(f"resolved parameters are invalid: {e}") from e
    log.debug("collect ok bucket=%s key=%s content_type=%s should_transform=%s",
              params.bucket, params.key, params.content_type, params.should_transform)
    return params
