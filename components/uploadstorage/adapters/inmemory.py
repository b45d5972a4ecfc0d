from __future__ import annotations

import hashlib
import logging
from typing import AsyncIterable, Dict, List, Optional, Tuple

from ..contracts import DeleteAck, UploadOutcome, UploadParams, UploadProgress
from ..errors import TransportError
from ..ports import ObjectStoragePort, ProgressCallback

log = logging.getLogger("uploadstorage.inmemory")


class InMemoryObjectStorage(ObjectStoragePort):
    """Dict-backed storage client for development and tests. Records every call."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.params: Dict[Tuple[str, str], UploadParams] = {}
        self.uploads: List[UploadParams] = []
        self.deletes: List[Tuple[str, str]] = []
        self._fail_keys: Dict[str, str] = {}
        self._version = 0
        self.adapter = "inmemory"

    def fail_on(self, key: str, code: str = "InternalError") -> None:
        """Make uploads to `key` fail with a TransportError carrying `code`."""
        self._fail_keys[key] = code

    async def upload(self, params: UploadParams, body: AsyncIterable[bytes],
                     on_progress: Optional[ProgressCallback] = None) -> UploadOutcome:
        self.uploads.append(params)
        data = bytearray()
        async for chunk in body:
            data.extend(chunk)

        if params.key in self._fail_keys:
            raise TransportError(f"injected failure for {params.key}", bucket=params.bucket,
                                 key=params.key, code=self._fail_keys[params.key])

        if on_progress is not None:
            on_progress(UploadProgress(loaded=len(data), total=len(data)))

        loc = (params.bucket, params.key)
        self.objects[loc] = bytes(data)
        self.params[loc] = params
        self._version += 1
        log.debug("inmemory.put bucket=%s key=%s size=%s", params.bucket, params.key, len(data))
        return UploadOutcome(
            location=f"memory://{params.bucket}/{params.key}",
            etag='"%s"' % hashlib.md5(bytes(data)).hexdigest(),
            version_id=str(self._version),
        )

    async def delete_object(self, bucket: str, key: str) -> DeleteAck:
        self.deletes.append((bucket, key))
        self.objects.pop((bucket, key), None)
        self.params.pop((bucket, key), None)
        return DeleteAck(bucket=bucket, key=key)
