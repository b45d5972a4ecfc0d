from __future__ import annotations
from typing import AsyncIterable, Callable, Optional
from abc import ABC, abstractmethod

from .contracts import DeleteAck, UploadOutcome, UploadParams, UploadProgress

ProgressCallback = Callable[[UploadProgress], None]

class ObjectStoragePort(ABC):
    """Outbound storage client. Implementations are shared by all concurrent uploads."""

    @abstractmethod
    async def upload(
        self,
        params: UploadParams,
        body: AsyncIterable[bytes],
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadOutcome:
        """Stream `body` to params.bucket/params.key, reporting cumulative progress."""

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> DeleteAck: ...
