from __future__ import annotations

from typing import Optional


class UploadStorageError(Exception):
    """Base class for upload storage errors."""


class ConfigurationError(UploadStorageError, TypeError):
    """Raised at construction time when an option has an unsupported shape."""


class ResolutionError(UploadStorageError):
    """A per-file resolver failed; the upload is aborted before any network call."""

    def __init__(self, message: str, param: Optional[str] = None):
        super().__init__(message)
        self.param = param


class DetectionError(ResolutionError):
    """Content sniffing could not read the first chunk of the stream."""

    def __init__(self, message: str):
        super().__init__(message, param="content_type")


class TransportError(UploadStorageError):
    """The storage client rejected or failed an upload or delete."""

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.bucket = bucket
        self.key = key
        self.code = code


class PartialFanoutFailure(TransportError):
    """One upload of a transform fan-out failed; sibling uploads are not reported."""

    def __init__(self, message: str, index: int, bucket: Optional[str] = None,
                 key: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, bucket=bucket, key=key, code=code)
        self.index = index
