from __future__ import annotations
import asyncio
import logging
import time
from contextlib import contextmanager
from collections.abc import Mapping
from typing import Any, List, Optional, Union

from .collect import collect, resolve_all
from .contracts import (
    DeleteAck, FileDescriptor, ResolvedParams, TransformsResult, UploadParams,
    UploadProgress, UploadResult
)
from .errors import (
    ConfigurationError, PartialFanoutFailure, ResolutionError, TransportError, UploadStorageError
)
from .ports import ObjectStoragePort
from .resolvers import StorageConfig
from .streams import StreamTee

log = logging.getLogger("uploadstorage")

# Optional OpenTelemetry
try:
    from opentelemetry import trace
    tracer = trace.get_tracer("uploadstorage")
except Exception:  # pragma: no cover
    tracer = None

@contextmanager
def _span(name: str, **attrs):
    if tracer:
        with tracer.start_as_current_span(name) as span:
            for k, v in attrs.items():
                if v is None:
                    continue
                try:
                    span.set_attribute(f"upload.{k}", v)
                except Exception:
                    pass
            yield
    else:
        yield

def _dur_ms(t0: float) -> int:
    return int((time.time() - t0) * 1000)


class _SizeTracker:
    """Keeps the last reported total; totals are cumulative, so the last one wins."""

    def __init__(self) -> None:
        self.size = 0

    def __call__(self, ev: UploadProgress) -> None:
        if ev.total:
            self.size = ev.total


class S3Storage:
    """
    Storage engine for uploaded files.

    handle_file() resolves every per-file parameter, then either streams the
    file to one object (DIRECT) or fans it out through the configured
    transform stages to one object per transform (TRANSFORMING). Each call
    returns exactly one result or raises exactly one error.
    """

    def __init__(self, client: ObjectStoragePort, config: Optional[StorageConfig] = None,
                 tee_queue_size: int = 8, **options: Any):
        if not isinstance(client, ObjectStoragePort):
            raise ConfigurationError("Expected client to be an ObjectStoragePort")
        if config is not None and options:
            raise ConfigurationError("Pass either a StorageConfig or options, not both")
        self.client = client
        self.config = config or StorageConfig.from_options(**options)
        self.tee_queue_size = tee_queue_size

    # ---------- Host API ----------
    async def handle_file(self, request, file: FileDescriptor) -> Union[UploadResult, TransformsResult]:
        t0 = time.time()
        log.debug("upload.collecting filename=%s", file.filename)
        try:
            params = await collect(self.config, request, file)
        except Exception:
            log.exception("upload.collect err filename=%s dur_ms=%s", file.filename, _dur_ms(t0))
            raise

        if not params.should_transform:
            return await self.direct_upload(params, file)
        return await self.transform_upload(params, request, file)

    async def remove_file(self, request, file_ref: Any) -> DeleteAck:
        bucket, key = _ref_location(file_ref)
        t0 = time.time()
        with _span("upload.remove", bucket=bucket, key=key):
            try:
                ack = await self.client.delete_object(bucket, key)
            except Exception as e:
                log.exception("upload.remove err bucket=%s key=%s dur_ms=%s", bucket, key, _dur_ms(t0))
                if isinstance(e, UploadStorageError):
                    raise
                raise TransportError(f"delete failed: {e}", bucket=bucket, key=key, code=_error_code(e)) from e
        log.info("upload.remove ok bucket=%s key=%s dur_ms=%s", bucket, key, _dur_ms(t0))
        return ack

    # ---------- DIRECT ----------
    async def direct_upload(self, params: ResolvedParams, file: FileDescriptor) -> UploadResult:
        t0 = time.time()
        dest = UploadParams.from_resolved(params)
        body = params.replacement_stream or file.stream
        progress = _SizeTracker()

        log.debug("upload.direct start bucket=%s key=%s", dest.bucket, dest.key)
        with _span("upload.direct", bucket=dest.bucket, key=dest.key, content_type=dest.content_type):
            try:
                outcome = await self.client.upload(dest, body, progress)
            except Exception as e:
                log.exception("upload.direct err bucket=%s key=%s dur_ms=%s", dest.bucket, dest.key, _dur_ms(t0))
                if isinstance(e, UploadStorageError):
                    raise
                raise TransportError(f"upload failed: {e}", bucket=dest.bucket, key=dest.key,
                                     code=_error_code(e)) from e

        result = _result(params, dest, progress.size, outcome)
        log.info("upload.direct ok bucket=%s key=%s size=%s dur_ms=%s",
                 result.bucket, result.key, result.size, _dur_ms(t0))
        return result

    # ---------- TRANSFORMING ----------
    async def transform_upload(self, params: ResolvedParams, request, file: FileDescriptor) -> TransformsResult:
        t0 = time.time()
        specs = self.config.transforms
        try:
            keys = await resolve_all(
                [(f"transforms[{i}].key", spec.key) for i, spec in enumerate(specs)], request, file
            )
        except Exception:
            log.exception("upload.transform keys err bucket=%s dur_ms=%s", params.bucket, _dur_ms(t0))
            raise
        for i, key in enumerate(keys):
            if not isinstance(key, str) or not key:
                log.error("upload.transform keys err bucket=%s index=%s key=%r", params.bucket, i, key)
                raise ResolutionError(f"transforms[{i}].key resolved to {key!r}, expected a non-empty string",
                                      param=f"transforms[{i}].key")

        body = params.replacement_stream or file.stream
        tee = StreamTee(body, len(specs), maxsize=self.tee_queue_size)
        results: List[UploadResult] = []

        async def upload_one(i: int) -> None:
            branch = tee.branches[i]
            dest = UploadParams.from_resolved(params, key=keys[i])
            progress = _SizeTracker()
            try:
                try:
                    stage = await specs[i].transform(request, file)
                    piped = stage(branch)
                except UploadStorageError:
                    raise
                except Exception as e:
                    raise ResolutionError(f"failed to build transforms[{i}]: {e}",
                                          param=f"transforms[{i}].transform") from e

                with _span("upload.transform", bucket=dest.bucket, key=dest.key, index=i):
                    try:
                        outcome = await self.client.upload(dest, piped, progress)
                    except PartialFanoutFailure:
                        raise
                    except Exception as e:
                        raise PartialFanoutFailure(f"transform upload {i} failed: {e}", index=i, bucket=dest.bucket,
                                                   key=dest.key, code=_error_code(e)) from e
            finally:
                await branch.aclose()

            results.append(_result(params, dest, progress.size, outcome))
            log.debug("upload.transform part_ok index=%s key=%s done=%s/%s",
                      i, dest.key, len(results), len(specs))

        # siblings are not cancelled on failure: they and the tee pump run to
        # completion after handle_file has raised, and their results are dropped
        try:
            await asyncio.gather(*(upload_one(i) for i in range(len(specs))))
        except Exception:
            log.exception("upload.transform err bucket=%s transforms=%s dur_ms=%s",
                          params.bucket, len(specs), _dur_ms(t0))
            raise

        log.info("upload.transform ok bucket=%s transforms=%s dur_ms=%s",
                 params.bucket, len(results), _dur_ms(t0))
        # completions append in arrival order
        return TransformsResult(transforms=list(results))


def _ref_location(file_ref: Any):
    if isinstance(file_ref, Mapping):
        return file_ref["bucket"], file_ref["key"]
    return file_ref.bucket, file_ref.key


def _error_code(e: Exception) -> Optional[str]:
    return getattr(e, "code", None)


def _result(params: ResolvedParams, dest: UploadParams, size: int, outcome) -> UploadResult:
    return UploadResult(
        size=size,
        bucket=dest.bucket,
        key=dest.key,
        acl=params.acl,
        content_type=params.content_type,
        content_disposition=params.content_disposition,
        content_encoding=params.content_encoding,
        storage_class=params.storage_class,
        server_side_encryption=params.server_side_encryption,
        metadata=params.metadata,
        location=outcome.location,
        etag=outcome.etag,
        version_id=outcome.version_id,
    )
