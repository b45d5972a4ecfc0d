from __future__ import annotations

import time
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse

from .contracts import ErrorPayload, FileDescriptor, FileRef, MetaPayload, UWFResponse
from .errors import ConfigurationError, ResolutionError, TransportError
from .service import S3Storage

READ_CHUNK = 64 * 1024


# These would be provided by the application container; here we store one per-process.
_storage_singleton: Optional[S3Storage] = None


def set_storage_for_uploads(storage: Optional[S3Storage]) -> None:
    global _storage_singleton
    _storage_singleton = storage


def get_storage() -> S3Storage:
    if _storage_singleton is None:
        raise HTTPException(status_code=503, detail="Upload storage not configured")
    return _storage_singleton


async def _chunks(upload: UploadFile) -> AsyncIterator[bytes]:
    while True:
        data = await upload.read(READ_CHUNK)
        if not data:
            break
        yield data


def _meta(request: Request, storage: S3Storage, t0: float) -> MetaPayload:
    return MetaPayload(
        request_id=request.headers.get("X-Request-Id"),
        adapter=getattr(storage.client, "adapter", None),
        duration_ms=int((time.time() - t0) * 1000),
    )


def _uwf_err(e: Exception, meta: MetaPayload) -> JSONResponse:
    if isinstance(e, (ConfigurationError, ResolutionError)):
        t, code, http = "VALIDATION", "UPLOAD_VALIDATION", status.HTTP_400_BAD_REQUEST
    elif isinstance(e, TransportError):
        t, code, http = "UPSTREAM", "UPLOAD_UPSTREAM", status.HTTP_502_BAD_GATEWAY
    else:
        t, code, http = "INTERNAL", "UPLOAD_INTERNAL", status.HTTP_500_INTERNAL_SERVER_ERROR

    details = {}
    for attr in ("param", "bucket", "key", "code", "index"):
        value = getattr(e, attr, None)
        if value is not None:
            details[attr] = value
    err = ErrorPayload(type=t, code=code, message=str(e) or type(e).__name__, details=details or None)
    body = UWFResponse(ok=False, error=err, meta=meta)
    return JSONResponse(status_code=http, content=body.model_dump())


# ---- Router ----
router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_file(request: Request, file: UploadFile = File(...), storage: S3Storage = Depends(get_storage)):
    t0 = time.time()
    descriptor = FileDescriptor(
        stream=_chunks(file),
        filename=file.filename,
        field_name="file",
        content_type=file.content_type,
    )
    try:
        result = await storage.handle_file(request, descriptor)
    except Exception as e:
        return _uwf_err(e, _meta(request, storage, t0))
    return UWFResponse(ok=True, result=result.model_dump(), meta=_meta(request, storage, t0))


@router.delete("/{bucket}/{key:path}")
async def remove_file(bucket: str, key: str, request: Request, storage: S3Storage = Depends(get_storage)):
    t0 = time.time()
    try:
        ack = await storage.remove_file(request, FileRef(bucket=bucket, key=key))
    except Exception as e:
        return _uwf_err(e, _meta(request, storage, t0))
    return UWFResponse(ok=True, result=ack.model_dump(), meta=_meta(request, storage, t0))
