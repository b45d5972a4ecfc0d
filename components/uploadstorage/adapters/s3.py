from __future__ import annotations
import asyncio
import logging
from typing import Any, AsyncIterable, Dict, List, Optional
from urllib.parse import quote

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..contracts import DeleteAck, UploadOutcome, UploadParams, UploadProgress
from ..errors import ConfigurationError, TransportError
from ..ports import ObjectStoragePort, ProgressCallback

log = logging.getLogger("uploadstorage.s3")

# S3 rejects multipart parts (other than the last) smaller than 5 MiB
MIN_PART_SIZE = 5 * 1024 * 1024


def _client_error(e: Exception, bucket: str, key: str, op: str) -> TransportError:
    code = None
    if isinstance(e, ClientError):
        code = e.response.get("Error", {}).get("Code")
    return TransportError(f"s3 {op} failed: {e}", bucket=bucket, key=key, code=code)


class S3ObjectStorage(ObjectStoragePort):
    """
    Streaming S3 client.

    Bodies that fit in one part go out as a single PutObject. Larger bodies are
    sent as a multipart upload, one part at a time, so at most one part is held
    in memory per upload.
    """

    def __init__(self, client: Any = None, region: Optional[str] = None,
                 endpoint_url: Optional[str] = None, force_path_style: bool = False,
                 part_size: int = MIN_PART_SIZE):
        if part_size < MIN_PART_SIZE:
            raise ConfigurationError(f"part_size must be at least {MIN_PART_SIZE} bytes")
        self.s3 = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            config=BotoConfig(s3={"addressing_style": "path" if force_path_style else "auto"})
        )
        self.force_path_style = force_path_style
        self.part_size = part_size
        self.adapter = "s3"

    def _location(self, bucket: str, key: str) -> str:
        endpoint = self.s3.meta.endpoint_url.rstrip("/")
        if self.force_path_style or "://" not in endpoint:
            return f"{endpoint}/{bucket}/{quote(key)}"
        scheme, host = endpoint.split("://", 1)
        return f"{scheme}://{bucket}.{host}/{quote(key)}"

    async def upload(self, params: UploadParams, body: AsyncIterable[bytes],
                     on_progress: Optional[ProgressCallback] = None) -> UploadOutcome:
        kwargs = params.to_s3_kwargs()
        buf = bytearray()
        upload_id: Optional[str] = None
        parts: List[Dict[str, Any]] = []
        loaded = 0

        def report(total: Optional[int]) -> None:
            if on_progress is not None:
                on_progress(UploadProgress(loaded=loaded, total=total, part=max(1, len(parts))))

        try:
            async for chunk in body:
                buf.extend(chunk)
                # keep at least one byte back so the final part is never empty
                while len(buf) > self.part_size:
                    if upload_id is None:
                        resp = await asyncio.to_thread(self.s3.create_multipart_upload, **kwargs)
                        upload_id = resp["UploadId"]
                        log.debug("s3.multipart start bucket=%s key=%s upload_id=%s",
                                  params.bucket, params.key, upload_id)
                    part = bytes(buf[:self.part_size])
                    del buf[:self.part_size]
                    await self._upload_part(params, upload_id, parts, part)
                    loaded += len(part)
                    report(None)

            if upload_id is None:
                data = bytes(buf)
                resp = await asyncio.to_thread(self.s3.put_object, Body=data, **kwargs)
                loaded = len(data)
                report(loaded)
                return UploadOutcome(
                    location=self._location(params.bucket, params.key),
                    etag=resp.get("ETag"),
                    version_id=resp.get("VersionId"),
                )

            last = bytes(buf)
            await self._upload_part(params, upload_id, parts, last)
            loaded += len(last)
            report(loaded)
            resp = await asyncio.to_thread(
                self.s3.complete_multipart_upload,
                Bucket=params.bucket,
                Key=params.key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
            log.debug("s3.multipart done bucket=%s key=%s parts=%s size=%s",
                      params.bucket, params.key, len(parts), loaded)
            return UploadOutcome(
                location=resp.get("Location") or self._location(params.bucket, params.key),
                etag=resp.get("ETag"),
                version_id=resp.get("VersionId"),
            )
        except (ClientError, BotoCoreError) as e:
            if upload_id is not None:
                await self._abort(params, upload_id)
            raise _client_error(e, params.bucket, params.key, "upload") from e
        except Exception:
            if upload_id is not None:
                await self._abort(params, upload_id)
            raise

    async def _upload_part(self, params: UploadParams, upload_id: str,
                           parts: List[Dict[str, Any]], data: bytes) -> None:
        number = len(parts) + 1
        resp = await asyncio.to_thread(
            self.s3.upload_part,
            Bucket=params.bucket,
            Key=params.key,
            UploadId=upload_id,
            PartNumber=number,
            Body=data,
        )
        parts.append({"ETag": resp["ETag"], "PartNumber": number})

    async def _abort(self, params: UploadParams, upload_id: str) -> None:
        try:
            await asyncio.to_thread(
                self.s3.abort_multipart_upload,
                Bucket=params.bucket, Key=params.key, UploadId=upload_id,
            )
        except (ClientError, BotoCoreError):
            log.exception("s3.multipart abort_failed bucket=%s key=%s upload_id=%s",
                          params.bucket, params.key, upload_id)

    async def delete_object(self, bucket: str, key: str) -> DeleteAck:
        try:
            resp = await asyncio.to_thread(self.s3.delete_object, Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise _client_error(e, bucket, key, "delete") from e
        return DeleteAck(
            bucket=bucket,
            key=key,
            version_id=resp.get("VersionId"),
            delete_marker=resp.get("DeleteMarker"),
        )
