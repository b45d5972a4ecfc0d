from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, constr

# ---------- Unified Wire Format (UWF) ----------

class ErrorPayload(BaseModel):
    type: Literal["VALIDATION", "NOT_FOUND", "UPSTREAM", "INTERNAL"]
    code: constr(strip_whitespace=True, min_length=1)
    message: constr(strip_whitespace=True, min_length=1)
    details: Optional[Dict[str, Any]] = None

class MetaPayload(BaseModel):
    request_id: Optional[str] = None
    duration_ms: Optional[int] = None
    adapter: Optional[str] = None

class UWFResponse(BaseModel):
    ok: bool
    result: Optional[Any] = None
    error: Optional[ErrorPayload] = None
    meta: MetaPayload = Field(default_factory=MetaPayload)

# ---------- Host-side models ----------

class FileDescriptor(BaseModel):
    """One uploaded file as handed over by the host. `stream` is an AsyncIterable[bytes]."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    stream: Any
    filename: Optional[str] = None
    field_name: Optional[str] = None
    content_type: Optional[str] = None
    encoding: Optional[str] = None

class FileRef(BaseModel):
    bucket: constr(min_length=1)
    key: constr(min_length=1)

# ---------- Resolution ----------

class ResolvedParams(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    bucket: str
    key: str
    acl: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    should_transform: bool = False
    cache_control: Optional[str] = None
    content_disposition: Optional[str] = None
    storage_class: Optional[str] = None
    server_side_encryption: Optional[str] = None
    sse_kms_key_id: Optional[str] = None
    content_encoding: Optional[str] = None
    content_type: str = "application/octet-stream"
    # set only when sniffing consumed the first chunk of the file stream
    replacement_stream: Optional[Any] = None

# ---------- Storage client models ----------

class UploadParams(BaseModel):
    """Destination descriptor for one object; the body travels separately."""
    bucket: str
    key: str
    acl: Optional[str] = None
    content_type: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    cache_control: Optional[str] = None
    content_disposition: Optional[str] = None
    content_encoding: Optional[str] = None
    storage_class: Optional[str] = None
    server_side_encryption: Optional[str] = None
    sse_kms_key_id: Optional[str] = None

    @classmethod
    def from_resolved(cls, params: ResolvedParams, **overrides: Any) -> "UploadParams":
        fields: Dict[str, Any] = dict(
            bucket=params.bucket,
            key=params.key,
            acl=params.acl,
            content_type=params.content_type,
            metadata=params.metadata,
            cache_control=params.cache_control,
            content_disposition=params.content_disposition,
            content_encoding=params.content_encoding,
            storage_class=params.storage_class,
            server_side_encryption=params.server_side_encryption,
            sse_kms_key_id=params.sse_kms_key_id,
        )
        fields.update(overrides)
        return cls(**fields)

    def to_s3_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Key": self.key}
        optional = {
            "ACL": self.acl,
            "ContentType": self.content_type,
            "Metadata": self.metadata,
            "CacheControl": self.cache_control,
            "StorageClass": self.storage_class,
            "ServerSideEncryption": self.server_side_encryption,
            "SSEKMSKeyId": self.sse_kms_key_id,
        }
        for name, value in optional.items():
            if value is not None:
                kwargs[name] = value
        # disposition and encoding are only sent when non-empty
        if self.content_disposition:
            kwargs["ContentDisposition"] = self.content_disposition
        if self.content_encoding:
            kwargs["ContentEncoding"] = self.content_encoding
        return kwargs

class UploadProgress(BaseModel):
    loaded: int
    total: Optional[int] = None
    part: int = 1

class UploadOutcome(BaseModel):
    location: Optional[str] = None
    etag: Optional[str] = None
    version_id: Optional[str] = None

class DeleteAck(BaseModel):
    bucket: str
    key: str
    version_id: Optional[str] = None
    delete_marker: Optional[bool] = None

# ---------- Results ----------

class UploadResult(BaseModel):
    size: int = 0
    bucket: str
    key: str
    acl: Optional[str] = None
    content_type: Optional[str] = None
    content_disposition: Optional[str] = None
    content_encoding: Optional[str] = None
    storage_class: Optional[str] = None
    server_side_encryption: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    location: Optional[str] = None
    etag: Optional[str] = None
    version_id: Optional[str] = None

class TransformsResult(BaseModel):
    transforms: List[UploadResult] = Field(default_factory=list)
