from __future__ import annotations
from typing import Optional

from .contracts import *
from .errors import *
from .ports import ObjectStoragePort
from .adapters.inmemory import InMemoryObjectStorage
from .adapters.s3 import S3ObjectStorage
from .resolvers import StorageConfig, TransformSpec, default_key, static_value
from .sniffing import auto_content_type, detect, is_svg
from .service import S3Storage

from .config import UploadStorageSettings

AUTO_CONTENT_TYPE = auto_content_type
DEFAULT_CONTENT_TYPE = static_value("application/octet-stream")

def make_client_from_env(cfg: Optional[UploadStorageSettings] = None):
    cfg = cfg or UploadStorageSettings()
    if cfg.UPLOAD_ADAPTER.lower() == "inmemory":
        return InMemoryObjectStorage(), "inmemory"
    elif cfg.UPLOAD_ADAPTER.lower() == "s3":
        return S3ObjectStorage(
            region=cfg.AWS_REGION,
            endpoint_url=cfg.S3_ENDPOINT_URL,
            force_path_style=cfg.S3_FORCE_PATH_STYLE,
            part_size=cfg.UPLOAD_PART_SIZE_MB * 1024 * 1024,
        ), "s3"
    else:
        raise RuntimeError(f"Unknown UPLOAD_ADAPTER: {cfg.UPLOAD_ADAPTER}")

def make_storage_from_env(cfg: Optional[UploadStorageSettings] = None, **overrides) -> S3Storage:
    cfg = cfg or UploadStorageSettings()
    client, _ = make_client_from_env(cfg)
    options = {
        "bucket": cfg.S3_BUCKET_DEFAULT,
        "acl": cfg.UPLOAD_ACL,
        "storage_class": cfg.UPLOAD_STORAGE_CLASS,
    }
    if cfg.UPLOAD_AUTO_CONTENT_TYPE:
        options["content_type"] = AUTO_CONTENT_TYPE
    options.update(overrides)
    if not options.get("bucket"):
        raise RuntimeError("S3_BUCKET_DEFAULT (or a bucket override) is required")
    return S3Storage(client, tee_queue_size=cfg.UPLOAD_TEE_QUEUE_SIZE, **options)
