from __future__ import annotations
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional

class UploadStorageSettings(BaseSettings):
    UPLOAD_ADAPTER: str = Field(default="s3")  # "s3" | "inmemory"
    # S3
    AWS_REGION: Optional[str] = None
    S3_BUCKET_DEFAULT: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None
    S3_FORCE_PATH_STYLE: bool = False
    UPLOAD_PART_SIZE_MB: int = Field(default=5, ge=5)
    # per-file defaults
    UPLOAD_ACL: str = "private"
    UPLOAD_STORAGE_CLASS: str = "STANDARD"
    UPLOAD_AUTO_CONTENT_TYPE: bool = True
    # chunks buffered per transform branch during fan-out
    UPLOAD_TEE_QUEUE_SIZE: int = Field(default=8, ge=1)

    class Config:
        env_file = ".env"
        case_sensitive = False
