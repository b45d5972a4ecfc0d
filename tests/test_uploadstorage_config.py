import pytest

from components.uploadstorage import (
    InMemoryObjectStorage, S3ObjectStorage, UploadStorageSettings, make_client_from_env, make_storage_from_env
)
from components.uploadstorage.adapters.s3 import MIN_PART_SIZE


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("UPLOAD_ADAPTER", "S3_BUCKET_DEFAULT", "UPLOAD_ACL", "UPLOAD_AUTO_CONTENT_TYPE",
                 "UPLOAD_TEE_QUEUE_SIZE", "UPLOAD_PART_SIZE_MB"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir("/")  # keep any local .env out of the picture


def test_settings_defaults():
    cfg = UploadStorageSettings()
    assert cfg.UPLOAD_ADAPTER == "s3"
    assert cfg.UPLOAD_ACL == "private"
    assert cfg.UPLOAD_STORAGE_CLASS == "STANDARD"
    assert cfg.UPLOAD_PART_SIZE_MB == 5
    assert cfg.UPLOAD_AUTO_CONTENT_TYPE is True


def test_part_size_below_minimum_is_rejected(monkeypatch):
    monkeypatch.setenv("UPLOAD_PART_SIZE_MB", "1")
    with pytest.raises(ValueError):
        UploadStorageSettings()


@pytest.mark.asyncio
async def test_inmemory_storage_from_env(monkeypatch):
    monkeypatch.setenv("UPLOAD_ADAPTER", "inmemory")
    monkeypatch.setenv("S3_BUCKET_DEFAULT", "env-bucket")
    monkeypatch.setenv("UPLOAD_ACL", "public-read")
    monkeypatch.setenv("UPLOAD_TEE_QUEUE_SIZE", "3")

    storage = make_storage_from_env()
    assert isinstance(storage.client, InMemoryObjectStorage)
    assert storage.tee_queue_size == 3
    assert await storage.config.bucket(None, None) == "env-bucket"
    assert await storage.config.acl(None, None) == "public-read"


@pytest.mark.asyncio
async def test_overrides_win_over_env(monkeypatch):
    monkeypatch.setenv("UPLOAD_ADAPTER", "inmemory")
    monkeypatch.setenv("S3_BUCKET_DEFAULT", "env-bucket")

    storage = make_storage_from_env(bucket=lambda req, f: "per-request", acl="authenticated-read")
    assert await storage.config.bucket(None, None) == "per-request"
    assert await storage.config.acl(None, None) == "authenticated-read"


def test_missing_bucket_is_an_error(monkeypatch):
    monkeypatch.setenv("UPLOAD_ADAPTER", "inmemory")
    with pytest.raises(RuntimeError):
        make_storage_from_env()


def test_unknown_adapter(monkeypatch):
    monkeypatch.setenv("UPLOAD_ADAPTER", "ftp")
    with pytest.raises(RuntimeError):
        make_client_from_env()


def test_s3_client_from_env(monkeypatch):
    monkeypatch.setenv("UPLOAD_ADAPTER", "s3")
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.setenv("S3_ENDPOINT_URL", "http://localhost:9000")
    monkeypatch.setenv("S3_FORCE_PATH_STYLE", "true")

    client, name = make_client_from_env()
    assert name == "s3"
    assert isinstance(client, S3ObjectStorage)
    assert client.part_size == MIN_PART_SIZE
    assert client.force_path_style is True
    assert client.s3.meta.endpoint_url == "http://localhost:9000"
