from .inmemory import InMemoryObjectStorage
from .s3 import S3ObjectStorage

__all__ = ["InMemoryObjectStorage", "S3ObjectStorage"]
