"""
Literal-or-callback option normalization.

Every per-file storage parameter is configured either as a literal or as a
callable ``(request, file) -> value``. Options are validated once, when the
storage is constructed, and normalized into async resolvers of one shape.
"""
from __future__ import annotations

import inspect
import secrets
from dataclasses import dataclass, field
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Type

from .errors import ConfigurationError

Resolver = Callable[[Any, Any], Awaitable[Any]]

DEFAULT_ACL = "private"
DEFAULT_MIME = "application/octet-stream"
DEFAULT_STORAGE_CLASS = "STANDARD"


def static_value(value: Any) -> Resolver:
    async def resolve(request, file):
        return value
    return resolve


async def default_key(request, file) -> str:
    # 16 random bytes -> 32 lowercase hex chars
    return secrets.token_hex(16)


def as_resolver(fn: Callable[..., Any]) -> Resolver:
    """Wrap a plain or coroutine function so it can always be awaited."""
    if inspect.iscoroutinefunction(fn):
        return fn

    async def resolve(request, file):
        value = fn(request, file)
        if inspect.isawaitable(value):
            value = await value
        return value
    return resolve


def _describe(types: Tuple[Type, ...]) -> str:
    names = ["undefined"] + [t.__name__ for t in types] + ["function"]
    if len(names) == 2:
        return " or ".join(names)
    return ", ".join(names[:-1]) + " or " + names[-1]


def normalize(name: str, value: Any, default: Optional[Resolver], literal: Tuple[Type, ...] = ()) -> Resolver:
    """Turn one option into a resolver, or raise ConfigurationError."""
    if value is None:
        if default is None:
            raise ConfigurationError(f"{name} is required")
        return default
    # bool is an int subclass; never accept it where a str is expected
    if isinstance(value, bool) and bool not in literal:
        raise ConfigurationError(f"Expected {name} to be {_describe(literal)}")
    if literal and isinstance(value, literal):
        return static_value(value)
    if callable(value):
        return as_resolver(value)
    raise ConfigurationError(f"Expected {name} to be {_describe(literal)}")


@dataclass(frozen=True)
class TransformSpec:
    """One fan-out destination: a key resolver and a transform-stage factory."""
    transform: Callable[..., Any]
    key: Resolver = default_key

    @classmethod
    def build(cls, raw: Any, index: int) -> "TransformSpec":
        if isinstance(raw, TransformSpec):
            key, transform = raw.key, raw.transform
        elif isinstance(raw, Mapping):
            key, transform = raw.get("key"), raw.get("transform")
        else:
            raise ConfigurationError(f"Expected transforms[{index}] to be a mapping or TransformSpec")

        if not callable(transform):
            raise ConfigurationError(f"Expected transforms[{index}].transform to be function")
        return cls(
            transform=as_resolver(transform),
            key=normalize(f"transforms[{index}].key", key, default_key, (str,)),
        )


@dataclass(frozen=True)
class StorageConfig:
    """Static adapter configuration: one normalized resolver per parameter."""
    bucket: Resolver
    key: Resolver
    acl: Resolver
    content_type: Resolver
    metadata: Resolver
    cache_control: Resolver
    should_transform: Resolver
    content_disposition: Resolver
    content_encoding: Resolver
    storage_class: Resolver
    server_side_encryption: Resolver
    sse_kms_key_id: Resolver
    transforms: Tuple[TransformSpec, ...] = field(default_factory=tuple)

    @classmethod
    def from_options(
        cls,
        bucket: Any = None,
        key: Any = None,
        acl: Any = None,
        content_type: Any = None,
        metadata: Any = None,
        cache_control: Any = None,
        should_transform: Any = None,
        transforms: Optional[Sequence[Any]] = None,
        content_disposition: Any = None,
        content_encoding: Any = None,
        storage_class: Any = None,
        server_side_encryption: Any = None,
        sse_kms_key_id: Any = None,
    ) -> "StorageConfig":
        if transforms is None:
            transforms = []
        if isinstance(transforms, (str, bytes, Mapping)) or not isinstance(transforms, (list, tuple)):
            raise ConfigurationError("Expected transforms to be undefined or a list")

        return cls(
            bucket=normalize("bucket", bucket, None, (str,)),
            key=normalize("key", key, default_key),
            acl=normalize("acl", acl, static_value(DEFAULT_ACL), (str,)),
            content_type=normalize("content_type", content_type, static_value(DEFAULT_MIME)),
            metadata=normalize("metadata", metadata, static_value(None), (Mapping,)),
            cache_control=normalize("cache_control", cache_control, static_value(None), (str,)),
            should_transform=normalize("should_transform", should_transform, static_value(False), (bool,)),
            content_disposition=normalize("content_disposition", content_disposition, static_value(None), (str,)),
            content_encoding=normalize("content_encoding", content_encoding, static_value(None), (str,)),
            storage_class=normalize("storage_class", storage_class, static_value(DEFAULT_STORAGE_CLASS), (str,)),
            server_side_encryption=normalize(
                "server_side_encryption", server_side_encryption, static_value(None), (str,)
            ),
            sse_kms_key_id=normalize("sse_kms_key_id", sse_kms_key_id, static_value(None), (str,)),
            transforms=tuple(TransformSpec.build(t, i) for i, t in enumerate(transforms)),
        )

    def parameter_resolvers(self) -> List[Tuple[str, Resolver]]:
        """Every resolver except content_type, in a fixed order."""
        return [
            ("bucket", self.bucket),
            ("key", self.key),
            ("acl", self.acl),
            ("metadata", self.metadata),
            ("should_transform", self.should_transform),
            ("cache_control", self.cache_control),
            ("content_disposition", self.content_disposition),
            ("storage_class", self.storage_class),
            ("server_side_encryption", self.server_side_encryption),
            ("sse_kms_key_id", self.sse_kms_key_id),
            ("content_encoding", self.content_encoding),
        ]
