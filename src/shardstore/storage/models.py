"""Shardstore storage data models.

Provides typed dataclasses for file handles, per-operation options and the
health snapshot shared by every backend.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from shardstore.storage.errors import InvalidInputError


@dataclass(frozen=True)
class FileHandle:
    """Identity of a stored object.

    Two handles with the same hash, key, type and root resolve to the same
    backend path on every backend.

    Attributes:
        hash: URL-safe content digest. Empty when the object was uploaded
            under an explicit key and no digest was computed.
        key: Addressable name of the object. Falls back to ``hash`` when empty.
        type: Extension appended to the stored object name ("" for none).
        root: Namespace prefix, including shard directories for
            content-addressed objects (e.g. ``"avatars/3f/a2"``).
        size: Byte length recorded at creation, or None if unknown.
    """

    hash: str
    key: str = ""
    type: str = ""
    root: str = ""
    size: int | None = None

    @property
    def address(self) -> str:
        """Return the addressable name (explicit key or content digest)."""
        return self.key or self.hash

    @property
    def code(self) -> str:
        """Return an opaque, URL-safe string form of this handle."""
        raw = json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True)
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")

    @classmethod
    def from_code(cls, code: str) -> FileHandle:
        """Rebuild a handle from the string produced by ``code``.

        Raises:
            InvalidInputError: If the code is not a valid handle encoding.
        """
        try:
            raw = base64.urlsafe_b64decode(code.encode("ascii"))
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise InvalidInputError(f"Malformed file handle code: {e}") from e
        if not isinstance(data, dict):
            raise InvalidInputError("Malformed file handle code: expected an object")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert the handle to a dictionary for JSON serialization."""
        return {
            "hash": self.hash,
            "key": self.key,
            "type": self.type,
            "root": self.root,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FileHandle:
        """Create a handle from a dictionary."""
        size_raw = data.get("size")
        try:
            size = int(size_raw) if size_raw is not None else None
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Invalid file handle size: {size_raw!r}") from e

        handle = cls(
            hash=str(data.get("hash") or ""),
            key=str(data.get("key") or ""),
            type=str(data.get("type") or ""),
            root=str(data.get("root") or ""),
            size=size,
        )
        if not handle.address:
            raise InvalidInputError("File handle has neither key nor hash")
        return handle


@runtime_checkable
class FileFactory(Protocol):
    """Mints file handles for freshly uploaded content.

    This is the seam for the host's file-metadata service; the storage core
    only consumes the handles it produces.
    """

    def file(
        self,
        root: str,
        key: str,
        type: str,
        size: int | None,
        *,
        hash: str = "",
    ) -> FileHandle: ...


class DefaultFileFactory:
    """FileFactory that mints plain FileHandle records."""

    def file(
        self,
        root: str,
        key: str,
        type: str,
        size: int | None,
        *,
        hash: str = "",
    ) -> FileHandle:
        return FileHandle(hash=hash, key=key, type=type, root=root, size=size)


@dataclass(frozen=True)
class UploadOptions:
    """Options for ``upload``.

    Attributes:
        key: Explicit object name. Skips hashing and sharding when set.
        root: Namespace prefix for the object.
        mimetype: Content type recorded by backends that support it.
        metadata: User metadata; values are stringified.
        tags: Object tags; values are stringified.
        expires: Expiry timestamp recorded by backends that support it.
    """

    key: str = ""
    root: str = ""
    mimetype: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)
    tags: Mapping[str, Any] = field(default_factory=dict)
    expires: datetime | None = None

    @property
    def prefix(self) -> str:
        return self.root

    def string_metadata(self) -> dict[str, str]:
        return {str(k): f"{v}" for k, v in self.metadata.items()}

    def string_tags(self) -> dict[str, str]:
        return {str(k): f"{v}" for k, v in self.tags.items()}


@dataclass(frozen=True)
class FetchOptions:
    """Options for ``fetch``.

    A byte range is requested when either bound is positive. ``end`` is
    inclusive; ``end == 0`` with ``start > 0`` reads to the end of the object.
    An ``end`` past the last byte is clamped. A range whose ``start`` is at or
    past the end of the object raises RangeNotSatisfiableError on every backend.
    """

    start: int = 0
    end: int = 0

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < 0:
            raise InvalidInputError(f"Invalid byte range: {self.start}-{self.end}")
        if self.end > 0 and self.end < self.start:
            raise InvalidInputError(f"Invalid byte range: {self.start}-{self.end}")

    @property
    def has_range(self) -> bool:
        return self.start > 0 or self.end > 0

    def http_range(self) -> str:
        """Return the HTTP Range header value for this request."""
        if self.end > 0:
            return f"bytes={self.start}-{self.end}"
        return f"bytes={self.start}-"


@dataclass(frozen=True)
class DownloadOptions:
    """Options for ``download``."""

    target: str = ""


@dataclass(frozen=True)
class BrowseOptions:
    """Options for ``browse``. Accepted for contract parity and ignored."""

    expires: datetime | None = None


@dataclass(frozen=True)
class Health:
    """Health snapshot of a connection.

    The zero value is returned until an external checker records a snapshot.
    """

    workload: int = 0
    checked_at: datetime | None = None
