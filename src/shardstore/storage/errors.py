"""Shardstore storage error types.

Every backend raises the same typed exceptions so callers never need to know
whether a local shard tree or an S3-compatible endpoint served the request.
Underlying OSError / botocore failures are always chained via ``__cause__``.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for storage driver operations.

    Attributes:
        message: Human-readable error message.
        backend: Backend identifier associated with the failure (if known).
        key: Logical object path associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.backend = backend
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.backend:
            parts.append(f"backend={self.backend}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class StorageConnectionError(StorageError):
    """Raised when a connection cannot be opened.

    Covers client construction, authentication and bucket/root setup failures.
    Fatal at startup; the driver never retries.
    """

    def __init__(
        self,
        message: str = "Failed to open storage connection",
        *,
        backend: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, backend=backend)
        self.cause = cause


class NotConnectedError(StorageError):
    """Raised when a data operation is attempted outside the open state."""

    def __init__(
        self,
        message: str = "Connection is not open",
        *,
        backend: str | None = None,
        state: str | None = None,
    ) -> None:
        super().__init__(message, backend=backend)
        self.state = state


class ObjectNotFoundError(StorageError):
    """Raised when the object addressed by a file handle does not exist."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        backend: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, backend=backend, key=key)


class StorageBackendError(StorageError):
    """Raised when the storage medium cannot complete an operation.

    This error indicates the backend itself failed (disk full, permission
    denied, transport failure, rejected request) rather than a logical error
    like object not found.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        backend: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, backend=backend, key=key)
        self.cause = cause


class InvalidInputError(StorageError):
    """Raised when the caller passes arguments the driver cannot act on.

    Examples: a directory given to upload, an empty download target, a
    malformed byte range or file handle code.
    """


class PathTraversalError(InvalidInputError):
    """Raised when an explicit key or root would escape the storage namespace."""

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        backend: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, backend=backend, key=key)


class RangeNotSatisfiableError(InvalidInputError):
    """Raised when a byte range starts at or past the end of the object."""


class StorageSettingsError(InvalidInputError):
    """Raised when a settings map cannot be normalized into typed settings."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class BrowseNotSupportedError(StorageError):
    """Raised by backends that have no public URL concept for stored objects."""

    def __init__(
        self,
        message: str = "Store browse not supported",
        *,
        backend: str | None = None,
    ) -> None:
        super().__init__(message, backend=backend)


class HashError(StorageError):
    """Raised when content addressing could not produce a digest."""


class DriverNotFoundError(StorageError):
    """Raised when a registry has no driver under the requested name."""

    def __init__(self, name: str, available: list[str]) -> None:
        listed = ", ".join(available) if available else "none"
        super().__init__(f"Unknown storage driver '{name}'. Available drivers: {listed}")
        self.name = name
        self.available = available
