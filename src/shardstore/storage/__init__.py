"""Shardstore content-addressed storage drivers.

Provides one storage contract with interchangeable backends, a shared
content-addressing and path-sharding scheme, and a typed error taxonomy.

Backends:
- LocalShardConnection: Local sharded filesystem tree
- S3Connection: S3-compatible object store (AWS S3, MinIO)

Environment Variables:
    SHARDSTORE_LOCAL_ROOT: Default root for the local backend
        (default: OS temp dir / shardstore_objects)
    SHARDSTORE_APP_NAME: Default bucket name for the S3 backend
"""

from shardstore.storage.addressing import ContentDigest, hash_file
from shardstore.storage.driver import ConnectionState, StorageConnection, StorageDriver
from shardstore.storage.errors import (
    BrowseNotSupportedError,
    DriverNotFoundError,
    HashError,
    InvalidInputError,
    NotConnectedError,
    ObjectNotFoundError,
    PathTraversalError,
    RangeNotSatisfiableError,
    StorageBackendError,
    StorageConnectionError,
    StorageError,
    StorageSettingsError,
)
from shardstore.storage.models import (
    BrowseOptions,
    DefaultFileFactory,
    DownloadOptions,
    FetchOptions,
    FileFactory,
    FileHandle,
    Health,
    UploadOptions,
)
from shardstore.storage.registry import DriverRegistry, default_registry

__all__ = [
    "BrowseNotSupportedError",
    "BrowseOptions",
    "ConnectionState",
    "ContentDigest",
    "DefaultFileFactory",
    "DownloadOptions",
    "DriverNotFoundError",
    "DriverRegistry",
    "FetchOptions",
    "FileFactory",
    "FileHandle",
    "HashError",
    "Health",
    "InvalidInputError",
    "NotConnectedError",
    "ObjectNotFoundError",
    "PathTraversalError",
    "RangeNotSatisfiableError",
    "StorageBackendError",
    "StorageConnection",
    "StorageConnectionError",
    "StorageDriver",
    "StorageError",
    "StorageSettingsError",
    "UploadOptions",
    "default_registry",
    "hash_file",
]
