"""Shardstore local filesystem backend.

Stores objects in a sharded directory tree under a local storage root:
    {root}/{hex[0:2]}/{hex[2:4]}/{urlsafe_digest}[.{type}]

Uploads of content that already exists at the resolved path are skipped, so
repeated uploads of the same bytes never copy them again. The existence check
is not atomic with the write: two concurrent uploaders of the same content may
both write, and the last rename wins with identical bytes.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import IO, Any

from shardstore.storage.addressing import Hasher, hash_file
from shardstore.storage.driver import ConnectionLifecycle, ConnectionState
from shardstore.storage.errors import (
    BrowseNotSupportedError,
    InvalidInputError,
    ObjectNotFoundError,
    PathTraversalError,
    RangeNotSatisfiableError,
    StorageBackendError,
    StorageConnectionError,
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
from shardstore.storage.paths import address_upload, resolve
from shardstore.storage.settings import LocalSettings
from shardstore.storage.streams import (
    copy_file_atomically,
    is_cached_download,
    open_range,
)
from shardstore.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

BACKEND_NAME = "filesystem"


class LocalShardConnection:
    """Connection to a local sharded storage root.

    Opening creates the storage root if needed; there is no session state.
    """

    def __init__(
        self,
        settings: LocalSettings,
        *,
        files: FileFactory | None = None,
        hasher: Hasher | None = None,
    ) -> None:
        self._settings = settings
        self._files = files or DefaultFileFactory()
        self._hasher = hasher or hash_file
        self._lifecycle = ConnectionLifecycle(BACKEND_NAME)
        self._base_dir = Path(settings.root).expanduser().resolve()

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return BACKEND_NAME

    @property
    def settings(self) -> LocalSettings:
        return self._settings

    @property
    def base_dir(self) -> Path:
        """Return the storage root path."""
        return self._base_dir

    @property
    def state(self) -> ConnectionState:
        return self._lifecycle.state

    def open(self) -> None:
        """Create the storage root if it does not exist."""
        if not self._lifecycle.begin_open():
            logger.debug("Local storage already open at %s", self._base_dir)
            return

        try:
            if not self._base_dir.is_dir():
                self._base_dir.mkdir(parents=True, exist_ok=True)
                logger.info("Created local storage root at %s", self._base_dir)
        except OSError as e:
            raise StorageConnectionError(
                f"Failed to create storage root: {e}",
                backend=BACKEND_NAME,
                cause=e,
            ) from e

        self._lifecycle.mark_open()
        logger.info("Opened local storage at %s", self._base_dir)

    def close(self) -> None:
        previous = self._lifecycle.mark_closed()
        if previous is ConnectionState.OPEN:
            logger.info("Closed local storage at %s", self._base_dir)

    def health(self) -> Health:
        return self._lifecycle.health()

    def update_health(self, health: Health) -> None:
        self._lifecycle.update_health(health)

    def _object_file(self, handle: FileHandle) -> tuple[str, Path]:
        """Resolve a handle to its logical path and absolute file path."""
        object_path = resolve(handle).object_path
        path = (self._base_dir / object_path).resolve()
        try:
            path.relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage root",
                backend=BACKEND_NAME,
                key=object_path,
            ) from e
        return object_path, path

    @traced_storage_operation("upload")
    def upload(self, source: str | Path, options: UploadOptions | None = None) -> FileHandle:
        """Store a file, skipping the copy when the object already exists."""
        self._lifecycle.require_open("upload")
        handle = address_upload(source, options or UploadOptions(), self._files, self._hasher)
        object_path, target = self._object_file(handle)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create shard directory: {e}",
                backend=BACKEND_NAME,
                key=object_path,
                cause=e,
            ) from e

        if target.is_dir():
            raise InvalidInputError(
                f"Object path is an existing directory: {object_path}",
                backend=BACKEND_NAME,
                key=object_path,
            )
        if target.is_file():
            logger.debug("Object already stored, skipping write: key=%s", object_path)
            return handle

        try:
            written = copy_file_atomically(source, target)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to write object: {e}",
                backend=BACKEND_NAME,
                key=object_path,
                cause=e,
            ) from e

        logger.debug("Stored object: key=%s bytes=%d", object_path, written)
        return handle

    @traced_storage_operation("fetch")
    def fetch(self, handle: FileHandle, options: FetchOptions | None = None) -> IO[bytes]:
        """Open the object for streamed reading."""
        self._lifecycle.require_open("fetch")
        options = options or FetchOptions()
        object_path, path = self._object_file(handle)

        try:
            if options.has_range and path.is_file() and options.start >= path.stat().st_size:
                raise RangeNotSatisfiableError(
                    f"Range start {options.start} is past the end of the object",
                    backend=BACKEND_NAME,
                    key=object_path,
                )
            return open_range(path, options.start, options.end)
        except (FileNotFoundError, IsADirectoryError) as e:
            raise ObjectNotFoundError(backend=BACKEND_NAME, key=object_path) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to open object: {e}",
                backend=BACKEND_NAME,
                key=object_path,
                cause=e,
            ) from e

    @traced_storage_operation("download")
    def download(self, handle: FileHandle, options: DownloadOptions) -> str:
        """Copy the object to a local target path."""
        self._lifecycle.require_open("download")
        if not options.target:
            raise InvalidInputError("Invalid download target", backend=BACKEND_NAME)

        object_path, source = self._object_file(handle)
        target = Path(options.target)

        if is_cached_download(target, handle):
            logger.debug("Download target already present: key=%s", object_path)
            return options.target

        if not source.is_file():
            raise ObjectNotFoundError(backend=BACKEND_NAME, key=object_path)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            written = copy_file_atomically(source, target)
        except FileNotFoundError as e:
            raise ObjectNotFoundError(backend=BACKEND_NAME, key=object_path) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to download object: {e}",
                backend=BACKEND_NAME,
                key=object_path,
                cause=e,
            ) from e

        logger.debug("Downloaded object: key=%s bytes=%d", object_path, written)
        return options.target

    @traced_storage_operation("remove")
    def remove(self, handle: FileHandle) -> None:
        """Delete the object file. Raises ObjectNotFoundError if absent."""
        self._lifecycle.require_open("remove")
        object_path, path = self._object_file(handle)

        try:
            path.unlink()
        except FileNotFoundError as e:
            raise ObjectNotFoundError(backend=BACKEND_NAME, key=object_path) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object: {e}",
                backend=BACKEND_NAME,
                key=object_path,
                cause=e,
            ) from e

        logger.debug("Deleted object: key=%s", object_path)

    @traced_storage_operation("browse")
    def browse(self, handle: FileHandle, options: BrowseOptions | None = None) -> str:
        raise BrowseNotSupportedError(backend=BACKEND_NAME)


class LocalDriver:
    """Driver for the local shard backend."""

    def connect(
        self,
        settings: Mapping[str, Any] | None = None,
        *,
        files: FileFactory | None = None,
        hasher: Hasher | None = None,
    ) -> LocalShardConnection:
        return LocalShardConnection(
            LocalSettings.from_mapping(settings), files=files, hasher=hasher
        )
