"""Shardstore driver contract.

Provides the protocols every backend satisfies and the connection lifecycle
helper the backends compose.

A connection moves Unopened -> Open -> Closed exactly once. Data operations
outside the open state raise NotConnectedError; ``health`` and ``close`` are
valid in every state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from enum import StrEnum
from pathlib import Path
from typing import IO, Any, Protocol, runtime_checkable

from shardstore.storage.errors import NotConnectedError
from shardstore.storage.models import (
    BrowseOptions,
    DownloadOptions,
    FetchOptions,
    FileHandle,
    Health,
    UploadOptions,
)

logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    """Lifecycle states of a storage connection."""

    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Writers wait for active readers to drain, and new readers queue behind a
    waiting writer so health updates are not starved.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ConnectionLifecycle:
    """State machine and health snapshot shared by backend connections.

    Settings and client handles are written once at open and never guarded;
    only the health snapshot and the state take locks.
    """

    def __init__(self, backend: str) -> None:
        self._backend = backend
        self._health_lock = ReadWriteLock()
        self._health = Health()
        self._state_lock = threading.Lock()
        self._state = ConnectionState.UNOPENED

    @property
    def state(self) -> ConnectionState:
        return self._state

    def begin_open(self) -> bool:
        """Check whether an open should proceed.

        Returns:
            False if the connection is already open (open is then a no-op).

        Raises:
            NotConnectedError: If the connection was closed.
        """
        with self._state_lock:
            if self._state is ConnectionState.CLOSED:
                raise NotConnectedError(
                    "Connection is closed and cannot be reopened",
                    backend=self._backend,
                    state=self._state.value,
                )
            return self._state is ConnectionState.UNOPENED

    def mark_open(self) -> None:
        """Finish an open started with ``begin_open``.

        Raises:
            NotConnectedError: If the connection was closed while opening.
        """
        with self._state_lock:
            if self._state is not ConnectionState.UNOPENED:
                raise NotConnectedError(
                    f"Connection was {self._state.value} while opening",
                    backend=self._backend,
                    state=self._state.value,
                )
            self._state = ConnectionState.OPEN

    def mark_closed(self) -> ConnectionState:
        """Move to the closed state and return the previous state."""
        with self._state_lock:
            previous = self._state
            self._state = ConnectionState.CLOSED
            return previous

    def require_open(self, operation: str) -> None:
        """Raise NotConnectedError unless the connection is open."""
        state = self._state
        if state is not ConnectionState.OPEN:
            raise NotConnectedError(
                f"Cannot {operation}: connection is {state.value}",
                backend=self._backend,
                state=state.value,
            )

    def health(self) -> Health:
        with self._health_lock.read_locked():
            return self._health

    def update_health(self, health: Health) -> None:
        with self._health_lock.write_locked():
            self._health = health


@runtime_checkable
class StorageConnection(Protocol):
    """Operation surface every backend connection provides.

    Implementations:
    - LocalShardConnection: local filesystem shard tree
    - S3Connection: S3-compatible object store
    """

    @property
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @property
    def state(self) -> ConnectionState: ...

    def open(self) -> None:
        """Establish the session and ensure the storage root/bucket exists.

        Raises:
            StorageConnectionError: If the backend cannot be reached or set up.
            NotConnectedError: If the connection was already closed.
        """
        ...

    def close(self) -> None:
        """Release backend resources. Idempotent in every state."""
        ...

    def health(self) -> Health:
        """Return the last recorded health snapshot. Never blocks on I/O."""
        ...

    def update_health(self, health: Health) -> None:
        """Record a new health snapshot (used by the external checker)."""
        ...

    def upload(self, source: str | Path, options: UploadOptions | None = None) -> FileHandle:
        """Store the file at ``source`` and return its handle.

        Raises:
            InvalidInputError: If the source is missing or a directory.
            HashError: If content addressing fails.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    def fetch(self, handle: FileHandle, options: FetchOptions | None = None) -> IO[bytes]:
        """Open a readable byte stream for the object. Caller must close it.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    def download(self, handle: FileHandle, options: DownloadOptions) -> str:
        """Copy the object to ``options.target`` and return the target path.

        Raises:
            InvalidInputError: If the target is empty.
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the transfer fails.
        """
        ...

    def remove(self, handle: FileHandle) -> None:
        """Permanently delete the object."""
        ...

    def browse(self, handle: FileHandle, options: BrowseOptions | None = None) -> str:
        """Return a public URL for the object.

        Raises:
            BrowseNotSupportedError: Always, for the reference backends.
        """
        ...


@runtime_checkable
class StorageDriver(Protocol):
    """Factory for connections of one backend type."""

    def connect(
        self, settings: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> StorageConnection:
        """Build an unopened connection from a settings map. Performs no I/O.

        Raises:
            StorageSettingsError: If the settings are invalid.
        """
        ...
