"""Streaming helpers shared by the backends."""

from __future__ import annotations

import io
import logging
import os
import uuid
from pathlib import Path
from typing import IO

from shardstore.storage.addressing import CHUNK_SIZE
from shardstore.storage.models import FileHandle

logger = logging.getLogger(__name__)


def write_atomically(source: IO[bytes], target: Path) -> int:
    """Stream ``source`` into ``target`` through a sibling temp file.

    The temp file is renamed over ``target`` only after every byte was
    written, so an interrupted transfer never leaves a partial file under
    the final name. Concurrent writers to the same target: last one wins.

    Returns:
        Number of bytes written.

    Raises:
        OSError: If the temp file cannot be written or renamed.
    """
    tmp_file = target.with_name(f".{target.name}.{uuid.uuid4().hex}.part")
    written = 0
    try:
        with open(tmp_file, "wb") as out:
            for chunk in iter(lambda: source.read(CHUNK_SIZE), b""):
                out.write(chunk)
                written += len(chunk)
        os.replace(tmp_file, target)
    except BaseException:
        tmp_file.unlink(missing_ok=True)
        raise
    return written


def copy_file_atomically(source: str | Path, target: Path) -> int:
    """Copy the file at ``source`` to ``target`` atomically."""
    with open(source, "rb") as f:
        return write_atomically(f, target)


def is_cached_download(target: Path, handle: FileHandle) -> bool:
    """Decide whether an existing download target can be returned as-is.

    A present target is trusted when the handle's size is unknown or matches
    the target's size. No digest is recomputed.
    """
    try:
        size = target.stat().st_size
    except FileNotFoundError:
        return False
    if target.is_dir():
        return False
    if handle.size is None or handle.size == size:
        return True
    logger.warning(
        "Download target size %d does not match object size %d; re-fetching",
        size,
        handle.size,
    )
    return False


class RangeReader(io.RawIOBase):
    """Read-only view of ``[start, end]`` (inclusive) of a seekable stream.

    ``end`` of None reads to the end of the underlying stream. Closing the
    reader closes the underlying stream.
    """

    def __init__(self, raw: IO[bytes], start: int, end: int | None) -> None:
        super().__init__()
        self._raw = raw
        self._raw.seek(start)
        self._remaining = None if end is None else max(0, end - start + 1)

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        size = len(buffer)
        if self._remaining is not None:
            size = min(size, self._remaining)
        if size == 0:
            return 0
        data = self._raw.read(size)
        n = len(data)
        buffer[:n] = data
        if self._remaining is not None:
            self._remaining -= n
        return n

    def close(self) -> None:
        if not self.closed:
            self._raw.close()
        super().close()


def open_range(path: Path, start: int, end: int) -> IO[bytes]:
    """Open ``path`` for reading, restricted to a byte range when requested."""
    raw = open(path, "rb")
    if start <= 0 and end <= 0:
        return raw
    try:
        reader = RangeReader(raw, start, end if end > 0 else None)
    except BaseException:
        raw.close()
        raise
    return io.BufferedReader(reader, buffer_size=CHUNK_SIZE)
