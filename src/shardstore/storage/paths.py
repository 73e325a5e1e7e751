"""Object path resolution shared by every backend.

Object paths are POSIX-style and backend-relative:
    {root}/{key}[.{type}]

Content-addressed uploads put two shard levels into the root:
    {root}/{hex[0:2]}/{hex[2:4]}/{urlsafe_digest}[.{type}]
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import stat
from dataclasses import dataclass
from pathlib import Path

from shardstore.storage.addressing import Hasher, hash_file, shard_root
from shardstore.storage.errors import HashError, InvalidInputError, PathTraversalError
from shardstore.storage.models import FileFactory, FileHandle, UploadOptions

logger = logging.getLogger(__name__)

# URL-safe base64 digests may end in "=" padding.
_SAFE_SEGMENT_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./=]+$")


@dataclass(frozen=True)
class ResolvedPath:
    """Backend-relative location of an object.

    Attributes:
        directory: Parent directory of the object ("" at the namespace top).
        object_path: Full object path, used as the S3 key or relative file path.
    """

    directory: str
    object_path: str


def _is_path_traversal(value: str) -> bool:
    """Check if a key or root contains path traversal sequences.

    Detects:
    - ".." segments
    - Absolute paths (starting with / or ~) and drive letters like C:
    - Backslashes and null bytes
    - Characters outside the safe set
    """
    if "\x00" in value or "\\" in value:
        return True
    if value.startswith("/") or value.startswith("~"):
        return True
    if len(value) >= 2 and value[1] == ":":
        return True
    if any(segment == ".." for segment in value.split("/")):
        return True
    return not bool(_SAFE_SEGMENT_PATTERN.match(value))


def validate_segment(value: str, *, what: str = "key") -> str:
    """Validate a caller-supplied key or root and return it normalized.

    Empty values are allowed and returned unchanged.

    Raises:
        PathTraversalError: If the value could escape the storage namespace.
    """
    if not value:
        return value
    if _is_path_traversal(value):
        raise PathTraversalError(
            message=f"Invalid {what}: path traversal or unsafe characters detected",
            key=value,
        )
    return value.rstrip("/")


def validate_type(value: str) -> str:
    """Validate an object type (extension).

    Extensions come from arbitrary source file names, so only characters that
    could change the object path are rejected: separators, NUL and "..".

    Raises:
        PathTraversalError: If the type could escape the object name.
    """
    if "/" in value or "\\" in value or "\x00" in value or ".." in value:
        raise PathTraversalError(message="Invalid type: unsafe characters detected", key=value)
    return value


def object_name(handle: FileHandle) -> str:
    """Return the stored object name: address plus optional extension."""
    if handle.type:
        return f"{handle.address}.{handle.type}"
    return handle.address


def resolve(handle: FileHandle) -> ResolvedPath:
    """Resolve an existing handle to its backend-relative path.

    No sharding happens here: the handle already carries its resolved root.

    Raises:
        InvalidInputError: If the handle has neither key nor hash.
        PathTraversalError: If the handle would escape the namespace.
    """
    if not handle.address:
        raise InvalidInputError("File handle has neither key nor hash")

    root = validate_segment(handle.root, what="root")
    address = validate_segment(handle.address)
    type_ = validate_type(handle.type)
    name = f"{address}.{type_}" if type_ else address
    object_path = posixpath.join(root, name) if root else name
    return ResolvedPath(directory=posixpath.dirname(object_path), object_path=object_path)


def file_extension(path: str | Path) -> str:
    """Return the lower-cased extension of ``path`` without the dot."""
    return Path(path).suffix.lstrip(".").lower()


def address_upload(
    source: str | Path,
    options: UploadOptions,
    files: FileFactory,
    hasher: Hasher = hash_file,
) -> FileHandle:
    """Mint the handle an upload of ``source`` will be stored under.

    Without an explicit key the content is hashed and the shard directories
    are nested under the requested root. With an explicit key the object is
    addressed directly, and the caller owns collision avoidance.

    Raises:
        InvalidInputError: If the source is missing or is a directory.
        PathTraversalError: If an explicit key or root is unsafe.
        HashError: If the content could not be hashed.
    """
    try:
        st = os.stat(source)
    except FileNotFoundError as e:
        raise InvalidInputError(f"Upload source does not exist: {source}") from e
    except OSError as e:
        raise InvalidInputError(f"Upload source cannot be read: {e}") from e

    if stat.S_ISDIR(st.st_mode):
        raise InvalidInputError(f"Directory upload not supported: {source}")

    root = validate_segment(options.root, what="root")
    key = validate_segment(options.key)
    ext = file_extension(source)
    digest_urlsafe = ""

    if not key:
        digest = hasher(source)
        if not digest:
            raise HashError(f"Failed to compute content digest for {source}")
        root = shard_root(root, digest.hex)
        key = digest.urlsafe
        digest_urlsafe = digest.urlsafe

    handle = files.file(root, key, ext, st.st_size, hash=digest_urlsafe)
    logger.debug("Addressed upload: root=%s key=%s type=%s", handle.root, handle.key, ext)
    return handle
