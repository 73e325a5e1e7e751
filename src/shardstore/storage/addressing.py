"""Content addressing for uploaded files.

Digests are computed incrementally over fixed-size chunks so memory use does
not depend on file size. The digest algorithm is versioned: changing it
changes every derived object path, so stores written under one version must
keep being read under the same version.

Addressing version 1:
    SHA-1 over the raw file bytes. The URL-safe base64 form (padded) is the
    object key; the hex form only feeds the shard directory names.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import posixpath
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from shardstore.storage.errors import HashError

logger = logging.getLogger(__name__)

ADDRESSING_VERSION = 1
DIGEST_ALGORITHM = "sha1"
CHUNK_SIZE = 64 * 1024

SHARD_DEPTH = 2
SHARD_WIDTH = 2


@dataclass(frozen=True)
class ContentDigest:
    """Two encodings of the same content digest.

    Both fields are empty when hashing failed; check ``bool(digest)``.
    """

    urlsafe: str = ""
    hex: str = ""

    def __bool__(self) -> bool:
        return bool(self.urlsafe and self.hex)


Hasher = Callable[[str | Path], ContentDigest]


def hash_file(path: str | Path) -> ContentDigest:
    """Compute the content digest of the file at ``path``.

    Never raises for unreadable input: failures are logged and an empty
    digest is returned so the caller decides how to fail.
    """
    h = hashlib.new(DIGEST_ALGORITHM)
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                h.update(chunk)
    except OSError as e:
        logger.warning("Failed to hash %s: %s", path, e)
        return ContentDigest()

    raw = h.digest()
    return ContentDigest(
        urlsafe=base64.urlsafe_b64encode(raw).decode("ascii"),
        hex=raw.hex(),
    )


def shard_segments(hex_digest: str) -> list[str]:
    """Return the shard directory names for a hex digest.

    Raises:
        HashError: If the digest is too short to shard.
    """
    needed = SHARD_DEPTH * SHARD_WIDTH
    if len(hex_digest) < needed:
        raise HashError(f"Digest too short to shard: {hex_digest!r}")
    return [
        hex_digest[i * SHARD_WIDTH : (i + 1) * SHARD_WIDTH] for i in range(SHARD_DEPTH)
    ]


def shard_root(root: str, hex_digest: str) -> str:
    """Nest the shard directories for ``hex_digest`` under ``root``.

    >>> shard_root("avatars", "3fa2c0de")
    'avatars/3f/a2'
    >>> shard_root("", "3fa2c0de")
    '3f/a2'
    """
    segments = shard_segments(hex_digest)
    if root:
        return posixpath.join(root, *segments)
    return posixpath.join(*segments)
