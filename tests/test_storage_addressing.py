"""Tests for content addressing and shard path derivation.

Covers:
- Streaming digest matches a whole-buffer digest, including files > 64 KiB
- Both encodings describe the same digest
- Unreadable input yields an empty digest instead of raising
- Two-level sharding keeps leaf directories small
"""

from __future__ import annotations

import base64
import hashlib
import os
from collections import Counter
from pathlib import Path
from typing import Any
from unittest import mock

import pytest

from shardstore.storage.addressing import (
    CHUNK_SIZE,
    ContentDigest,
    hash_file,
    shard_root,
    shard_segments,
)
from shardstore.storage.errors import HashError


class TestHashFile:
    """Tests for the streaming content digest."""

    def test_digest_matches_sha1_of_content(self, make_file: Any) -> None:
        data = b"Hello, shard tree!"
        path = make_file("hello.txt", data)

        digest = hash_file(path)

        raw = hashlib.sha1(data).digest()
        assert digest.hex == raw.hex()
        assert digest.urlsafe == base64.urlsafe_b64encode(raw).decode("ascii")

    def test_large_file_is_read_in_chunks(self, make_file: Any) -> None:
        """Files larger than one chunk are hashed without a single full read."""
        data = os.urandom(3 * CHUNK_SIZE + 17)
        path = make_file("large.bin", data)

        real_open = open
        read_sizes: list[int] = []

        class TrackingFile:
            def __init__(self, f: Any) -> None:
                self._f = f

            def read(self, size: int = -1) -> bytes:
                read_sizes.append(size)
                return self._f.read(size)

            def __enter__(self) -> TrackingFile:
                return self

            def __exit__(self, *exc: Any) -> None:
                self._f.close()

        def tracking_open(*args: Any, **kwargs: Any) -> Any:
            return TrackingFile(real_open(*args, **kwargs))

        with mock.patch("shardstore.storage.addressing.open", tracking_open, create=True):
            digest = hash_file(path)

        assert digest.hex == hashlib.sha1(data).hexdigest()
        assert read_sizes
        assert all(0 < size <= CHUNK_SIZE for size in read_sizes)
        assert len(read_sizes) >= 4

    def test_empty_file_has_digest(self, make_file: Any) -> None:
        path = make_file("empty.bin", b"")

        digest = hash_file(path)

        assert digest
        assert digest.hex == hashlib.sha1(b"").hexdigest()

    def test_urlsafe_form_has_no_path_separators(self, make_file: Any) -> None:
        # Bytes chosen so standard base64 would contain "/" and "+".
        for i in range(64):
            path = make_file(f"f{i}.bin", bytes([i]) * (i + 1))
            digest = hash_file(path)
            assert "/" not in digest.urlsafe
            assert "+" not in digest.urlsafe

    def test_missing_file_returns_empty_digest(self, work_dir: Path) -> None:
        digest = hash_file(work_dir / "missing.bin")

        assert digest == ContentDigest()
        assert not digest

    def test_directory_returns_empty_digest(self, work_dir: Path) -> None:
        assert not hash_file(work_dir)


class TestSharding:
    """Tests for shard directory derivation."""

    def test_segments_are_first_four_hex_chars(self) -> None:
        assert shard_segments("3fa2c0de") == ["3f", "a2"]

    def test_shard_root_without_root(self) -> None:
        assert shard_root("", "3fa2c0de") == "3f/a2"

    def test_shard_root_nests_under_root(self) -> None:
        assert shard_root("avatars/2024", "3fa2c0de") == "avatars/2024/3f/a2"

    def test_short_digest_raises(self) -> None:
        with pytest.raises(HashError):
            shard_segments("3fa")

    def test_leaf_directories_stay_small(self) -> None:
        """10,000 distinct digests spread over the 65,536 leaves."""
        leaves: Counter[str] = Counter()
        for i in range(10_000):
            hex_digest = hashlib.sha1(f"object-{i}".encode()).hexdigest()
            leaves[shard_root("", hex_digest)] += 1

        expected = 10_000 / 65_536
        assert max(leaves.values()) <= max(8, int(expected * 40))
        assert len(leaves) > 8_500
