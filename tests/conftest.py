"""Pytest configuration and fixtures for shardstore tests.

This module provides common fixtures, including an in-process stand-in for
an S3 endpoint that raises real botocore errors.
"""

from __future__ import annotations

import io
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody

SHARDSTORE_ENV_VARS = (
    "SHARDSTORE_APP_NAME",
    "SHARDSTORE_LOCAL_ROOT",
    "SHARDSTORE_OTEL_ENABLED",
    "SHARDSTORE_OTEL_TEST_CAPTURE",
    "SHARDSTORE_REQUIRE_OTEL",
)


@pytest.fixture(autouse=True)
def clean_shardstore_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test without host-level shardstore environment settings."""
    for name in SHARDSTORE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeS3Client:
    """Minimal in-memory S3 client covering the calls the S3 backend makes.

    Objects are kept per bucket as {key: {"Body": bytes, **put_args}}.
    Every call is recorded in ``calls`` as (operation, kwargs).
    """

    def __init__(self, buckets: tuple[str, ...] = ()) -> None:
        self.buckets: dict[str, dict[str, dict[str, Any]]] = {b: {} for b in buckets}
        self.bucket_config: dict[str, dict[str, Any] | None] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    @staticmethod
    def _error(code: str, operation: str, status: int = 404) -> ClientError:
        return ClientError(
            {
                "Error": {"Code": code, "Message": code},
                "ResponseMetadata": {"HTTPStatusCode": status},
            },
            operation,
        )

    def _bucket(self, bucket: str, operation: str) -> dict[str, dict[str, Any]]:
        if bucket not in self.buckets:
            raise self._error("NoSuchBucket", operation)
        return self.buckets[bucket]

    def head_bucket(self, Bucket: str) -> dict[str, Any]:
        self.calls.append(("head_bucket", {"Bucket": Bucket}))
        if Bucket not in self.buckets:
            raise self._error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("create_bucket", {"Bucket": Bucket, **kwargs}))
        if Bucket in self.buckets:
            raise self._error("BucketAlreadyOwnedByYou", "CreateBucket", 409)
        self.buckets[Bucket] = {}
        self.bucket_config[Bucket] = kwargs.get("CreateBucketConfiguration")
        return {}

    def put_object(self, Bucket: str, Key: str, Body: Any, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("put_object", {"Bucket": Bucket, "Key": Key, **kwargs}))
        objects = self._bucket(Bucket, "PutObject")
        objects[Key] = {"Body": Body.read(), **kwargs}
        return {"ETag": '"fake"'}

    def get_object(self, Bucket: str, Key: str, Range: str | None = None) -> dict[str, Any]:
        self.calls.append(("get_object", {"Bucket": Bucket, "Key": Key, "Range": Range}))
        objects = self._bucket(Bucket, "GetObject")
        if Key not in objects:
            raise self._error("NoSuchKey", "GetObject")
        data = objects[Key]["Body"]
        if Range is not None:
            start_str, _, end_str = Range.removeprefix("bytes=").partition("-")
            start = int(start_str)
            if start >= len(data):
                raise self._error("InvalidRange", "GetObject", 416)
            data = data[start : int(end_str) + 1] if end_str else data[start:]
        return {"Body": StreamingBody(io.BytesIO(data), len(data)), "ContentLength": len(data)}

    def delete_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        self.calls.append(("delete_object", {"Bucket": Bucket, "Key": Key}))
        self._bucket(Bucket, "DeleteObject").pop(Key, None)
        return {}

    def close(self) -> None:
        self.closed = True

    def operations(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for op, kwargs in self.calls if op == name]


@pytest.fixture
def temp_storage_dir() -> Iterator[Path]:
    """Create a temporary directory for storage tests."""
    with tempfile.TemporaryDirectory(prefix="shardstore_test_storage_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def work_dir() -> Iterator[Path]:
    """Create a temporary directory for upload sources and download targets."""
    with tempfile.TemporaryDirectory(prefix="shardstore_test_work_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_file(work_dir: Path) -> Any:
    """Return a helper writing ``data`` to a file under the work directory."""

    def _make(name: str, data: bytes) -> Path:
        path = work_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _make


@pytest.fixture
def local_conn(temp_storage_dir: Path) -> Iterator[Any]:
    """Open a LocalShardConnection rooted in a temp directory."""
    from shardstore.storage.filesystem_store import LocalDriver

    conn = LocalDriver().connect({"root": str(temp_storage_dir / "objects")})
    conn.open()
    yield conn
    conn.close()


@pytest.fixture
def fake_s3() -> FakeS3Client:
    """Return an empty fake S3 endpoint."""
    return FakeS3Client()


@pytest.fixture
def make_fake_s3() -> Any:
    """Return a helper building a fake S3 endpoint with pre-existing buckets."""

    def _make(*buckets: str) -> FakeS3Client:
        return FakeS3Client(buckets=buckets)

    return _make


@pytest.fixture
def s3_conn(fake_s3: FakeS3Client) -> Iterator[Any]:
    """Open an S3Connection against the fake endpoint."""
    from shardstore.storage.s3_store import S3Driver

    conn = S3Driver(client_factory=lambda settings: fake_s3).connect(
        {"bucket": "test-bucket", "access_key": "AKIDEXAMPLE", "secret_key": "wJalrEXAMPLE"}
    )
    conn.open()
    yield conn
    conn.close()
