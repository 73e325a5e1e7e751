"""Shardstore S3-compatible object storage backend.

Works against AWS S3, MinIO and other S3-compatible endpoints using boto3.
Object keys are the resolved object paths, so content-addressed uploads land
at the same relative path as on the local backend:
    s3://{bucket}/{root}/{hex[0:2]}/{hex[2:4]}/{urlsafe_digest}[.{type}]

Uploads are not pre-checked for existence; every upload issues one PUT.
Removes are not pre-checked either; deleting a missing key succeeds.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import IO, Any
from urllib.parse import urlencode

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from shardstore.storage.addressing import Hasher, hash_file
from shardstore.storage.driver import ConnectionLifecycle, ConnectionState
from shardstore.storage.errors import (
    BrowseNotSupportedError,
    InvalidInputError,
    NotConnectedError,
    ObjectNotFoundError,
    RangeNotSatisfiableError,
    StorageBackendError,
    StorageConnectionError,
    StorageError,
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
from shardstore.storage.settings import S3Settings
from shardstore.storage.streams import is_cached_download, write_atomically
from shardstore.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

BACKEND_NAME = "s3"

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})
_NO_BUCKET_CODES = frozenset({"NoSuchBucket", "NotFound", "404"})
_BUCKET_OWNED_CODES = frozenset({"BucketAlreadyOwnedByYou"})
_INVALID_RANGE_CODES = frozenset({"InvalidRange", "416"})
_DEFAULT_REGION = "us-east-1"

ClientFactory = Callable[[S3Settings], Any]


def create_s3_client(settings: S3Settings) -> Any:
    """Build a boto3 S3 client for the configured endpoint.

    Path-style addressing is used so bucket names never need DNS entries,
    which is what MinIO and most self-hosted endpoints expect.
    """
    config = BotoConfig(
        signature_version="s3v4",
        s3={"addressing_style": "path"},
        retries={"max_attempts": 1, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint_url,
        aws_access_key_id=settings.access_key or None,
        aws_secret_access_key=settings.secret_key or None,
        region_name=settings.region or None,
        use_ssl=settings.use_ssl,
        config=config,
    )


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3Connection:
    """Connection to a bucket on an S3-compatible endpoint."""

    def __init__(
        self,
        settings: S3Settings,
        *,
        files: FileFactory | None = None,
        hasher: Hasher | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._settings = settings
        self._files = files or DefaultFileFactory()
        self._hasher = hasher or hash_file
        self._client_factory = client_factory or create_s3_client
        self._lifecycle = ConnectionLifecycle(BACKEND_NAME)
        self._client: Any = None

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return BACKEND_NAME

    @property
    def settings(self) -> S3Settings:
        return self._settings

    @property
    def bucket(self) -> str:
        return self._settings.bucket

    @property
    def state(self) -> ConnectionState:
        return self._lifecycle.state

    def open(self) -> None:
        """Create the client and make sure the bucket exists."""
        if not self._lifecycle.begin_open():
            logger.debug("S3 connection already open: bucket=%s", self.bucket)
            return

        try:
            client = self._client_factory(self._settings)
            self._ensure_bucket(client)
        except StorageError:
            raise
        except (BotoCoreError, ClientError, ValueError) as e:
            raise StorageConnectionError(
                f"Failed to open S3 connection to {self._settings.endpoint}: {e}",
                backend=BACKEND_NAME,
                cause=e,
            ) from e

        self._client = client
        try:
            self._lifecycle.mark_open()
        except NotConnectedError:
            self._client = None
            if hasattr(client, "close"):
                client.close()
            raise
        logger.info(
            "Opened S3 connection: endpoint=%s bucket=%s",
            self._settings.endpoint,
            self.bucket,
        )

    def _ensure_bucket(self, client: Any) -> None:
        try:
            client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            if _error_code(e) not in _NO_BUCKET_CODES:
                raise StorageConnectionError(
                    f"Failed to check bucket {self.bucket}: {e}",
                    backend=BACKEND_NAME,
                    cause=e,
                ) from e

        create_args: dict[str, Any] = {"Bucket": self.bucket}
        region = self._settings.region
        if region and region != _DEFAULT_REGION:
            create_args["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            client.create_bucket(**create_args)
        except ClientError as e:
            if _error_code(e) in _BUCKET_OWNED_CODES:
                logger.debug("Bucket %s created concurrently; using it", self.bucket)
                return
            raise StorageConnectionError(
                f"Failed to create bucket {self.bucket}: {e}",
                backend=BACKEND_NAME,
                cause=e,
            ) from e
        logger.info("Created bucket %s (region=%s)", self.bucket, region or "default")

    def close(self) -> None:
        previous = self._lifecycle.mark_closed()
        client, self._client = self._client, None
        if client is not None and hasattr(client, "close"):
            client.close()
        if previous is ConnectionState.OPEN:
            logger.info("Closed S3 connection: bucket=%s", self.bucket)

    def health(self) -> Health:
        return self._lifecycle.health()

    def update_health(self, health: Health) -> None:
        self._lifecycle.update_health(health)

    def _require_client(self, operation: str) -> Any:
        self._lifecycle.require_open(operation)
        client = self._client
        if client is None:
            raise NotConnectedError(
                f"Cannot {operation}: connection has no client", backend=BACKEND_NAME
            )
        return client

    def _classify_error(self, error: Exception, key: str, action: str) -> StorageError:
        if isinstance(error, ClientError):
            code = _error_code(error)
            if code in _NOT_FOUND_CODES:
                return ObjectNotFoundError(backend=BACKEND_NAME, key=key)
            if code in _INVALID_RANGE_CODES:
                return RangeNotSatisfiableError(
                    f"Requested range is past the end of the object: {error}",
                    backend=BACKEND_NAME,
                    key=key,
                )
        return StorageBackendError(
            message=f"Failed to {action} object: {error}",
            backend=BACKEND_NAME,
            key=key,
            cause=error,
        )

    @traced_storage_operation("upload")
    def upload(self, source: str | Path, options: UploadOptions | None = None) -> FileHandle:
        """Stream a file to the bucket under its resolved object path."""
        client = self._require_client("upload")
        options = options or UploadOptions()
        handle = address_upload(source, options, self._files, self._hasher)
        key = resolve(handle).object_path

        put_args: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if options.mimetype:
            put_args["ContentType"] = options.mimetype
        if options.metadata:
            put_args["Metadata"] = options.string_metadata()
        if options.tags:
            put_args["Tagging"] = urlencode(options.string_tags())
        if options.expires is not None:
            put_args["Expires"] = options.expires

        try:
            with open(source, "rb") as body:
                client.put_object(Body=body, **put_args)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to read upload source: {e}",
                backend=BACKEND_NAME,
                key=key,
                cause=e,
            ) from e
        except (BotoCoreError, ClientError) as e:
            raise self._classify_error(e, key, "upload") from e

        logger.debug("Stored object: bucket=%s key=%s", self.bucket, key)
        return handle

    @traced_storage_operation("fetch")
    def fetch(self, handle: FileHandle, options: FetchOptions | None = None) -> IO[bytes]:
        """Open a streamed GET, optionally restricted to a byte range."""
        client = self._require_client("fetch")
        options = options or FetchOptions()
        key = resolve(handle).object_path

        get_args: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if options.has_range:
            get_args["Range"] = options.http_range()

        try:
            response = client.get_object(**get_args)
        except (BotoCoreError, ClientError) as e:
            raise self._classify_error(e, key, "fetch") from e
        return response["Body"]

    @traced_storage_operation("download")
    def download(self, handle: FileHandle, options: DownloadOptions) -> str:
        """GET the object into a local target path unless already present."""
        client = self._require_client("download")
        if not options.target:
            raise InvalidInputError("Invalid download target", backend=BACKEND_NAME)

        key = resolve(handle).object_path
        target = Path(options.target)

        if is_cached_download(target, handle):
            logger.debug("Download target already present: key=%s", key)
            return options.target

        try:
            response = client.get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise self._classify_error(e, key, "download") from e

        body = response["Body"]
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            written = write_atomically(body, target)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to write download target: {e}",
                backend=BACKEND_NAME,
                key=key,
                cause=e,
            ) from e
        except (BotoCoreError, ClientError) as e:
            raise self._classify_error(e, key, "download") from e
        finally:
            body.close()

        logger.debug("Downloaded object: key=%s bytes=%d", key, written)
        return options.target

    @traced_storage_operation("remove")
    def remove(self, handle: FileHandle) -> None:
        """Issue a DELETE for the object key."""
        client = self._require_client("remove")
        key = resolve(handle).object_path

        try:
            client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise self._classify_error(e, key, "remove") from e

        logger.debug("Deleted object: bucket=%s key=%s", self.bucket, key)

    @traced_storage_operation("browse")
    def browse(self, handle: FileHandle, options: BrowseOptions | None = None) -> str:
        raise BrowseNotSupportedError(backend=BACKEND_NAME)


class S3Driver:
    """Driver for S3-compatible object stores."""

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        self._client_factory = client_factory

    def connect(
        self,
        settings: Mapping[str, Any] | None = None,
        *,
        files: FileFactory | None = None,
        hasher: Hasher | None = None,
    ) -> S3Connection:
        return S3Connection(
            S3Settings.from_mapping(settings),
            files=files,
            hasher=hasher,
            client_factory=self._client_factory,
        )
