"""Typed connection settings for storage backends.

Host applications hand each driver a loose string-keyed map. Every accepted
spelling of a field is listed once in the model's alias table, and
``from_mapping`` normalizes the map onto canonical field names before
validation. Keys that are not recognized are ignored, since the same map
usually carries host-level settings too.

Environment Variables:
    SHARDSTORE_APP_NAME: Default bucket name (default: "shardstore")
    SHARDSTORE_LOCAL_ROOT: Default local storage root
        (default: tempfile.gettempdir() / shardstore_objects)
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shardstore.storage.errors import StorageSettingsError

SHARDSTORE_APP_NAME_ENV = "SHARDSTORE_APP_NAME"
SHARDSTORE_LOCAL_ROOT_ENV = "SHARDSTORE_LOCAL_ROOT"

DEFAULT_APP_NAME = "shardstore"
DEFAULT_ENDPOINT = "127.0.0.1:9000"


def _default_bucket() -> str:
    return os.environ.get(SHARDSTORE_APP_NAME_ENV, "").strip() or DEFAULT_APP_NAME


def _default_local_root() -> Path:
    env_root = os.environ.get(SHARDSTORE_LOCAL_ROOT_ENV, "").strip()
    if env_root:
        return Path(env_root)
    return Path(tempfile.gettempdir()) / "shardstore_objects"


def normalize_settings(
    raw: Mapping[str, Any],
    aliases: Mapping[str, tuple[str, ...]],
) -> dict[str, Any]:
    """Map alias spellings in ``raw`` onto canonical field names.

    For each field the first alias present in ``raw`` wins; the canonical
    spelling is always listed first. Keys are matched case-insensitively.
    """
    lowered = {str(k).lower(): v for k, v in raw.items()}
    normalized: dict[str, Any] = {}
    for field_name, spellings in aliases.items():
        for spelling in spellings:
            if spelling in lowered and lowered[spelling] is not None:
                normalized[field_name] = lowered[spelling]
                break
    return normalized


class _BackendSettings(BaseModel):
    """Common behavior for backend settings models."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ALIASES: ClassVar[dict[str, tuple[str, ...]]] = {}

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> Self:
        """Build validated settings from a host settings map.

        Raises:
            StorageSettingsError: If a recognized field has an invalid value.
        """
        try:
            return cls(**normalize_settings(raw or {}, cls.ALIASES))
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise StorageSettingsError(
                f"Invalid {cls.__name__} settings: {'; '.join(errors)}", errors=errors
            ) from e


class S3Settings(_BackendSettings):
    """Settings for an S3-compatible endpoint."""

    ALIASES: ClassVar[dict[str, tuple[str, ...]]] = {
        "endpoint": ("endpoint",),
        "region": ("region",),
        "bucket": ("bucket",),
        "access_key": ("access_key", "accesskey", "access"),
        "secret_key": ("secret_key", "secretkey", "secret"),
        "use_ssl": ("use_ssl", "ssl"),
    }

    endpoint: str = Field(default=DEFAULT_ENDPOINT, min_length=1)
    region: str = ""
    bucket: str = Field(default_factory=_default_bucket, min_length=3, max_length=63)
    access_key: str = Field(default="", repr=False)
    secret_key: str = Field(default="", repr=False)
    use_ssl: bool = False

    @field_validator("endpoint", "bucket")
    @classmethod
    def no_blank_strings(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    @property
    def endpoint_url(self) -> str:
        """Return the endpoint with a scheme matching ``use_ssl``."""
        if "://" in self.endpoint:
            return self.endpoint
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.endpoint}"


class LocalSettings(_BackendSettings):
    """Settings for the local shard tree."""

    ALIASES: ClassVar[dict[str, tuple[str, ...]]] = {
        "root": ("root", "storage", "path", "base_dir"),
    }

    root: Path = Field(default_factory=_default_local_root)

    @field_validator("root", mode="before")
    @classmethod
    def no_blank_root(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            raise ValueError("Storage root cannot be empty")
        return v
