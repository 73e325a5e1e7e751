"""Tests for typed backend settings and alias normalization."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from shardstore.storage.errors import InvalidInputError, StorageSettingsError
from shardstore.storage.settings import (
    DEFAULT_ENDPOINT,
    LocalSettings,
    S3Settings,
    normalize_settings,
)


class TestS3Settings:
    """Tests for S3 settings extraction."""

    def test_defaults(self) -> None:
        settings = S3Settings.from_mapping({})

        assert settings.endpoint == DEFAULT_ENDPOINT
        assert settings.bucket == "shardstore"
        assert settings.region == ""
        assert settings.use_ssl is False

    def test_bucket_defaults_to_app_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHARDSTORE_APP_NAME", "media-service")
        assert S3Settings.from_mapping(None).bucket == "media-service"

    @pytest.mark.parametrize("alias", ["access_key", "accesskey", "access"])
    def test_access_key_aliases(self, alias: str) -> None:
        assert S3Settings.from_mapping({alias: "AKID"}).access_key == "AKID"

    @pytest.mark.parametrize("alias", ["secret_key", "secretkey", "secret"])
    def test_secret_key_aliases(self, alias: str) -> None:
        assert S3Settings.from_mapping({alias: "s3cr3t"}).secret_key == "s3cr3t"

    def test_canonical_spelling_wins(self) -> None:
        settings = S3Settings.from_mapping(
            {"access": "short", "accesskey": "joined", "access_key": "canonical"}
        )
        assert settings.access_key == "canonical"

    def test_keys_are_case_insensitive(self) -> None:
        settings = S3Settings.from_mapping({"Bucket": "photos", "ENDPOINT": "minio:9000"})
        assert settings.bucket == "photos"
        assert settings.endpoint == "minio:9000"

    def test_unknown_keys_ignored(self) -> None:
        settings = S3Settings.from_mapping({"bucket": "photos", "health_interval": 30})
        assert settings.bucket == "photos"

    def test_use_ssl_accepts_strings(self) -> None:
        assert S3Settings.from_mapping({"use_ssl": "true"}).use_ssl is True
        assert S3Settings.from_mapping({"ssl": False}).use_ssl is False

    def test_endpoint_url_scheme_follows_tls(self) -> None:
        assert S3Settings.from_mapping({"endpoint": "minio:9000"}).endpoint_url == (
            "http://minio:9000"
        )
        assert S3Settings.from_mapping(
            {"endpoint": "minio:9000", "use_ssl": True}
        ).endpoint_url == "https://minio:9000"

    def test_endpoint_url_keeps_explicit_scheme(self) -> None:
        settings = S3Settings.from_mapping({"endpoint": "https://s3.example.com"})
        assert settings.endpoint_url == "https://s3.example.com"

    def test_invalid_value_raises_settings_error(self) -> None:
        with pytest.raises(StorageSettingsError) as exc_info:
            S3Settings.from_mapping({"use_ssl": "maybe"})

        assert isinstance(exc_info.value, InvalidInputError)
        assert any("use_ssl" in err for err in exc_info.value.errors)

    def test_blank_bucket_rejected(self) -> None:
        with pytest.raises(StorageSettingsError):
            S3Settings.from_mapping({"bucket": "   "})

    def test_repr_hides_credentials(self) -> None:
        settings = S3Settings.from_mapping({"access_key": "AKIDVISIBLE", "secret_key": "hunter2"})
        assert "hunter2" not in repr(settings)
        assert "AKIDVISIBLE" not in repr(settings)

    def test_settings_are_immutable(self) -> None:
        settings = S3Settings.from_mapping({})
        with pytest.raises(Exception):
            settings.bucket = "other"  # type: ignore[misc]


class TestLocalSettings:
    """Tests for local backend settings extraction."""

    @pytest.mark.parametrize("alias", ["root", "storage", "path", "base_dir"])
    def test_root_aliases(self, alias: str, tmp_path: Path) -> None:
        assert LocalSettings.from_mapping({alias: str(tmp_path)}).root == tmp_path

    def test_root_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("SHARDSTORE_LOCAL_ROOT", str(tmp_path))
        assert LocalSettings.from_mapping({}).root == tmp_path

    def test_default_root_under_tempdir(self) -> None:
        root = LocalSettings.from_mapping({}).root
        assert root == Path(tempfile.gettempdir()) / "shardstore_objects"

    def test_blank_root_rejected(self) -> None:
        with pytest.raises(StorageSettingsError):
            LocalSettings.from_mapping({"root": ""})


class TestNormalizeSettings:
    """Tests for the alias normalization step."""

    def test_none_values_fall_through_to_next_alias(self) -> None:
        normalized = normalize_settings(
            {"access_key": None, "access": "fallback"},
            {"access_key": ("access_key", "access")},
        )
        assert normalized == {"access_key": "fallback"}

    def test_absent_fields_omitted(self) -> None:
        assert normalize_settings({}, {"bucket": ("bucket",)}) == {}
