"""Registry of storage drivers.

The host application owns a registry instance, populates it at startup and
passes it to whatever builds connections. There is no module-level registry.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from shardstore.storage.driver import StorageConnection, StorageDriver
from shardstore.storage.errors import DriverNotFoundError

logger = logging.getLogger(__name__)


class DriverRegistry:
    """Maps driver names and aliases to driver instances.

    Names are matched case-insensitively.
    """

    def __init__(self) -> None:
        self._drivers: dict[str, StorageDriver] = {}

    def register(self, name: str, driver: StorageDriver, *aliases: str) -> None:
        """Register a driver under a name and any number of aliases.

        Re-registering a name replaces the previous driver.
        """
        for alias in (name, *aliases):
            normalized = alias.strip().lower()
            if not normalized:
                raise ValueError("Driver name cannot be empty")
            if normalized in self._drivers:
                logger.debug("Replacing storage driver registered as %s", normalized)
            self._drivers[normalized] = driver

    def get(self, name: str) -> StorageDriver:
        """Look up a driver by name or alias.

        Raises:
            DriverNotFoundError: If nothing is registered under ``name``.
        """
        driver = self._drivers.get(name.strip().lower())
        if driver is None:
            raise DriverNotFoundError(name, self.names())
        return driver

    def names(self) -> list[str]:
        """Return every registered name and alias, sorted."""
        return sorted(self._drivers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._drivers

    def connect(
        self,
        name: str,
        settings: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> StorageConnection:
        """Build an unopened connection using the driver registered as ``name``."""
        return self.get(name).connect(settings, **kwargs)


def default_registry() -> DriverRegistry:
    """Return a new registry holding the reference drivers.

    - local, file, filesystem: LocalDriver
    - s3, minio, object: S3Driver
    """
    from shardstore.storage.filesystem_store import LocalDriver
    from shardstore.storage.s3_store import S3Driver

    registry = DriverRegistry()
    registry.register("local", LocalDriver(), "file", "filesystem")
    registry.register("s3", S3Driver(), "minio", "object")
    return registry
