"""Storage location resolution.

Maps a logical storage location name (``local``, ``s3``, ...) to the root path
its files live under and the driver that serves it. Both come from
``STORAGE_<NAME>_ROOT`` / ``STORAGE_<NAME>_DRIVER`` environment keys, the
list of known names from ``STORAGE_LOCATIONS``.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from hls_publisher.core.config import Settings
from hls_publisher.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LOCAL_DRIVER = "local"


class StorageAdapterMode(str, Enum):
    """How the target storage location is chosen."""
    DEFAULT = "default"  # first configured location
    SOURCE = "source"  # same location as the source file
    CUSTOM = "custom"  # explicitly named location


@dataclass(frozen=True)
class StorageLocation:
    """A resolved storage location."""
    name: str
    driver: str
    root: Optional[str] = None

    @property
    def is_local(self) -> bool:
        """Whether files in this location are plain files on local disk."""
        return self.driver == LOCAL_DRIVER


class StorageResolver:
    """Resolves storage location names against configuration.

    Lookups have no side effects; a missing driver key is tolerated (older
    configurations only declared roots) and treated as ``local``.
    """

    def __init__(self, locations: list[str], environ: Mapping[str, str]):
        self.locations = list(locations)
        self._environ = environ

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "StorageResolver":
        """Build a resolver from settings and the process environment."""
        return cls(config.storage_locations, os.environ if environ is None else environ)

    @staticmethod
    def _key(location: str, suffix: str) -> str:
        return f"STORAGE_{location.upper()}_{suffix}"

    @property
    def default_location(self) -> str:
        """The first configured location, or ``local`` if none are configured."""
        return self.locations[0] if self.locations else LOCAL_DRIVER

    def exists(self, location: str) -> bool:
        """Check whether a driver is configured for the location."""
        return bool(self._environ.get(self._key(location, "DRIVER")))

    def resolve_root(self, location: str) -> Optional[str]:
        """Get the root path of a location, or None if it is not configured."""
        value = self._environ.get(self._key(location, "ROOT"))
        if value:
            return str(value)
        logger.warning(f"No storage root found for location <{location}>")
        return None

    def require_root(self, location: str) -> str:
        """Get the root path of a location.

        Raises:
            ConfigurationError: If the location has no root configured
        """
        root = self.resolve_root(location)
        if root is None:
            raise ConfigurationError(f"No storage found for location <{location}>")
        return root

    def resolve_driver(self, location: str) -> str:
        """Get the driver name of a location, defaulting to ``local``."""
        value = self._environ.get(self._key(location, "DRIVER"))
        if value:
            return str(value)
        logger.warning(
            f"No driver found for storage location <{location}>, assuming '{LOCAL_DRIVER}'"
        )
        return LOCAL_DRIVER

    def resolve(self, location: str) -> StorageLocation:
        """Resolve a location name to its driver and (optional) root."""
        driver = self.resolve_driver(location)
        root = self._environ.get(self._key(location, "ROOT")) or None
        return StorageLocation(name=location, driver=driver, root=root)

    def select_target(
        self,
        mode: StorageAdapterMode,
        source_location: Optional[str] = None,
        custom_location: Optional[str] = None,
    ) -> str:
        """Choose the storage location the transcoded files are stored in.

        Args:
            mode: Selection mode
            source_location: Storage location of the source file
            custom_location: Location name for ``custom`` mode

        Returns:
            Target location name

        Raises:
            ConfigurationError: If a custom location is not configured
        """
        if mode == StorageAdapterMode.SOURCE:
            return source_location or self.default_location

        if mode == StorageAdapterMode.CUSTOM and custom_location:
            if not self.exists(custom_location):
                raise ConfigurationError(
                    f'Custom storage location "{custom_location}" does not exist. '
                    f"Please ensure {self._key(custom_location, 'DRIVER')} is configured. "
                    f"Available locations: {self.locations}"
                )
            logger.info(f"Using custom storage location: {custom_location}")
            return custom_location

        return self.default_location
