"""Core module for configuration, logging, tracing and storage resolution."""

from hls_publisher.core.config import Settings, settings
from hls_publisher.core.storage import StorageLocation, StorageResolver

__all__ = [
    "Settings",
    "settings",
    "StorageLocation",
    "StorageResolver",
]
