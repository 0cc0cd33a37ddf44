"""Assets module for publishing produced files into the asset store.

Provides the artifact models and registry, the asset store interface with its
HTTP implementation, and the deduplicating publisher.
"""

from hls_publisher.modules.assets.client import HttpAssetStore
from hls_publisher.modules.assets.interface import ArtifactMetadata, AssetStore, FileRecord
from hls_publisher.modules.assets.models import (
    Artifact,
    ArtifactKey,
    ArtifactKind,
    ArtifactRegistry,
    PublishedFile,
    guess_mime_type,
)
from hls_publisher.modules.assets.publisher import ArtifactPublisher, ensure_folder

__all__ = [
    "Artifact",
    "ArtifactKey",
    "ArtifactKind",
    "ArtifactMetadata",
    "ArtifactPublisher",
    "ArtifactRegistry",
    "AssetStore",
    "FileRecord",
    "HttpAssetStore",
    "PublishedFile",
    "ensure_folder",
    "guess_mime_type",
]
