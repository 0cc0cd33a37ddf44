"""Artifact publishing with per-file deduplication."""

import logging
from typing import Optional

from hls_publisher.core.exceptions import NotFoundError
from hls_publisher.core.storage import StorageLocation
from hls_publisher.modules.assets.interface import ArtifactMetadata, AssetStore
from hls_publisher.modules.assets.models import Artifact

logger = logging.getLogger(__name__)


async def ensure_folder(store: AssetStore, name: str, parent: Optional[str] = None) -> str:
    """Find a folder by (name, parent), creating it when absent.

    Raises:
        PersistenceError: If the store query or creation fails
    """
    folder_id = await store.find_folder(name, parent)
    if folder_id:
        return folder_id
    folder_id = await store.create_folder(name, parent)
    logger.info(f"Created folder {name!r}")
    return folder_id


class ArtifactPublisher:
    """Publishes produced files into one storage location and folder.

    A file already known to the store under the same (filename, storage,
    folder) is reused rather than registered again.
    """

    def __init__(self, store: AssetStore, target: StorageLocation, folder_id: Optional[str]):
        self.store = store
        self.target = target
        self.folder_id = folder_id

    async def find_existing(self, filename: str) -> Optional[str]:
        return await self.store.find_artifact(filename, self.target.name, self.folder_id)

    async def publish(self, artifact: Artifact) -> str:
        """Publish one artifact and return its identifier.

        Raises:
            NotFoundError: If the file does not exist
            PersistenceError: If the store rejects the query or the write
        """
        if not artifact.path.is_file():
            raise NotFoundError(f"File does not exist: {artifact.path}")

        existing = await self.find_existing(artifact.filename)
        if existing:
            logger.info(f"Artifact already exists: {artifact.filename}", extra={"artifact_id": existing})
            return existing

        metadata = ArtifactMetadata(
            filename_disk=artifact.filename,
            storage=self.target.name,
            type=artifact.mime_type,
            filesize=artifact.path.stat().st_size,
            folder=self.folder_id,
            width=artifact.width,
            height=artifact.height,
        )
        # Local targets already hold the bytes; remote targets receive them.
        source_path = None if self.target.is_local else artifact.path
        artifact_id = await self.store.register_artifact(metadata, source_path)
        logger.debug(f"Published {artifact.filename}", extra={"artifact_id": artifact_id})
        return artifact_id
