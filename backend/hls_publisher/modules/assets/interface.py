"""Asset Store Interface - contract for the content service artifacts are published to.

The store persists file records, assigns them opaque identifiers, and
organizes them in folders. Implementations raise ``PersistenceError`` for any
failed query or write.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


@dataclass
class FileRecord:
    """A file record held by the store."""
    id: str
    filename_disk: str
    storage: str
    folder: Optional[str] = None
    type: Optional[str] = None
    filesize: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "FileRecord":
        known = {"id", "filename_disk", "storage", "folder", "type", "filesize"}
        return cls(
            id=str(data.get("id", "")),
            filename_disk=data.get("filename_disk") or "",
            storage=data.get("storage") or "",
            folder=data.get("folder"),
            type=data.get("type"),
            filesize=data.get("filesize"),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class ArtifactMetadata:
    """Metadata sent when registering a new artifact."""
    filename_disk: str
    storage: str
    type: str
    filesize: int
    folder: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def to_record(self) -> dict:
        """Record payload as understood by the store."""
        data: dict[str, Any] = {
            "storage": self.storage,
            "filename_disk": self.filename_disk,
            "filename_download": self.filename_disk,
            "title": self.filename_disk,
            "type": self.type,
            "filesize": self.filesize,
        }
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        if self.folder:
            data["folder"] = self.folder
        return data


class AssetStore(ABC):
    """Abstract interface for asset store implementations."""

    @abstractmethod
    async def get_file(self, file_id: str) -> FileRecord:
        """Read a file record by identifier."""
        pass

    @abstractmethod
    async def find_artifact(
        self,
        filename_disk: str,
        storage: str,
        folder: Optional[str],
    ) -> Optional[str]:
        """Find an existing artifact by (filename, storage, folder).

        Returns:
            The identifier of the first match, or None
        """
        pass

    @abstractmethod
    async def register_artifact(
        self,
        metadata: ArtifactMetadata,
        source_path: Optional[Path] = None,
    ) -> str:
        """Create a file record.

        Args:
            metadata: Record metadata
            source_path: Local file whose bytes are streamed to the store; None
                when the file already sits in the target storage location

        Returns:
            Identifier of the new record
        """
        pass

    @abstractmethod
    async def find_folder(self, name: str, parent: Optional[str]) -> Optional[str]:
        """Find a folder by (name, parent)."""
        pass

    @abstractmethod
    async def create_folder(self, name: str, parent: Optional[str]) -> str:
        """Create a folder and return its identifier."""
        pass
