"""Artifact models and the artifact registry.

Artifacts are identified structurally (kind + quality + segment index) rather
than by filename, so a ``720p`` segment can never be confused with a ``1080p``
one even if two names collide after path stripping.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Optional

MIME_TYPES = {
    "ts": "video/mp2t",
    "mp4": "video/mp4",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "m3u8": "application/x-mpegurl",
}
DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(filename: str) -> str:
    """Derive a MIME type from a filename extension."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return MIME_TYPES.get(extension, DEFAULT_MIME_TYPE)


class ArtifactKind(str, Enum):
    """Kinds of files produced by a job."""
    SEGMENT = "segment"
    QUALITY_MANIFEST = "quality-manifest"
    MASTER_MANIFEST = "master-manifest"
    THUMBNAIL = "thumbnail"


@dataclass(frozen=True)
class ArtifactKey:
    """Structural identity of an artifact within one job."""
    kind: ArtifactKind
    quality_id: Optional[int] = None
    index: Optional[int] = None

    @classmethod
    def from_filename(cls, base: str, filename: str) -> Optional["ArtifactKey"]:
        """Parse a produced filename back into its key.

        Returns None for names that do not follow the job's naming scheme.
        """
        if not filename.startswith(f"{base}_"):
            return None
        rest = filename[len(base) + 1:]
        if rest == "master.m3u8":
            return cls(ArtifactKind.MASTER_MANIFEST)
        if rest == "thumb.jpg":
            return cls(ArtifactKind.THUMBNAIL)
        match = _QUALITY_FILE.fullmatch(rest)
        if not match:
            return None
        quality_id = int(match.group("quality"))
        if match.group("index") is not None:
            return cls(ArtifactKind.SEGMENT, quality_id, int(match.group("index")))
        return cls(ArtifactKind.QUALITY_MANIFEST, quality_id)


_QUALITY_FILE = re.compile(r"(?P<quality>\d+)p(?:_(?P<index>\d+)\.ts|\.m3u8)")


@dataclass(frozen=True)
class Artifact:
    """A file produced by the pipeline, ready to be published."""
    path: Path
    kind: ArtifactKind
    quality_id: Optional[int] = None
    index: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def mime_type(self) -> str:
        return guess_mime_type(self.filename)

    @property
    def key(self) -> ArtifactKey:
        return ArtifactKey(self.kind, self.quality_id, self.index)

    @classmethod
    def from_path(
        cls,
        path: Path,
        base: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> "Artifact":
        """Build an artifact from a produced file, inferring its key from the name.

        Raises:
            ValueError: If the name does not follow the job's naming scheme
        """
        key = ArtifactKey.from_filename(base, path.name)
        if key is None:
            raise ValueError(f"Not a file produced for {base!r}: {path.name}")
        return cls(
            path=path,
            kind=key.kind,
            quality_id=key.quality_id,
            index=key.index,
            width=width,
            height=height,
        )


@dataclass
class PublishedFile:
    """A published artifact as reported in the job result."""
    filename: str
    id: str


class ArtifactRegistry:
    """Identifiers of the artifacts published so far in one job.

    Entries are only ever added. Lookups resolve a playlist reference to the
    structural key of the file it names, so the lookup does not depend on the
    order in which files were published.
    """

    def __init__(self, base: str):
        self.base = base
        self._by_key: dict[ArtifactKey, str] = {}
        self._by_name: dict[str, str] = {}
        self.files: list[PublishedFile] = []

    def __len__(self) -> int:
        return len(self.files)

    def __contains__(self, key: ArtifactKey) -> bool:
        return key in self._by_key

    def register(self, artifact: Artifact, artifact_id: str) -> None:
        """Record the identifier an artifact was published under."""
        if artifact.filename in self._by_name:
            return
        self._by_name[artifact.filename] = artifact_id
        self._by_key.setdefault(artifact.key, artifact_id)
        self.files.append(PublishedFile(filename=artifact.filename, id=artifact_id))

    def get(self, key: ArtifactKey) -> Optional[str]:
        return self._by_key.get(key)

    def has_id(self, artifact_id: str) -> bool:
        return any(f.id == artifact_id for f in self.files)

    def lookup(self, reference: str) -> Optional[str]:
        """Resolve a playlist reference (filename or path) to an identifier."""
        reference = reference.strip()
        candidates = [reference]
        basename = PurePosixPath(reference).name
        if basename and basename != reference:
            candidates.append(basename)

        for candidate in candidates:
            key = ArtifactKey.from_filename(self.base, candidate)
            if key is not None and key in self._by_key:
                return self._by_key[key]
        for candidate in candidates:
            if candidate in self._by_name:
                return self._by_name[candidate]
        return None
