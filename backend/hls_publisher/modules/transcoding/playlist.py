"""HLS master playlist construction and playlist reference rewriting."""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Iterable

from hls_publisher.core.exceptions import NoRenditionsError, NotFoundError
from hls_publisher.modules.assets.models import ArtifactRegistry
from hls_publisher.modules.transcoding.models import MANIFEST_HEADER, QualityPlan

logger = logging.getLogger(__name__)

HLS_VERSION = 3
ASSET_PREFIX = "/assets/"

_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class ReferenceMode(str, Enum):
    """How a rewritten playlist refers to published files."""
    ID = "id"
    FILENAME_DISK = "filename_disk"


def master_playlist_name(base: str) -> str:
    return f"{base}_master.m3u8"


def _has_content(path: Path) -> bool:
    return path.is_file() and path.stat().st_size > 0


def available_qualities(plan: QualityPlan, output_dir: Path, base: str) -> list[int]:
    """Ids of planned levels whose per-quality playlist exists on disk."""
    return [level.id for level in plan if (output_dir / level.playlist_name(base)).exists()]


def build_master_playlist(plan: QualityPlan, output_dir: Path, base: str) -> list[str]:
    """Build the master playlist lines for every usable rendition.

    Raises:
        NoRenditionsError: If no planned level produced a non-empty playlist
    """
    lines = [MANIFEST_HEADER, f"#EXT-X-VERSION:{HLS_VERSION}"]
    added = 0
    for level in plan:
        playlist_name = level.playlist_name(base)
        if not _has_content(output_dir / playlist_name):
            logger.warning(f"Skipping {level.label} in master playlist: {playlist_name} missing or empty")
            continue
        lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={level.bandwidth},RESOLUTION={level.resolution}")
        lines.append(playlist_name)
        added += 1

    if not added:
        raise NoRenditionsError("No valid quality playlists found, cannot create master playlist")
    return lines


def write_master_playlist(plan: QualityPlan, output_dir: Path, base: str) -> Path:
    """Build and write ``<base>_master.m3u8``.

    Raises:
        NoRenditionsError: If no rendition can be listed
    """
    lines = build_master_playlist(plan, output_dir, base)
    master_path = output_dir / master_playlist_name(base)
    master_path.write_text("\n".join(lines), encoding="utf-8")
    logger.info(f"Master playlist written with {(len(lines) - 2) // 2} renditions")
    return master_path


def segment_references(manifest_path: Path, output_dir: Path, base: str) -> list[str]:
    """Segment filenames referenced by a per-quality playlist.

    Only names that follow the job's naming scheme and exist on disk are
    returned, in first-seen order without duplicates.
    """
    seen: dict[str, None] = {}
    content = manifest_path.read_text(encoding="utf-8", errors="replace")
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or not line.endswith(".ts"):
            continue
        name = Path(line).name
        if name.startswith(base) and (output_dir / name).is_file():
            seen.setdefault(name, None)
    return list(seen)


def is_artifact_id(token: str) -> bool:
    return bool(_UUID.match(token))


def rewrite_line(line: str, registry: ArtifactRegistry, mode: ReferenceMode) -> str:
    """Rewrite one playlist line; tags, blanks and unknown references pass through."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return line

    token = stripped[len(ASSET_PREFIX):] if stripped.startswith(ASSET_PREFIX) else stripped

    if mode == ReferenceMode.ID and (is_artifact_id(token) or registry.has_id(token)):
        return token

    artifact_id = registry.lookup(token)
    if artifact_id is None:
        logger.warning(f"No published file found for playlist reference {stripped!r}, leaving it unchanged")
        return line

    if mode == ReferenceMode.FILENAME_DISK:
        return token
    return artifact_id


def rewrite_playlist_lines(
    lines: Iterable[str],
    registry: ArtifactRegistry,
    mode: ReferenceMode = ReferenceMode.ID,
) -> list[str]:
    """Replace local file references with published references.

    Rewriting an already rewritten playlist leaves it unchanged.
    """
    return [rewrite_line(line, registry, mode) for line in lines]


def rewrite_playlist_file(
    path: Path,
    registry: ArtifactRegistry,
    mode: ReferenceMode = ReferenceMode.ID,
) -> Path:
    """Rewrite a playlist in place.

    Raises:
        NotFoundError: If the playlist is missing or empty
    """
    if not path.is_file():
        raise NotFoundError(f"Playlist not found: {path}")
    content = path.read_text(encoding="utf-8")
    if not content.strip():
        raise NotFoundError(f"Playlist is empty: {path}")

    rewritten = rewrite_playlist_lines(content.split("\n"), registry, mode)
    path.write_text("\n".join(rewritten), encoding="utf-8")
    logger.info(f"Updated playlist references in {path.name}")
    return path
