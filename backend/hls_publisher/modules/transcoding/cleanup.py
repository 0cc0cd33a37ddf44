"""Removal of local files once they are no longer needed.

Cleanup never fails a job: every error is logged and skipped.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from hls_publisher.modules.transcoding.source import AcquiredSource

logger = logging.getLogger(__name__)


def cleanup_outputs(output_dir: Path, base: str, keep: Optional[str] = None) -> list[str]:
    """Delete produced files after they were uploaded to remote storage.

    Every ``<base>_*`` file is removed except ``keep`` (the source
    filename).

    Returns:
        Names of the deleted files
    """
    deleted: list[str] = []
    try:
        names = os.listdir(output_dir)
    except OSError as e:
        logger.warning(f"Failed to list {output_dir} for cleanup: {e}")
        return deleted

    for name in names:
        if not name.startswith(f"{base}_") or name == keep:
            continue
        try:
            (output_dir / name).unlink()
            deleted.append(name)
        except OSError as e:
            logger.warning(f"Failed to delete {name}: {e}")

    logger.info(f"Removed {len(deleted)} local files after upload")
    return deleted


def cleanup_temp_source(acquired: Optional[AcquiredSource]) -> bool:
    """Delete a downloaded source copy. Sources used in place are left alone."""
    if acquired is None or not acquired.temporary:
        return False
    try:
        acquired.path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to delete temporary file {acquired.path}: {e}")
        return False
    logger.info(f"Temporary file deleted: {acquired.path}")
    return True
