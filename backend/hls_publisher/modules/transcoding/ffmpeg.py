"""FFmpeg HLS transcoding.

Encodes each planned quality level into a per-quality playlist plus numbered
``.ts`` segments, one level at a time. The first failure aborts the job so a
broken rendition never ends up in an otherwise complete ladder.
"""

import logging
import os
import re
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from hls_publisher.core.exceptions import ExternalToolError
from hls_publisher.modules.transcoding.models import (
    AUDIO_SAMPLE_RATE,
    GOP_SIZE,
    MANIFEST_HEADER,
    PLAYLIST_TYPE,
    QUALITY_CATALOG,
    SEGMENT_DURATION,
    VIDEO_PROFILE,
    QualityLevel,
    QualityPlan,
)
from hls_publisher.modules.transcoding.runner import CommandRunner

logger = logging.getLogger(__name__)

MIN_NICE = 0
MAX_NICE = 19
DEFAULT_THREADS = 1


def validate_threads(threads: Any) -> int:
    """Coerce a thread count; 0 means all cores, anything invalid becomes 1."""
    try:
        value = int(str(threads), 10)
    except (TypeError, ValueError):
        return DEFAULT_THREADS
    return value if value >= 0 else DEFAULT_THREADS


def validate_nice(nice: Any) -> Optional[int]:
    """Coerce a process priority hint; out-of-range values are ignored."""
    if nice is None or nice == "":
        return None
    try:
        value = int(str(nice), 10)
    except (TypeError, ValueError):
        value = None
    if value is None or not MIN_NICE <= value <= MAX_NICE:
        logger.warning(f"Invalid nice value: {nice}. Must be between {MIN_NICE} and {MAX_NICE}. Ignoring.")
        return None
    return value


def build_scale_filter(level: QualityLevel, high_bit_depth: bool = False) -> str:
    """Fit within the level's box, keep aspect ratio, force even dimensions."""
    pixel_format = "format=yuv420p," if high_bit_depth else ""
    return (
        f"{pixel_format}"
        f"scale=w='min({level.width},iw)':h='min({level.height},ih)'"
        f":force_original_aspect_ratio=decrease,"
        f"scale=trunc(iw/2)*2:trunc(ih/2)*2"
    )


def has_existing_renditions(output_dir: Path, base: str, source_name: Optional[str] = None) -> bool:
    """Check whether a previous run already produced renditions for ``base``.

    Only files named ``<base>_<label>.m3u8`` or ``<base>_<label>_<n>.ts``
    count; ``source_name`` never does.
    """
    if not output_dir.is_dir():
        return False
    labels = {level.label for level in QUALITY_CATALOG}
    prefix = f"{base}_"
    for name in os.listdir(output_dir):
        if name == source_name or not name.startswith(prefix):
            continue
        label = re.split(r"[._]", name[len(prefix):], maxsplit=1)[0]
        if label in labels:
            return True
    return False


@dataclass
class EncoderOptions:
    """Per-job encoder settings shared by every quality level."""
    threads: int = DEFAULT_THREADS
    nice: Optional[int] = None
    high_bit_depth: bool = False


class HLSTranscoder:
    """Drives ffmpeg through a quality plan."""

    def __init__(
        self,
        runner: CommandRunner,
        ffmpeg_path: str = "ffmpeg",
        nice_path: str = "nice",
        timeout: Optional[float] = None,
    ):
        self.runner = runner
        self.ffmpeg_path = ffmpeg_path
        self.nice_path = nice_path
        self.timeout = timeout

    def ensure_available(self) -> None:
        """Check that ffmpeg can be found before any work starts.

        Raises:
            ExternalToolError: If ffmpeg is not installed
        """
        if not shutil.which(self.ffmpeg_path):
            raise ExternalToolError(
                "FFmpeg is not installed or not found in PATH. Please install ffmpeg."
            )

    def _priority_prefix(self, nice: Optional[int]) -> list[str]:
        if nice is None:
            return []
        if sys.platform == "win32":
            logger.warning(
                f"Nice value ({nice}) specified but running on Windows, ignoring priority setting"
            )
            return []
        return [self.nice_path, "-n", str(nice)]

    def build_command(
        self,
        level: QualityLevel,
        input_path: Path,
        output_dir: Path,
        base: str,
        options: EncoderOptions,
    ) -> list[str]:
        """Build the ffmpeg command for one quality level."""
        return [
            *self._priority_prefix(options.nice),
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-threads", str(options.threads),
            "-vf", build_scale_filter(level, options.high_bit_depth),
            "-c:a", "aac",
            "-ar", str(AUDIO_SAMPLE_RATE),
            "-c:v", "h264",
            "-profile:v", VIDEO_PROFILE,
            "-crf", str(level.crf),
            "-sc_threshold", "0",
            "-g", str(GOP_SIZE),
            "-keyint_min", str(GOP_SIZE),
            "-hls_time", str(SEGMENT_DURATION),
            "-hls_playlist_type", PLAYLIST_TYPE,
            "-b:v", f"{level.video_bitrate}k",
            "-maxrate", f"{level.max_bitrate}k",
            "-bufsize", f"{level.buffer_size}k",
            "-b:a", f"{level.audio_bitrate}k",
            "-hls_segment_filename", str(output_dir / level.segment_pattern(base)),
            str(output_dir / level.playlist_name(base)),
        ]

    @staticmethod
    def verify_playlist(playlist_path: Path) -> None:
        """Check that a per-quality playlist exists and looks like HLS.

        Raises:
            ExternalToolError: If the playlist is missing, empty or invalid
        """
        if not playlist_path.exists():
            raise ExternalToolError(f"Playlist file was not created: {playlist_path}")
        if playlist_path.stat().st_size == 0:
            raise ExternalToolError(f"Playlist file is empty: {playlist_path}")
        content = playlist_path.read_text(encoding="utf-8", errors="replace")
        if MANIFEST_HEADER not in content:
            raise ExternalToolError(
                f"Playlist file does not contain valid HLS content: {playlist_path}"
            )

    async def transcode_level(
        self,
        level: QualityLevel,
        input_path: Path,
        output_dir: Path,
        base: str,
        options: EncoderOptions,
    ) -> Path:
        """Encode one quality level and verify its playlist.

        Returns:
            Path of the per-quality playlist

        Raises:
            ExternalToolError: If ffmpeg fails or the output is unusable
        """
        cmd = self.build_command(level, input_path, output_dir, base, options)
        result = await self.runner.run(cmd, timeout=self.timeout)

        if not result.success:
            logger.error(f"Error occurred for quality: {level.label}", extra={"stderr": result.stderr})
            raise ExternalToolError(
                f"FFmpeg transcoding failed for quality {level.label}: "
                f"exit code {result.exit_code}. stderr: {result.stderr}"
            )

        if "command not found" in result.stderr:
            raise ExternalToolError(f"FFmpeg command not found. stderr: {result.stderr}")

        playlist_path = output_dir / level.playlist_name(base)
        try:
            self.verify_playlist(playlist_path)
        except ExternalToolError:
            logger.error(f"Invalid output for quality {level.label}", extra={"stderr": result.stderr})
            raise

        logger.info(f"Transcoding finished for quality: {level.label}")
        return playlist_path

    async def transcode(
        self,
        plan: QualityPlan,
        input_path: Path,
        output_dir: Path,
        base: str,
        options: EncoderOptions,
    ) -> bool:
        """Encode every planned level, sequentially, unless already done.

        Returns:
            True if ffmpeg ran, False if existing renditions were reused

        Raises:
            ExternalToolError: On the first failing level
        """
        if has_existing_renditions(output_dir, base, source_name=input_path.name):
            logger.info("Transcoded files already exist, skipping transcoding")
            return False

        logger.info("No existing files found, starting transcoding...")
        for level in plan:
            logger.info(f"Starting transcoding for quality: {level.label}")
            await self.transcode_level(level, input_path, output_dir, base, options)
        logger.info("All qualities transcoded successfully")
        return True

    async def extract_thumbnail(self, input_path: Path, output_path: Path) -> Path:
        """Grab a single frame one second into the video.

        Raises:
            ExternalToolError: If the frame cannot be extracted
        """
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-ss", "1",
            "-vframes", "1",
            "-q:v", "2",
            str(output_path),
        ]
        result = await self.runner.run(cmd, timeout=self.timeout)
        if not result.success:
            raise ExternalToolError(
                f"Thumbnail extraction failed: exit code {result.exit_code}. stderr: {result.stderr}"
            )
        if not output_path.exists():
            raise ExternalToolError(f"Thumbnail file was not created: {output_path}")
        if output_path.stat().st_size == 0:
            raise ExternalToolError(f"Thumbnail file is empty: {output_path}")
        return output_path
