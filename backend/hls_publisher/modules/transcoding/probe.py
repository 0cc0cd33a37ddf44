"""Source metadata probing with ffprobe.

Geometry failures are not fatal for a job: the caller falls back to an
unknown (effectively infinite) resolution so no quality is excluded.
"""

import json
import logging
import math
import re
from pathlib import Path
from typing import Optional, Union

from hls_publisher.core.exceptions import ExternalToolError
from hls_publisher.core.logging import log_error
from hls_publisher.modules.transcoding.models import ProbeResult
from hls_publisher.modules.transcoding.runner import CommandRunner

logger = logging.getLogger(__name__)

# yuv420p10le, p010le, yuv444p12be, gray16le, ...
_HIGH_BIT_DEPTH_PIX_FMT = re.compile(r"(1[0246])(le|be)$")


def is_high_bit_depth(pix_fmt: Optional[str]) -> bool:
    """Check whether a pixel format name denotes 10-bit or deeper samples."""
    if not pix_fmt:
        return False
    return bool(_HIGH_BIT_DEPTH_PIX_FMT.search(pix_fmt))


class MediaProbe:
    """Thin wrapper around ffprobe returning parsed JSON."""

    def __init__(
        self,
        runner: CommandRunner,
        ffprobe_path: str = "ffprobe",
        timeout: Optional[float] = None,
    ):
        self.runner = runner
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    async def _probe_json(self, path: Union[str, Path], entries: str) -> dict:
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", entries,
            "-of", "json",
            str(path),
        ]
        result = await self.runner.run(cmd, timeout=self.timeout)
        if not result.success:
            raise ExternalToolError(
                f"ffprobe exited with {result.exit_code}: {result.stderr.strip()}"
            )
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ExternalToolError(f"ffprobe returned malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise ExternalToolError("ffprobe returned unexpected JSON")
        return data

    @staticmethod
    def _first_stream(data: dict) -> dict:
        streams = data.get("streams") or []
        return streams[0] if streams and isinstance(streams[0], dict) else {}

    async def probe_geometry(self, path: Union[str, Path]) -> ProbeResult:
        """Get width, height and duration of the first video stream.

        Raises:
            ExternalToolError: If the prober fails or reports no dimensions
        """
        data = await self._probe_json(path, "stream=width,height:format=duration")
        stream = self._first_stream(data)
        if not stream.get("width") or not stream.get("height"):
            raise ExternalToolError("Could not get video dimensions")

        try:
            width = int(stream["width"])
            height = int(stream["height"])
        except (TypeError, ValueError) as e:
            raise ExternalToolError(f"Invalid video dimensions: {e}") from e

        duration_ms = 0
        raw_duration = (data.get("format") or {}).get("duration")
        if raw_duration:
            try:
                duration_ms = math.floor(float(raw_duration) * 1000)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring unparseable duration {raw_duration!r}")

        return ProbeResult(width=width, height=height, duration_ms=duration_ms)

    async def probe_high_bit_depth(self, path: Union[str, Path]) -> bool:
        """Check whether the source uses a 10-bit or deeper pixel format.

        Any probing failure is treated as 8-bit.
        """
        try:
            data = await self._probe_json(path, "stream=pix_fmt")
        except ExternalToolError as e:
            logger.warning(f"Error checking bit depth, assuming 8-bit: {e}")
            return False
        return is_high_bit_depth(self._first_stream(data).get("pix_fmt"))

    async def probe(self, path: Union[str, Path]) -> ProbeResult:
        """Probe geometry and bit depth, falling back to unknown geometry."""
        high_bit_depth = await self.probe_high_bit_depth(path)
        if high_bit_depth:
            logger.info("High bit depth detected, will convert to yuv420p")

        try:
            geometry = await self.probe_geometry(path)
        except ExternalToolError as e:
            log_error(logger, "Error getting source metadata, allowing all qualities", e)
            return ProbeResult.unknown(high_bit_depth=high_bit_depth)

        logger.info(f"Source video resolution: {geometry.width}x{geometry.height}")
        return ProbeResult(
            width=geometry.width,
            height=geometry.height,
            duration_ms=geometry.duration_ms,
            high_bit_depth=high_bit_depth,
        )

    async def probe_image(self, path: Union[str, Path]) -> tuple[int, int]:
        """Get the dimensions of an image (the thumbnail).

        Raises:
            ExternalToolError: If the dimensions cannot be determined
        """
        data = await self._probe_json(path, "stream=width,height")
        stream = self._first_stream(data)
        if not stream.get("width") or not stream.get("height"):
            raise ExternalToolError("Could not get image dimensions")
        return int(stream["width"]), int(stream["height"])
