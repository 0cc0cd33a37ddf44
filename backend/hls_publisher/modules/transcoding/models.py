"""Domain models for HLS transcoding.

The quality catalog is a fixed bitrate ladder, indexed by target height.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Dimensions reported when the source cannot be probed: large enough that no
# quality level is excluded by the no-upscaling rule.
UNKNOWN_DIMENSION = 99999

MANIFEST_HEADER = "#EXTM3U"
SEGMENT_DURATION = 4  # seconds
PLAYLIST_TYPE = "vod"
VIDEO_PROFILE = "main"
AUDIO_SAMPLE_RATE = 48000
GOP_SIZE = 48


@dataclass(frozen=True)
class QualityLevel:
    """A single rendition in the bitrate ladder."""
    id: int  # target height
    width: int
    height: int
    video_bitrate: int  # kbps
    max_bitrate: int  # kbps
    buffer_size: int  # kbps
    audio_bitrate: int  # kbps
    crf: int

    @property
    def label(self) -> str:
        return f"{self.id}p"

    @property
    def bandwidth(self) -> int:
        """Advertised bandwidth in bps for the master playlist."""
        return self.video_bitrate * 1000

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    def playlist_name(self, base: str) -> str:
        return f"{base}_{self.label}.m3u8"

    def segment_pattern(self, base: str) -> str:
        return f"{base}_{self.label}_%03d.ts"


# Ascending resolution order; ids are unique.
QUALITY_CATALOG: tuple[QualityLevel, ...] = (
    QualityLevel(id=240, width=426, height=240, video_bitrate=400, max_bitrate=428,
                 buffer_size=600, audio_bitrate=64, crf=22),
    QualityLevel(id=480, width=854, height=480, video_bitrate=1400, max_bitrate=1498,
                 buffer_size=2100, audio_bitrate=128, crf=20),
    QualityLevel(id=720, width=1280, height=720, video_bitrate=2800, max_bitrate=2996,
                 buffer_size=4200, audio_bitrate=128, crf=20),
    QualityLevel(id=1080, width=1920, height=1080, video_bitrate=5000, max_bitrate=5350,
                 buffer_size=7500, audio_bitrate=192, crf=20),
    QualityLevel(id=2160, width=3840, height=2160, video_bitrate=20000, max_bitrate=21400,
                 buffer_size=30000, audio_bitrate=192, crf=20),
)

QUALITY_IDS: tuple[int, ...] = tuple(level.id for level in QUALITY_CATALOG)

DEFAULT_QUALITY_SELECTION: list[str] = [level.label for level in QUALITY_CATALOG]


def get_quality_level(quality_id: int) -> QualityLevel:
    """Look up a catalog entry by id.

    Raises:
        KeyError: If the id is not in the catalog
    """
    for level in QUALITY_CATALOG:
        if level.id == quality_id:
            return level
    raise KeyError(quality_id)


@dataclass(frozen=True)
class SourceMedia:
    """The video being transcoded, as recorded in the asset store."""
    filename: str  # filename on disk
    storage: str  # storage location name
    driver: str
    artifact_id: Optional[str] = None

    @property
    def base_name(self) -> str:
        """Filename without its extension; prefix of every produced file."""
        return Path(self.filename).stem


@dataclass(frozen=True)
class ProbeResult:
    """Source geometry and format, as reported by the prober."""
    width: int
    height: int
    duration_ms: int = 0
    high_bit_depth: bool = False

    @property
    def is_vertical(self) -> bool:
        return self.height > self.width

    @classmethod
    def unknown(cls, high_bit_depth: bool = False) -> "ProbeResult":
        """Fallback used when the source geometry cannot be probed."""
        return cls(
            width=UNKNOWN_DIMENSION,
            height=UNKNOWN_DIMENSION,
            duration_ms=0,
            high_bit_depth=high_bit_depth,
        )


@dataclass(frozen=True)
class QualityPlan:
    """Ordered subset of the catalog to encode for one job."""
    levels: tuple[QualityLevel, ...] = ()

    def __iter__(self):
        return iter(self.levels)

    def __len__(self) -> int:
        return len(self.levels)

    def __bool__(self) -> bool:
        return bool(self.levels)

    @property
    def ids(self) -> list[int]:
        return [level.id for level in self.levels]
