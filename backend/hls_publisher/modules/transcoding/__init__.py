"""Transcoding module for converting a source video into an HLS package.

Provides the quality catalog and planner, the ffprobe/ffmpeg wrappers, the
playlist builder and rewriter, source acquisition, cleanup, and the pipeline
service that ties them together.
"""

from hls_publisher.modules.transcoding.models import (
    QUALITY_CATALOG,
    ProbeResult,
    QualityLevel,
    QualityPlan,
    SourceMedia,
)
from hls_publisher.modules.transcoding.playlist import ReferenceMode
from hls_publisher.modules.transcoding.schemas import (
    ErrorResult,
    PipelineResult,
    TranscodeRequest,
)
from hls_publisher.modules.transcoding.service import TranscodePipeline

__all__ = [
    "QUALITY_CATALOG",
    "ErrorResult",
    "PipelineResult",
    "ProbeResult",
    "QualityLevel",
    "QualityPlan",
    "ReferenceMode",
    "SourceMedia",
    "TranscodePipeline",
    "TranscodeRequest",
]
