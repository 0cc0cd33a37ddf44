"""Transcoding pipeline service.

Runs one job end to end: resolve storage, acquire the source, probe it, plan
the quality ladder, encode, build the master playlist, publish every artifact,
rewrite playlist references and clean up.

Requirements covered by this module:
- Pre-flight validation errors are raised to the caller
- Every later failure is returned as an ErrorResult payload
- A downloaded source copy is removed whatever the outcome
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Union

import httpx

from hls_publisher.core.config import Settings
from hls_publisher.core.exceptions import TranscodePipelineError, ValidationError
from hls_publisher.core.logging import (
    bind_job,
    log_error,
    log_info,
    log_warning,
    unbind_job,
)
from hls_publisher.core.storage import StorageLocation, StorageResolver
from hls_publisher.core.tracing import mark_span_failed, stage_span
from hls_publisher.modules.assets.interface import AssetStore
from hls_publisher.modules.assets.models import Artifact, ArtifactKind, ArtifactRegistry
from hls_publisher.modules.assets.publisher import ArtifactPublisher, ensure_folder
from hls_publisher.modules.transcoding.cleanup import cleanup_outputs, cleanup_temp_source
from hls_publisher.modules.transcoding.ffmpeg import (
    EncoderOptions,
    HLSTranscoder,
    validate_nice,
    validate_threads,
)
from hls_publisher.modules.transcoding.models import ProbeResult, QualityPlan, SourceMedia
from hls_publisher.modules.transcoding.planner import build_quality_plan
from hls_publisher.modules.transcoding.playlist import (
    ReferenceMode,
    available_qualities,
    rewrite_playlist_file,
    segment_references,
    write_master_playlist,
)
from hls_publisher.modules.transcoding.probe import MediaProbe
from hls_publisher.modules.transcoding.runner import CommandRunner
from hls_publisher.modules.transcoding.schemas import (
    Dimensions,
    ErrorResult,
    MasterRef,
    PipelineResult,
    ResultMetadata,
    TranscodeRequest,
    UploadedFile,
)
from hls_publisher.modules.transcoding.source import (
    AcquiredSource,
    SourceAcquirer,
    build_public_base_url,
)

logger = logging.getLogger(__name__)

NO_QUALITIES_ERROR = "no quality levels selected"


class SourceLocks:
    """In-process locks serializing jobs that share a source or its outputs.

    A job holds the lock of its source (storage location and file) from
    download to temp cleanup, and the lock of its output directory and base
    name while encoding and publishing. A lock only lives while some job
    holds or waits for it.
    """

    def __init__(self):
        self._locks: dict[tuple[str, ...], asyncio.Lock] = {}
        self._users: dict[tuple[str, ...], int] = {}

    @staticmethod
    def source_key(source: SourceMedia) -> tuple[str, ...]:
        return ("source", source.storage, source.filename)

    @staticmethod
    def output_key(output_dir: Path, base: str) -> tuple[str, ...]:
        return ("output", str(Path(output_dir).resolve()), base)

    def is_held(self, key: tuple[str, ...]) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, key: tuple[str, ...]):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


source_locks = SourceLocks()


class TranscodePipeline:
    """Transcodes one source into HLS and publishes the result."""

    def __init__(
        self,
        config: Settings,
        store: AssetStore,
        runner: CommandRunner,
        resolver: StorageResolver,
        http_client: Optional[httpx.AsyncClient] = None,
        locks: Optional[SourceLocks] = None,
        verify_tools: bool = True,
    ):
        self.config = config
        self.store = store
        self.resolver = resolver
        self.working_dir = Path(config.WORKING_DIR or os.getcwd())
        self.probe = MediaProbe(runner, config.FFPROBE_PATH, config.COMMAND_TIMEOUT_SECONDS)
        self.transcoder = HLSTranscoder(
            runner,
            ffmpeg_path=config.FFMPEG_PATH,
            nice_path=config.NICE_PATH,
            timeout=config.COMMAND_TIMEOUT_SECONDS,
        )
        self.acquirer = SourceAcquirer(
            resolver,
            working_dir=self.working_dir,
            temp_subdir=config.TEMP_SUBDIR,
            public_base_url=build_public_base_url(config.PUBLIC_URL, config.HOST, config.PORT),
            http_client=http_client,
            timeout=config.DOWNLOAD_TIMEOUT_SECONDS,
        )
        self.locks = locks or source_locks
        self.verify_tools = verify_tools

    # ============================================
    # Pre-flight
    # ============================================

    async def resolve_source(self, request: TranscodeRequest) -> SourceMedia:
        """Validate the request and resolve the source file record.

        Raises:
            ValidationError: If required input is missing
            NotFoundError: If the file id is unknown to the store
            PersistenceError: If the store cannot be queried
        """
        if request.file is None or request.file == "":
            raise ValidationError("file parameter is required")
        if not request.folder_id:
            raise ValidationError("folder_id parameter is required")

        if isinstance(request.file, str):
            record = await self.store.get_file(request.file)
            file_id = record.id or request.file
            filename, storage = record.filename_disk, record.storage
        else:
            file_id = request.file.id
            filename, storage = request.file.filename_disk, request.file.storage

        if not filename:
            raise ValidationError("file record has no filename_disk")

        storage = storage or self.resolver.default_location
        return SourceMedia(
            filename=filename,
            storage=storage,
            driver=self.resolver.resolve_driver(storage),
            artifact_id=file_id,
        )

    def select_target(self, request: TranscodeRequest, source: SourceMedia) -> StorageLocation:
        """Resolve the storage location the outputs are published to.

        Raises:
            ConfigurationError: If a custom location is not configured
        """
        name = self.resolver.select_target(
            request.storage_adapter,
            source_location=source.storage,
            custom_location=request.target_storage,
        )
        return self.resolver.resolve(name)

    def output_dir_for(
        self,
        source: SourceMedia,
        acquired: AcquiredSource,
        target: StorageLocation,
    ) -> Path:
        """Directory the renditions are written to.

        Local targets mirror the source's relative directory under the target
        root; remote targets work next to the acquired source.

        Raises:
            ConfigurationError: If a local target has no root
        """
        if target.is_local:
            root = self.resolver.require_root(target.name)
            return self.working_dir / root / Path(source.filename).parent
        return acquired.path.parent

    def encoder_options(self, request: TranscodeRequest, probe: ProbeResult) -> EncoderOptions:
        threads = request.threads if request.threads is not None else self.config.TRANSCODE_THREADS
        nice = request.nice if request.nice is not None else self.config.TRANSCODE_NICE
        return EncoderOptions(
            threads=validate_threads(threads),
            nice=validate_nice(nice),
            high_bit_depth=probe.high_bit_depth,
        )

    # ============================================
    # Job
    # ============================================

    async def run(
        self,
        request: Union[TranscodeRequest, dict],
    ) -> Union[PipelineResult, ErrorResult]:
        """Run one transcoding job.

        Args:
            request: Job request, or its raw payload

        Returns:
            PipelineResult on success, ErrorResult on any failure after pre-flight

        Raises:
            ValidationError: If the request is missing required input
        """
        if isinstance(request, dict):
            request = TranscodeRequest.parse(request)
        source = await self.resolve_source(request)
        base = source.base_name
        bind_job(source.artifact_id or base, base)

        with stage_span(
            "job",
            source_filename=source.filename,
            source_storage=source.storage,
            folder_id=request.folder_id,
        ):
            try:
                with stage_span("resolve_storage"):
                    target = self.select_target(request, source)
                log_info(
                    logger,
                    f"Target storage: {target.name} (driver: {target.driver})",
                    target_storage=target.name,
                )

                # The source lock covers the temp copy from download to removal.
                async with self.locks.hold(SourceLocks.source_key(source)):
                    acquired: Optional[AcquiredSource] = None
                    try:
                        with stage_span("acquire_source"):
                            acquired = await self.acquirer.acquire(source)

                        output_dir = self.output_dir_for(source, acquired, target)
                        output_dir.mkdir(parents=True, exist_ok=True)

                        async with self.locks.hold(SourceLocks.output_key(output_dir, base)):
                            return await self._process(request, source, acquired, target, output_dir)
                    finally:
                        cleanup_temp_source(acquired)
            except Exception as e:
                mark_span_failed(e)
                log_error(logger, f"Transcoding failed: {e}", e)
                return ErrorResult(error=str(e) or type(e).__name__)
            finally:
                unbind_job()

    async def _process(
        self,
        request: TranscodeRequest,
        source: SourceMedia,
        acquired: AcquiredSource,
        target: StorageLocation,
        output_dir: Path,
    ) -> Union[PipelineResult, ErrorResult]:
        base = source.base_name

        with stage_span("probe"):
            probe = await self.probe.probe(acquired.path)

        with stage_span("plan"):
            plan = build_quality_plan(request.qualities, probe.height)
        if not plan:
            log_warning(logger, "No quality levels left to encode")
            return ErrorResult(error=NO_QUALITIES_ERROR)

        options = self.encoder_options(request, probe)
        with stage_span("transcode", qualities=plan.ids):
            if self.verify_tools:
                self.transcoder.ensure_available()
            await self.transcoder.transcode(plan, acquired.path, output_dir, base, options)

        with stage_span("build_master"):
            master_path = write_master_playlist(plan, output_dir, base)
            qualities = available_qualities(plan, output_dir, base)

        registry = ArtifactRegistry(base)
        with stage_span("publish"):
            folder_id = await ensure_folder(self.store, base, request.folder_id)
            publisher = ArtifactPublisher(self.store, target, folder_id)
            thumbnail_id = await self.publish_thumbnail(publisher, registry, acquired.path, output_dir, base)
            await self.publish_segments(publisher, registry, plan, output_dir, base)

        with stage_span("rewrite"):
            master_id = await self.publish_manifests(
                publisher,
                registry,
                plan,
                output_dir,
                base,
                master_path,
                request.playlist_reference_type,
            )

        action = "registered" if target.is_local else "uploaded"
        log_info(logger, f"All files {action}: {len(registry)} files total", files=len(registry))

        with stage_span("cleanup"):
            if not target.is_local:
                cleanup_outputs(output_dir, base, keep=acquired.path.name)

        return PipelineResult(
            master=MasterRef(id=master_id, filename=master_path.name),
            metadata=ResultMetadata(
                available_qualities=qualities,
                dimensions=Dimensions(
                    width=probe.width,
                    height=probe.height,
                    is_vertical=probe.is_vertical,
                ),
                duration_ms=probe.duration_ms,
                thumbnail=thumbnail_id,
            ),
            files=[UploadedFile(filename=f.filename, id=f.id) for f in registry.files],
        )

    # ============================================
    # Publishing
    # ============================================

    async def publish_thumbnail(
        self,
        publisher: ArtifactPublisher,
        registry: ArtifactRegistry,
        input_path: Path,
        output_dir: Path,
        base: str,
    ) -> Optional[str]:
        """Reuse or extract and publish the thumbnail. Never fails the job."""
        thumbnail_path = output_dir / f"{base}_thumb.jpg"

        try:
            existing = await publisher.find_existing(thumbnail_path.name)
        except TranscodePipelineError as e:
            log_warning(logger, f"Could not look up existing thumbnail: {e}")
            existing = None
        if existing:
            log_info(logger, "Thumbnail already exists, reusing", artifact_id=existing)
            registry.register(Artifact(thumbnail_path, ArtifactKind.THUMBNAIL), existing)
            return existing

        try:
            await self.transcoder.extract_thumbnail(input_path, thumbnail_path)
        except TranscodePipelineError as e:
            log_error(logger, "Error extracting thumbnail", e)
            return None

        width = height = None
        try:
            width, height = await self.probe.probe_image(thumbnail_path)
        except TranscodePipelineError as e:
            log_warning(logger, f"Could not get thumbnail dimensions: {e}")

        artifact = Artifact(thumbnail_path, ArtifactKind.THUMBNAIL, width=width, height=height)
        try:
            thumbnail_id = await publisher.publish(artifact)
        except TranscodePipelineError as e:
            log_error(logger, "Error publishing thumbnail", e)
            return None
        registry.register(artifact, thumbnail_id)
        return thumbnail_id

    async def publish_segments(
        self,
        publisher: ArtifactPublisher,
        registry: ArtifactRegistry,
        plan: QualityPlan,
        output_dir: Path,
        base: str,
    ) -> int:
        """Publish every segment referenced by the quality playlists.

        A segment that fails to publish is logged and skipped; its playlist
        reference is left unchanged.

        Returns:
            Number of segments published
        """
        published = 0
        for level in plan:
            manifest_path = output_dir / level.playlist_name(base)
            if not manifest_path.is_file():
                continue
            for name in segment_references(manifest_path, output_dir, base):
                segment_path = output_dir / name
                try:
                    artifact = Artifact.from_path(segment_path, base)
                except ValueError:
                    artifact = Artifact(segment_path, ArtifactKind.SEGMENT, quality_id=level.id)
                if registry.lookup(name) is not None:
                    continue
                try:
                    artifact_id = await publisher.publish(artifact)
                except TranscodePipelineError as e:
                    log_error(logger, f"Error publishing segment {name}", e)
                    continue
                registry.register(artifact, artifact_id)
                published += 1

        log_info(logger, f"Published {published} segment files", segments=published)
        return published

    async def publish_manifests(
        self,
        publisher: ArtifactPublisher,
        registry: ArtifactRegistry,
        plan: QualityPlan,
        output_dir: Path,
        base: str,
        master_path: Path,
        mode: ReferenceMode,
    ) -> str:
        """Rewrite and publish the quality playlists, then the master.

        Raises:
            NotFoundError: If the master playlist is missing or empty
            PersistenceError: If a playlist cannot be published
        """
        log_info(logger, f"Rebuilding playlists with {mode.value} references")
        for level in plan:
            manifest_path = output_dir / level.playlist_name(base)
            if not manifest_path.is_file() or manifest_path.stat().st_size == 0:
                log_warning(logger, f"Playlist for {level.label} is missing or empty, skipping")
                continue
            rewrite_playlist_file(manifest_path, registry, mode)
            artifact = Artifact.from_path(manifest_path, base)
            registry.register(artifact, await publisher.publish(artifact))

        rewrite_playlist_file(master_path, registry, mode)
        master = Artifact.from_path(master_path, base)
        master_id = await publisher.publish(master)
        registry.register(master, master_id)
        return master_id
