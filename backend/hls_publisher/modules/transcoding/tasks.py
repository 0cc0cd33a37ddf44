"""Celery tasks for HLS transcoding.

One task invocation runs exactly one job; there is no parallelism inside a
job.
"""

import asyncio
import logging
from typing import Optional

from hls_publisher.core.celery_app import celery_app
from hls_publisher.core.config import Settings, settings
from hls_publisher.core.storage import StorageResolver
from hls_publisher.modules.assets.client import HttpAssetStore
from hls_publisher.modules.transcoding.runner import AsyncioCommandRunner
from hls_publisher.modules.transcoding.service import TranscodePipeline

logger = logging.getLogger(__name__)


def build_pipeline(config: Optional[Settings] = None) -> TranscodePipeline:
    """Wire a pipeline with the production collaborators."""
    config = config or settings
    store = HttpAssetStore(
        config.ASSET_STORE_URL,
        token=config.ASSET_STORE_TOKEN,
        timeout=config.DOWNLOAD_TIMEOUT_SECONDS,
    )
    return TranscodePipeline(
        config,
        store=store,
        runner=AsyncioCommandRunner(),
        resolver=StorageResolver.from_settings(config),
    )


async def _transcode_async(request: dict) -> dict:
    pipeline = build_pipeline()
    result = await pipeline.run(request)
    return result.to_payload()


@celery_app.task(bind=True, name="hls_publisher.transcode_to_hls")
def transcode_to_hls_task(self, request: dict) -> dict:
    """Transcode one source to HLS and publish the outputs.

    Args:
        request: Raw transcode request payload

    Returns:
        The job result payload (camelCase keys)
    """
    logger.info(f"Transcode task {self.request.id} started")
    return asyncio.run(_transcode_async(request))
