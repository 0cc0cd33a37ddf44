"""Celery application configuration."""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from celery.signals import worker_process_init, worker_process_shutdown

from hls_publisher.core.config import settings
from hls_publisher.core.logging import setup_logging
from hls_publisher.core.tracing import setup_tracing, shutdown_tracing

celery_app = Celery(
    "hls_publisher",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# One job per worker at a time.
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.autodiscover_tasks(["hls_publisher.modules.transcoding"])


@celery_setup_logging.connect
def configure_logging(**kwargs) -> None:
    """Replace Celery's logging setup with structured logging."""
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)


@worker_process_init.connect
def configure_tracing(**kwargs) -> None:
    setup_tracing(
        service_name=settings.PROJECT_NAME,
        service_version=settings.VERSION,
        otlp_endpoint=settings.OTLP_ENDPOINT,
        enable_console_export=settings.DEBUG,
    )


@worker_process_shutdown.connect
def flush_tracing(**kwargs) -> None:
    shutdown_tracing()
