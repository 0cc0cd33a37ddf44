"""OpenTelemetry tracing for pipeline stages.

A job opens a root ``hls.job`` span and one child span per stage
(``hls.probe``, ``hls.transcode``, ``hls.publish`` ...), so a slow encoder
run or a stalled upload shows up in the trace timeline.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)

SPAN_PREFIX = "hls."

_tracer: Optional[trace.Tracer] = None
_provider: Optional[TracerProvider] = None


def setup_tracing(
    service_name: str,
    service_version: str,
    otlp_endpoint: Optional[str] = None,
    enable_console_export: bool = False,
) -> trace.Tracer:
    """Install a tracer provider for the worker process.

    Args:
        service_name: Reported ``service.name``
        service_version: Reported ``service.version``
        otlp_endpoint: Collector endpoint; spans stay in-process when unset
        enable_console_export: Also print finished spans to stdout
    """
    global _tracer, _provider

    _provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: service_name, SERVICE_VERSION: service_version})
    )

    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning(f"OTLP exporter not installed, not exporting to {otlp_endpoint}")
        else:
            _provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
            logger.info(f"Exporting spans to {otlp_endpoint}")

    if enable_console_export:
        _provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_provider)
    _tracer = trace.get_tracer(service_name, service_version)
    logger.info(f"Tracing initialized for {service_name} {service_version}")
    return _tracer


def shutdown_tracing() -> None:
    """Flush pending spans and release the provider."""
    global _tracer, _provider
    if _provider is not None:
        _provider.shutdown()
    _provider = None
    _tracer = None


def get_tracer() -> trace.Tracer:
    """Configured tracer, or the global (no-op until set up) one."""
    if _tracer is None:
        return trace.get_tracer(__name__)
    return _tracer


def current_trace_ids() -> tuple[Optional[str], Optional[str]]:
    """Hex (trace_id, span_id) of the active span, or (None, None)."""
    context = trace.get_current_span().get_span_context()
    if not context.is_valid:
        return None, None
    return format(context.trace_id, "032x"), format(context.span_id, "016x")


def _attribute_value(value):
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return str(value)


@contextmanager
def stage_span(stage: str, **attributes) -> Iterator[Span]:
    """Open a span for one pipeline stage.

    Keyword attributes are recorded under the ``hls.`` namespace; None values
    are dropped.

    Example:
        with stage_span("transcode", qualities=[240, 480]):
            ...
    """
    attrs = {
        f"{SPAN_PREFIX}{key}": _attribute_value(value)
        for key, value in attributes.items()
        if value is not None
    }
    with get_tracer().start_as_current_span(f"{SPAN_PREFIX}{stage}", attributes=attrs) as span:
        yield span


def mark_span_failed(exception: BaseException) -> None:
    """Record an exception on the active span and set its status to ERROR."""
    span = trace.get_current_span()
    if not span.is_recording():
        return
    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))
