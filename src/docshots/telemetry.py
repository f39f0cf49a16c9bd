"""OpenTelemetry instrumentation for the docshots API.

Initializes tracing and exports spans via gRPC OTLP when enabled. FastAPI is a
Starlette application, so the Starlette instrumentor covers it.
"""

import logging
import os

logger = logging.getLogger(__name__)

# Configuration from environment
OTEL_ENABLED = os.getenv("OTEL_ENABLED", "false").lower() == "true"
OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "docshots")
OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")


def init_telemetry(app=None) -> bool:
    """Initialize OpenTelemetry tracing if enabled.

    Returns True when tracing was set up. ``app`` is instrumented directly when
    given; otherwise Starlette is instrumented globally.
    """
    if not OTEL_ENABLED:
        logger.debug("OpenTelemetry tracing disabled (OTEL_ENABLED=false)")
        return False

    if not OTEL_EXPORTER_OTLP_ENDPOINT:
        logger.warning(
            "OTEL_ENABLED=true but OTEL_EXPORTER_OTLP_ENDPOINT not set. "
            "Skipping OpenTelemetry initialization."
        )
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.instrumentation.starlette import StarletteInstrumentor
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.semconv.resource import ResourceAttributes
    except ImportError as e:
        logger.error(
            f"OpenTelemetry packages not installed: {e}. "
            "Install with: pip install 'docshots[telemetry]'"
        )
        return False

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: OTEL_SERVICE_NAME,
            ResourceAttributes.DEPLOYMENT_ENVIRONMENT: os.getenv("ENVIRONMENT", "development"),
            ResourceAttributes.SERVICE_VERSION: os.getenv("APP_VERSION", "unknown"),
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
    )
    trace.set_tracer_provider(provider)

    if app is not None:
        StarletteInstrumentor.instrument_app(app)
    else:
        StarletteInstrumentor().instrument()
    logger.info(
        f"OpenTelemetry initialized: service={OTEL_SERVICE_NAME}, "
        f"endpoint={OTEL_EXPORTER_OTLP_ENDPOINT}"
    )
    return True


def shutdown_telemetry() -> None:
    """Shutdown OpenTelemetry tracer provider gracefully."""
    if not OTEL_ENABLED:
        return

    from opentelemetry import trace

    provider = trace.get_tracer_provider()
    if hasattr(provider, "shutdown"):
        provider.shutdown()
        logger.info("OpenTelemetry tracer provider shut down")
