import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace

_TRACER_NAME = "workshop-downloader"
_OTEL_READY = False
_OTEL_ENABLED = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[Any]:
    # Without a configured SDK the API hands out non-recording spans.
    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def init_telemetry(service_name: str = _TRACER_NAME, service_version: str = "") -> bool:
    global _OTEL_READY, _OTEL_ENABLED

    if _OTEL_READY:
        return _OTEL_ENABLED

    _OTEL_READY = True
    dsn = os.environ.get("UPTRACE_DSN", "").strip()
    if not dsn:
        logging.debug("UPTRACE_DSN is not set, tracing export is disabled")
        _OTEL_ENABLED = False
        return False

    service_name = os.environ.get("OTEL_SERVICE_NAME", service_name).strip()
    service_version = os.environ.get("OTEL_SERVICE_VERSION", service_version).strip()

    try:
        import uptrace

        uptrace.configure_opentelemetry(
            dsn=dsn,
            service_name=service_name,
            service_version=service_version,
        )
        _instrument_requests()
        _OTEL_ENABLED = True
        logging.info("OpenTelemetry is enabled and exporting to Uptrace")
        return True
    except (ImportError, RuntimeError, ValueError, TypeError, AttributeError):
        logging.exception("Failed to initialize OpenTelemetry")
        _OTEL_ENABLED = False
        return False


def shutdown_telemetry() -> None:
    if not _OTEL_ENABLED:
        return

    try:
        import uptrace

        uptrace.shutdown()
    except (ImportError, RuntimeError, ValueError, TypeError, AttributeError):
        logging.exception("Failed to shutdown OpenTelemetry cleanly")


def _instrument_requests() -> None:
    try:
        from opentelemetry.instrumentation.requests import RequestsInstrumentor

        RequestsInstrumentor().instrument()
    except (ImportError, RuntimeError, ValueError, TypeError, AttributeError) as exc:
        logging.warning("Requests instrumentation is unavailable: %s", exc)
