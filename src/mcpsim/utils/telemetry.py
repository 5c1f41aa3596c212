"""OpenTelemetry tracing helpers for mcpsim.

The rest of the package calls ``get_tracer()`` without caring whether the SDK
is installed.  Without a configured SDK the API hands out no-op tracers, so
tests pay nothing for the spans around sends and replays.

Usage::

    from mcpsim.utils.telemetry import get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("session.replay") as span:
        span.set_attribute(ATTR_SESSION_HOST, "VS Code")

To export spans, call :func:`configure_telemetry` once at startup (requires
the ``otel`` extra: ``pip install mcpsim[otel]``).
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace

# ---------------------------------------------------------------------------
# Semantic attribute keys used throughout mcpsim instrumentation
# ---------------------------------------------------------------------------

ATTR_RPC_METHOD = "mcpsim.rpc.method"
ATTR_RPC_ID = "mcpsim.rpc.id"
ATTR_RPC_MOCKED = "mcpsim.rpc.mocked"
ATTR_RPC_ERROR_CODE = "mcpsim.rpc.error_code"
ATTR_TOOL_NAME = "mcpsim.tool.name"
ATTR_TOOL_ATTEMPT = "mcpsim.tool.attempt"
ATTR_TOOL_MAX_RETRIES = "mcpsim.tool.max_retries"
ATTR_SESSION_HOST = "mcpsim.session.host"
ATTR_SESSION_MESSAGES = "mcpsim.session.messages"
ATTR_REPLAY_SPEED = "mcpsim.replay.speed"
ATTR_REPLAY_ERRORS = "mcpsim.replay.errors"

_INSTRUMENTATION_NAME = "mcpsim"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a :class:`~opentelemetry.trace.Tracer` for *name*.

    If the OpenTelemetry SDK has not been configured the returned tracer
    is a no-op.
    """
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def configure_telemetry(
    *,
    service_name: str = "mcpsim",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Configure OpenTelemetry tracing (requires ``mcpsim[otel]``).

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    export_to_console:
        If ``True``, export spans as JSON to stdout.
    otlp_endpoint:
        If set, export spans via OTLP/gRPC to this endpoint.

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install mcpsim[otel]"
        )
        raise ImportError(msg) from exc

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    if export_to_console:
        _add_console_exporter(provider, SimpleSpanProcessor)

    if otlp_endpoint:
        _add_otlp_exporter(provider, BatchSpanProcessor, otlp_endpoint)

    trace.set_tracer_provider(provider)


def _add_console_exporter(provider: Any, processor_cls: Any) -> None:
    """Attach the console exporter (JSON to stdout)."""
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter

    provider.add_span_processor(processor_cls(ConsoleSpanExporter()))


def _add_otlp_exporter(provider: Any, processor_cls: Any, endpoint: str) -> None:
    """Attach the OTLP gRPC exporter."""
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError as exc:
        msg = (
            "opentelemetry-exporter-otlp is required for OTLP export. "
            "Install it with: pip install mcpsim[otel]"
        )
        raise ImportError(msg) from exc

    provider.add_span_processor(processor_cls(OTLPSpanExporter(endpoint=endpoint)))
