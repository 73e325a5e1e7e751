"""OpenTelemetry tracing configuration for shardstore.

Installs a tracer provider for the storage spans emitted by
``shardstore.storage.tracing``. Host applications that already configure
OpenTelemetry do not need to call ``configure_tracing``.

Environment Variables:
    SHARDSTORE_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    SHARDSTORE_REQUIRE_OTEL: Set to "1" to fail if tracing cannot initialize
    SHARDSTORE_OTEL_SERVICE_NAME: Service name for spans (default: "shardstore")
    SHARDSTORE_OTEL_EXPORTER: Exporter type - "otlp" or "console" (default: "otlp")
    SHARDSTORE_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint URL (optional)
    SHARDSTORE_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    SHARDSTORE_OTEL_RESOURCE_ATTRS: Comma-separated k=v pairs for resource attributes
    SHARDSTORE_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests

Security:
    - Never export credentials, raw object keys or absolute filesystem paths
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider

logger = logging.getLogger(__name__)

ENV_PREFIX = "SHARDSTORE_"

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
# In-memory exporter kept across reconfigurations; the global provider is set once.
_test_exporter: Any = None


class TracingConfigError(Exception):
    """Raised when tracing setup fails and SHARDSTORE_REQUIRE_OTEL=1."""


def get_env_bool(key: str, default: bool = False) -> bool:
    """Read a boolean flag; unrecognized values fall back to ``default``."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def is_tracing_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return get_env_bool(f"{ENV_PREFIX}OTEL_ENABLED")


@dataclass(frozen=True)
class TracingSettings:
    """Tracer provider settings read from the environment."""

    service_name: str = "shardstore"
    exporter: str = "otlp"
    otlp_endpoint: str = ""
    otlp_protocol: str = "grpc"
    resource_attrs: dict[str, str] = field(default_factory=dict)
    test_capture: bool = False
    required: bool = False

    @classmethod
    def from_env(cls) -> TracingSettings:
        def env(name: str, default: str = "") -> str:
            return os.environ.get(f"{ENV_PREFIX}{name}", default).strip() or default

        return cls(
            service_name=env("OTEL_SERVICE_NAME", "shardstore"),
            exporter=env("OTEL_EXPORTER", "otlp").lower(),
            otlp_endpoint=env("OTEL_EXPORTER_OTLP_ENDPOINT"),
            otlp_protocol=env("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc").lower(),
            resource_attrs=_parse_resource_attrs(env("OTEL_RESOURCE_ATTRS")),
            test_capture=get_env_bool(f"{ENV_PREFIX}OTEL_TEST_CAPTURE"),
            required=get_env_bool(f"{ENV_PREFIX}REQUIRE_OTEL"),
        )

    @property
    def exporter_label(self) -> str:
        return "in-memory" if self.test_capture else self.exporter


def _parse_resource_attrs(raw: str) -> dict[str, str]:
    """Parse ``k=v,k=v``; pairs without "=" are skipped."""
    attrs: dict[str, str] = {}
    for pair in raw.split(","):
        name, sep, value = pair.partition("=")
        if sep and name.strip():
            attrs[name.strip()] = value.strip()
    return attrs


def _span_processor(settings: TracingSettings) -> Any:
    """Build the span processor and exporter selected by ``settings``."""
    global _test_exporter

    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    if settings.test_capture:
        from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
            InMemorySpanExporter,
        )

        _test_exporter = InMemorySpanExporter()
        return SimpleSpanProcessor(_test_exporter)

    if settings.exporter == "console":
        return SimpleSpanProcessor(ConsoleSpanExporter())

    kwargs: dict[str, Any] = {}
    if settings.otlp_endpoint:
        kwargs["endpoint"] = settings.otlp_endpoint
    if settings.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http import trace_exporter
    else:
        from opentelemetry.exporter.otlp.proto.grpc import trace_exporter  # type: ignore[no-redef]
    return BatchSpanProcessor(trace_exporter.OTLPSpanExporter(**kwargs))


def configure_tracing() -> bool:
    """Install the shardstore tracer provider. Safe to call repeatedly.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If SHARDSTORE_REQUIRE_OTEL=1 and setup fails.
    """
    global _tracer_provider, _is_configured

    if not is_tracing_enabled():
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (%sOTEL_ENABLED not set)", ENV_PREFIX)
        return False

    settings = TracingSettings.from_env()
    if settings.test_capture and _test_exporter is not None:
        return True
    if _is_configured and _tracer_provider is not None:
        return True
    _is_configured = True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider

        resource = Resource.create(
            {"service.name": settings.service_name, **settings.resource_attrs}
        )
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(_span_processor(settings))
        trace.set_tracer_provider(provider)
    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if settings.required:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False

    _tracer_provider = provider
    logger.info(
        "OpenTelemetry tracing configured: service=%s, exporter=%s",
        settings.service_name,
        settings.exporter_label,
    )
    return True


def get_current_trace_id() -> str | None:
    """Return the active trace ID as 32 hex chars, or None outside a span."""
    from opentelemetry import trace

    ctx = trace.get_current_span().get_span_context()
    if not ctx.is_valid:
        return None
    return format(ctx.trace_id, "032x")


def get_test_spans() -> list[ReadableSpan]:
    """Return spans captured while SHARDSTORE_OTEL_TEST_CAPTURE=1."""
    if _test_exporter is None:
        return []
    return list(_test_exporter.get_finished_spans())


def clear_test_spans() -> None:
    if _test_exporter is not None:
        _test_exporter.clear()


def reset_tracing() -> None:
    """Forget configuration state between tests.

    The global TracerProvider cannot be replaced once set, so the in-memory
    exporter is kept and only its captured spans are cleared.
    """
    global _is_configured

    clear_test_spans()
    _is_configured = False
