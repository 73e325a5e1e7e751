"""Shardstore storage OpenTelemetry tracing integration.

Provides the tracing decorator applied to every backend data operation.

Security:
    - Never export absolute filesystem paths in span attributes
    - Object paths are exported only as SHA256 digests
    - No secrets or credentials in any span attribute
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from shardstore.observability.tracing import is_tracing_enabled

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    Emits spans with safe attributes (no absolute paths, no raw keys).

    Args:
        operation: Operation name (e.g., "upload", "fetch", "remove").

    Returns:
        Decorated function that emits OTel spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, *args, **kwargs)

            try:
                from opentelemetry import trace
            except ImportError:
                return func(self, *args, **kwargs)

            tracer = trace.get_tracer("shardstore.object_store")
            with tracer.start_as_current_span(f"shardstore.object_store.{operation}") as span:
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                span.set_attribute("storage.operation", operation)
                if args:
                    _add_handle_attributes(span, args[0])

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if result is not None:
                    _add_handle_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_handle_attributes(span: Any, value: Any) -> None:
    """Add file handle attributes to span safely.

    Only adds the content hash, size, type and a digest of the object path.
    Never adds filesystem paths or raw keys.
    """
    try:
        from shardstore.storage.models import FileHandle
        from shardstore.storage.paths import resolve

        if not isinstance(value, FileHandle):
            return

        object_path = resolve(value).object_path
        path_sha256 = hashlib.sha256(object_path.encode("utf-8")).hexdigest()
        span.set_attribute("shardstore.object_path_sha256", path_sha256)
        if value.hash:
            span.set_attribute("shardstore.object_hash", value.hash)
        if value.size is not None:
            span.set_attribute("shardstore.object_size_bytes", value.size)
        if value.type:
            span.set_attribute("shardstore.object_type", value.type)

    except Exception as e:
        logger.debug("Failed to add handle attributes to span: %s", e)
