"""Shardstore observability module.

Provides the OpenTelemetry tracing baseline for storage operations.
"""

from shardstore.observability.tracing import configure_tracing, get_current_trace_id

__all__ = ["configure_tracing", "get_current_trace_id"]
