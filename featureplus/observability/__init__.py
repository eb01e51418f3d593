"""Observability helpers."""

from featureplus.observability.otel import (
    initialize,
    is_enabled,
    shutdown,
    start_span,
    record_mutation,
    record_rollback,
)

__all__ = [
    "initialize",
    "is_enabled",
    "shutdown",
    "start_span",
    "record_mutation",
    "record_rollback",
]
