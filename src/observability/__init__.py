"""Delivery observability.

This package records each webhook delivery (request, response, error) as a
durable record with both "occurred at" and "logged at" timestamps, and
persists records to a sink (in-memory or DuckDB) without blocking the event loop.
"""

from .models import DeliveryRecord
from .recorder import ObservabilityRecorder
from .sinks import DuckDBObservabilitySink, InMemoryObservabilitySink, ObservabilitySink

__all__ = [
    "DeliveryRecord",
    "DuckDBObservabilitySink",
    "InMemoryObservabilitySink",
    "ObservabilityRecorder",
    "ObservabilitySink",
]
