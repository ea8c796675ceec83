"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking admission metrics
booking_attempts = Counter(
    'meshwar_booking_attempts_total',
    'Total booking admission attempts',
    ['outcome']  # created, capacity_exceeded, duplicate, not_found, transient
)

booking_latency = Histogram(
    'meshwar_booking_latency_seconds',
    'Booking admission latency, including transaction retries',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# Transaction metrics
transaction_retries = Counter(
    'meshwar_transaction_retries_total',
    'Transaction attempts retried after a write conflict, lock error or timeout',
    ['reason']  # conflict, db_error, timeout
)

participant_counter_drift = Counter(
    'meshwar_participant_counter_drift_total',
    'Participant counter inconsistencies detected (underflow or reconciliation drift)',
    ['source']  # delete, reconcile, import
)

# Cache metrics
cache_operations = Counter(
    'meshwar_cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(outcome: str):
    booking_attempts.labels(outcome=outcome).inc()


def record_transaction_retry(reason: str):
    transaction_retries.labels(reason=reason).inc()


def record_counter_drift(source: str):
    participant_counter_drift.labels(source=source).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
