"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking lifecycle
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking state transitions committed',
    ['transition']  # created, confirmed, selected, paid, partial, unpaid, cancelled, deposit_returned
)

# Table selection
selection_conflicts = Counter(
    'selection_conflicts_total',
    'Table selections rejected because a position was already booked'
)

selection_lock_wait = Histogram(
    'selection_lock_wait_seconds',
    'Time spent waiting for the per-event selection lock',
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

db_retries = Counter(
    'db_retry_attempts_total',
    'Database retry attempts due to version conflicts'
)

# Attendance
scan_results = Counter(
    'scan_results_total',
    'Stall QR scans',
    ['result']  # check_in, check_out, malformed, not_found, invalid_credential, already_checked_out
)

notification_failures = Counter(
    'notification_failures_total',
    'Domain events that could not be handed to the notifier'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_transition(transition: str):
    booking_transitions.labels(transition=transition).inc()


def record_scan(result: str):
    """Record scan outcome. Result: check_in, check_out, or the rejection kind"""
    scan_results.labels(result=result).inc()
