"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking creation attempts',
    ['result']  # created, duplicate, invalid, unavailable, error
)

booking_transitions = Counter(
    'booking_transitions_total',
    'Booking status transitions',
    ['action', 'result']  # confirm/cancel/reschedule/expire/invalidate, ok/rejected/conflict
)

booking_latency = Histogram(
    'booking_operation_latency_seconds',
    'Booking operation latency',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Optimistic concurrency
cas_conflicts = Counter(
    'booking_cas_conflicts_total',
    'Conditional updates that matched zero rows',
    ['entity']  # booking, listing
)

bookings_expired = Counter(
    'bookings_expired_total',
    'Pending bookings moved to expired',
    ['source']  # read, sweep, transition
)

# Payments
payment_callbacks = Counter(
    'payment_callbacks_total',
    'Payment gateway callbacks',
    ['outcome', 'result']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# Rate limiting
rate_limited_requests = Counter(
    'rate_limited_requests_total',
    'Requests counted by the rate limiter',
    ['scope', 'result']  # allowed, blocked
)

# Notifications
notifications_published = Counter(
    'notifications_published_total',
    'Notification events handed to the relay',
    ['event', 'result']  # sent, failed
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(result: str):
    """Record booking creation attempt."""
    booking_attempts.labels(result=result).inc()


def record_transition(action: str, result: str):
    """Record a booking transition. Result: ok, rejected, conflict"""
    booking_transitions.labels(action=action, result=result).inc()


def record_conflict(entity: str):
    cas_conflicts.labels(entity=entity).inc()


def record_expired(source: str, count: int = 1):
    if count:
        bookings_expired.labels(source=source).inc(count)


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()


def record_notification(event: str, sent: bool):
    notifications_published.labels(event=event, result="sent" if sent else "failed").inc()


def record_rate_limit(scope: str, allowed: bool):
    rate_limited_requests.labels(scope=scope, result="allowed" if allowed else "blocked").inc()
