"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_creations = Counter(
    'booking_creations_total',
    'Total booking creation attempts',
    ['result']  # checkout, pending, invalid, gateway_error
)

booking_transitions = Counter(
    'booking_transitions_total',
    'Booking status transitions that won the conditional update',
    ['to_status']  # paid, cancelled
)

# Webhook metrics
webhook_events = Counter(
    'webhook_events_total',
    'Payment webhook deliveries by outcome',
    ['outcome']  # paid, duplicate, after_cancel, unknown_booking, ignored, rejected
)

# Ticket metrics
ticket_generations = Counter(
    'ticket_generations_total',
    'Ticket artifact generation attempts',
    ['result']  # success, failure
)

ticket_generation_latency = Histogram(
    'ticket_generation_latency_seconds',
    'Ticket artifact rendering latency',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
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

# Convenience functions for instrumentation
def record_booking_creation(result: str):
    """Record booking creation. Result: checkout, pending, invalid, gateway_error"""
    booking_creations.labels(result=result).inc()

def record_transition(to_status: str):
    booking_transitions.labels(to_status=to_status).inc()

def record_webhook(outcome: str):
    webhook_events.labels(outcome=outcome).inc()

def record_ticket_generation(success: bool):
    result = "success" if success else "failure"
    ticket_generations.labels(result=result).inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
