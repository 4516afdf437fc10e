"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY

# Webhook metrics
try:
    webhook_events_counter = Counter(
        'coursehub_webhook_events_total',
        'Total number of Stripe webhook events by outcome',
        ['event_type', 'outcome']
    )
except ValueError:
    webhook_events_counter = REGISTRY._names_to_collectors.get('coursehub_webhook_events_total')

# Checkout metrics
try:
    checkout_sessions_counter = Counter(
        'coursehub_checkout_sessions_total',
        'Total number of checkout session attempts',
        ['kind', 'status']
    )
except ValueError:
    checkout_sessions_counter = REGISTRY._names_to_collectors.get('coursehub_checkout_sessions_total')

# Rate limiting metrics
try:
    rate_limited_counter = Counter(
        'coursehub_rate_limited_total',
        'Total number of requests rejected by the checkout rate limiter',
        ['action']
    )
except ValueError:
    rate_limited_counter = REGISTRY._names_to_collectors.get('coursehub_rate_limited_total')
