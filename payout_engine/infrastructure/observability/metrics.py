"""Prometheus metrics for payout outcomes, provider calls, and webhooks"""

from decimal import Decimal

from prometheus_client import Counter, Gauge, Histogram

# Payout metrics
payout_counter = Counter(
    "payout_total",
    "Payout attempts by outcome",
    ["currency", "outcome"],  # success | failure
)

payout_failure_counter = Counter(
    "payout_failures_total",
    "Failed payouts by error code",
    ["code", "retryable"],
)

payout_amount_counter = Counter(
    "payout_amount_total",
    "Amount submitted to the provider, in major currency units",
    ["currency"],
)

payout_duration_histogram = Histogram(
    "payout_duration_seconds",
    "End-to-end payout orchestration time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

# Batch metrics
batch_items_in_flight = Gauge(
    "payout_batch_items_in_flight",
    "Batch items currently being processed",
)

# Provider metrics
provider_latency_histogram = Histogram(
    "wise_request_latency_seconds",
    "Wise API response time",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

provider_failure_counter = Counter(
    "wise_request_failures_total",
    "Failed Wise API calls",
    ["operation", "kind"],  # http | timeout | network | invalid_response
)

provider_retry_counter = Counter(
    "wise_request_retries_total",
    "Retried provider operations",
    ["operation", "code"],
)

# Webhook metrics
webhook_event_counter = Counter(
    "wise_webhook_events_total",
    "Inbound Wise webhook events",
    ["event_type", "outcome"],  # applied | ignored | rejected
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payout(currency: str, success: bool, amount: Decimal, code: str | None = None, retryable: bool | None = None) -> None:
    """Record payout outcome metrics"""
    outcome = "success" if success else "failure"
    payout_counter.labels(currency=currency or "unknown", outcome=outcome).inc()

    if success:
        payout_amount_counter.labels(currency=currency).inc(float(amount))
    else:
        payout_failure_counter.labels(code=code or "UNKNOWN_ERROR", retryable=str(bool(retryable)).lower()).inc()


def record_provider_retry(operation: str, attempt: int, failure) -> None:
    """RetryPolicy hook: count each scheduled retry"""
    provider_retry_counter.labels(operation=operation, code=failure.code).inc()
