"""Prometheus metrics for the Fleet Billing service.

Metrics are organized into two categories:

Business Metrics (for Product/Finance):
- fleet_billing_plans_created_total: Installment plans by plan type
- fleet_billing_installment_charges_total: Installment charges by trigger/outcome
- fleet_billing_installment_charged_cents_total: Cents collected by installments
- fleet_billing_refund_outcomes_total: Per-payment refund cascade outcomes
- fleet_billing_refunded_cents_total: Cents returned to customers

Technical Metrics (for Engineering/SRE):
- fleet_billing_processor_latency_seconds: Payment processor call latency
- fleet_billing_processor_failures_total: Processor failures by error type
- fleet_billing_installment_run_latency_seconds: Scheduler run latency
- fleet_billing_notification_total: Notification deliveries by outcome
- fleet_billing_http_requests_total: HTTP requests by endpoint/status
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Histogram, REGISTRY, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST


# =============================================================================
# Business Metrics (Product/Finance dashboards)
# =============================================================================

plans_created_total = Counter(
    "fleet_billing_plans_created_total",
    "Total number of installment plans created",
    ["plan_type"],  # weekly, monthly
)

installment_charges_total = Counter(
    "fleet_billing_installment_charges_total",
    "Total number of installment charge attempts",
    ["trigger", "outcome"],  # scheduled/retry/early/payoff/manual/reconcile, success/failure/pending
)

installment_charged_cents = Counter(
    "fleet_billing_installment_charged_cents_total",
    "Total cents collected through installments",
)

refund_outcomes_total = Counter(
    "fleet_billing_refund_outcomes_total",
    "Refund outcomes per payment",
    ["action"],  # refunded, released, pending_manual, cancelled, failed, manual
)

refunded_cents = Counter(
    "fleet_billing_refunded_cents_total",
    "Total cents refunded or released to customers",
)


# =============================================================================
# Technical Metrics (Engineering/SRE dashboards)
# =============================================================================

processor_latency = Histogram(
    "fleet_billing_processor_latency_seconds",
    "Payment processor call latency in seconds",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

processor_failures = Counter(
    "fleet_billing_processor_failures_total",
    "Total number of payment processor failures",
    ["error_type"],  # card_declined, rate_limited, unavailable, invalid_request, configuration
)

installment_run_latency = Histogram(
    "fleet_billing_installment_run_latency_seconds",
    "Due-installment processing run latency in seconds",
    buckets=[0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0],
)

notification_total = Counter(
    "fleet_billing_notification_total",
    "Total notification deliveries",
    ["notification_type", "status"],  # receipt/failure/reminder/refund, success/failure
)

http_requests_total = Counter(
    "fleet_billing_http_requests_total",
    "Total HTTP requests by endpoint and status",
    ["method", "endpoint", "status"],
)

http_request_latency = Histogram(
    "fleet_billing_http_request_latency_seconds",
    "HTTP request latency by endpoint",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_plan_created(plan_type: str) -> None:
    """Record a newly built installment plan."""
    plans_created_total.labels(plan_type=plan_type).inc()


def record_installment_charge(
    trigger: str,
    success: bool,
    amount_cents: int = 0,
    pending: bool = False,
) -> None:
    """Record an installment charge attempt."""
    outcome = "pending" if pending else ("success" if success else "failure")
    installment_charges_total.labels(trigger=trigger, outcome=outcome).inc()
    if success and amount_cents > 0:
        installment_charged_cents.inc(amount_cents)


def record_refund_outcome(action: str, amount_cents: int = 0) -> None:
    """Record the outcome of refunding a single payment."""
    refund_outcomes_total.labels(action=action).inc()
    if amount_cents > 0:
        refunded_cents.inc(amount_cents)


def record_processor_failure(error_type: str) -> None:
    """Record a payment processor failure."""
    processor_failures.labels(error_type=error_type).inc()


def record_notification(notification_type: str, success: bool) -> None:
    """Record a notification delivery attempt."""
    status = "success" if success else "failure"
    notification_total.labels(notification_type=notification_type, status=status).inc()


@contextmanager
def track_processor_latency(operation: str) -> Generator[None, None, None]:
    """Context manager to track payment processor latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start
        processor_latency.labels(operation=operation).observe(duration)


@contextmanager
def track_installment_run_latency() -> Generator[None, None, None]:
    """Context manager to track a scheduler run."""
    start = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start
        installment_run_latency.observe(duration)


def record_http_request(method: str, endpoint: str, status: int, duration: float) -> None:
    """Record an HTTP request."""
    http_requests_total.labels(method=method, endpoint=endpoint, status=str(status)).inc()
    http_request_latency.labels(method=method, endpoint=endpoint).observe(duration)


def get_metrics() -> bytes:
    """Get current metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST
