"""Prometheus metrics for USSD traffic, payment outcomes, fraud gating and provider health"""

from prometheus_client import Counter, Histogram

# USSD metrics
ussd_turn_counter = Counter(
    "payflex_ussd_turns_total",
    "USSD turns handled",
    ["from_state", "to_state"],
)

# Payment metrics
payment_outcome_counter = Counter(
    "payflex_payment_outcomes_total",
    "Payment attempts by channel and outcome",
    ["channel", "status"],  # COMPLETED | PENDING | REJECTED | BLOCKED | NOT_FOUND | UNAVAILABLE
)

# Fraud metrics
fraud_assessment_counter = Counter(
    "payflex_fraud_assessments_total",
    "Fraud assessments by gate outcome",
    ["outcome"],  # blocked | allowed
)

risk_vendor_failure_counter = Counter(
    "risk_vendor_failures_total",
    "Failed risk vendor calls",
)

# Mobile money provider metrics
provider_latency_histogram = Histogram(
    "mobile_money_latency_seconds",
    "Mobile money provider response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

provider_failure_counter = Counter(
    "mobile_money_failures_total",
    "Failed mobile money provider calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment_outcome(channel: str, status: str) -> None:
    payment_outcome_counter.labels(channel=channel, status=status).inc()


def record_assessment(blocked: bool) -> None:
    fraud_assessment_counter.labels(outcome="blocked" if blocked else "allowed").inc()


def record_ussd_turn(from_state: str, to_state: str) -> None:
    ussd_turn_counter.labels(from_state=from_state, to_state=to_state).inc()
