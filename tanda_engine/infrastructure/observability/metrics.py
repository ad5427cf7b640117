"""Prometheus metrics for deposit retries, expulsions, cycle decisions and Ledger calls"""

from prometheus_client import Counter, Histogram, Gauge

# Deposit retry metrics
failed_deposit_counter = Counter(
    "tanda_failed_deposit_total",
    "Failed contributions registered for retry",
)

retry_attempt_counter = Counter(
    "tanda_retry_attempt_total",
    "Deposit retry attempts",
    ["outcome"],  # resolved | pending_retry | failed_permanent | timeout
)

expulsion_counter = Counter(
    "tanda_expulsion_total",
    "Participants expelled after exhausting retries",
    ["ledger_notified"],  # true | false
)

pending_retries_gauge = Gauge(
    "tanda_pending_retries",
    "Failed deposits waiting for their next retry",
)

# Cycle metrics
advance_decision_counter = Counter(
    "tanda_advance_decision_total",
    "Cycle advancement decisions",
    ["decision"],  # no_action | payout_ready | delinquents_present
)

# Ledger metrics
ledger_latency_histogram = Histogram(
    "ledger_request_latency_seconds",
    "Ledger API response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ledger_failure_counter = Counter(
    "ledger_request_failures_total",
    "Failed Ledger API requests",
)

sync_failure_counter = Counter(
    "tanda_sync_failures_total",
    "Background cache syncs that failed",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_retry_outcome(outcome: str) -> None:
    retry_attempt_counter.labels(outcome=outcome).inc()


def record_expulsion(ledger_notified: bool) -> None:
    expulsion_counter.labels(ledger_notified="true" if ledger_notified else "false").inc()


def record_advance_decision(decision: str) -> None:
    advance_decision_counter.labels(decision=decision).inc()
