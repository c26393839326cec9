"""Prometheus metrics for monitoring transfer outcomes, risk decisions and resilience"""

from prometheus_client import Counter, Gauge, Histogram

# Transfer metrics
transfer_counter = Counter(
    "peer_transfer_total",
    "Peer transfers by terminal status",
    ["status"],  # completed | failed | blocked | pending_manual_review | rejected | cancelled
)

transfer_amount_histogram = Histogram(
    "peer_transfer_amount",
    "Amounts of completed peer transfers",
    buckets=[10, 50, 100, 250, 500, 1000, 2500, 5000],
)

risk_decision_counter = Counter(
    "peer_risk_decision_total",
    "Risk assessor decisions",
    ["decision"],  # auto_approved | pending_manual_review | blocked
)

# Group metrics
group_created_counter = Counter(
    "peer_group_created_total",
    "Peer groups created by type",
    ["group_type"],
)

# Executor / resilience metrics
executor_latency_histogram = Histogram(
    "transfer_executor_latency_seconds",
    "Transfer executor response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

executor_failure_counter = Counter(
    "transfer_executor_failures_total",
    "Failed transfer executor attempts",
    ["operation"],
)

rate_limited_counter = Counter(
    "rate_limited_requests_total",
    "Requests rejected by the rate limiter",
    ["operation"],
)

circuit_state_gauge = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)

CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def record_transfer(status: str, amount: float) -> None:
    """Record terminal transfer status; completed amounts feed the histogram"""
    transfer_counter.labels(status=status).inc()
    if status == "completed":
        transfer_amount_histogram.observe(amount)


def record_circuit_state(operation: str, state: str) -> None:
    circuit_state_gauge.labels(operation=operation).set(CIRCUIT_STATE_VALUES[state])
