"""
Prometheus metrics for the reconcile loop and its dispatcher.
"""
from prometheus_client import Counter, Histogram, Gauge

# Reconcile metrics
reconcile_total = Counter(
    "ords_reconcile_total",
    "Total number of reconcile passes",
    ["outcome"],
)

reconcile_duration_seconds = Histogram(
    "ords_reconcile_duration_seconds",
    "Time spent in one reconcile pass",
    buckets=(0.1, 0.5, 1, 5, 10, 30, 60, 300, 900),
)

reconcile_errors_total = Counter(
    "ords_reconcile_errors_total",
    "Total reconcile passes that raised",
    ["error_type"],
)

# Remote command metrics
remote_command_total = Counter(
    "ords_remote_command_total",
    "Total commands executed inside pods",
    ["result"],
)

# Queue metrics
queue_depth = Gauge(
    "ords_queue_depth",
    "Number of instances waiting to be reconciled",
)

reconciles_in_flight = Gauge(
    "ords_reconciles_in_flight",
    "Number of reconcile passes currently running",
)

requeue_total = Counter(
    "ords_requeue_total",
    "Total delayed reconcile retries scheduled",
)
