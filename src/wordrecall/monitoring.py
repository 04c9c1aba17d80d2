"""Prometheus metrics for study sessions."""
from prometheus_client import Counter, Histogram, start_http_server

# Event metrics
events_tracked = Counter(
    "wordrecall_events_total",
    "Total number of analytics events tracked",
    ["event_type"],
)

# Learning metrics
spelling_results = Counter(
    "wordrecall_spelling_results_total",
    "Spelling step verdicts",
    ["result"],
)

relapses_enqueued = Counter(
    "wordrecall_relapses_enqueued_total",
    "Total number of relapse copies added to session queues",
)

sessions_saved = Counter(
    "wordrecall_sessions_saved_total",
    "Total number of study session summaries persisted",
    ["kind"],
)

session_duration = Histogram(
    "wordrecall_session_duration_seconds",
    "Duration of study sessions in seconds",
    buckets=[60, 300, 600, 1800, 3600],  # 1min, 5min, 10min, 30min, 1hour
)

# Storage metrics
storage_errors = Counter(
    "wordrecall_storage_errors_total",
    "Total number of storage errors",
    ["operation"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
