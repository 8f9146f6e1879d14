"""Application metrics using the Prometheus client library.

This module defines all metrics in one place: a single inventory of
everything the service measures.  Other modules import specific metrics
and increment/observe them at the point of action.

The API process exposes them on GET /metrics.  The worker records the
progression metrics; in production Prometheus scrapes both processes
and aggregates across them.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Progression metrics (populated by the controller and the worker)
# ---------------------------------------------------------------------------

EVENTS_PROCESSED = Counter(
    "progression_events_total",
    "Challenge completion events evaluated",
    ["completion_status"],  # success|fail|...
)

EVALUATIONS = Counter(
    "progression_evaluations_total",
    "Level criteria evaluations by outcome",
    ["outcome"],  # satisfied|not_satisfied
)

ADVANCEMENTS = Counter(
    "progression_advancements_total",
    "Next-level advancement attempts by result",
    ["result"],  # advanced|already_advanced|final_level|level_not_in_path
)

FAILURES = Counter(
    "progression_failures_total",
    "Events that failed, by failure kind",
    ["kind"],  # see progression.core.errors
)

EVENT_DURATION = Histogram(
    "progression_event_duration_seconds",
    "Wall time to evaluate one challenge completion event",
    # Each event is a handful of indexed reads plus one write.  Anything
    # past a second means the database or the per-key lock is contended.
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "challenge_completed", "module_launch"
)
