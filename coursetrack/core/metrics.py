"""Prometheus metric inventory for coursetrack.

Every metric the service exports is declared here; the modules that own
the behavior import the metric and increment/observe it at the point of
action.  HTTP metrics are filled in by MetricsMiddleware, domain metrics
by the services.
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
# Assessment / progress metrics
# ---------------------------------------------------------------------------

ATTEMPTS_STARTED = Counter(
    "assessment_attempts_started_total",
    "Assessment attempts created, by assessment level",
    ["level"],  # lesson_quiz|module_assessment|course_final
)

ATTEMPTS_FINISHED = Counter(
    "assessment_attempts_finished_total",
    "Assessment attempts that reached a terminal state, by outcome",
    ["outcome"],  # passed|failed|expired|reset
)

ATTEMPT_CONFLICTS = Counter(
    "assessment_attempt_conflicts_total",
    "Attempt operations rejected with a state conflict, by error code",
    ["code"],
)

LESSONS_COMPLETED = Counter(
    "lessons_completed_total",
    "Lessons whose completion flag was set",
    ["kind"],  # video|article|quiz|assessment
)

CERTIFICATE_CHECKS = Counter(
    "certificate_eligibility_checks_total",
    "Certificate eligibility evaluations by result",
    ["result"],  # eligible|ineligible
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # certificate_issuance|manual_grading
)
