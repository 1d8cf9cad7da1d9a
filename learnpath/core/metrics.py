"""Application metrics using the Prometheus client library.

Every metric the service exposes is defined here; the modules that own
the behavior import and increment them at the point of action.

Progress-engine metrics worth alerting on:
  completion_side_effect_failures_total > 0
      a course was marked completed but its certificate/stats/achievement
      step failed and was handed to the worker
  progress_cache_operations_total{operation="miss"} rising
      push invalidation is evicting more than usual (another writer is busy)
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
# Progress engine
# ---------------------------------------------------------------------------

CACHE_OPERATIONS = Counter(
    "progress_cache_operations_total",
    "Progress cache operations by result",
    ["operation"],  # "hit", "miss", "invalidate"
)

LESSON_EVENTS = Counter(
    "lesson_events_total",
    "Lesson completion events recorded",
    ["completed"],  # "true" or "false" (un-check)
)

ENROLLMENTS_CREATED = Counter(
    "enrollments_created_total",
    "Enrollment documents created",
    ["source"],  # "enroll", "lesson_event", "free_access"
)

COURSE_COMPLETIONS = Counter(
    "course_completions_total",
    "Enrollments that transitioned active -> completed",
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificates created (skipped duplicates are not counted)",
)

ACHIEVEMENTS_GRANTED = Counter(
    "achievements_granted_total",
    "Achievements unlocked by rule",
    ["rule_id"],
)

SIDE_EFFECT_FAILURES = Counter(
    "completion_side_effect_failures_total",
    "Completion side-effect runs that raised",
)

STORE_OPERATION_DURATION = Histogram(
    "document_store_operation_seconds",
    "Document store call duration",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "completion_side_effects"
)
