"""Prometheus metrics for Echo Garden.

All metrics are module-level singletons registered on the default
``REGISTRY``.

Metrics defined here:

  trending_recomputes_total{scope}
      Counter: trending scores written, by ``scope`` (``single`` for write
      paths, ``batch`` for the periodic clip refresh, ``topic`` for the
      periodic topic refresh).

  feed_requests_total{personalized}
      Counter: feed pages served, split by anonymous/personalized viewer.

  feed_items_returned
      Histogram: number of entries in each served feed page.

  moderation_transitions_total{to_state}
      Counter: moderation workflow transitions by target state.

  moderation_escalations_total
      Counter: items touched by auto-escalation.

  rate_guard_rejections_total{action, reason}
      Counter: writes rejected by the upload/profile-edit guard.

  http_requests_total{method, path, status}
  http_request_duration_seconds{method, path}
      HTTP traffic, populated by middleware in ``main.py``.

  celery_tasks_total{task_name, status}
  celery_task_duration_seconds{task_name}
      Celery task outcomes, populated in ``workers/tasks.py``.

Usage::

    from echo_garden.api.metrics import moderation_escalations_total
    moderation_escalations_total.inc(escalated)
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Ranking metrics
# ---------------------------------------------------------------------------

trending_recomputes_total: Counter = Counter(
    "trending_recomputes_total",
    "Trending scores written, by scope.",
    labelnames=["scope"],
)

feed_requests_total: Counter = Counter(
    "feed_requests_total",
    "Feed pages served.",
    labelnames=["personalized"],
)

feed_items_returned: Histogram = Histogram(
    "feed_items_returned",
    "Entries per served feed page.",
    buckets=[0, 1, 5, 10, 20, 50, 100],
)

# ---------------------------------------------------------------------------
# Moderation metrics
# ---------------------------------------------------------------------------

moderation_transitions_total: Counter = Counter(
    "moderation_transitions_total",
    "Moderation workflow transitions by target state.",
    labelnames=["to_state"],
)
"""Labels:
  to_state: one of pending, in_review, resolved, actioned
"""

moderation_escalations_total: Counter = Counter(
    "moderation_escalations_total",
    "Moderation items escalated by the periodic sweep.",
)

rate_guard_rejections_total: Counter = Counter(
    "rate_guard_rejections_total",
    "Writes rejected by the upload/profile-edit guard.",
    labelnames=["action", "reason"],
)
"""Labels:
  action: ``upload`` or ``profile_update``
  reason: ``hourly_limit``, ``daily_limit``, ``ip_hourly_limit`` or ``cooldown``
"""

# ---------------------------------------------------------------------------
# HTTP metrics (populated by middleware in main.py)
# ---------------------------------------------------------------------------

http_requests_total: Counter = Counter(
    "http_requests_total",
    "HTTP requests handled by the FastAPI application.",
    labelnames=["method", "path", "status"],
)

http_request_duration_seconds: Histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# ---------------------------------------------------------------------------
# Celery task metrics (populated in workers/tasks.py)
# ---------------------------------------------------------------------------

celery_tasks_total: Counter = Counter(
    "celery_tasks_total",
    "Celery task completions by task name and outcome.",
    labelnames=["task_name", "status"],
)

celery_task_duration_seconds: Histogram = Histogram(
    "celery_task_duration_seconds",
    "Celery task wall-clock duration in seconds.",
    labelnames=["task_name"],
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)


# ---------------------------------------------------------------------------
# Response helper
# ---------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Generate a Prometheus text-format metrics response.

    Returns:
        A tuple of (body_bytes, content_type_string).
    """
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # noqa: PLC0415

    return generate_latest(), CONTENT_TYPE_LATEST
