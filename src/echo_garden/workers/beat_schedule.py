"""Celery Beat periodic task schedule for Echo Garden.

All times are UTC (configured in ``celery_app.py``).

Schedule overview:

+-------------------------------+---------------------+------------------------------+
| Task name                     | Schedule            | Purpose                      |
+===============================+=====================+==============================+
| recompute_trending_scores     | Every 15 minutes    | Let freshness decay reach    |
|                               |                     | the cached trending scores.  |
+-------------------------------+---------------------+------------------------------+
| auto_escalate_moderation      | Hourly, :05         | Raise priority of open items |
|                               |                     | older than 24 h.             |
+-------------------------------+---------------------+------------------------------+
| recompute_topic_trending      | Hourly, :15         | Let age decay reach topic    |
|                               |                     | scores before the spotlight. |
+-------------------------------+---------------------+------------------------------+
| recompute_spotlight_scores    | Hourly, :20         | Let recency decay reach the  |
|                               |                     | cached spotlight scores.     |
+-------------------------------+---------------------+------------------------------+
| select_daily_spotlight        | 00:05 UTC           | Pick and announce today's    |
|                               |                     | rotation question.           |
+-------------------------------+---------------------+------------------------------+
"""

from __future__ import annotations

from celery.schedules import crontab

_TASKS = "echo_garden.workers.tasks"

#: Applied to ``celery_app.conf.beat_schedule`` in ``celery_app.py``.
beat_schedule: dict[str, dict] = {  # type: ignore[type-arg]
    "recompute_trending_scores": {
        "task": f"{_TASKS}.recompute_trending_scores",
        "schedule": crontab(minute="*/15"),
        "options": {
            "queue": "celery",
            "expires": 600,  # a late run is superseded by the next one
        },
    },
    "auto_escalate_moderation": {
        "task": f"{_TASKS}.auto_escalate_moderation_items",
        "schedule": crontab(minute=5),
        "options": {
            "queue": "celery",
            "expires": 1_800,
        },
    },
    "recompute_topic_trending_scores": {
        "task": f"{_TASKS}.recompute_topic_trending_scores",
        "schedule": crontab(minute=15),
        "options": {
            "queue": "celery",
            "expires": 1_800,
        },
    },
    "recompute_spotlight_scores": {
        "task": f"{_TASKS}.recompute_spotlight_scores",
        "schedule": crontab(minute=20),
        "options": {
            "queue": "celery",
            "expires": 1_800,
        },
    },
    "select_daily_spotlight": {
        "task": f"{_TASKS}.select_daily_spotlight",
        "schedule": crontab(hour=0, minute=5),
        "options": {
            "queue": "celery",
            "expires": 3_600,
        },
    },
}
