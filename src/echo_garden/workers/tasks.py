"""Periodic Celery tasks for Echo Garden.

Driven by the Beat schedule in ``workers/beat_schedule.py``:

- ``recompute_trending_scores``: refresh every live clip's trending score.
- ``auto_escalate_moderation_items``: raise the priority of stale open items.
- ``recompute_topic_trending_scores``: refresh every active topic's trending score.
- ``recompute_spotlight_scores``: refresh every question's spotlight score.
- ``select_daily_spotlight``: pick and announce today's rotation question.

All tasks are synchronous Celery tasks that bridge to async DB operations via
``asyncio.run()``.  Async helpers live in ``workers._task_helpers``.

Error handling policy: each task catches all exceptions at the outermost
level, logs them at ERROR level, and does NOT re-raise.  The next scheduled
run supersedes a failed one, so retries would only pile up work.

Task names::

    echo_garden.workers.tasks.recompute_trending_scores
    echo_garden.workers.tasks.auto_escalate_moderation_items
    echo_garden.workers.tasks.recompute_topic_trending_scores
    echo_garden.workers.tasks.recompute_spotlight_scores
    echo_garden.workers.tasks.select_daily_spotlight
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import structlog

from echo_garden.workers._task_helpers import (
    choose_daily_spotlight,
    escalate_moderation_items,
    recompute_spotlight,
    recompute_topic_trending,
    recompute_trending,
)
from echo_garden.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
_stdlib_logger = logging.getLogger(__name__)


def _record_metrics(task_name: str, status: str, started: float, **counters: int) -> None:
    try:
        from echo_garden.api.metrics import (  # noqa: PLC0415
            celery_task_duration_seconds,
            celery_tasks_total,
            moderation_escalations_total,
            trending_recomputes_total,
        )

        celery_tasks_total.labels(task_name=task_name, status=status).inc()
        celery_task_duration_seconds.labels(task_name=task_name).observe(
            time.perf_counter() - started
        )
        if counters.get("clips_updated"):
            trending_recomputes_total.labels(scope="batch").inc(counters["clips_updated"])
        if counters.get("topics_updated"):
            trending_recomputes_total.labels(scope="topic").inc(counters["topics_updated"])
        if counters.get("items_escalated"):
            moderation_escalations_total.inc(counters["items_escalated"])
    except Exception as _metrics_exc:  # noqa: BLE001
        _stdlib_logger.debug("%s: metrics recording failed: %s", task_name, _metrics_exc)


# ---------------------------------------------------------------------------
# Task 1: recompute_trending_scores
# ---------------------------------------------------------------------------


@celery_app.task(name="echo_garden.workers.tasks.recompute_trending_scores")
def recompute_trending_scores() -> dict[str, Any]:
    """Refresh the cached trending score of every live clip.

    Per-clip failures are logged inside the pass and do not abort it.

    Returns:
        Dict with ``clips_updated`` count.
    """
    started = time.perf_counter()
    log = logger.bind(task="recompute_trending_scores")
    log.info("recompute_trending_scores: starting")

    try:
        updated = asyncio.run(recompute_trending())
    except Exception as exc:
        log.error("recompute_trending_scores: error", error=str(exc), exc_info=True)
        _record_metrics("recompute_trending_scores", "error", started)
        return {"error": str(exc), "clips_updated": 0}

    summary = {"clips_updated": updated}
    log.info("recompute_trending_scores: complete", **summary)
    _record_metrics("recompute_trending_scores", "success", started, **summary)
    return summary


# ---------------------------------------------------------------------------
# Task 2: auto_escalate_moderation_items
# ---------------------------------------------------------------------------


@celery_app.task(name="echo_garden.workers.tasks.auto_escalate_moderation_items")
def auto_escalate_moderation_items() -> dict[str, Any]:
    """Raise the priority of open moderation items older than 24 hours.

    Returns:
        Dict with ``items_escalated`` count.
    """
    started = time.perf_counter()
    log = logger.bind(task="auto_escalate_moderation_items")
    log.info("auto_escalate_moderation_items: starting")

    try:
        escalated = asyncio.run(escalate_moderation_items())
    except Exception as exc:
        log.error("auto_escalate_moderation_items: error", error=str(exc), exc_info=True)
        _record_metrics("auto_escalate_moderation_items", "error", started)
        return {"error": str(exc), "items_escalated": 0}

    summary = {"items_escalated": escalated}
    log.info("auto_escalate_moderation_items: complete", **summary)
    _record_metrics("auto_escalate_moderation_items", "success", started, **summary)
    return summary


# ---------------------------------------------------------------------------
# Task 3: recompute_spotlight_scores
# ---------------------------------------------------------------------------


@celery_app.task(name="echo_garden.workers.tasks.recompute_spotlight_scores")
def recompute_spotlight_scores() -> dict[str, Any]:
    started = time.perf_counter()
    log = logger.bind(task="recompute_spotlight_scores")

    try:
        updated = asyncio.run(recompute_spotlight())
    except Exception as exc:
        log.error("recompute_spotlight_scores: error", error=str(exc), exc_info=True)
        _record_metrics("recompute_spotlight_scores", "error", started)
        return {"error": str(exc), "questions_updated": 0}

    summary = {"questions_updated": updated}
    log.info("recompute_spotlight_scores: complete", **summary)
    _record_metrics("recompute_spotlight_scores", "success", started)
    return summary


# ---------------------------------------------------------------------------
# Task 4: select_daily_spotlight
# ---------------------------------------------------------------------------


@celery_app.task(name="echo_garden.workers.tasks.select_daily_spotlight")
def select_daily_spotlight() -> dict[str, Any]:
    """Pick today's rotation question and publish ``spotlight_selected``.

    Returns:
        Dict with ``question_id`` (``None`` when no question qualifies).
    """
    started = time.perf_counter()
    log = logger.bind(task="select_daily_spotlight")

    try:
        question_id = asyncio.run(choose_daily_spotlight())
    except Exception as exc:
        log.error("select_daily_spotlight: error", error=str(exc), exc_info=True)
        _record_metrics("select_daily_spotlight", "error", started)
        return {"error": str(exc), "question_id": None}

    summary = {"question_id": question_id}
    log.info("select_daily_spotlight: complete", **summary)
    _record_metrics("select_daily_spotlight", "success", started)
    return summary


# ---------------------------------------------------------------------------
# Task 5: recompute_topic_trending_scores
# ---------------------------------------------------------------------------


@celery_app.task(name="echo_garden.workers.tasks.recompute_topic_trending_scores")
def recompute_topic_trending_scores() -> dict[str, Any]:
    """Refresh the trending score of every active topic.

    Clip writes already refresh their own topic; this pass lets the age
    divisor reach topics with no recent writes before the spotlight pass
    reads them.

    Returns:
        Dict with ``topics_updated`` count.
    """
    started = time.perf_counter()
    log = logger.bind(task="recompute_topic_trending_scores")

    try:
        updated = asyncio.run(recompute_topic_trending())
    except Exception as exc:
        log.error("recompute_topic_trending_scores: error", error=str(exc), exc_info=True)
        _record_metrics("recompute_topic_trending_scores", "error", started)
        return {"error": str(exc), "topics_updated": 0}

    summary = {"topics_updated": updated}
    log.info("recompute_topic_trending_scores: complete", **summary)
    _record_metrics("recompute_topic_trending_scores", "success", started, **summary)
    return summary
