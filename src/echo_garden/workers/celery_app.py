"""Celery application factory for Echo Garden.

Configures the broker, result backend, serialization and timezone from
``Settings``.

Usage (starting a worker)::

    celery -A echo_garden.workers.celery_app worker --loglevel=info

Usage (starting the Beat scheduler)::

    celery -A echo_garden.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_postrun, worker_process_init
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

load_dotenv()

from echo_garden.config.settings import get_settings  # noqa: E402
from echo_garden.core.logging_config import configure_logging  # noqa: E402

settings = get_settings()
configure_logging(settings.log_level)

#: The global Celery application instance.
celery_app = Celery(
    "echo_garden",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["echo_garden.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Spotlight rotation is keyed on the UTC day of year.
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86_400,
    # A full trending pass must finish well inside its 15-minute cadence.
    task_soft_time_limit=600,
    task_time_limit=840,
    beat_schedule_filename="celerybeat-schedule",
)

from echo_garden.workers.beat_schedule import beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = beat_schedule


# ---------------------------------------------------------------------------
# Engine disposal on fork / after each task
# ---------------------------------------------------------------------------


@worker_process_init.connect
def _dispose_engine_on_fork(**kwargs: object) -> None:  # noqa: ARG001
    """Drop connections inherited from the parent process after fork."""
    from echo_garden.core import database as _db  # noqa: PLC0415

    _db.async_engine.sync_engine.dispose(close=False)


@task_postrun.connect
def _dispose_async_engine_after_task(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the pool after each task.

    Every task body runs its own ``asyncio.run()``; asyncpg connections are
    bound to the loop that created them and cannot be reused by the next one.
    """
    try:
        from echo_garden.core import database as _db  # noqa: PLC0415

        _db.async_engine.sync_engine.dispose(close=False)
    except Exception as exc:  # noqa: BLE001
        _logger.debug("engine dispose after task failed: %s", exc)
