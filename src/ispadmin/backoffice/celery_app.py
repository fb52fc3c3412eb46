"""
Celery application configuration.

Schedules the dashboard maintenance jobs: the complaint escalation sweep and
the expired overview reconciliation.
"""

from typing import Any

import structlog
from celery import Celery
from celery.signals import worker_init
from kombu import Queue

from ispadmin.backoffice.logging import setup_logging
from ispadmin.backoffice.settings import settings

# Create Celery application
celery_app = Celery(
    "ispadmin_backoffice",
    broker=settings.celery.broker_url,
    backend=settings.celery.result_backend,
    include=["ispadmin.backoffice.tasks"],
)

# Configure Celery settings
celery_app.conf.update(
    task_routes={
        "complaints.*": {"queue": "default"},
        "expired_overview.*": {"queue": "low_priority"},
    },
    task_default_queue="default",
    task_queues=(
        Queue("default", routing_key="default"),
        Queue("low_priority", routing_key="low_priority"),
    ),
    task_serializer=settings.celery.task_serializer,
    accept_content=settings.celery.accept_content,
    result_serializer=settings.celery.result_serializer,
    timezone=settings.celery.timezone,
    enable_utc=settings.celery.enable_utc,
    result_expires=3600,  # 1 hour
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)


@worker_init.connect  # type: ignore[misc]
def setup_worker_logging(sender: Any, **kwargs: Any) -> None:
    """Configure structured logging for workers."""
    setup_logging()


@celery_app.on_after_finalize.connect  # type: ignore[misc]
def setup_periodic_tasks(sender: Any, **kwargs: Any) -> None:
    """Register the dashboard maintenance schedule."""
    from ispadmin.backoffice.tasks import (
        escalate_stale_complaints_task,
        reconcile_expired_overview_task,
    )

    periodic_task_names = []

    if settings.dashboard.escalation_enabled:
        sender.add_periodic_task(
            settings.dashboard.sweep_interval_seconds,
            escalate_stale_complaints_task.s(),
            name="complaints-escalate-stale",
        )
        periodic_task_names.append("complaints-escalate-stale")

    sender.add_periodic_task(
        settings.dashboard.reconcile_interval_seconds,
        reconcile_expired_overview_task.s(),
        name="expired-overview-reconcile",
    )
    periodic_task_names.append("expired-overview-reconcile")

    logger = structlog.get_logger(__name__)
    logger.info(
        "celery.worker.configured",
        broker=settings.celery.broker_url,
        queues=["default", "low_priority"],
        periodic_tasks=periodic_task_names,
    )


if __name__ == "__main__":
    # python -m ispadmin.backoffice.celery_app worker
    celery_app.start()
