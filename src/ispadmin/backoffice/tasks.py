"""
Central task registration module for Celery.

Tasks are synchronous Celery entry points that drive the async services
against the default record store.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ispadmin.backoffice.celery_app import celery_app
from ispadmin.backoffice.dashboard.complaints import escalate_stale_complaints
from ispadmin.backoffice.dashboard.expired import ExpiredOverviewService
from ispadmin.backoffice.db import dispose_engine
from ispadmin.backoffice.logging import get_job_logger
from ispadmin.backoffice.records import get_record_store
from ispadmin.backoffice.records.store import RecordStore
from ispadmin.backoffice.settings import settings

T = TypeVar("T")


def run_job(job: Callable[[RecordStore], Awaitable[T]]) -> T:
    """Run an async job on a fresh event loop, releasing pooled connections after."""

    async def _run() -> T:
        try:
            return await job(get_record_store())
        finally:
            await dispose_engine()

    return asyncio.run(_run())


@celery_app.task(name="complaints.escalate_stale")
def escalate_stale_complaints_task() -> dict[str, Any]:
    """Periodic sweep moving overdue complaints to Pending."""
    logger = get_job_logger("complaints.escalate_stale")
    if not settings.dashboard.escalation_enabled:
        return {"status": "disabled"}

    escalated = run_job(escalate_stale_complaints)
    logger.info("job.completed", escalated=escalated)
    return {"status": "ok", "escalated": escalated}


@celery_app.task(name="expired_overview.reconcile")
def reconcile_expired_overview_task() -> dict[str, Any]:
    """Periodic sync and cleanup of the expired overview cache."""
    logger = get_job_logger("expired_overview.reconcile")

    async def _reconcile(store: RecordStore) -> Any:
        return await ExpiredOverviewService(store).reconcile()

    result = run_job(_reconcile)
    logger.info(
        "job.completed",
        added=result.sync.added,
        removed=result.cleanup.removed,
        has_errors=result.has_errors,
    )
    return {"status": "error" if result.has_errors else "ok", **result.model_dump(mode="json")}


__all__ = [
    "escalate_stale_complaints_task",
    "reconcile_expired_overview_task",
    "run_job",
]
