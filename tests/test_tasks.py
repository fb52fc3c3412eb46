"""Tests for scheduled maintenance tasks."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock, patch

import pytest
from factories import complaint, customer

from ispadmin.backoffice.celery_app import celery_app, setup_periodic_tasks
from ispadmin.backoffice.records.store import InMemoryRecordStore
from ispadmin.backoffice.tasks import (
    escalate_stale_complaints_task,
    reconcile_expired_overview_task,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def job_store():
    overdue = (datetime.now() - timedelta(days=2)).strftime("%Y-%m-%d")
    store = InMemoryRecordStore(
        {
            "customers": [customer("c1", "Expired"), customer("c2", "Active")],
            "complaints": [complaint("t1", "Open", resolve=overdue)],
            "expired_overview": [{"id": "stale", "customerId": "c2"}],
        }
    )
    dispose = AsyncMock()
    with (
        patch("ispadmin.backoffice.tasks.get_record_store", return_value=store),
        patch("ispadmin.backoffice.tasks.dispose_engine", dispose),
    ):
        yield store, dispose


class TestTasks:
    """Test Celery task bodies."""

    def test_tasks_are_registered(self):
        assert "complaints.escalate_stale" in celery_app.tasks
        assert "expired_overview.reconcile" in celery_app.tasks

    def test_escalate_stale_complaints_task(self, job_store, dashboard_settings):
        dashboard_settings.escalation_enabled = True
        _, dispose = job_store

        result = escalate_stale_complaints_task()

        assert result == {"status": "ok", "escalated": 1}
        dispose.assert_awaited_once()

    def test_escalation_disabled(self, job_store, dashboard_settings):
        assert escalate_stale_complaints_task() == {"status": "disabled"}

    def test_reconcile_expired_overview_task(self, job_store):
        store, dispose = job_store

        result = reconcile_expired_overview_task()

        assert result["status"] == "ok"
        assert result["sync"]["added"] == 1
        assert result["cleanup"]["removed"] == 1
        dispose.assert_awaited_once()


class TestPeriodicSchedule:
    """Test the beat schedule registration."""

    def test_registers_both_jobs(self, dashboard_settings):
        dashboard_settings.escalation_enabled = True
        sender = Mock()

        setup_periodic_tasks(sender)

        names = [call.kwargs["name"] for call in sender.add_periodic_task.call_args_list]
        assert names == ["complaints-escalate-stale", "expired-overview-reconcile"]

    def test_sweep_schedule_follows_setting(self, dashboard_settings):
        sender = Mock()

        setup_periodic_tasks(sender)

        names = [call.kwargs["name"] for call in sender.add_periodic_task.call_args_list]
        assert names == ["expired-overview-reconcile"]
