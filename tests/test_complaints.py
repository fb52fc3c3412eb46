"""Tests for complaint escalation and status bucketing."""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from factories import complaint, day

from ispadmin.backoffice.dashboard.complaints import (
    bucket_complaints,
    escalate_stale_complaints,
    get_complaint_status_data,
    is_stale,
)
from ispadmin.backoffice.dashboard.dates import compute_boundaries
from ispadmin.backoffice.records.models import Complaint, parse_records
from ispadmin.backoffice.records.store import InMemoryRecordStore

pytestmark = pytest.mark.unit

TODAY = datetime(2025, 6, 15)


def as_dict(series):
    return {point.name: point.value for point in series}


class TestEscalationSweep:
    """Test the stale complaint sweep."""

    @pytest.fixture
    def store(self):
        return InMemoryRecordStore(
            {
                "complaints": [
                    complaint("overdue-open", "Open", booked=day(-9), resolve=day(-2)),
                    complaint("overdue-nr", "Not Resolved", booked=day(-9), resolve=day(-1)),
                    complaint("due-today", "Open", booked=day(-3), resolve=day(0)),
                    complaint("no-target", "Open", booked=day(-3)),
                    complaint("done", "Resolved", booked=day(-9), resolve=day(-4)),
                    complaint("waiting", "Pending", booked=day(-9), resolve=day(-4)),
                ]
            }
        )

    async def test_escalates_only_overdue_unresolved(self, store):
        escalated = await escalate_stale_complaints(store, today=TODAY)

        assert escalated == 2
        statuses = {r["id"]: r["status"] for r in await store.list_all("complaints")}
        assert statuses == {
            "overdue-open": "Pending",
            "overdue-nr": "Pending",
            "due-today": "Open",
            "no-target": "Open",
            "done": "Resolved",
            "waiting": "Pending",
        }

    async def test_sweep_is_idempotent(self, store):
        await escalate_stale_complaints(store, today=TODAY)
        first = await store.list_all("complaints")

        again = await escalate_stale_complaints(store, today=TODAY)

        assert again == 0
        assert await store.list_all("complaints") == first

    async def test_writes_a_single_batch(self, store):
        store.batch_update = AsyncMock(wraps=store.batch_update)
        await escalate_stale_complaints(store, today=TODAY)
        store.batch_update.assert_awaited_once()

    async def test_store_failure_returns_zero(self):
        store = AsyncMock()
        store.list_all.side_effect = RuntimeError("store offline")

        assert await escalate_stale_complaints(store, today=TODAY) == 0

    def test_is_stale_compares_days(self):
        [late] = parse_records(
            Complaint, [complaint("x", "Open", resolve="2025-06-14T23:00:00")]
        )
        assert is_stale(late, TODAY)
        assert not is_stale(late, datetime(2025, 6, 14))


class TestComplaintBuckets:
    """Test Open / Resolved / Pending bucketing."""

    def test_resolved_counts_by_resolve_date_only(self):
        """Resolved complaints follow their resolve date, whatever the booking date."""
        complaints = parse_records(
            Complaint, [complaint("r", "Resolved", booked="2025-05-01", resolve="2025-06-10")]
        )

        containing = compute_boundaries(datetime(2025, 6, 15), "week")
        before = compute_boundaries(datetime(2025, 6, 8), "week")

        assert as_dict(
            bucket_complaints(complaints, containing.start_of_day, containing.end_of_day)
        ) == {"Open": 0, "Resolved": 1, "Pending": 0}
        assert as_dict(
            bucket_complaints(complaints, before.start_of_day, before.end_of_day)
        ) == {"Open": 0, "Resolved": 0, "Pending": 0}

    def test_unresolved_counts_by_booking_date(self):
        complaints = parse_records(
            Complaint,
            [
                complaint("o", "Open", booked="2025-06-12"),
                complaint("n", "Not Resolved", booked="2025-06-13"),
                complaint("p", "Pending", booked="2025-06-14", resolve="2025-05-01"),
                complaint("old", "Open", booked="2025-05-01"),
            ],
        )
        bounds = compute_boundaries(datetime(2025, 6, 15), "week")

        series = bucket_complaints(complaints, bounds.start_of_day, bounds.end_of_day)

        assert [p.name for p in series] == ["Open", "Resolved", "Pending"]
        assert as_dict(series) == {"Open": 2, "Resolved": 0, "Pending": 1}

    def test_resolved_without_resolve_date_is_excluded(self):
        complaints = parse_records(Complaint, [complaint("r", "Resolved", booked="2025-06-14")])
        bounds = compute_boundaries(datetime(2025, 6, 15), "week")

        series = bucket_complaints(complaints, bounds.start_of_day, bounds.end_of_day)

        assert sum(p.value for p in series) == 0

    def test_partitioned_windows_do_not_double_count(self):
        complaints = parse_records(
            Complaint,
            [
                complaint("a", "Resolved", booked="2025-06-02", resolve="2025-06-09"),
                complaint("b", "Open", booked="2025-06-03"),
                complaint("c", "Pending", booked="2025-06-12"),
                complaint("d", "Resolved", booked="2025-06-10", resolve="2025-06-11"),
            ],
        )
        first = compute_boundaries(datetime(2025, 6, 7), "week")
        second = compute_boundaries(datetime(2025, 6, 14), "week")
        whole = (first.start_of_day, second.end_of_day)

        total = sum(
            p.value
            for bounds in (first, second)
            for p in bucket_complaints(complaints, bounds.start_of_day, bounds.end_of_day)
        )

        assert total == sum(p.value for p in bucket_complaints(complaints, *whole)) == 4


class TestComplaintStatusData:
    """Test the complaint chart entry point."""

    async def test_filters_by_source(self, sample_store):
        series = await get_complaint_status_data(sample_store, TODAY, "week", "RMAX")
        assert as_dict(series) == {"Open": 0, "Resolved": 0, "Pending": 1}

    async def test_all_sources(self, sample_store):
        series = await get_complaint_status_data(sample_store, TODAY, "month", "All")
        assert as_dict(series) == {"Open": 1, "Resolved": 1, "Pending": 1}

    async def test_failure_returns_zero_buckets(self):
        store = AsyncMock()
        store.query.side_effect = RuntimeError("index missing")

        series = await get_complaint_status_data(store, TODAY, "week", "BSNL")

        assert as_dict(series) == {"Open": 0, "Resolved": 0, "Pending": 0}
