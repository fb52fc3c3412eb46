"""
Complaint escalation and status bucketing.
"""

from datetime import date, datetime

import structlog

from ispadmin.backoffice.dashboard.dates import DateRange, compute_boundaries, start_of_day
from ispadmin.backoffice.dashboard.schemas import ChartPoint, zero_complaint_series
from ispadmin.backoffice.records.models import (
    Collection,
    Complaint,
    ComplaintStatus,
    parse_records,
)
from ispadmin.backoffice.records.store import RecordPatch, RecordStore

logger = structlog.get_logger(__name__)

ESCALATABLE_STATUSES = (ComplaintStatus.OPEN, ComplaintStatus.NOT_RESOLVED)


def is_stale(complaint: Complaint, today: datetime) -> bool:
    """An unresolved complaint whose expected resolution day has passed."""
    return (
        complaint.status in ESCALATABLE_STATUSES
        and complaint.resolve_date is not None
        and start_of_day(complaint.resolve_date) < today
    )


async def escalate_stale_complaints(
    store: RecordStore, today: datetime | date | None = None
) -> int:
    """
    Move stale Open / Not Resolved complaints to Pending.

    Writes one batch. Re-running is a no-op for complaints already escalated.
    Failures are logged and reported as zero escalations.

    Returns:
        Number of complaints escalated
    """
    cutoff = start_of_day(today or datetime.now())
    try:
        raw = await store.list_all(Collection.COMPLAINTS)
        stale = [c for c in parse_records(Complaint, raw) if c.id and is_stale(c, cutoff)]
        if not stale:
            return 0

        patches = [
            RecordPatch(id=complaint.id, patch={"status": ComplaintStatus.PENDING.label})
            for complaint in stale
        ]
        updated = await store.batch_update(Collection.COMPLAINTS, patches)
        logger.info(
            "complaints.escalated",
            count=updated,
            complaint_ids=[p.id for p in patches],
        )
        return updated
    except Exception as e:
        logger.error("complaints.escalation_failed", error=str(e), exc_info=True)
        return 0


def bucket_complaints(
    complaints: list[Complaint], start: datetime, end: datetime
) -> list[ChartPoint]:
    """
    Count complaints into Open / Resolved / Pending for [start, end].

    Resolved complaints are placed by resolve date, everything still open by
    booking date, so a complaint lands in at most one bucket. Resolved
    complaints without a resolve date are left out.
    """
    counts = {"Open": 0, "Resolved": 0, "Pending": 0}

    for complaint in complaints:
        if complaint.status == ComplaintStatus.RESOLVED:
            when = complaint.resolve_date
            if when is not None and start <= when <= end:
                counts["Resolved"] += 1
        elif complaint.is_unresolved:
            when = complaint.booking_date
            if when is None or not (start <= when <= end):
                continue
            if complaint.status == ComplaintStatus.PENDING:
                counts["Pending"] += 1
            else:
                counts["Open"] += 1

    return [ChartPoint(name=name, value=value) for name, value in counts.items()]


async def get_complaint_status_data(
    store: RecordStore,
    selected_date: datetime | date | None = None,
    date_range: DateRange | str = DateRange.WEEK,
    data_source: str = "All",
) -> list[ChartPoint]:
    """Complaint status chart for a dashboard window; zero buckets on failure."""
    try:
        if data_source and data_source != "All":
            raw = await store.query(Collection.COMPLAINTS, "source", "==", data_source)
        else:
            raw = await store.list_all(Collection.COMPLAINTS)

        bounds = compute_boundaries(selected_date or datetime.now(), date_range)
        complaints = parse_records(Complaint, raw)
        return bucket_complaints(complaints, bounds.start_of_day, bounds.end_of_day)
    except Exception as e:
        logger.error(
            "complaints.status_data_failed",
            data_source=data_source,
            error=str(e),
            exc_info=True,
        )
        return zero_complaint_series()
