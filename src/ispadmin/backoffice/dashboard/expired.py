"""
Expired-customer overview.

Maintains the ``expired_overview`` cache collection from the customer records
(which stay authoritative) and builds the expired-customer chart series.
"""

from collections import Counter
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from ispadmin.backoffice.dashboard.dates import (
    Granularity,
    bucket_key,
    end_of_day,
    month_bounds,
    start_of_day,
)
from ispadmin.backoffice.dashboard.schemas import (
    ChartPoint,
    CleanupResult,
    ExpiredOverviewStats,
    MigrationResult,
    ReconcileResult,
    SyncResult,
)
from ispadmin.backoffice.records.models import (
    Collection,
    Customer,
    CustomerStatus,
    ExpiredOverviewRecord,
    ExpiryReason,
    coerce_datetime,
    format_date_key,
    matches_source,
    parse_records,
)
from ispadmin.backoffice.records.store import RecordStore
from ispadmin.backoffice.settings import ExpiredChartSource, settings

if TYPE_CHECKING:
    from ispadmin.backoffice.dashboard.subscription import (
        ExpiredRecordsCallback,
        ExpiredRecordsSubscription,
    )

logger = structlog.get_logger(__name__)

DEFAULT_WATCH_LIMIT = 100


def newest_first(records: list[ExpiredOverviewRecord]) -> list[ExpiredOverviewRecord]:
    return sorted(records, key=lambda r: r.expired_date, reverse=True)


def infer_expiry_reason(customer: Customer) -> ExpiryReason:
    """Explicit reason first, then keywords in the notes, else service ended."""
    explicit = ExpiryReason.parse(customer.reason) if customer.reason else None
    if explicit is not None:
        return explicit
    notes = customer.notes.lower()
    if "payment" in notes:
        return ExpiryReason.PAYMENT_FAILED
    if "request" in notes:
        return ExpiryReason.CUSTOMER_REQUEST
    return ExpiryReason.SERVICE_ENDED


def infer_expired_date(customer: Customer, now: datetime | None = None) -> str:
    """Renewal date, then last update, then creation, then today."""
    when = customer.renewal_date or customer.updated_at or customer.created_at or now
    return format_date_key(when or datetime.now())


class ExpiredOverviewService:
    """Expired overview cache maintenance and chart queries."""

    def __init__(self, store: RecordStore, batch_size: int | None = None) -> None:
        self.store = store
        self.batch_size = batch_size or settings.dashboard.overview_batch_size

    # ==================== Record derivation ====================

    def build_overview_record(
        self, customer: Customer, now: datetime | None = None
    ) -> ExpiredOverviewRecord:
        """Derive the cache row for one expired customer."""
        now = now or datetime.now()
        timestamp = now.isoformat()
        return ExpiredOverviewRecord(
            customer_id=customer.id,
            customer_name=customer.name or "Unknown Customer",
            plan_type=customer.plan or "Unknown Plan",
            expired_date=infer_expired_date(customer, now),
            reason=infer_expiry_reason(customer),
            source=customer.source or "Unknown",
            created_at=timestamp,
            updated_at=timestamp,
        )

    async def _load_customers(self) -> list[Customer]:
        return parse_records(Customer, await self.store.list_all(Collection.CUSTOMERS))

    async def get_expired_records(self) -> list[ExpiredOverviewRecord]:
        """All cache rows, newest expiry first."""
        raw = await self.store.list_all(Collection.EXPIRED_OVERVIEW)
        return newest_first(parse_records(ExpiredOverviewRecord, raw))

    async def _records_between(
        self, start: datetime | date, end: datetime | date
    ) -> list[ExpiredOverviewRecord]:
        start_key = format_date_key(start_of_day(start))
        end_key = format_date_key(start_of_day(end))
        raw = await self.store.query(Collection.EXPIRED_OVERVIEW, "expiredDate", ">=", start_key)
        records = [
            r
            for r in parse_records(ExpiredOverviewRecord, raw)
            if r.expired_date and r.expired_date <= end_key
        ]
        return newest_first(records)

    async def get_expired_records_by_date_range(
        self, start: datetime | date, end: datetime | date
    ) -> list[ExpiredOverviewRecord]:
        """Cache rows whose expiry day falls in [start, end], newest first."""
        try:
            return await self._records_between(start, end)
        except Exception as e:
            logger.error(
                "expired_overview.query_failed",
                filter="date_range",
                start=str(start),
                end=str(end),
                error=str(e),
                exc_info=True,
            )
            return []

    async def get_expired_records_by_source(self, source: str) -> list[ExpiredOverviewRecord]:
        """Cache rows for one data source, newest first."""
        try:
            raw = await self.store.query(Collection.EXPIRED_OVERVIEW, "source", "==", source)
            return newest_first(parse_records(ExpiredOverviewRecord, raw))
        except Exception as e:
            logger.error(
                "expired_overview.query_failed",
                filter="source",
                source=source,
                error=str(e),
                exc_info=True,
            )
            return []

    async def get_expired_records_by_reason(
        self, reason: ExpiryReason | str
    ) -> list[ExpiredOverviewRecord]:
        """
        Cache rows stored with the given reason, newest first.

        Unknown reasons match nothing. Rows stored without a reason field are
        not matched by any reason.
        """
        parsed = ExpiryReason.parse(reason)
        if parsed is None:
            return []
        try:
            raw = await self.store.query(
                Collection.EXPIRED_OVERVIEW, "reason", "==", parsed.value
            )
            return newest_first(parse_records(ExpiredOverviewRecord, raw))
        except Exception as e:
            logger.error(
                "expired_overview.query_failed",
                filter="reason",
                reason=parsed.value,
                error=str(e),
                exc_info=True,
            )
            return []

    async def subscribe_to_expired_records(
        self,
        callback: "ExpiredRecordsCallback",
        start: datetime | date | None = None,
        end: datetime | date | None = None,
        limit: int | None = DEFAULT_WATCH_LIMIT,
        debounce_seconds: float | None = None,
    ) -> "ExpiredRecordsSubscription":
        """
        Push cache rows to ``callback`` now and whenever the cache changes.

        With ``start`` and ``end`` only rows in that expiry window are pushed;
        otherwise the newest ``limit`` rows. Call ``close()`` on the result to
        stop.
        """
        from ispadmin.backoffice.dashboard.subscription import ExpiredRecordsSubscription

        subscription = ExpiredRecordsSubscription(
            self,
            callback,
            start=start,
            end=end,
            limit=limit,
            debounce_seconds=debounce_seconds,
        )
        await subscription.start()
        return subscription

    async def _add_records(
        self, customers: list[Customer]
    ) -> tuple[int, int, list[str]]:
        added = 0
        failed = 0
        errors: list[str] = []
        now = datetime.now()
        for customer in customers:
            try:
                record = self.build_overview_record(customer, now)
                await self.store.create(Collection.EXPIRED_OVERVIEW, record.to_record())
                added += 1
            except Exception as e:
                failed += 1
                errors.append(f"Failed to add record for customer {customer.id}: {e}")
                logger.warning(
                    "expired_overview.add_failed", customer_id=customer.id, error=str(e)
                )
        return added, failed, errors

    async def _delete_records(self, record_ids: list[str]) -> tuple[int, int, list[str]]:
        removed = 0
        failed = 0
        errors: list[str] = []
        for index in range(0, len(record_ids), self.batch_size):
            chunk = record_ids[index : index + self.batch_size]
            batch_number = index // self.batch_size + 1
            try:
                removed += await self.store.batch_delete(Collection.EXPIRED_OVERVIEW, chunk)
            except Exception as e:
                failed += len(chunk)
                errors.append(f"Batch {batch_number} failed: {e}")
                logger.warning(
                    "expired_overview.delete_batch_failed",
                    batch=batch_number,
                    size=len(chunk),
                    error=str(e),
                )
        return removed, failed, errors

    # ==================== Cache maintenance ====================

    async def sync_new_expired_customers(self) -> SyncResult:
        """Add a cache row for every expired customer that does not have one."""
        try:
            customers = await self._load_customers()
            existing = {r.customer_id for r in await self.get_expired_records()}
            missing = [
                c
                for c in customers
                if c.id and c.status == CustomerStatus.EXPIRED and c.id not in existing
            ]
            if not missing:
                return SyncResult()

            added, failed, errors = await self._add_records(missing)
            logger.info("expired_overview.synced", added=added, failed=failed)
            return SyncResult(added=added, failed=failed, errors=errors)
        except Exception as e:
            logger.error("expired_overview.sync_failed", error=str(e), exc_info=True)
            return SyncResult(errors=[str(e)])

    async def cleanup_non_expired_customers(self) -> CleanupResult:
        """Remove cache rows whose customer is gone or no longer expired."""
        try:
            statuses = {c.id: c.status for c in await self._load_customers() if c.id}
            stale = [
                record.id
                for record in await self.get_expired_records()
                if record.id and statuses.get(record.customer_id) != CustomerStatus.EXPIRED
            ]
            if not stale:
                return CleanupResult()

            removed, failed, errors = await self._delete_records(stale)
            logger.info("expired_overview.cleaned", removed=removed, failed=failed)
            return CleanupResult(removed=removed, failed=failed, errors=errors)
        except Exception as e:
            logger.error("expired_overview.cleanup_failed", error=str(e), exc_info=True)
            return CleanupResult(errors=[str(e)])

    async def clear_all_records(self) -> CleanupResult:
        """Delete every cache row, in batches."""
        try:
            ids = [r.id for r in await self.get_expired_records() if r.id]
            removed, failed, errors = await self._delete_records(ids)
            logger.info("expired_overview.cleared", removed=removed, failed=failed)
            return CleanupResult(removed=removed, failed=failed, errors=errors)
        except Exception as e:
            logger.error("expired_overview.clear_failed", error=str(e), exc_info=True)
            return CleanupResult(errors=[str(e)])

    async def migrate_expired_customers(self, reset: bool = False) -> MigrationResult:
        """
        Populate the cache from the customer collection.

        Args:
            reset: Clear the cache before populating it

        Returns:
            Per-record success and failure counts
        """
        try:
            customers = await self._load_customers()
            expired = [c for c in customers if c.id and c.status == CustomerStatus.EXPIRED]
            errors: list[str] = []

            if reset:
                cleared = await self.clear_all_records()
                errors.extend(cleared.errors)
                existing: set[str] = set()
            else:
                existing = {r.customer_id for r in await self.get_expired_records()}

            pending = [c for c in expired if c.id not in existing]
            added, failed, add_errors = await self._add_records(pending)
            errors.extend(add_errors)

            result = MigrationResult(
                success=added,
                failed=failed,
                errors=errors,
                total_customers_checked=len(customers),
                expired_customers_found=len(expired),
            )
            logger.info(
                "expired_overview.migrated",
                success=added,
                failed=failed,
                checked=len(customers),
                expired=len(expired),
                reset=reset,
            )
            return result
        except Exception as e:
            logger.error("expired_overview.migration_failed", error=str(e), exc_info=True)
            return MigrationResult(errors=[str(e)])

    async def reconcile(self) -> ReconcileResult:
        """Bring the cache in line with customer statuses."""
        sync = await self.sync_new_expired_customers()
        cleanup = await self.cleanup_non_expired_customers()
        result = ReconcileResult(sync=sync, cleanup=cleanup)
        logger.info(
            "expired_overview.reconciled",
            added=sync.added,
            removed=cleanup.removed,
            errors=len(sync.errors) + len(cleanup.errors),
        )
        return result

    # ==================== Queries ====================

    async def get_overview_stats(self, now: datetime | None = None) -> ExpiredOverviewStats:
        """Totals by reason, source and plan, plus this/last month counts."""
        try:
            records = await self.get_expired_records()
            this_month_start, _ = month_bounds(now or datetime.now())
            last_month_start, last_month_end = month_bounds(this_month_start - timedelta(days=1))

            this_month = 0
            last_month = 0
            for record in records:
                expired_on = coerce_datetime(record.expired_date)
                if expired_on is None:
                    continue
                if expired_on >= this_month_start:
                    this_month += 1
                elif last_month_start <= expired_on <= last_month_end:
                    last_month += 1

            return ExpiredOverviewStats(
                total_expired=len(records),
                by_reason=dict(Counter(r.reason.value for r in records)),
                by_source=dict(Counter(r.source for r in records)),
                by_plan=dict(Counter(r.plan_type for r in records)),
                this_month=this_month,
                last_month=last_month,
            )
        except Exception as e:
            logger.error("expired_overview.stats_failed", error=str(e), exc_info=True)
            return ExpiredOverviewStats()

    async def _expired_events(
        self, start: datetime, end: datetime, data_source: str
    ) -> list[datetime]:
        if settings.dashboard.expired_chart_source == ExpiredChartSource.OVERVIEW:
            events = []
            for record in await self._records_between(start, end):
                when = coerce_datetime(record.expired_date)
                if when is not None and start <= when <= end and matches_source(
                    record.source, data_source
                ):
                    events.append(when)
            return events

        return [
            c.renewal_date
            for c in await self._load_customers()
            if c.status == CustomerStatus.EXPIRED
            and c.renewal_date is not None
            and start <= c.renewal_date <= end
            and matches_source(c.source, data_source)
        ]

    async def get_expired_chart_data(
        self,
        start: datetime | date,
        end: datetime | date,
        granularity: Granularity | str = Granularity.DAY,
        data_source: str = "All",
    ) -> list[ChartPoint]:
        """Expired customers per bucket, chronological; empty on failure."""
        try:
            bucket = Granularity(granularity)
            events = await self._expired_events(start_of_day(start), end_of_day(end), data_source)
            counts: Counter[str] = Counter(bucket_key(when, bucket) for when in events)
            return [ChartPoint(name=key, value=counts[key]) for key in sorted(counts)]
        except Exception as e:
            logger.error(
                "expired_overview.chart_failed",
                data_source=data_source,
                error=str(e),
                exc_info=True,
            )
            return []


def summarize(result: Any) -> dict[str, Any]:
    """Plain dict of a maintenance result, for task return values and CLI output."""
    return result.model_dump(mode="json")
