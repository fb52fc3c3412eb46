"""
Live dashboard subscriptions.

A subscription watches one record collection and pushes a fresh snapshot to a
callback whenever it changes. Bursts of changes are coalesced into a single
recomputation by a debounce timer.

- ``MetricsSubscription`` follows customers and pushes ``DashboardMetrics``.
- ``ExpiredRecordsSubscription`` follows the expired overview cache and pushes
  its rows.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Any, Generic, TypeVar

import structlog

from ispadmin.backoffice.dashboard.dates import DateFilter
from ispadmin.backoffice.dashboard.expired import DEFAULT_WATCH_LIMIT, ExpiredOverviewService
from ispadmin.backoffice.dashboard.metrics import MetricsCalculator
from ispadmin.backoffice.dashboard.schemas import DashboardMetrics
from ispadmin.backoffice.records.models import Collection, ExpiredOverviewRecord
from ispadmin.backoffice.records.store import RecordChange, RecordStore, Unsubscribe
from ispadmin.backoffice.settings import settings

logger = structlog.get_logger(__name__)

SnapshotT = TypeVar("SnapshotT")

MetricsCallback = Callable[[DashboardMetrics], None | Awaitable[None]]
ExpiredRecordsCallback = Callable[[list[ExpiredOverviewRecord]], None | Awaitable[None]]


class CollectionSubscription(Generic[SnapshotT]):
    """Recomputes a snapshot on collection changes and delivers it to a callback."""

    collection: Collection

    def __init__(
        self,
        store: RecordStore,
        callback: Callable[[SnapshotT], Any],
        debounce_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.callback = callback
        self.debounce_seconds = (
            settings.dashboard.refresh_debounce_seconds
            if debounce_seconds is None
            else debounce_seconds
        )
        self._unsubscribe: Unsubscribe | None = None
        self._pending: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None and not self._closed

    def _log_context(self) -> dict[str, Any]:
        return {"subscription": type(self).__name__, "collection": self.collection.value}

    async def snapshot(self) -> SnapshotT:
        raise NotImplementedError

    async def start(self) -> None:
        """Deliver an initial snapshot, then follow collection changes."""
        if self._closed:
            raise RuntimeError("Subscription already closed")
        self._loop = asyncio.get_running_loop()
        await self.refresh()
        self._unsubscribe = self.store.watch(self.collection, self._on_change)
        logger.debug(
            "dashboard.subscription_started",
            debounce_seconds=self.debounce_seconds,
            **self._log_context(),
        )

    async def refresh(self) -> None:
        """Recompute and deliver now, dropping any pending debounced refresh."""
        self._cancel_pending()
        await self._deliver()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        pending = self._pending
        self._cancel_pending()
        if pending is not None:
            try:
                await pending
            except asyncio.CancelledError:
                pass
        logger.debug("dashboard.subscription_closed", **self._log_context())

    def _on_change(self, change: RecordChange) -> None:
        if self._closed or self._loop is None:
            return
        logger.debug(
            "dashboard.collection_changed",
            change_type=change.change_type.value,
            count=len(change.record_ids),
            **self._log_context(),
        )
        self._cancel_pending()
        self._pending = self._loop.create_task(self._debounced_refresh())

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _debounced_refresh(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if not self._closed:
            await self._deliver()

    async def _deliver(self) -> None:
        value = await self.snapshot()
        try:
            result = self.callback(value)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "dashboard.subscription_callback_failed",
                error=str(e),
                exc_info=True,
                **self._log_context(),
            )


class MetricsSubscription(CollectionSubscription[DashboardMetrics]):
    """Pushes a metrics snapshot whenever the customer collection changes."""

    collection = Collection.CUSTOMERS

    def __init__(
        self,
        store: RecordStore,
        calculator: MetricsCalculator,
        date_filter: DateFilter,
        callback: MetricsCallback,
        data_source: str = "All",
        debounce_seconds: float | None = None,
    ) -> None:
        super().__init__(store, callback, debounce_seconds)
        self.calculator = calculator
        self.date_filter = date_filter
        self.data_source = data_source

    def _log_context(self) -> dict[str, Any]:
        return {**super()._log_context(), "data_source": self.data_source}

    async def snapshot(self) -> DashboardMetrics:
        return await self.calculator.calculate_metrics(
            date_filter=self.date_filter, data_source=self.data_source
        )


class ExpiredRecordsSubscription(CollectionSubscription[list[ExpiredOverviewRecord]]):
    """Pushes expired overview rows whenever the cache changes."""

    collection = Collection.EXPIRED_OVERVIEW

    def __init__(
        self,
        service: ExpiredOverviewService,
        callback: ExpiredRecordsCallback,
        start: datetime | date | None = None,
        end: datetime | date | None = None,
        limit: int | None = DEFAULT_WATCH_LIMIT,
        debounce_seconds: float | None = None,
    ) -> None:
        if (start is None) != (end is None):
            raise ValueError("start and end must be given together")
        super().__init__(service.store, callback, debounce_seconds)
        self.service = service
        self.start_date = start
        self.end_date = end
        self.limit = limit

    async def snapshot(self) -> list[ExpiredOverviewRecord]:
        if self.start_date is not None and self.end_date is not None:
            return await self.service.get_expired_records_by_date_range(
                self.start_date, self.end_date
            )
        try:
            records = await self.service.get_expired_records()
        except Exception as e:
            logger.error("expired_overview.watch_read_failed", error=str(e), exc_info=True)
            return []
        return records[: self.limit] if self.limit else records
