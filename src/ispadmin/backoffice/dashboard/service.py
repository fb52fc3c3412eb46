"""
Dashboard chart data orchestration.

``DashboardService.generate_chart_data`` is the single entry point behind a
dashboard refresh: it runs the complaint escalation sweep, reads customers and
payments concurrently, and assembles every chart series into one payload.
"""

import asyncio
from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

import structlog

from ispadmin.backoffice.dashboard.complaints import (
    escalate_stale_complaints,
    get_complaint_status_data,
)
from ispadmin.backoffice.dashboard.dates import (
    DateBoundaries,
    DateFilter,
    DateRange,
    Granularity,
    bucket_key,
    compute_boundaries,
    granularity_for_range,
    is_future_day,
    iter_bucket_keys,
    month_bounds,
    start_of_day,
)
from ispadmin.backoffice.dashboard.expired import ExpiredOverviewService
from ispadmin.backoffice.dashboard.metrics import (
    MetricsCalculator,
    StatusTally,
    is_counted,
    is_expiring_soon,
)
from ispadmin.backoffice.dashboard.schemas import (
    ChartPayload,
    ChartPoint,
    CustomerStats,
    DashboardMetrics,
    FinanceData,
)
from ispadmin.backoffice.dashboard.subscription import MetricsCallback, MetricsSubscription
from ispadmin.backoffice.records.models import (
    Collection,
    Customer,
    Payment,
    PaymentChannel,
    PaymentStatus,
    matches_source,
    parse_records,
)
from ispadmin.backoffice.records.store import RecordStore
from ispadmin.backoffice.settings import settings

logger = structlog.get_logger(__name__)


def zero_filled_series(
    keys: Iterable[str], values: Counter[str] | dict[str, float]
) -> list[ChartPoint]:
    return [ChartPoint(name=key, value=values.get(key, 0)) for key in keys]


def scale_series(series: list[ChartPoint], ratio: float) -> list[ChartPoint]:
    """Derive a series by scaling every bucket."""
    return [ChartPoint(name=point.name, value=round(point.value * ratio, 2)) for point in series]


class DashboardService:
    """Dashboard metrics and chart payloads over a record store."""

    def __init__(
        self,
        store: RecordStore,
        metrics_calculator: MetricsCalculator | None = None,
        expired_service: ExpiredOverviewService | None = None,
    ) -> None:
        self.store = store
        self.metrics_calculator = metrics_calculator or MetricsCalculator(store)
        self.expired_service = expired_service or ExpiredOverviewService(store)

    # ==================== Metrics ====================

    async def calculate_metrics(
        self,
        customers: list[Any] | None = None,
        date_filter: DateFilter | None = None,
        data_source: str = "All",
    ) -> DashboardMetrics:
        return await self.metrics_calculator.calculate_metrics(customers, date_filter, data_source)

    async def subscribe_to_metrics(
        self,
        date_filter: DateFilter,
        callback: MetricsCallback,
        data_source: str = "All",
        debounce_seconds: float | None = None,
    ) -> MetricsSubscription:
        """Start a live metrics subscription; call ``close()`` on the result to stop it."""
        subscription = MetricsSubscription(
            self.store,
            self.metrics_calculator,
            date_filter,
            callback,
            data_source=data_source,
            debounce_seconds=debounce_seconds,
        )
        await subscription.start()
        return subscription

    # ==================== Chart payload ====================

    async def generate_chart_data(
        self,
        selected_date: datetime | date | None = None,
        date_range: DateRange | str = DateRange.WEEK,
        data_source: str = "All",
    ) -> ChartPayload:
        """
        Build the unified dashboard chart payload.

        Future dates short-circuit to the zero payload. Any failure after the
        escalation sweep also yields the zero payload.
        """
        if settings.dashboard.escalation_enabled:
            escalated = await escalate_stale_complaints(self.store)
            if escalated:
                logger.info("dashboard.complaints_escalated", count=escalated)

        selected = selected_date or datetime.now()
        if is_future_day(selected):
            logger.debug("dashboard.future_date_requested", selected_date=str(selected))
            return ChartPayload.zero()

        try:
            selected_range = DateRange.parse(date_range)
            bounds = compute_boundaries(selected, selected_range)
            granularity = granularity_for_range(selected_range)

            customers_raw, daily_payments_raw, payments_raw = await asyncio.gather(
                self.store.list_all(Collection.CUSTOMERS),
                self.store.query(Collection.PAYMENTS, "paidDate", "==", bounds.date_string),
                self.store.list_all(Collection.PAYMENTS),
            )
            customers = parse_records(Customer, customers_raw)
            daily_payments = parse_records(Payment, daily_payments_raw)
            payments = parse_records(Payment, payments_raw)

            customer_stats, registrations = self._summarize_customers(
                customers, bounds, granularity, data_source
            )
            renewals = scale_series(registrations, settings.dashboard.renewal_ratio)
            finance, invoice_payments = self._summarize_finance(
                daily_payments, payments, bounds, granularity, data_source
            )

            complaints_data, expired_data = await asyncio.gather(
                get_complaint_status_data(self.store, selected, selected_range, data_source),
                self.expired_service.get_expired_chart_data(
                    bounds.start_of_day, bounds.end_of_day, granularity, data_source
                ),
            )

            return ChartPayload(
                customer_stats=customer_stats,
                finance_data=finance,
                registrations_data=registrations,
                renewals_data=renewals,
                expired_data=expired_data,
                complaints_data=complaints_data,
                invoice_payments_data=invoice_payments,
            )
        except Exception as e:
            logger.error(
                "dashboard.chart_data_failed",
                selected_date=str(selected),
                date_range=str(date_range),
                data_source=data_source,
                error=str(e),
                exc_info=True,
            )
            return ChartPayload.zero()

    def _summarize_customers(
        self,
        customers: list[Customer],
        bounds: DateBoundaries,
        granularity: Granularity,
        data_source: str,
    ) -> tuple[CustomerStats, list[ChartPoint]]:
        """Status buckets and registrations per bucket, in one pass."""
        tally = StatusTally()
        expiring_soon = 0
        registrations: Counter[str] = Counter()
        reference_day = start_of_day(bounds.end_of_day)

        for customer in customers:
            if not matches_source(customer.source, data_source):
                continue
            if is_counted(customer, bounds.end_of_day):
                tally.add(customer)
                if is_expiring_soon(customer, reference_day):
                    expiring_soon += 1
            if bounds.contains(customer.created_at):
                registrations[bucket_key(customer.created_at, granularity)] += 1  # type: ignore[arg-type]

        stats = CustomerStats(
            total=tally.total,
            active=tally.active,
            expired=tally.expired,
            suspended=tally.suspended,
            disabled=tally.inactive,
            expiring_soon=expiring_soon,
        )
        keys = iter_bucket_keys(bounds.start_of_day, bounds.end_of_day, granularity)
        return stats, zero_filled_series(keys, registrations)

    def _summarize_finance(
        self,
        daily_payments: list[Payment],
        payments: list[Payment],
        bounds: DateBoundaries,
        granularity: Granularity,
        data_source: str,
    ) -> tuple[FinanceData, list[ChartPoint]]:
        """Collections for the day and window, plus outstanding invoices."""
        def in_source(payment: Payment) -> bool:
            return matches_source(payment.source, data_source)

        today_collected = sum(
            p.bill_amount for p in daily_payments if p.is_paid and in_source(p)
        )

        month_start, month_end = month_bounds(bounds.end_of_day)
        online = 0.0
        offline = 0.0
        monthly = 0.0
        pending_invoices = 0
        pending_value = 0.0
        collected: Counter[str] = Counter()

        for payment in payments:
            if not in_source(payment):
                continue
            if payment.status == PaymentStatus.UNPAID:
                pending_invoices += 1
                pending_value += payment.bill_amount
                continue
            if not payment.is_paid or payment.paid_date is None:
                continue
            if month_start <= payment.paid_date <= month_end:
                monthly += payment.bill_amount
            if bounds.contains(payment.paid_date):
                if payment.channel == PaymentChannel.ONLINE:
                    online += payment.bill_amount
                else:
                    offline += payment.bill_amount
                collected[bucket_key(payment.paid_date, granularity)] += payment.bill_amount

        finance = FinanceData(
            pending_invoices=pending_invoices,
            today_collected=round(today_collected, 2),
            online_collected=round(online, 2),
            offline_collected=round(offline, 2),
            monthly_revenue=round(monthly, 2),
            total_pending_value=round(pending_value, 2),
        )
        keys = iter_bucket_keys(bounds.start_of_day, bounds.end_of_day, granularity)
        series = [
            ChartPoint(name=key, value=round(collected.get(key, 0.0), 2)) for key in keys
        ]
        return finance, series
