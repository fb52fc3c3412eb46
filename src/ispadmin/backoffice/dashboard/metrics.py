"""
Dashboard metrics calculation.

Computes the headline ``DashboardMetrics`` snapshot from raw customer, payment
and complaint records for a date filter.
"""

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from ispadmin.backoffice.dashboard.dates import DateFilter, end_of_day, month_bounds
from ispadmin.backoffice.dashboard.schemas import DashboardMetrics
from ispadmin.backoffice.records.models import (
    Collection,
    Complaint,
    ComplaintStatus,
    Customer,
    CustomerStatus,
    Payment,
    PaymentStatus,
    matches_source,
    parse_records,
)
from ispadmin.backoffice.records.store import RecordStore
from ispadmin.backoffice.settings import settings

logger = structlog.get_logger(__name__)


@dataclass
class StatusTally:
    """Customer counts by normalized status."""

    total: int = 0
    active: int = 0
    inactive: int = 0
    suspended: int = 0

    def add(self, customer: Customer) -> None:
        self.total += 1
        if customer.status == CustomerStatus.ACTIVE:
            self.active += 1
        elif customer.status in (CustomerStatus.INACTIVE, CustomerStatus.DISABLED):
            self.inactive += 1
        elif customer.status == CustomerStatus.SUSPENDED:
            self.suspended += 1

    @property
    def expired(self) -> int:
        # Reconciled from the other buckets; raw "expired" labels are not trusted
        return max(0, self.total - (self.active + self.inactive + self.suspended))


def is_counted(customer: Customer, end: datetime) -> bool:
    """Customers exist for a window only once created on or before its end."""
    return customer.created_at is not None and customer.created_at <= end


def is_expiring_soon(customer: Customer, today: datetime, days: int | None = None) -> bool:
    """Active customer renewing between today and ``days`` ahead, inclusive."""
    if customer.status != CustomerStatus.ACTIVE or customer.renewal_date is None:
        return False
    window = settings.dashboard.expiring_soon_days if days is None else days
    return today <= customer.renewal_date <= end_of_day(today + timedelta(days=window))


def ensure_customers(customers: Iterable[Customer | Mapping[str, Any]]) -> list[Customer]:
    """Accept parsed customers or raw store documents."""
    parsed: list[Customer] = []
    raw: list[Mapping[str, Any]] = []
    for item in customers:
        if isinstance(item, Customer):
            parsed.append(item)
        else:
            raw.append(item)
    return parsed + parse_records(Customer, raw)


class MetricsCalculator:
    """Builds dashboard metrics snapshots from the record store."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def calculate_metrics(
        self,
        customers: Sequence[Customer | Mapping[str, Any]] | None = None,
        date_filter: DateFilter | None = None,
        data_source: str = "All",
    ) -> DashboardMetrics:
        """
        Calculate the metrics snapshot for a date filter.

        Args:
            customers: Pre-fetched customers; fetched from the store when empty
            date_filter: Window whose end day is the reference day
            data_source: Provider name, or "All"

        Returns:
            Metrics snapshot; the zero snapshot if anything fails
        """
        try:
            date_filter = date_filter or DateFilter.for_day(datetime.now())

            if customers:
                customer_rows = ensure_customers(customers)
                payments_raw, complaints_raw = await asyncio.gather(
                    self.store.list_all(Collection.PAYMENTS),
                    self.store.list_all(Collection.COMPLAINTS),
                )
            else:
                customers_raw, payments_raw, complaints_raw = await asyncio.gather(
                    self.store.list_all(Collection.CUSTOMERS),
                    self.store.list_all(Collection.PAYMENTS),
                    self.store.list_all(Collection.COMPLAINTS),
                )
                customer_rows = parse_records(Customer, customers_raw)

            return self._compute(
                customer_rows,
                parse_records(Payment, payments_raw),
                parse_records(Complaint, complaints_raw),
                date_filter,
                data_source,
            )
        except Exception as e:
            logger.error(
                "dashboard.metrics_failed",
                data_source=data_source,
                error=str(e),
                exc_info=True,
            )
            return DashboardMetrics.zero()

    def _compute(
        self,
        customers: list[Customer],
        payments: list[Payment],
        complaints: list[Complaint],
        date_filter: DateFilter,
        data_source: str,
    ) -> DashboardMetrics:
        today = date_filter.reference_day
        end = date_filter.end_date
        month_start, month_end = month_bounds(today)

        tally = StatusTally()
        expiring_soon = 0
        renewal_due = 0
        new_this_month = 0
        new_today = 0

        for customer in customers:
            if not matches_source(customer.source, data_source) or not is_counted(customer, end):
                continue
            tally.add(customer)

            if is_expiring_soon(customer, today):
                expiring_soon += 1
            if (
                customer.status == CustomerStatus.ACTIVE
                and customer.renewal_date is not None
                and customer.renewal_date <= end
            ):
                renewal_due += 1

            created = customer.created_at
            if month_start <= created <= month_end:  # type: ignore[operator]
                new_this_month += 1
            if today <= created <= end:  # type: ignore[operator]
                new_today += 1

        total_revenue = 0.0
        monthly_revenue = 0.0
        today_collection = 0.0
        completed = 0
        pending = 0

        for payment in payments:
            if not matches_source(payment.source, data_source):
                continue
            if payment.status == PaymentStatus.PAID:
                completed += 1
                total_revenue += payment.bill_amount
                paid = payment.paid_date
                if paid is not None and month_start <= paid <= month_end:
                    monthly_revenue += payment.bill_amount
                if paid is not None and today <= paid <= end:
                    today_collection += payment.bill_amount
            elif payment.status == PaymentStatus.UNPAID:
                pending += 1

        unresolved = 0
        response_days: list[float] = []
        for complaint in complaints:
            if not matches_source(complaint.source, data_source):
                continue
            if complaint.is_unresolved:
                unresolved += 1
            elif (
                complaint.status == ComplaintStatus.RESOLVED
                and complaint.booking_date is not None
                and complaint.resolve_date is not None
            ):
                elapsed = complaint.resolve_date - complaint.booking_date
                response_days.append(max(0.0, elapsed.total_seconds() / 86400))

        avg_revenue = total_revenue / tally.total if tally.total > 0 else 0.0
        avg_response = sum(response_days) / len(response_days) if response_days else 0.0

        return DashboardMetrics(
            total_customers=tally.total,
            active_customers=tally.active,
            inactive_customers=tally.inactive,
            suspended_customers=tally.suspended,
            expired_customers=tally.expired,
            expiring_soon=expiring_soon,
            renewal_due_count=renewal_due,
            new_customers_this_month=new_this_month,
            new_today=new_today,
            total_revenue=round(total_revenue, 2),
            monthly_revenue=round(monthly_revenue, 2),
            today_collection=round(today_collection, 2),
            completed_payments=completed,
            pending_payments=pending,
            pending_invoices=pending,
            avg_revenue_per_customer=round(avg_revenue, 2),
            unresolved_complaints=unresolved,
            avg_response_time=round(avg_response, 2),
        )
