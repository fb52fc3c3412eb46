"""
Dashboard value objects.

Every public aggregation entry point returns one of these models, and each
model has a named zero constructor for its well-defined empty state.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

COMPLAINT_BUCKETS: tuple[str, str, str] = ("Open", "Resolved", "Pending")


class DashboardModel(BaseModel):
    """Immutable model serialized with camelCase keys for the dashboard UI."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_response(self) -> dict[str, Any]:
        """JSON-ready dict in the shape the dashboard consumes."""
        return self.model_dump(by_alias=True, mode="json")


class ChartPoint(DashboardModel):
    """One named bucket of a chart series."""

    name: str
    value: int | float = 0


def zero_complaint_series() -> list[ChartPoint]:
    return [ChartPoint(name=name, value=0) for name in COMPLAINT_BUCKETS]


class DashboardMetrics(DashboardModel):
    """Point-in-time dashboard metrics snapshot. Never persisted."""

    # Customer counts
    total_customers: int = Field(0, description="Customers created on or before the window end")
    active_customers: int = 0
    inactive_customers: int = Field(0, description="Inactive or disabled customers")
    suspended_customers: int = 0
    expired_customers: int = Field(
        0, description="Reconciled as total minus active, inactive and suspended"
    )
    expiring_soon: int = Field(0, description="Active customers renewing within the next week")
    renewal_due_count: int = Field(0, description="Active customers due or overdue for renewal")
    new_customers_this_month: int = 0
    new_today: int = 0

    # Revenue
    total_revenue: float = 0.0
    monthly_revenue: float = 0.0
    today_collection: float = 0.0
    completed_payments: int = 0
    pending_payments: int = 0
    pending_invoices: int = 0
    avg_revenue_per_customer: float = 0.0

    # Complaints
    unresolved_complaints: int = 0
    avg_response_time: float = Field(0.0, description="Mean days from booking to resolution")

    @classmethod
    def zero(cls) -> "DashboardMetrics":
        return cls()


class CustomerStats(DashboardModel):
    total: int = 0
    active: int = 0
    expired: int = 0
    suspended: int = 0
    disabled: int = 0
    expiring_soon: int = 0


class FinanceData(DashboardModel):
    pending_invoices: int = 0
    today_collected: float = 0.0
    online_collected: float = 0.0
    offline_collected: float = 0.0
    monthly_revenue: float = 0.0
    total_pending_value: float = 0.0


class ChartPayload(DashboardModel):
    """Unified chart payload for one dashboard refresh."""

    customer_stats: CustomerStats = Field(default_factory=CustomerStats)
    finance_data: FinanceData = Field(default_factory=FinanceData)
    registrations_data: list[ChartPoint] = Field(default_factory=list)
    renewals_data: list[ChartPoint] = Field(default_factory=list)
    expired_data: list[ChartPoint] = Field(default_factory=list)
    complaints_data: list[ChartPoint] = Field(default_factory=zero_complaint_series)
    invoice_payments_data: list[ChartPoint] = Field(default_factory=list)

    @classmethod
    def zero(cls) -> "ChartPayload":
        return cls()


# ============================================================================
# Expired overview maintenance results
# ============================================================================


class SyncResult(DashboardModel):
    """Outcome of adding missing overview records."""

    added: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class CleanupResult(DashboardModel):
    """Outcome of removing overview records."""

    removed: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class MigrationResult(DashboardModel):
    """Outcome of the initial overview population."""

    success: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    total_customers_checked: int = 0
    expired_customers_found: int = 0


class ReconcileResult(DashboardModel):
    """Sync followed by cleanup."""

    sync: SyncResult = Field(default_factory=SyncResult)
    cleanup: CleanupResult = Field(default_factory=CleanupResult)

    @property
    def changed(self) -> bool:
        return self.sync.added > 0 or self.cleanup.removed > 0

    @property
    def has_errors(self) -> bool:
        return bool(self.sync.errors or self.cleanup.errors)


class ExpiredOverviewStats(DashboardModel):
    total_expired: int = 0
    by_reason: dict[str, int] = Field(default_factory=dict)
    by_source: dict[str, int] = Field(default_factory=dict)
    by_plan: dict[str, int] = Field(default_factory=dict)
    this_month: int = 0
    last_month: int = 0
