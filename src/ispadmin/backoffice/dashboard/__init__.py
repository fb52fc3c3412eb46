"""
Dashboard aggregation.

Metrics snapshots, chart series, complaint escalation and the expired
customer overview, computed from the record store.
"""

from .complaints import escalate_stale_complaints, get_complaint_status_data
from .dates import DateBoundaries, DateFilter, DateRange, Granularity, compute_boundaries
from .expired import ExpiredOverviewService
from .metrics import MetricsCalculator
from .schemas import (
    ChartPayload,
    ChartPoint,
    CleanupResult,
    CustomerStats,
    DashboardMetrics,
    ExpiredOverviewStats,
    FinanceData,
    MigrationResult,
    ReconcileResult,
    SyncResult,
)
from .service import DashboardService
from .subscription import ExpiredRecordsSubscription, MetricsSubscription

__all__ = [
    # Dates
    "DateRange",
    "DateFilter",
    "DateBoundaries",
    "Granularity",
    "compute_boundaries",
    # Services
    "DashboardService",
    "MetricsCalculator",
    "MetricsSubscription",
    "ExpiredRecordsSubscription",
    "ExpiredOverviewService",
    "escalate_stale_complaints",
    "get_complaint_status_data",
    # Schemas
    "DashboardMetrics",
    "ChartPayload",
    "ChartPoint",
    "CustomerStats",
    "FinanceData",
    "SyncResult",
    "CleanupResult",
    "MigrationResult",
    "ReconcileResult",
    "ExpiredOverviewStats",
]
