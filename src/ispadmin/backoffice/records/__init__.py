"""
Record access for the back-office aggregation layer.

Collections are read through the ``RecordStore`` capability and parsed into
normalized record models at the boundary.
"""

from .models import (
    Collection,
    Complaint,
    ComplaintStatus,
    Customer,
    CustomerStatus,
    ExpiredOverviewRecord,
    ExpiryReason,
    Payment,
    PaymentChannel,
    PaymentStatus,
    classify_payment_mode,
    coerce_datetime,
    format_date_key,
    matches_source,
    parse_records,
)
from .store import (
    ChangeType,
    InMemoryRecordStore,
    RecordChange,
    RecordPatch,
    RecordStore,
)


def get_record_store() -> RecordStore:
    """Default record store for jobs and CLI commands (database backed)."""
    from .sql_store import SqlRecordStore

    return SqlRecordStore()


__all__ = [
    # Models
    "Collection",
    "Customer",
    "CustomerStatus",
    "Payment",
    "PaymentStatus",
    "PaymentChannel",
    "Complaint",
    "ComplaintStatus",
    "ExpiredOverviewRecord",
    "ExpiryReason",
    # Helpers
    "classify_payment_mode",
    "coerce_datetime",
    "format_date_key",
    "matches_source",
    "parse_records",
    # Store
    "RecordStore",
    "RecordPatch",
    "RecordChange",
    "ChangeType",
    "InMemoryRecordStore",
    "get_record_store",
]
