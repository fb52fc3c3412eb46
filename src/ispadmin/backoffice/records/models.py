"""
Record models for the collections the dashboard reads.

Raw store documents carry free-text statuses and loosely formatted dates.
They are parsed and normalized once here, so aggregation code only ever
compares enum members and naive local datetimes.
"""

import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ispadmin.backoffice.settings import settings

logger = structlog.get_logger(__name__)


class Collection(str, Enum):
    """Record store collections consumed by the aggregation layer."""

    CUSTOMERS = "customers"
    PAYMENTS = "payments"
    COMPLAINTS = "complaints"
    EXPIRED_OVERVIEW = "expired_overview"


# ============================================================================
# Status enums
# ============================================================================


def _normalize_token(value: Any) -> str:
    return " ".join(str(value).replace("_", " ").replace("-", " ").split()).lower()


class _ParsableStatus(str, Enum):
    """Enum with case-insensitive parsing and an UNKNOWN fallback."""

    @classmethod
    def parse(cls, value: Any) -> "_ParsableStatus":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls("unknown")
        token = _normalize_token(value)
        for member in cls:
            if member.value == token:
                return member
        return cls("unknown")


class CustomerStatus(_ParsableStatus):
    """Customer lifecycle status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    DISABLED = "disabled"
    UNKNOWN = "unknown"


class PaymentStatus(_ParsableStatus):
    """Payment settlement status."""

    PAID = "paid"
    UNPAID = "unpaid"
    UNKNOWN = "unknown"


class ComplaintStatus(_ParsableStatus):
    """Complaint handling status."""

    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    NOT_RESOLVED = "not resolved"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        """Display form as stored by the complaint screens."""
        return self.value.title()


class ExpiryReason(str, Enum):
    """Why a customer ended up expired."""

    SERVICE_ENDED = "service_ended"
    PAYMENT_FAILED = "payment_failed"
    CUSTOMER_REQUEST = "customer_request"

    @classmethod
    def parse(cls, value: Any) -> "ExpiryReason | None":
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        token = _normalize_token(value).replace(" ", "_")
        for member in cls:
            if member.value == token:
                return member
        return None


class PaymentChannel(str, Enum):
    """Collection channel derived from the free-text payment mode."""

    ONLINE = "online"
    OFFLINE = "offline"


def classify_payment_mode(mode: str | None) -> PaymentChannel:
    """Classify a payment mode as online or offline collection."""
    if not mode:
        return PaymentChannel.OFFLINE
    normalized = " ".join(mode.split()).upper()
    if normalized in settings.dashboard.online_payment_modes:
        return PaymentChannel.ONLINE
    return PaymentChannel.OFFLINE


# ============================================================================
# Field coercion
# ============================================================================

_FALLBACK_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d", "%d/%m/%Y %H:%M:%S")


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _from_epoch(value: float) -> datetime | None:
    if math.isnan(value) or math.isinf(value):
        return None
    # Millisecond timestamps are what the browser clients write
    if abs(value) > 1e11:
        value = value / 1000
    try:
        return datetime.fromtimestamp(value)
    except (OverflowError, OSError, ValueError):
        return None


def coerce_datetime(value: Any) -> datetime | None:
    """
    Parse a stored date/time value into a naive local datetime.

    Date-only values map to local midnight. Unparseable input returns None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _to_local_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
            return _from_epoch(float(seconds) + float(nanos) / 1e9)
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return _to_local_naive(datetime.fromisoformat(text))
        except ValueError:
            pass
        for fmt in _FALLBACK_DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    return None


def coerce_amount(value: Any) -> float:
    """Parse a bill amount; negative or malformed values count as zero."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        return 0.0
    return amount


def coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def format_date_key(value: datetime | date) -> str:
    """Format a local date as the canonical YYYY-MM-DD key."""
    return value.strftime("%Y-%m-%d")


def matches_source(record_source: str, data_source: str | None) -> bool:
    """Row-level provider filter; "All" (or empty) disables filtering."""
    if not data_source or data_source == "All":
        return True
    return record_source == data_source


# ============================================================================
# Record models
# ============================================================================


class RecordModel(BaseModel):
    """Base for records parsed from the store."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return coerce_text(v)


class Customer(RecordModel):
    """Subscriber account as maintained by the customer screens."""

    name: str = ""
    status: CustomerStatus = CustomerStatus.UNKNOWN
    source: str = ""
    plan: str = ""
    created_at: datetime | None = Field(None, alias="createdAt")
    updated_at: datetime | None = Field(None, alias="updatedAt")
    renewal_date: datetime | None = Field(None, alias="renewalDate")
    notes: str = ""
    reason: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> CustomerStatus:
        return CustomerStatus.parse(v)  # type: ignore[return-value]

    @field_validator("created_at", "updated_at", "renewal_date", mode="before")
    @classmethod
    def _parse_dates(cls, v: Any) -> datetime | None:
        return coerce_datetime(v)

    @field_validator("name", "source", "plan", "notes", "reason", mode="before")
    @classmethod
    def _parse_text(cls, v: Any) -> str:
        return coerce_text(v)


class Payment(RecordModel):
    """Invoice payment row."""

    status: PaymentStatus = PaymentStatus.UNKNOWN
    bill_amount: float = Field(0.0, alias="billAmount")
    paid_date: datetime | None = Field(None, alias="paidDate")
    mode_of_payment: str = Field("", alias="modeOfPayment")
    source: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> PaymentStatus:
        return PaymentStatus.parse(v)  # type: ignore[return-value]

    @field_validator("bill_amount", mode="before")
    @classmethod
    def _parse_amount(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("paid_date", mode="before")
    @classmethod
    def _parse_paid_date(cls, v: Any) -> datetime | None:
        return coerce_datetime(v)

    @field_validator("mode_of_payment", "source", mode="before")
    @classmethod
    def _parse_text(cls, v: Any) -> str:
        return coerce_text(v)

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    @property
    def channel(self) -> PaymentChannel:
        return classify_payment_mode(self.mode_of_payment)


class Complaint(RecordModel):
    """Customer complaint ticket."""

    status: ComplaintStatus = ComplaintStatus.UNKNOWN
    booking_date: datetime | None = Field(None, alias="bookingDate")
    resolve_date: datetime | None = Field(None, alias="resolveDate")
    source: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> ComplaintStatus:
        return ComplaintStatus.parse(v)  # type: ignore[return-value]

    @field_validator("booking_date", "resolve_date", mode="before")
    @classmethod
    def _parse_dates(cls, v: Any) -> datetime | None:
        return coerce_datetime(v)

    @field_validator("source", mode="before")
    @classmethod
    def _parse_text(cls, v: Any) -> str:
        return coerce_text(v)

    @property
    def is_unresolved(self) -> bool:
        return self.status in (
            ComplaintStatus.OPEN,
            ComplaintStatus.NOT_RESOLVED,
            ComplaintStatus.PENDING,
        )


class ExpiredOverviewRecord(RecordModel):
    """Denormalized cache row mirroring one expired customer."""

    customer_id: str = Field("", alias="customerId")
    customer_name: str = Field("Unknown Customer", alias="customerName")
    plan_type: str = Field("Unknown Plan", alias="planType")
    expired_date: str = Field("", alias="expiredDate")
    reason: ExpiryReason = ExpiryReason.SERVICE_ENDED
    source: str = "Unknown"
    created_at: str = Field("", alias="createdAt")
    updated_at: str = Field("", alias="updatedAt")

    @field_validator("customer_id", "customer_name", "plan_type", "source", mode="before")
    @classmethod
    def _parse_text(cls, v: Any) -> str:
        return coerce_text(v)

    @field_validator("expired_date", mode="before")
    @classmethod
    def _parse_expired_date(cls, v: Any) -> str:
        parsed = coerce_datetime(v)
        return format_date_key(parsed) if parsed else ""

    @field_validator("reason", mode="before")
    @classmethod
    def _parse_reason(cls, v: Any) -> ExpiryReason:
        return ExpiryReason.parse(v) or ExpiryReason.SERVICE_ENDED

    def to_record(self) -> dict[str, Any]:
        """Serialize to the stored camelCase document (without id)."""
        return self.model_dump(by_alias=True, exclude={"id"}, mode="json")


RecordT = TypeVar("RecordT", bound=RecordModel)


def parse_records(model: type[RecordT], raw_records: Iterable[Mapping[str, Any]]) -> list[RecordT]:
    """Parse raw store documents, skipping any that cannot be read at all."""
    parsed: list[RecordT] = []
    for raw in raw_records:
        try:
            parsed.append(model.model_validate(raw))
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(
                "records.parse_skipped",
                model=model.__name__,
                record_id=raw.get("id") if isinstance(raw, Mapping) else None,
                error=str(e),
            )
    return parsed
