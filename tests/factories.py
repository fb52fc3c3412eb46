"""
Raw record builders.

Records are built in the camelCase shape the back-office screens store, with
date-only strings, so tests also exercise boundary parsing.
"""

from datetime import datetime, timedelta

REFERENCE_DAY = datetime(2025, 6, 15)


def day(offset: int = 0, base: datetime = REFERENCE_DAY) -> str:
    """Date-only key ``offset`` days from ``base``."""
    return (base + timedelta(days=offset)).strftime("%Y-%m-%d")


def customer(
    customer_id: str,
    status: str = "Active",
    created: str | None = "2025-01-10",
    source: str = "BSNL",
    **extra,
) -> dict:
    record = {
        "id": customer_id,
        "name": f"Customer {customer_id}",
        "status": status,
        "source": source,
    }
    if created is not None:
        record["createdAt"] = created
    record.update(extra)
    return record


def payment(
    payment_id: str,
    status: str = "Paid",
    amount: float | str = 500,
    paid: str | None = None,
    mode: str = "Cash",
    source: str = "BSNL",
) -> dict:
    record = {
        "id": payment_id,
        "status": status,
        "billAmount": amount,
        "modeOfPayment": mode,
        "source": source,
    }
    if paid is not None:
        record["paidDate"] = paid
    return record


def complaint(
    complaint_id: str,
    status: str = "Open",
    booked: str | None = None,
    resolve: str | None = None,
    source: str = "BSNL",
) -> dict:
    record = {"id": complaint_id, "status": status, "source": source}
    if booked is not None:
        record["bookingDate"] = booked
    if resolve is not None:
        record["resolveDate"] = resolve
    return record
