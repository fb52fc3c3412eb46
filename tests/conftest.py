"""
Shared fixtures for the back-office test suite.
"""

import pytest
import pytest_asyncio
from factories import complaint, customer, day, payment
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ispadmin.backoffice.db import create_all_tables_async
from ispadmin.backoffice.records.models import Collection
from ispadmin.backoffice.records.sql_store import SqlRecordStore
from ispadmin.backoffice.records.store import InMemoryRecordStore
from ispadmin.backoffice.settings import settings


@pytest.fixture
def dashboard_settings(monkeypatch):
    """Dashboard settings with the sweep disabled; tests flip values as needed."""
    monkeypatch.setattr(settings.dashboard, "escalation_enabled", False)
    monkeypatch.setattr(settings.dashboard, "expiring_soon_days", 7)
    monkeypatch.setattr(settings.dashboard, "renewal_ratio", 0.8)
    return settings.dashboard


@pytest.fixture
def empty_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def sample_store() -> InMemoryRecordStore:
    """A small ISP: two providers, mixed statuses, a week of payments and tickets."""
    return InMemoryRecordStore(
        {
            Collection.CUSTOMERS: [
                customer("c1", "Active", created=day(-2), renewalDate=day(3)),
                customer("c2", "active", created=day(-30), renewalDate=day(8)),
                customer("c3", "Inactive", created=day(-40)),
                customer("c4", "Suspended", created=day(-50), source="RMAX"),
                customer(
                    "c5",
                    "Expired",
                    created=day(-300),
                    renewalDate=day(-1),
                    notes="Payment bounced twice",
                    plan="Fiber 100",
                ),
                customer("c6", "Disabled", created=day(-10)),
                customer("c7", "Active", created=day(5)),  # created after the reference day
                customer("c8", "Active", created=None),
            ],
            Collection.PAYMENTS: [
                payment("p1", "Paid", 1000, paid=day(0), mode="GPay"),
                payment("p2", "Paid", "1,500", paid=day(0), mode="Cash"),
                payment("p3", "Paid", 700, paid=day(-3), mode="upi", source="RMAX"),
                payment("p4", "Unpaid", 400),
                payment("p5", "unpaid", 600, source="RMAX"),
                payment("p6", "Paid", 250, paid=day(-40), mode="Cash"),
            ],
            Collection.COMPLAINTS: [
                complaint("t1", "Open", booked=day(-1)),
                complaint("t2", "Resolved", booked=day(-20), resolve=day(-5)),
                complaint("t3", "Pending", booked=day(-2), source="RMAX"),
                complaint("t4", "Resolved", booked=day(-3)),
            ],
        }
    )


@pytest_asyncio.fixture
async def sql_session_factory():
    """Isolated in-memory SQLite database with the record table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_all_tables_async(engine)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def sql_store(sql_session_factory) -> SqlRecordStore:
    return SqlRecordStore(sql_session_factory)
