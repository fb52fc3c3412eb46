"""Tests for the record store implementations."""

import pytest

from ispadmin.backoffice.domain import RecordNotFoundError, UnsupportedQueryError
from ispadmin.backoffice.records.store import ChangeType, InMemoryRecordStore, RecordPatch

SEED = {
    "payments": [
        {"id": "p1", "status": "Paid", "billAmount": 500, "paidDate": "2025-06-15"},
        {"id": "p2", "status": "Unpaid", "billAmount": 300},
        {"id": "p3", "status": "Paid", "billAmount": 900, "paidDate": "2025-06-14"},
    ]
}


async def seed(store) -> None:
    for record in SEED["payments"]:
        await store.create("payments", record, record_id=record["id"])


@pytest.fixture(params=["memory", "sql"])
async def store(request, sql_session_factory):
    """Both store implementations behind the same contract."""
    if request.param == "memory":
        backend = InMemoryRecordStore()
    else:
        from ispadmin.backoffice.records.sql_store import SqlRecordStore

        backend = SqlRecordStore(sql_session_factory)
    await seed(backend)
    return backend


class TestRecordStoreContract:
    """Behaviour shared by every record store."""

    async def test_list_all_includes_ids(self, store):
        records = await store.list_all("payments")
        assert sorted(r["id"] for r in records) == ["p1", "p2", "p3"]
        assert all("status" in r for r in records)

    async def test_list_unknown_collection_is_empty(self, store):
        assert await store.list_all("customers") == []

    async def test_query_equality_on_date_string(self, store):
        records = await store.query("payments", "paidDate", "==", "2025-06-15")
        assert [r["id"] for r in records] == ["p1"]

    async def test_query_numeric_comparison(self, store):
        records = await store.query("payments", "billAmount", ">=", 500)
        assert sorted(r["id"] for r in records) == ["p1", "p3"]

    async def test_query_in(self, store):
        records = await store.query("payments", "status", "in", ["Unpaid", "Refunded"])
        assert [r["id"] for r in records] == ["p2"]

    async def test_query_missing_field_does_not_match(self, store):
        records = await store.query("payments", "paidDate", "!=", "2025-06-15")
        assert [r["id"] for r in records] == ["p3"]

    async def test_query_unsupported_operator(self, store):
        with pytest.raises(UnsupportedQueryError):
            await store.query("payments", "status", "like", "Paid")

    async def test_get(self, store):
        record = await store.get("payments", "p2")
        assert record == {"id": "p2", "status": "Unpaid", "billAmount": 300}
        assert await store.get("payments", "missing") is None

    async def test_create_generates_id(self, store):
        new_id = await store.create("complaints", {"status": "Open"})
        assert new_id
        assert (await store.get("complaints", new_id))["status"] == "Open"

    async def test_batch_update_merges_patch(self, store):
        updated = await store.batch_update(
            "payments", [RecordPatch(id="p2", patch={"status": "Paid"})]
        )
        assert updated == 1
        record = await store.get("payments", "p2")
        assert record["status"] == "Paid"
        assert record["billAmount"] == 300

    async def test_batch_update_is_all_or_nothing(self, store):
        with pytest.raises(RecordNotFoundError):
            await store.batch_update(
                "payments",
                [
                    RecordPatch(id="p1", patch={"status": "Unpaid"}),
                    RecordPatch(id="ghost", patch={"status": "Unpaid"}),
                ],
            )
        assert (await store.get("payments", "p1"))["status"] == "Paid"

    async def test_batch_delete_counts_existing_only(self, store):
        removed = await store.batch_delete("payments", ["p1", "ghost"])
        assert removed == 1
        assert await store.get("payments", "p1") is None

    async def test_watch_and_unsubscribe(self, store):
        changes = []
        unsubscribe = store.watch("payments", changes.append)

        await store.batch_update("payments", [RecordPatch(id="p1", patch={"status": "Unpaid"})])
        await store.batch_delete("payments", ["p3"])
        unsubscribe()
        await store.create("payments", {"status": "Paid"})

        assert [c.change_type for c in changes] == [ChangeType.MODIFIED, ChangeType.REMOVED]
        assert changes[0].record_ids == ("p1",)

    async def test_failing_listener_does_not_break_writes(self, store):
        def explode(change):
            raise RuntimeError("listener bug")

        store.watch("payments", explode)
        new_id = await store.create("payments", {"status": "Paid"})
        assert await store.get("payments", new_id) is not None


class TestInMemoryRecordStore:
    """In-memory specifics."""

    async def test_initial_records(self):
        store = InMemoryRecordStore({"customers": [{"id": "c1", "status": "Active"}]})
        assert await store.list_all("customers") == [{"id": "c1", "status": "Active"}]

    async def test_returned_records_are_copies(self):
        store = InMemoryRecordStore({"customers": [{"id": "c1", "tags": ["a"]}]})
        record = await store.get("customers", "c1")
        record["tags"].append("b")
        assert (await store.get("customers", "c1"))["tags"] == ["a"]

    async def test_query_type_mismatch_does_not_match(self):
        store = InMemoryRecordStore({"payments": [{"id": "p1", "billAmount": "n/a"}]})
        assert await store.query("payments", "billAmount", ">", 10) == []
