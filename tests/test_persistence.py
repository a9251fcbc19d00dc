"""Tests for worker state stores: partial writes, memory-only mode, corruption reset."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from database.models import OrderStatus
from services.persistence import MemoryWorkerStore, SqlWorkerStore, init_store
from services.schemas import WorkerSnapshot
from factories import make_order


def _broken_factory():
    raise OSError("database is down")


class TestMemoryStore:
    async def test_unknown_worker_loads_defaults(self, store) -> None:
        assert await store.load("nobody") == WorkerSnapshot()

    async def test_memory_only_mode(self, store) -> None:
        assert await store.save(None, {"balance": Decimal("10")}) is False
        assert await store.load(None) == WorkerSnapshot()

    async def test_unknown_slice_is_rejected(self, store) -> None:
        with pytest.raises(ValueError):
            await store.save("w1", {"wallet": Decimal("10")})

    async def test_partial_write_keeps_other_slices(self, store) -> None:
        await store.save("w1", {"balance": Decimal("150.50")})
        await store.save("w1", {"current_order": make_order("O1", status=OrderStatus.ACCEPTED)})

        snapshot = await store.load("w1")
        assert snapshot.balance == Decimal("150.50")
        assert snapshot.current_order.id == "O1"
        assert snapshot.current_order.status == OrderStatus.ACCEPTED

    async def test_records_use_external_field_names(self, store) -> None:
        await store.save("w1", {"current_order": make_order("O1")})
        raw = store.raw("w1")["current_order"]
        assert raw["partnerEarnings"] == "105"
        assert raw["customerName"] == "Ananya Rao"

    async def test_corrupted_snapshot_is_reset(self, store, caplog) -> None:
        store.put_raw("w1", {"balance": "-5", "order_history": "not a list"})

        assert await store.load("w1") == WorkerSnapshot()
        assert store.raw("w1") is None
        assert "Corrupted snapshot" in caplog.text


class TestSqlStore:
    async def test_round_trip(self, session_factory) -> None:
        store = SqlWorkerStore(session_factory)
        completed = make_order(
            "O1",
            status=OrderStatus.COMPLETED,
            completed_at=datetime(2026, 3, 9, 8, 0, tzinfo=timezone.utc),
        )
        assert await store.save(
            "w1",
            {
                "order_history": [completed],
                "balance": Decimal("105"),
                "completed_orders_today": 1,
                "counters_date": date(2026, 3, 9),
            },
        )

        snapshot = await store.load("w1")
        assert [o.id for o in snapshot.order_history] == ["O1"]
        assert snapshot.order_history[0].completed_at == completed.completed_at
        assert snapshot.balance == Decimal("105")
        assert snapshot.counters_date == date(2026, 3, 9)

    async def test_partial_upsert_keeps_other_slices(self, session_factory) -> None:
        store = SqlWorkerStore(session_factory)
        await store.save("w1", {"balance": Decimal("40")})
        await store.save("w1", {"settlement_watermark": date(2026, 3, 8)})

        snapshot = await store.load("w1")
        assert snapshot.balance == Decimal("40")
        assert snapshot.settlement_watermark == date(2026, 3, 8)
        assert snapshot.order_history == []

    async def test_worker_ids(self, session_factory) -> None:
        store = SqlWorkerStore(session_factory)
        await store.save("w1", {"balance": Decimal("1")})
        await store.save("w2", {"balance": Decimal("2")})
        assert sorted(await store.worker_ids()) == ["w1", "w2"]

    async def test_unavailable_database_does_not_raise(self, caplog) -> None:
        store = SqlWorkerStore(_broken_factory)

        assert await store.save("w1", {"balance": Decimal("1")}) is False
        assert await store.load("w1") == WorkerSnapshot()
        assert "PersistenceUnavailable" in caplog.text


class TestInitStore:
    async def test_without_database_uses_memory(self) -> None:
        assert isinstance(await init_store(None), MemoryWorkerStore)

    async def test_with_database_uses_sql(self, session_factory) -> None:
        assert isinstance(await init_store(session_factory), SqlWorkerStore)

    async def test_broken_database_falls_back_to_memory(self) -> None:
        assert isinstance(await init_store(_broken_factory), MemoryWorkerStore)
