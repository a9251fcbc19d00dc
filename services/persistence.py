"""
Хранилище состояния курьера по worker_id.

Запись частичная: save() получает только изменившиеся срезы снимка
(order_history, current_order, balance ...). Без worker_id хранилище работает
в режиме "только память": load() отдаёт пустой снимок, save() ничего не пишет.
Ошибки записи не прерывают работу — состояние в памяти остаётся верным.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Mapping, Optional

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import WorkerState
from services.errors import PersistenceUnavailable
from services.schemas import SLICE_NAMES, WorkerSnapshot

logger = logging.getLogger(__name__)

_ADAPTERS: dict[str, TypeAdapter] = {
    name: TypeAdapter(field.annotation) for name, field in WorkerSnapshot.model_fields.items()
}

# Срезы в JSON-колонках SQL; остальные лежат в Numeric/Integer/Date
_JSON_SLICES = frozenset({"order_history", "current_order", "last_bank_transfer", "transfer_history"})


def encode_slice(name: str, value: Any, *, json_mode: bool = True) -> Any:
    return _ADAPTERS[name].dump_python(value, mode="json" if json_mode else "python", by_alias=True)


class WorkerStore:
    """Общая логика: режим без идентификации, частичная запись, сброс битого снимка."""

    name = "base"

    async def load(self, worker_id: Optional[str]) -> WorkerSnapshot:
        if worker_id is None:
            logger.info("Worker not identified, store=%s runs memory-only", self.name)
            return WorkerSnapshot()
        try:
            raw = await self._read(worker_id)
        except PersistenceUnavailable as e:
            logger.warning("PersistenceUnavailable on load worker=%s: %s", worker_id, e)
            return WorkerSnapshot()
        if not raw:
            return WorkerSnapshot()
        try:
            return WorkerSnapshot.model_validate(raw)
        except ValidationError as e:
            logger.error("Corrupted snapshot worker=%s, resetting to defaults: %s", worker_id, e)
            try:
                await self._discard(worker_id)
            except PersistenceUnavailable as e2:
                logger.warning("PersistenceUnavailable on reset worker=%s: %s", worker_id, e2)
            return WorkerSnapshot()

    async def save(self, worker_id: Optional[str], partial: Mapping[str, Any]) -> bool:
        """
        Записать изменившиеся срезы.

        Returns:
            True если запись выполнена; False в режиме без идентификации или при сбое хранилища
        """
        unknown = set(partial) - SLICE_NAMES
        if unknown:
            raise ValueError(f"Unknown snapshot slices: {sorted(unknown)}")
        if worker_id is None:
            logger.debug("save skipped (memory-only): slices=%s", sorted(partial))
            return False
        if not partial:
            return True
        try:
            await self._write(worker_id, dict(partial))
        except PersistenceUnavailable as e:
            logger.warning(
                "PersistenceUnavailable worker=%s slices=%s: %s", worker_id, sorted(partial), e
            )
            return False
        return True

    async def _read(self, worker_id: str) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    async def _write(self, worker_id: str, partial: dict[str, Any]) -> None:
        raise NotImplementedError

    async def _discard(self, worker_id: str) -> None:
        raise NotImplementedError


class SqlWorkerStore(WorkerStore):
    """Одна строка worker_states на курьера."""

    name = "sql"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _read(self, worker_id: str) -> Optional[dict[str, Any]]:
        try:
            async with self._session_factory() as session:
                row = await session.get(WorkerState, worker_id)
                if row is None:
                    return None
                return {name: getattr(row, name) for name in SLICE_NAMES}
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailable(repr(e)) from e

    async def _write(self, worker_id: str, partial: dict[str, Any]) -> None:
        values = {
            name: encode_slice(name, value, json_mode=name in _JSON_SLICES)
            for name, value in partial.items()
        }
        try:
            async with self._session_factory() as session:
                row = await session.get(WorkerState, worker_id)
                if row is None:
                    row = WorkerState(
                        worker_id=worker_id,
                        order_history=[],
                        transfer_history=[],
                        completed_orders_today=0,
                    )
                    session.add(row)
                for name, value in values.items():
                    setattr(row, name, value)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailable(repr(e)) from e

    async def _discard(self, worker_id: str) -> None:
        try:
            async with self._session_factory() as session:
                row = await session.get(WorkerState, worker_id)
                if row is not None:
                    await session.delete(row)
                    await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailable(repr(e)) from e

    async def worker_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(select(WorkerState.worker_id))
            return list(result.scalars().all())


class MemoryWorkerStore(WorkerStore):
    """In-memory хранилище (тесты и fallback, если БД недоступна)."""

    name = "memory"

    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {}

    async def _read(self, worker_id: str) -> Optional[dict[str, Any]]:
        raw = self._data.get(worker_id)
        return copy.deepcopy(raw) if raw is not None else None

    async def _write(self, worker_id: str, partial: dict[str, Any]) -> None:
        stored = self._data.setdefault(worker_id, {})
        for name, value in partial.items():
            stored[name] = encode_slice(name, value)

    async def _discard(self, worker_id: str) -> None:
        self._data.pop(worker_id, None)

    def raw(self, worker_id: str) -> Optional[dict[str, Any]]:
        """Сырой JSON-снимок (для отладки и тестов)."""
        return copy.deepcopy(self._data.get(worker_id))

    def put_raw(self, worker_id: str, raw: dict[str, Any]) -> None:
        self._data[worker_id] = copy.deepcopy(raw)


# Глобальный экземпляр хранилища (инициализируется в main.py)
worker_store: Optional[WorkerStore] = None


async def init_store(session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> WorkerStore:
    """Инициализировать хранилище: SQL, если БД отвечает, иначе память."""
    global worker_store
    if session_factory is not None:
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
            worker_store = SqlWorkerStore(session_factory)
            logger.info("Using SQL store for worker state")
            return worker_store
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Database not available for worker state, using memory: %s", e)

    worker_store = MemoryWorkerStore()
    logger.info("Using memory store for worker state")
    return worker_store
