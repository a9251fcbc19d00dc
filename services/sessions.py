"""
Реестр сессий курьеров в памяти процесса.

Одна CourierSession на telegram_id. Открытие сессии (загрузка снимка)
защищено замком на курьера, чтобы два апдейта подряд не подняли две копии
машины заказа.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from services.courier_service import CourierSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, opener: Callable[[int], Awaitable[CourierSession]]):
        self._opener = opener
        self._sessions: dict[int, CourierSession] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    def peek(self, telegram_id: int) -> Optional[CourierSession]:
        return self._sessions.get(telegram_id)

    async def get(self, telegram_id: int) -> CourierSession:
        """Вернуть сессию курьера, открыв её при первом обращении."""
        session = self._sessions.get(telegram_id)
        if session is not None:
            return session
        lock = self._locks.setdefault(telegram_id, asyncio.Lock())
        async with lock:
            session = self._sessions.get(telegram_id)
            if session is None:
                session = await self._opener(telegram_id)
                self._sessions[telegram_id] = session
                logger.debug("Session cached for user %s", telegram_id)
        return session

    async def drop(self, telegram_id: int) -> None:
        """Закрыть сессию (например, после активации — чтобы перечитать снимок по новому ключу)."""
        session = self._sessions.pop(telegram_id, None)
        self._locks.pop(telegram_id, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self._locks.clear()
        for session in sessions:
            await session.close()
        logger.info("Closed %s courier sessions", len(sessions))

    def __len__(self) -> int:
        return len(self._sessions)


# Глобальный реестр (инициализируется в main.py)
session_registry: Optional[SessionRegistry] = None


def init_registry(opener: Callable[[int], Awaitable[CourierSession]]) -> SessionRegistry:
    global session_registry
    session_registry = SessionRegistry(opener)
    return session_registry
