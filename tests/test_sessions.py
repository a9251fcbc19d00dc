"""Tests for the session registry and Telegram identity lookup."""

import asyncio

from services.db_ops import TelegramIdentity, activate_user, create_user, get_user_by_telegram_id, set_online
from services.sessions import SessionRegistry


class FakeSession:
    def __init__(self, telegram_id):
        self.telegram_id = telegram_id
        self.closed = False

    async def close(self):
        self.closed = True


def _make_registry():
    opened = []

    async def opener(telegram_id):
        await asyncio.sleep(0.01)
        opened.append(telegram_id)
        return FakeSession(telegram_id)

    return SessionRegistry(opener), opened


class TestSessionRegistry:
    async def test_concurrent_get_opens_once(self) -> None:
        registry, opened = _make_registry()

        first, second = await asyncio.gather(registry.get(7), registry.get(7))
        assert first is second
        assert opened == [7]
        assert len(registry) == 1

    async def test_drop_closes_and_reopens(self) -> None:
        registry, opened = _make_registry()
        session = await registry.get(7)

        await registry.drop(7)
        assert session.closed
        assert registry.peek(7) is None

        assert await registry.get(7) is not session
        assert opened == [7, 7]

    async def test_close_all(self) -> None:
        registry, _ = _make_registry()
        sessions = [await registry.get(i) for i in (1, 2)]

        await registry.close_all()
        assert all(s.closed for s in sessions)
        assert len(registry) == 0


class TestTelegramIdentity:
    async def test_unknown_user_is_memory_only(self, session_factory) -> None:
        assert await TelegramIdentity(session_factory, 7).current_worker_id() is None

    async def test_inactive_then_activated(self, session_factory) -> None:
        async with session_factory() as session:
            await create_user(session, 7, "Ravi Kumar", is_active=False)
        identity = TelegramIdentity(session_factory, 7)
        assert await identity.current_worker_id() is None

        async with session_factory() as session:
            await activate_user(session, 7)
        assert await identity.current_worker_id() == "7"

    async def test_online_flag(self, session_factory) -> None:
        async with session_factory() as session:
            await create_user(session, 7, "Ravi Kumar", is_active=True)
            await set_online(session, 7, True)
        async with session_factory() as session:
            user = await get_user_by_telegram_id(session, 7)
        assert user.is_online is True
