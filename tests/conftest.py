from datetime import datetime, timezone

import pytest

from database.core import Base, make_engine, make_session_maker
from services.persistence import MemoryWorkerStore
from factories import FakeClock


@pytest.fixture
def store() -> MemoryWorkerStore:
    return MemoryWorkerStore()


@pytest.fixture
def clock() -> FakeClock:
    # 11:30 по Бенгалуру
    return FakeClock(datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc))


@pytest.fixture
async def session_factory(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{(tmp_path / 'courier.sqlite3').as_posix()}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_maker(engine)
    await engine.dispose()
