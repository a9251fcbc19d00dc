"""
Создание таблиц курьерского бота (users, worker_states).

Использование:
    python init_db.py            — создать недостающие таблицы
    RESET_DB=1 python init_db.py — пересоздать схему (все снимки курьеров будут удалены)
"""
import asyncio
import logging
import os

from sqlalchemy import inspect

from database.core import engine, Base
from database.models import User, WorkerState  # noqa: F401  регистрация моделей в Base.metadata

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def init_db(reset: bool = False) -> list[str]:
    """Создать схему и вернуть список таблиц в БД."""
    try:
        async with engine.begin() as conn:
            if reset:
                logger.warning("RESET_DB enabled: dropping %s", ", ".join(Base.metadata.tables))
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await engine.dispose()
    logger.info("Tables ready: %s", ", ".join(sorted(tables)))
    return tables


if __name__ == "__main__":
    asyncio.run(init_db(reset=os.getenv("RESET_DB", "").lower() in ("1", "true", "yes")))
