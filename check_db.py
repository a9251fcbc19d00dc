"""
Скрипт для проверки подключения к базе данных.

Поддержка:
- PostgreSQL (postgresql+asyncpg)
- SQLite (sqlite+aiosqlite)

Использование: python check_db.py
"""
import asyncio
import sys
from config import config
from database.core import engine, session_maker
from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
import logging

from database.models import User, WorkerState

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)

EXPECTED_TABLES = ("users", "worker_states")


def _is_sqlite() -> bool:
    return config.DB_DIALECT in ("sqlite", "sqlite3")


async def check_connection() -> bool:
    """Проверка подключения к базе данных"""
    print("=" * 60)
    print("Проверка подключения к базе данных")
    print("=" * 60)
    print(f"Dialect: {config.DB_DIALECT}")
    if _is_sqlite():
        print(f"SQLite: {config.SQLITE_PATH}")
    else:
        print(f"Host: {config.DB_HOST}")
        print(f"Port: {config.DB_PORT}")
        print(f"Database: {config.DB_NAME}")
        print(f"User: {config.DB_USER}")
    print("-" * 60)

    try:
        print("1. Проверка подключения...", end=" ")
        async with engine.begin() as conn:
            if _is_sqlite():
                result = await conn.execute(text("SELECT sqlite_version()"))
            else:
                result = await conn.execute(text("SELECT version()"))
            version = result.scalar()
            print("✅ Успешно!")
            if version:
                print(f"   Версия: {str(version).split(',')[0]}")
    except ConnectionRefusedError:
        print("❌ ОШИБКА!")
        print("   Сервер БД не запущен или недоступен")
        return False
    except OperationalError as e:
        print("❌ ОШИБКА!")
        print(f"   {e}")
        if "password" in str(e).lower() or "authentication" in str(e).lower():
            print("   Решение: Проверьте DB_USER и DB_PASS в .env файле")
        elif "does not exist" in str(e).lower():
            print("   Решение: создайте БД и запустите 'python init_db.py'")
        return False

    try:
        print("\n2. Проверка таблиц...", end=" ")
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        missing = [t for t in EXPECTED_TABLES if t not in tables]
        if missing:
            print(f"⚠️  Нет таблиц: {', '.join(missing)}")
            print("   Решение: Запустите 'python init_db.py' для создания таблиц")
            return True
        print(f"✅ Найдено таблиц: {len(tables)}")
    except SQLAlchemyError as e:
        print(f"⚠️  Ошибка при проверке таблиц: {e}")
        return True

    try:
        print("\n3. Проверка данных...", end=" ")
        async with session_maker() as session:
            couriers = await session.scalar(select(func.count()).select_from(User))
            active = await session.scalar(select(func.count()).select_from(User).where(User.is_active.is_(True)))
            states = await session.scalar(select(func.count()).select_from(WorkerState))
        print("✅")
        print(f"   Курьеров: {couriers} (активных: {active})")
        print(f"   Сохранённых состояний: {states}")
    except SQLAlchemyError as e:
        print(f"⚠️  Ошибка при проверке данных: {e}")

    print("\n" + "=" * 60)
    print("✅ Все проверки пройдены успешно!")
    print("=" * 60)
    return True


async def main():
    """Главная функция"""
    try:
        success = await check_connection()
    finally:
        await engine.dispose()
    if not success:
        print("\n💡 Полезные команды:")
        print("   - Создание таблиц: python init_db.py")
        print("   - SQLite по умолчанию: DB_DIALECT=sqlite в .env")
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\nПрервано пользователем")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Критическая ошибка: {e}", exc_info=True)
        sys.exit(1)
