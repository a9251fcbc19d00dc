import asyncio
import logging
import sys
import os
import time
from pathlib import Path
from logging.handlers import RotatingFileHandler
from aiogram import Bot, Dispatcher
from aiogram.types import ErrorEvent
from aiogram.exceptions import TelegramAPIError, TelegramNetworkError, TelegramServerError, TelegramRetryAfter
import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from config import config
from middlewares.courier_middleware import CourierSessionMiddleware
from middlewares.db_middleware import DatabaseMiddleware
from middlewares.logging_middleware import LoggingMiddleware

# Configure logging with rotating file handler
log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format=log_format,
    handlers=[
        logging.StreamHandler(sys.stdout),
        RotatingFileHandler(
            'courier_bot.log',
            maxBytes=10*1024*1024,  # 10 MB
            backupCount=5,
            encoding='utf-8'
        )
    ]
)

logger = logging.getLogger(__name__)


_lock_handle = None


def acquire_single_instance_lock() -> None:
    """
    Локальная защита от запуска двух экземпляров бота на одной машине.
    Две копии — это две ленты предложений и TelegramConflictError.
    """
    global _lock_handle
    lock_path = Path(__file__).resolve().parent / ".bot.lock"
    f = open(lock_path, "a+", encoding="utf-8")
    try:
        if os.name == "nt":
            import msvcrt  # type: ignore
            msvcrt.locking(f.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            import fcntl  # type: ignore
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        f.close()
        raise RuntimeError(
            "Похоже, бот уже запущен на этой машине (занят .bot.lock). "
            "Остановите другие экземпляры."
        )
    _lock_handle = f


def setup_asyncio_exception_logging() -> None:
    """
    Ловит исключения из фоновых задач asyncio (лента предложений, таймеры),
    которые не проходят через aiogram handlers/errors.
    """
    loop = asyncio.get_running_loop()

    def _handler(loop: asyncio.AbstractEventLoop, context: dict):
        msg = context.get("message", "asyncio exception")
        exc = context.get("exception")
        logger.error("ASYNCIO %s", msg, exc_info=exc)

    loop.set_exception_handler(_handler)


async def wait_for_db(engine) -> bool:
    """
    Ждём БД при старте (PostgreSQL может ещё подниматься).

    Управляется env:
    - DB_WAIT_SECONDS (по умолчанию 60)
    - DB_RETRY_MAX_DELAY (по умолчанию 10)

    Returns:
        False, если БД так и не ответила — бот продолжит работу с хранилищем в памяти
    """
    max_wait = int(os.getenv("DB_WAIT_SECONDS", "60"))
    max_delay = float(os.getenv("DB_RETRY_MAX_DELAY", "10"))

    deadline = time.monotonic() + max_wait
    attempt = 0

    while True:
        attempt += 1
        try:
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("✅ Database connection successful")
            return True
        except (OperationalError, SQLAlchemyError, ConnectionRefusedError, OSError) as e:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.error("❌ Database not available after %s attempts: %r", attempt, e)
                logger.error(
                    "Check DB_DIALECT=%s DB_HOST=%s DB_PORT=%s DB_NAME=%s DB_USER=%s, then run: python check_db.py",
                    config.DB_DIALECT, config.DB_HOST, config.DB_PORT, config.DB_NAME, config.DB_USER
                )
                return False

            delay = min(max_delay, 1.0 * (2 ** min(attempt - 1, 6)))
            delay = min(delay, max(1.0, remaining))
            logger.warning(
                "DB not ready (attempt=%s). Retry in %.1fs (remaining=%.1fs). err=%s",
                attempt,
                delay,
                remaining,
                repr(e),
            )
            await asyncio.sleep(delay)


async def main():
    logger.info("Starting courier bot...")
    setup_asyncio_exception_logging()
    # Локально предотвращаем запуск двух копий
    acquire_single_instance_lock()
    logger.info("DB_DIALECT=%s DATABASE_URL=%s", config.DB_DIALECT, config.DATABASE_URL)

    if not config.BOT_TOKEN:
        logger.error("❌ BOT_TOKEN пустой. Добавьте BOT_TOKEN в .env и перезапустите.")
        raise RuntimeError("BOT_TOKEN is not set")

    bot = Bot(token=config.BOT_TOKEN)

    from database.core import Base, engine, session_maker
    from handlers import start, courier, fallback
    from services.courier_service import CourierSession
    from services.db_ops import TelegramIdentity
    from services.notifications import TelegramOrderAlert
    from services.order_pool import demo_pool
    from services.persistence import init_store
    from services.sessions import init_registry

    # Ждём БД с ретраями (чтобы не падать на старте)
    db_ready = await wait_for_db(engine)

    # В режиме SQLite всегда поднимаем таблицы автоматически (чтобы проект был "рабочим из коробки")
    if db_ready and config.DB_DIALECT in ("sqlite", "sqlite3"):
        reset_db = os.getenv("RESET_DB", "").lower() in ("1", "true", "yes")
        if reset_db:
            logger.warning("SQLite mode: RESET_DB enabled -> drop_all + create_all")
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        logger.info("SQLite mode: ensuring tables exist (create_all)...")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite mode: tables are ready")

    store = await init_store(session_maker if db_ready else None)
    pool = demo_pool()

    async def open_courier_session(telegram_id: int) -> CourierSession:
        try:
            worker_id = await TelegramIdentity(session_maker, telegram_id).current_worker_id()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Identity lookup failed for user %s, memory-only session: %s", telegram_id, e)
            worker_id = None
        alert = TelegramOrderAlert(bot, telegram_id)
        return await CourierSession.open(
            worker_id, store, pool, alert, on_expired=alert.expired, on_resolved=alert.forget
        )

    registry = init_registry(open_courier_session)

    # Используем Redis для FSM storage, если доступен, иначе MemoryStorage
    redis_client = None
    try:
        redis_client = redis.Redis(
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            db=config.REDIS_DB,
            password=config.REDIS_PASSWORD,
            decode_responses=False
        )
        # Проверяем подключение
        await redis_client.ping()
        from aiogram.fsm.storage.redis import RedisStorage
        storage = RedisStorage(redis=redis_client)
        logger.info("Using Redis storage for FSM")
    except (RedisError, OSError) as e:
        logger.warning("Redis not available, using MemoryStorage: %s", e)
        from aiogram.fsm.storage.memory import MemoryStorage
        storage = MemoryStorage()
        redis_client = None

    dp = Dispatcher(storage=storage)

    # Логирование всех входящих событий + исключений с контекстом
    dp.message.middleware(LoggingMiddleware(log_success=True))
    dp.callback_query.middleware(LoggingMiddleware(log_success=True))

    # Глобальный обработчик ошибок aiogram (ловит необработанные исключения в хендлерах)
    @dp.errors()
    async def global_error_handler(event: ErrorEvent):
        exc = event.exception
        trace = f"update_id={getattr(event.update, 'update_id', None)}"

        logger.error(
            "UNHANDLED %s err=%s",
            trace,
            repr(exc),
            exc_info=(type(exc), exc, exc.__traceback__),
        )

        # Пытаемся мягко сообщить пользователю, не раскрывая деталей
        try:
            if event.update and event.update.message:
                await event.update.message.answer("⚠️ Произошла внутренняя ошибка. Мы уже записали её в лог.")
            elif event.update and event.update.callback_query:
                await event.update.callback_query.answer("⚠️ Ошибка. Попробуйте ещё раз.", show_alert=True)
        except TelegramAPIError:
            # Главное, что залогировали
            logger.debug("Failed to report error to user", exc_info=True)

    # Добавляем middleware: сессия БД, затем сессия курьера
    dp.message.middleware(DatabaseMiddleware(session_maker))
    dp.callback_query.middleware(DatabaseMiddleware(session_maker))
    dp.message.middleware(CourierSessionMiddleware(registry))
    dp.callback_query.middleware(CourierSessionMiddleware(registry))

    # Include routers (fallback последним: ловит необработанные обновления)
    dp.include_router(start.router)
    dp.include_router(courier.router)
    dp.include_router(fallback.router)

    try:
        try:
            await bot.delete_webhook(drop_pending_updates=True)
            logger.info("Webhook deleted successfully")
        except TelegramAPIError as webhook_error:
            logger.warning("Error deleting webhook (may not exist): %s", webhook_error)

        logger.info("Bot started successfully")

        # Автоперезапуск polling при временных сетевых сбоях
        restart_delay = float(os.getenv("POLL_RESTART_SECONDS", "5"))
        while True:
            try:
                await dp.start_polling(
                    bot,
                    allowed_updates=["message", "callback_query"],
                    drop_pending_updates=True
                )
                break  # нормальная остановка polling
            except TelegramRetryAfter as e:
                # Telegram просит подождать (rate limit)
                wait_s = float(getattr(e, "retry_after", restart_delay))
                logger.warning("TelegramRetryAfter: wait %.1fs then continue", wait_s, exc_info=True)
                await asyncio.sleep(wait_s)
            except (TelegramNetworkError, TelegramServerError, asyncio.TimeoutError, OSError):
                logger.error("Polling crashed (network/server). Restart in %.1fs", restart_delay, exc_info=True)
                await asyncio.sleep(restart_delay)
    finally:
        await registry.close_all()
        await bot.session.close()
        if redis_client is not None:
            await redis_client.aclose()
        await engine.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
        sys.exit(1)
