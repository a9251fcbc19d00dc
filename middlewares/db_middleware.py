"""
Middleware: сессия БД (AsyncSession) на время обработки апдейта.

Через неё идут только учётные записи курьеров (регистрация, активация,
флаг «на линии»). Снимки заказов пишет WorkerStore своими сессиями, поэтому
сбой БД здесь не ломает заказ в работе: курьеру показывается ошибка,
состояние в памяти остаётся.
"""
import logging
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.exceptions import TelegramAPIError
from aiogram.types import TelegramObject, Message, CallbackQuery
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

DB_ERROR_TEXT = "❌ База данных недоступна. Заказ в работе сохранён в памяти, попробуйте позже."


class DatabaseMiddleware(BaseMiddleware):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        try:
            async with self.session_factory() as session:
                data['session'] = session
                return await handler(event, data)
        except (SQLAlchemyError, ConnectionRefusedError, OSError) as e:
            logger.error("Database error trace=%s: %r", data.get("trace_id"), e, exc_info=True)
            try:
                if isinstance(event, CallbackQuery):
                    await event.answer(DB_ERROR_TEXT, show_alert=True)
                elif isinstance(event, Message):
                    await event.answer(DB_ERROR_TEXT)
            except TelegramAPIError as e2:
                logger.debug("Failed to report DB error to user: %s", e2)
            return None
