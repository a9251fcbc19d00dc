"""
Middleware: сессия курьера (CourierSession) для каждого апдейта.
"""
import logging
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery

from services.sessions import SessionRegistry

logger = logging.getLogger(__name__)


class CourierSessionMiddleware(BaseMiddleware):
    """Кладёт в data['courier'] сессию отправителя апдейта."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        user = None
        if isinstance(event, (Message, CallbackQuery)):
            user = event.from_user
        if user is not None:
            data['courier'] = await self.registry.get(user.id)
            data['registry'] = self.registry
        return await handler(event, data)
