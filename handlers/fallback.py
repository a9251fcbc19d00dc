"""
Обработчик необработанных обновлений.

Подключается последним. Кнопки со старых экранов сюда не доходят (их ловят
хендлеры шагов), а вот произвольный текст и неизвестные callback попадают
сюда: курьеру показывается актуальный экран заказа.
"""
import logging
from typing import Optional

from aiogram import Router, types
from aiogram.exceptions import TelegramAPIError

from handlers.courier import show_current
from services.courier_service import CourierSession

logger = logging.getLogger(__name__)
router = Router()


@router.message()
async def fallback_message(message: types.Message, courier: Optional[CourierSession] = None):
    if courier is not None and courier.machine.has_current_order:
        await message.answer("Текущий заказ:")
        await show_current(message, courier, edit=False)
        return
    await message.answer("Используйте /courier для панели курьера или /start для начала работы.")


@router.callback_query()
async def fallback_callback(callback: types.CallbackQuery):
    logger.info("Unknown callback user=%s data=%s", callback.from_user.id, callback.data)
    try:
        await callback.answer("Действие устарело. Отправьте /courier для обновления экрана.")
    except TelegramAPIError as e:
        logger.debug("Fallback callback answer failed: %s", e)
