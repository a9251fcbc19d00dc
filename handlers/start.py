import logging
from aiogram import Router, types
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandObject, CommandStart
from sqlalchemy.ext.asyncio import AsyncSession

from config import config
from services.courier_service import CourierSession
from services.db_ops import activate_user, get_user_by_telegram_id, create_user
from services.sessions import SessionRegistry
from keyboards.courier_kbs import get_courier_menu_kb
from handlers.courier import format_menu_text

logger = logging.getLogger(__name__)
router = Router()


@router.message(CommandStart())
async def cmd_start(message: types.Message, session: AsyncSession, registry: SessionRegistry):
    telegram_id = message.from_user.id
    full_name = message.from_user.full_name

    user = await get_user_by_telegram_id(session, telegram_id)
    is_admin = telegram_id in config.ADMIN_IDS_LIST

    if not user:
        user = await create_user(
            session, telegram_id, full_name,
            is_active=config.AUTO_ACTIVATE_COURIERS or is_admin,
        )
        logger.info("Courier registered: telegram_id=%s active=%s", telegram_id, user.is_active)
        # Сессия могла открыться до регистрации (без ключа хранилища), перечитываем
        await registry.drop(telegram_id)

        if not user.is_active:
            await message.answer(
                "Заявка принята. Пока аккаунт не активирован, прогресс не сохраняется."
            )
            for admin_id in config.ADMIN_IDS_LIST:
                try:
                    await message.bot.send_message(
                        chat_id=admin_id,
                        text=f"Новый курьер: {full_name} (ID: {telegram_id})\nАктивировать: /activate {telegram_id}",
                    )
                except TelegramAPIError as e:
                    logger.error("Failed to notify admin %s: %s", admin_id, e, exc_info=True)

    courier: CourierSession = await registry.get(telegram_id)
    welcome_text = f"Добро пожаловать, {user.full_name}!\n\n{format_menu_text(courier)}"
    await message.answer(
        welcome_text,
        reply_markup=get_courier_menu_kb(courier.is_online, courier.machine.has_current_order),
    )


@router.message(Command("activate"))
async def cmd_activate(message: types.Message, command: CommandObject, session: AsyncSession, registry: SessionRegistry):
    """Активация курьера администратором: /activate <telegram_id>."""
    if message.from_user.id not in config.ADMIN_IDS_LIST:
        return
    try:
        telegram_id = int((command.args or "").strip())
    except ValueError:
        await message.answer("Использование: /activate <telegram_id>")
        return

    user = await activate_user(session, telegram_id)
    if user is None:
        await message.answer("Курьер не найден.")
        return
    await registry.drop(telegram_id)
    logger.info("Courier activated: telegram_id=%s by admin=%s", telegram_id, message.from_user.id)
    await message.answer(f"✅ Курьер {user.full_name} активирован.")
    try:
        await message.bot.send_message(chat_id=telegram_id, text="Ваш аккаунт активирован. Нажмите /start")
    except TelegramAPIError as e:
        logger.warning("Failed to notify courier %s: %s", telegram_id, e)
