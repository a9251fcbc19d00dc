from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from database.models import User

# --- Courier Services ---


async def get_user_by_telegram_id(session: AsyncSession, telegram_id: int) -> User | None:
    """Получить ORM-курьера по telegram_id."""
    stmt = select(User).where(User.telegram_id == telegram_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    telegram_id: int,
    full_name: str,
    is_active: bool = False,
) -> User:
    """
    Создать курьера.

    Неактивный курьер работает без сохранения (ключ хранилища не выдаётся),
    пока его не активирует администратор.
    """
    user = User(
        telegram_id=telegram_id,
        full_name=full_name,
        is_active=is_active,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def activate_user(session: AsyncSession, telegram_id: int) -> User | None:
    user = await get_user_by_telegram_id(session, telegram_id)
    if user:
        user.is_active = True
        await session.commit()
        await session.refresh(user)
    return user


async def set_online(session: AsyncSession, telegram_id: int, is_online: bool) -> None:
    await session.execute(
        update(User).where(User.telegram_id == telegram_id).values(is_online=is_online)
    )
    await session.commit()


class TelegramIdentity:
    """
    Ключ хранилища для курьера из Telegram.

    Активный курьер — str(telegram_id); неизвестный или неактивный — None
    (сессия работает только в памяти).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], telegram_id: int):
        self._session_factory = session_factory
        self.telegram_id = telegram_id

    async def current_worker_id(self) -> Optional[str]:
        async with self._session_factory() as session:
            user = await get_user_by_telegram_id(session, self.telegram_id)
        if user is None or not user.is_active:
            return None
        return str(user.telegram_id)
