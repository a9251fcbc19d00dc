"""
Уведомление курьера о новом предложении заказа.
"""
import logging
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup

from keyboards.courier_kbs import get_offer_kb
from services.offers import OFFER_TIMEOUT_SECONDS
from services.schemas import Order
from services.telegram_utils import escape_markdown

logger = logging.getLogger(__name__)


def format_offer_text(order: Order, seconds_left: float = OFFER_TIMEOUT_SECONDS) -> str:
    """Карточка предложения."""
    parcel = order.parcel_details
    lines = [
        "🔔 *Новый заказ*",
        "",
        f"💰 Заработок: *₹{order.partner_earnings}*",
        f"📏 {escape_markdown(order.distance or '—')} · ⏱ {escape_markdown(order.estimated_time or '—')}",
        "",
        f"📤 {escape_markdown(order.pickup_location.address)}",
        f"📥 {escape_markdown(order.customer_location.address)}",
    ]
    if parcel.description:
        fragile = " (хрупкое)" if parcel.fragile else ""
        lines.append(f"📦 {escape_markdown(parcel.description)}{fragile}")
    if order.is_cash_on_delivery:
        lines.append(f"💵 Наложенный платёж: ₹{order.cod_amount}")
    lines.append("")
    lines.append(f"⏳ Ответьте за {int(seconds_left)} сек.")
    return "\n".join(lines)


class TelegramOrderAlert:
    """
    Отправляет карточку предложения в чат курьера.

    Хранит message_id карточек, чтобы по истечении времени отредактировать
    карточку, а не слать новое сообщение.
    """

    def __init__(self, bot: Bot, chat_id: int):
        self.bot = bot
        self.chat_id = chat_id
        self._messages: dict[str, int] = {}

    def message_id(self, order_id: str) -> Optional[int]:
        return self._messages.get(order_id)

    async def trigger(self, order: Order) -> None:
        message = await self.bot.send_message(
            chat_id=self.chat_id,
            text=format_offer_text(order),
            reply_markup=get_offer_kb(order.id),
            parse_mode="Markdown",
        )
        self._messages[order.id] = message.message_id
        logger.info("Offer card sent chat=%s order=%s", self.chat_id, order.id)

    def forget(self, order: Order) -> None:
        """Предложение принято или отклонено: карточку больше не редактируем."""
        self._messages.pop(order.id, None)

    async def expired(self, order: Order) -> None:
        message_id = self._messages.pop(order.id, None)
        if message_id is None:
            return
        try:
            await self.bot.edit_message_text(
                chat_id=self.chat_id,
                message_id=message_id,
                text=f"⌛️ Время на ответ вышло. Заказ {escape_markdown(order.id)} передан другому курьеру.",
                reply_markup=InlineKeyboardMarkup(inline_keyboard=[]),
                parse_mode="Markdown",
            )
        except TelegramAPIError as e:
            logger.warning("Failed to edit expired offer chat=%s order=%s: %s", self.chat_id, order.id, e)


class LoggingOrderAlert:
    """Уведомление только в лог (без бота)."""

    def __init__(self):
        self.sent: list[str] = []

    async def trigger(self, order: Order) -> None:
        self.sent.append(order.id)
        logger.info("New offer order=%s earnings=%s", order.id, order.partner_earnings)
