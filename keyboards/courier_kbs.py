from typing import Optional

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton

from database.models import OrderStatus
from services.lifecycle import ChecklistItem
from services.schemas import Location, Order


def nav_url(location: Location) -> Optional[str]:
    if location.coordinates is None:
        return None
    c = location.coordinates
    return f"https://www.google.com/maps/search/?api=1&query={c.lat},{c.lng}"


def get_courier_menu_kb(is_online: bool, has_order: bool = False) -> InlineKeyboardMarkup:
    """Главное меню курьера"""
    rows = []
    if is_online:
        rows.append([InlineKeyboardButton(text="🔴 Уйти с линии", callback_data="courier:offline")])
    else:
        rows.append([InlineKeyboardButton(text="🟢 Выйти на линию", callback_data="courier:online")])
    if has_order:
        rows.append([InlineKeyboardButton(text="📦 Текущий заказ", callback_data="courier:current")])
    rows.append([
        InlineKeyboardButton(text="💰 Заработок", callback_data="courier:earnings"),
        InlineKeyboardButton(text="📜 История", callback_data="courier:history"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_offer_kb(order_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="✅ Принять", callback_data=f"offer:accept:{order_id}"),
            InlineKeyboardButton(text="❌ Отказаться", callback_data=f"offer:decline:{order_id}"),
        ]
    ])


def _check_button(item: ChecklistItem, text: str, checklist: frozenset) -> InlineKeyboardButton:
    mark = "✅" if item in checklist else "⬜"
    return InlineKeyboardButton(text=f"{mark} {text}", callback_data=f"check:{item.value}")


def _locked_button(text: str) -> InlineKeyboardButton:
    return InlineKeyboardButton(text=f"🔒 {text}", callback_data="order:locked")


def get_step_kb(
    order: Order,
    checklist: frozenset = frozenset(),
    missing: tuple[str, ...] = (),
) -> InlineKeyboardMarkup:
    """
    Клавиатура шага заказа.

    Кнопка перехода несёт ожидаемый текущий статус: step:<текущий>:<следующий>.
    Если экран устарел, машина ответит StaleTransitionError и экран перерисуется.
    Пока в missing есть невыполненные требования, вместо кнопки перехода
    показывается заблокированная кнопка order:locked.
    """
    rows = []
    status = order.status

    if status == OrderStatus.ACCEPTED:
        url = nav_url(order.pickup_location)
        if url:
            rows.append([InlineKeyboardButton(text="🗺 Маршрут до отправителя", url=url)])
        rows.append([InlineKeyboardButton(
            text="📍 Я у отправителя",
            callback_data=f"step:{OrderStatus.ACCEPTED.value}:{OrderStatus.PICKUP_REACHED.value}"
        )])

    elif status == OrderStatus.PICKUP_REACHED:
        rows.append([_check_button(ChecklistItem.ITEMS_VERIFIED, "Товары проверены", checklist)])
        rows.append([_check_button(ChecklistItem.ORDER_ID_CONFIRMED, f"Номер {order.id} сверен", checklist)])
        photo_mark = "✅" if ChecklistItem.PICKUP_PHOTO in checklist else "📷"
        rows.append([InlineKeyboardButton(text=f"{photo_mark} Фото посылки (отправьте фото)", callback_data="photo:hint")])
        if missing:
            rows.append([_locked_button("Заказ забран")])
        else:
            rows.append([InlineKeyboardButton(
                text="📦 Заказ забран",
                callback_data=f"step:{OrderStatus.PICKUP_REACHED.value}:{OrderStatus.PICKUP_COMPLETE.value}"
            )])

    elif status == OrderStatus.PICKUP_COMPLETE:
        url = nav_url(order.customer_location)
        if url:
            rows.append([InlineKeyboardButton(text="🗺 Маршрут до получателя", url=url)])
        rows.append([InlineKeyboardButton(
            text="📍 Я у получателя",
            callback_data=f"step:{OrderStatus.PICKUP_COMPLETE.value}:{OrderStatus.CUSTOMER_REACHED.value}"
        )])

    elif status == OrderStatus.CUSTOMER_REACHED:
        photo_mark = "✅" if ChecklistItem.DELIVERY_PHOTO in checklist else "📷"
        rows.append([InlineKeyboardButton(text=f"{photo_mark} Фото вручения (отправьте фото)", callback_data="photo:hint")])
        if order.is_cash_on_delivery:
            if order.payment_processed:
                rows.append([InlineKeyboardButton(text="💵 Оплата получена", callback_data="pay:done")])
            else:
                rows.append([InlineKeyboardButton(
                    text=f"💵 Получил наличные ₹{order.cod_amount}", callback_data="pay:confirm"
                )])
        if missing:
            rows.append([_locked_button("Завершить доставку")])
        else:
            rows.append([InlineKeyboardButton(text="🏁 Завершить доставку", callback_data="order:complete")])

    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_earnings_kb(can_transfer: bool, has_dues: bool) -> InlineKeyboardMarkup:
    rows = []
    if can_transfer:
        rows.append([InlineKeyboardButton(text="🏦 Вывести на счёт", callback_data="wallet:transfer")])
    if has_dues:
        rows.append([InlineKeyboardButton(text="🧾 Оплатить сборы", callback_data="dues:settle")])
    rows.append([InlineKeyboardButton(text="⬅️ Меню", callback_data="courier:menu")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_cancel_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="❌ Отмена", callback_data="wallet:cancel")]
    ])
