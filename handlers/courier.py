import logging
from decimal import Decimal

from aiogram import Router, types, F
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import OrderStatus
from services.courier_service import CourierSession
from services.db_ops import set_online
from services.errors import StaleTransitionError
from services.lifecycle import MISSING_MESSAGES, ChecklistItem
from services.schemas import Order
from services.telegram_utils import (
    CashCollectionConfirm,
    TelegramPhotoCapture,
    escape_markdown,
    safe_edit_text,
)
from services.validation import BankAccountInput, TransferAmountInput, validate_input
from keyboards.courier_kbs import (
    get_cancel_kb,
    get_courier_menu_kb,
    get_earnings_kb,
    get_step_kb,
)
from states.courier_states import TransferState

logger = logging.getLogger(__name__)
router = Router()

STATUS_NAMES = {
    OrderStatus.ACCEPTED: "Едем к отправителю",
    OrderStatus.PICKUP_REACHED: "У отправителя: проверка заказа",
    OrderStatus.PICKUP_COMPLETE: "Заказ забран, едем к получателю",
    OrderStatus.CUSTOMER_REACHED: "У получателя: вручение",
    OrderStatus.COMPLETED: "Доставлен",
}

HISTORY_LIMIT = 10


def format_order_text(order: Order, courier: CourierSession) -> str:
    """Экран текущего шага заказа."""
    text = (
        f"📦 *Заказ {escape_markdown(order.id)}*\n"
        f"Статус: {STATUS_NAMES.get(order.status, order.status.value)}\n\n"
        f"📤 {escape_markdown(order.sender_name)}, {escape_markdown(order.sender_phone)}\n"
        f"   {escape_markdown(order.pickup_location.address)}\n"
        f"📥 {escape_markdown(order.customer_name)}, {escape_markdown(order.customer_phone)}\n"
        f"   {escape_markdown(order.customer_location.address)}\n"
    )
    if order.delivery_instructions:
        text += f"\n📝 {escape_markdown(order.delivery_instructions)}\n"

    if order.status == OrderStatus.PICKUP_REACHED and order.items:
        text += "\n*Состав:*\n"
        for item in order.items:
            text += f"• {escape_markdown(item.name)} × {item.quantity}\n"

    if order.is_cash_on_delivery:
        paid = "получена" if order.payment_processed else "не получена"
        text += f"\n💵 Наличные к получению: ₹{order.cod_amount} ({paid})\n"

    missing = courier.machine.missing_requirements()
    if missing:
        text += "\n⚠️ Осталось: " + ", ".join(MISSING_MESSAGES.get(m, m) for m in missing)
    return text


def format_menu_text(courier: CourierSession) -> str:
    status = "🟢 На линии" if courier.is_online else "🔴 Не на линии"
    text = f"Панель курьера\n\nСтатус: {status}"
    dues = courier.dues()
    if dues.blocked:
        text += (
            f"\n\n⛔️ Новые заказы недоступны: не оплачены сборы за {dues.unpaid_days} дн. "
            f"(к оплате ₹{dues.total_due})"
        )
    elif dues.unpaid_days:
        text += f"\n\nСборы к оплате: ₹{dues.total_due} за {dues.unpaid_days} дн."
    return text


async def show_current(message: types.Message, courier: CourierSession, *, edit: bool = True) -> None:
    """Перерисовать экран по фактическому статусу заказа."""
    order = courier.current_order
    if order is None:
        text = format_menu_text(courier)
        kb = get_courier_menu_kb(courier.is_online)
        if edit:
            await safe_edit_text(message, text, reply_markup=kb, parse_mode=None)
        else:
            await message.answer(text, reply_markup=kb)
        return
    text = format_order_text(order, courier)
    kb = get_step_kb(order, courier.checklist, courier.machine.missing_requirements())
    if edit:
        await safe_edit_text(message, text, reply_markup=kb)
    else:
        await message.answer(text, reply_markup=kb, parse_mode="Markdown")


# -------------------- меню и линия --------------------

@router.message(Command("courier"))
async def cmd_courier(message: types.Message, courier: CourierSession):
    await show_current(message, courier, edit=False)


@router.callback_query(F.data == "courier:menu")
async def courier_menu(callback: types.CallbackQuery, state: FSMContext, courier: CourierSession):
    await state.clear()
    await safe_edit_text(
        callback.message,
        format_menu_text(courier),
        reply_markup=get_courier_menu_kb(courier.is_online, courier.machine.has_current_order),
        parse_mode=None,
    )
    await callback.answer()


@router.callback_query(F.data == "courier:online")
async def courier_online(callback: types.CallbackQuery, session: AsyncSession, courier: CourierSession):
    eligibility = await courier.go_online()
    await set_online(session, callback.from_user.id, True)
    if eligibility.dues_blocked:
        await callback.answer("Вы на линии, но заказы не придут, пока не оплачены сборы", show_alert=True)
    elif eligibility.has_current_order:
        await callback.answer("Вы на линии. Сначала завершите текущий заказ")
    else:
        await callback.answer("Вы на линии. Ждите заказ")
    await safe_edit_text(
        callback.message,
        format_menu_text(courier),
        reply_markup=get_courier_menu_kb(True, eligibility.has_current_order),
        parse_mode=None,
    )


@router.callback_query(F.data == "courier:offline")
async def courier_offline(callback: types.CallbackQuery, session: AsyncSession, courier: CourierSession):
    await courier.go_offline()
    await set_online(session, callback.from_user.id, False)
    await callback.answer("Вы ушли с линии")
    await safe_edit_text(
        callback.message,
        format_menu_text(courier),
        reply_markup=get_courier_menu_kb(False, courier.machine.has_current_order),
        parse_mode=None,
    )


@router.callback_query(F.data == "courier:current")
async def courier_current(callback: types.CallbackQuery, courier: CourierSession):
    await show_current(callback.message, courier)
    await callback.answer()


# -------------------- предложение --------------------

@router.callback_query(F.data.startswith("offer:accept:"))
async def offer_accept(callback: types.CallbackQuery, courier: CourierSession):
    order_id = callback.data.split(":", 2)[2]
    offer = courier.offer
    if offer is None or offer.order.id != order_id:
        await callback.answer("Предложение больше недоступно", show_alert=True)
        await safe_edit_text(callback.message, "⌛️ Предложение больше недоступно.", reply_markup=None, parse_mode=None)
        return

    await callback.answer("Принимаем заказ...")
    order, error = await courier.accept_offer()
    if error:
        await callback.message.answer(f"❌ {error.user_message}")
        return
    if order is None:
        await safe_edit_text(callback.message, "⌛️ Время на ответ вышло.", reply_markup=None, parse_mode=None)
        return
    await show_current(callback.message, courier)


@router.callback_query(F.data.startswith("offer:decline:"))
async def offer_decline(callback: types.CallbackQuery, courier: CourierSession):
    order_id = callback.data.split(":", 2)[2]
    offer = courier.offer
    if offer is not None and offer.order.id == order_id:
        courier.decline_offer()
    await callback.answer("Заказ отклонён")
    await safe_edit_text(callback.message, "❌ Вы отказались от заказа.", reply_markup=None, parse_mode=None)


# -------------------- шаги заказа --------------------

@router.callback_query(F.data.startswith("step:"))
async def order_step(callback: types.CallbackQuery, courier: CourierSession):
    try:
        _, expected_raw, next_raw = callback.data.split(":")
        expected = OrderStatus(expected_raw)
        next_status = OrderStatus(next_raw)
    except ValueError:
        await callback.answer("Ошибка", show_alert=True)
        return

    await callback.answer()
    order, error = await courier.advance(expected, next_status)
    if isinstance(error, StaleTransitionError):
        await callback.message.answer(f"ℹ️ {error.user_message}")
        await show_current(callback.message, courier, edit=False)
        return
    if error:
        await callback.message.answer(f"❌ {error.user_message}")
        return
    await show_current(callback.message, courier)


@router.callback_query(F.data.startswith("check:"))
async def order_check(callback: types.CallbackQuery, courier: CourierSession):
    try:
        item = ChecklistItem(callback.data.split(":", 1)[1])
    except ValueError:
        await callback.answer("Ошибка", show_alert=True)
        return
    _, error = courier.toggle_check(item)
    if error:
        await callback.answer(error.user_message, show_alert=True)
        return
    await callback.answer()
    await show_current(callback.message, courier)


@router.callback_query(F.data == "photo:hint")
async def photo_hint(callback: types.CallbackQuery):
    await callback.answer("Отправьте фото сообщением в этот чат", show_alert=True)


@router.message(F.photo)
async def order_photo(message: types.Message, courier: CourierSession):
    status = courier.machine.status
    capture = await TelegramPhotoCapture(message).capture()
    if status == OrderStatus.PICKUP_REACHED:
        _, error = courier.record_pickup_photo(capture)
    elif status == OrderStatus.CUSTOMER_REACHED:
        _, error = courier.record_delivery_photo(capture)
    else:
        await message.answer("Сейчас фото не требуется.")
        return
    if error:
        await message.answer(f"❌ {error.user_message}")
        return
    await message.answer("📷 Фото сохранено.")
    await show_current(message, courier, edit=False)


@router.callback_query(F.data == "pay:confirm")
async def payment_confirm(callback: types.CallbackQuery, courier: CourierSession):
    order = courier.current_order
    amount = order.cod_amount if order else None
    confirmation = await CashCollectionConfirm(amount).confirm()
    _, error = await courier.confirm_payment(confirmation)
    if error:
        await callback.answer(error.user_message, show_alert=True)
        return
    await callback.answer("Оплата отмечена")
    await show_current(callback.message, courier)


@router.callback_query(F.data == "pay:done")
async def payment_done(callback: types.CallbackQuery):
    await callback.answer("Оплата уже получена")


@router.callback_query(F.data == "order:locked")
async def order_locked(callback: types.CallbackQuery, courier: CourierSession):
    missing = courier.machine.missing_requirements()
    if not missing:
        # требования уже выполнены, экран устарел
        await callback.answer()
        await show_current(callback.message, courier)
        return
    await callback.answer(
        "Сначала: " + ", ".join(MISSING_MESSAGES.get(m, m) for m in missing),
        show_alert=True,
    )


@router.callback_query(F.data == "order:complete")
async def order_complete(callback: types.CallbackQuery, courier: CourierSession):
    await callback.answer()
    order, error = await courier.complete_order()
    if error:
        await callback.message.answer(f"❌ {error.user_message}")
        return
    await safe_edit_text(
        callback.message,
        f"✅ *Заказ {escape_markdown(order.id)} доставлен!*\n\n"
        f"Заработок: ₹{order.partner_earnings}\n"
        f"Баланс: ₹{courier.ledger.balance}",
        reply_markup=get_courier_menu_kb(courier.is_online),
    )


# -------------------- заработок --------------------

@router.callback_query(F.data == "courier:earnings")
async def courier_earnings(callback: types.CallbackQuery, courier: CourierSession):
    s = courier.summary()
    dues = s["dues"]
    text = (
        "💰 *Заработок*\n\n"
        f"Баланс: ₹{s['balance']}\n"
        f"Сегодня: ₹{s['total_earnings_today']} за {s['completed_orders_today']} зак.\n"
        f"Всего: ₹{s['lifetime_earnings']} за {s['lifetime_orders']} зак.\n"
    )
    last = s["last_bank_transfer"]
    if last is not None:
        text += f"\nПоследний перевод: ₹{last.amount} на {escape_markdown(last.bank_account)}\n"
    if dues.unpaid_days:
        text += f"\n🧾 Сборы: ₹{dues.total_due} за {dues.unpaid_days} дн."
        if dues.blocked:
            text += " ⛔️ заказы заблокированы"
    await safe_edit_text(
        callback.message,
        text,
        reply_markup=get_earnings_kb(s["balance"] > 0, dues.unpaid_days > 0),
    )
    await callback.answer()


@router.callback_query(F.data == "courier:history")
async def courier_history(callback: types.CallbackQuery, courier: CourierSession):
    history = courier.order_history
    if not history:
        text = "История пуста."
    else:
        lines = ["📜 *Последние заказы*\n"]
        for order in reversed(history[-HISTORY_LIMIT:]):
            when = order.completed_at.strftime("%d.%m %H:%M") if order.completed_at else "—"
            lines.append(f"• {escape_markdown(order.id)} · {when} · ₹{order.partner_earnings}")
        text = "\n".join(lines)
    await safe_edit_text(callback.message, text, reply_markup=get_earnings_kb(False, False))
    await callback.answer()


@router.callback_query(F.data == "dues:settle")
async def dues_settle(callback: types.CallbackQuery, courier: CourierSession):
    before = courier.dues()
    dues = await courier.settle_dues()
    await callback.answer(f"Оплачено ₹{before.total_due}", show_alert=True)
    await safe_edit_text(
        callback.message,
        f"🧾 Сборы оплачены.\nНеоплаченных дней: {dues.unpaid_days}",
        reply_markup=get_earnings_kb(courier.ledger.balance > 0, dues.unpaid_days > 0),
        parse_mode=None,
    )


# -------------------- перевод на счёт --------------------

@router.callback_query(F.data == "wallet:transfer")
async def wallet_transfer(callback: types.CallbackQuery, state: FSMContext, courier: CourierSession):
    await state.set_state(TransferState.waiting_amount)
    await safe_edit_text(
        callback.message,
        f"🏦 Баланс: ₹{courier.ledger.balance}\n\nВведите сумму перевода:",
        reply_markup=get_cancel_kb(),
        parse_mode=None,
    )
    await callback.answer()


@router.callback_query(F.data == "wallet:cancel")
async def wallet_cancel(callback: types.CallbackQuery, state: FSMContext, courier: CourierSession):
    await state.clear()
    await safe_edit_text(
        callback.message,
        format_menu_text(courier),
        reply_markup=get_courier_menu_kb(courier.is_online, courier.machine.has_current_order),
        parse_mode=None,
    )
    await callback.answer("Отменено")


@router.message(TransferState.waiting_amount, F.text)
async def wallet_amount(message: types.Message, state: FSMContext, courier: CourierSession):
    try:
        data = validate_input(TransferAmountInput, message.text)
    except ValueError as e:
        await message.answer(f"❌ {e}", reply_markup=get_cancel_kb())
        return
    if data.amount > courier.ledger.balance:
        await message.answer(
            f"❌ Недостаточно средств. Баланс: ₹{courier.ledger.balance}",
            reply_markup=get_cancel_kb(),
        )
        return
    await state.update_data(amount=str(data.amount))
    await state.set_state(TransferState.waiting_account)
    await message.answer("Введите UPI ID или номер счёта:", reply_markup=get_cancel_kb())


@router.message(TransferState.waiting_account, F.text)
async def wallet_account(message: types.Message, state: FSMContext, courier: CourierSession):
    try:
        account = validate_input(BankAccountInput, message.text).account
    except ValueError as e:
        await message.answer(f"❌ {e}", reply_markup=get_cancel_kb())
        return
    data = await state.get_data()
    await state.clear()

    transfer, error = await courier.transfer(Decimal(data["amount"]), account)
    if error:
        await message.answer(f"❌ {error.user_message}")
        return
    await message.answer(
        f"✅ Переведено ₹{transfer.amount} на {account}\nБаланс: ₹{courier.ledger.balance}",
        reply_markup=get_courier_menu_kb(courier.is_online, courier.machine.has_current_order),
    )
