"""Tests for the Telegram-facing adapters: offer card, photo capture, keyboards, update logging."""

from datetime import datetime, timezone
from types import SimpleNamespace

from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery, Chat, Message, User

from database.models import OrderStatus
from keyboards.courier_kbs import get_offer_kb, get_step_kb
from middlewares.logging_middleware import describe_event
from services.lifecycle import ChecklistItem
from services.notifications import TelegramOrderAlert, format_offer_text
from services.offers import Eligibility, OfferScheduler
from services.telegram_utils import CashCollectionConfirm, TelegramPhotoCapture, escape_markdown
from factories import make_order


class FakeBot:
    def __init__(self, fail_edit: bool = False):
        self.fail_edit = fail_edit
        self.sent = []
        self.edited = []

    async def send_message(self, **kwargs):
        self.sent.append(kwargs)
        return SimpleNamespace(message_id=100 + len(self.sent))

    async def edit_message_text(self, **kwargs):
        if self.fail_edit:
            raise TelegramAPIError(method=None, message="message to edit not found")
        self.edited.append(kwargs)


def _callback_data(markup) -> list[str]:
    return [b.callback_data for row in markup.inline_keyboard for b in row if b.callback_data]


class TestOfferCard:
    def test_cash_order_card_mentions_cod(self) -> None:
        text = format_offer_text(make_order("ORD_7", cod=True), seconds_left=30)
        assert "₹105" in text
        assert "₹8500" in text
        assert "30 сек" in text

    async def test_trigger_sends_card_with_buttons(self) -> None:
        bot = FakeBot()
        alert = TelegramOrderAlert(bot, chat_id=7)
        await alert.trigger(make_order("O1"))

        assert bot.sent[0]["chat_id"] == 7
        assert _callback_data(bot.sent[0]["reply_markup"]) == ["offer:accept:O1", "offer:decline:O1"]
        assert alert.message_id("O1") == 101

    async def test_expired_edits_card_once(self) -> None:
        bot = FakeBot()
        alert = TelegramOrderAlert(bot, chat_id=7)
        order = make_order("O1")
        await alert.trigger(order)

        await alert.expired(order)
        await alert.expired(order)
        assert len(bot.edited) == 1
        assert bot.edited[0]["message_id"] == 101
        assert alert.message_id("O1") is None

    async def test_expired_edit_failure_is_logged(self, caplog) -> None:
        bot = FakeBot(fail_edit=True)
        alert = TelegramOrderAlert(bot, chat_id=7)
        order = make_order("O1")
        await alert.trigger(order)

        await alert.expired(order)
        assert "Failed to edit expired offer" in caplog.text

    async def test_resolved_offers_drop_card_ids(self) -> None:
        bot = FakeBot()
        alert = TelegramOrderAlert(bot, chat_id=7)

        async def on_accept(order):
            return order

        scheduler = OfferScheduler(alert, on_accept, on_resolved=alert.forget)
        eligible = Eligibility(is_online=True, has_current_order=False, dues_blocked=False)
        orders = [make_order(f"O{i}") for i in range(20)]

        for order in orders[:-1]:
            await scheduler.maybe_offer(SimpleNamespace(candidates=lambda o=order: [o]), eligible)
            scheduler.decline()
        await scheduler.maybe_offer(SimpleNamespace(candidates=lambda: [orders[-1]]), eligible)
        await scheduler.accept()

        assert len(bot.sent) == len(orders)
        assert all(alert.message_id(order.id) is None for order in orders)
        await scheduler.close()


class TestAdapters:
    async def test_photo_capture_takes_largest_size(self) -> None:
        message = SimpleNamespace(photo=[SimpleNamespace(file_id="small"), SimpleNamespace(file_id="large")])
        result = await TelegramPhotoCapture(message).capture()
        assert result.captured
        assert result.file_id == "large"

    async def test_message_without_photo_is_not_captured(self) -> None:
        result = await TelegramPhotoCapture(SimpleNamespace(photo=None)).capture()
        assert not result.captured

    async def test_cash_confirmation(self) -> None:
        result = await CashCollectionConfirm().confirm()
        assert result.confirmed

    def test_escape_markdown(self) -> None:
        assert escape_markdown("ORD_1 *fragile*") == "ORD\\_1 \\*fragile\\*"

    def test_escape_markdown_keeps_brackets_and_parens(self) -> None:
        assert escape_markdown("Gate (3) [B]") == "Gate (3) \\[B]"
        assert escape_markdown("C:\\tmp") == "C:\\tmp"


class TestStepKeyboard:
    def test_step_button_carries_expected_status(self) -> None:
        order = make_order("O1", status=OrderStatus.ACCEPTED)
        assert "step:accepted:pickup_reached" in _callback_data(get_step_kb(order))

    def test_pickup_checklist_buttons(self) -> None:
        order = make_order("O1", status=OrderStatus.PICKUP_REACHED)
        markup = get_step_kb(order, frozenset({ChecklistItem.ITEMS_VERIFIED}))

        data = _callback_data(markup)
        assert "check:items_verified" in data
        assert "step:pickup_reached:pickup_complete" in data
        assert markup.inline_keyboard[0][0].text.startswith("✅")

    def test_cash_order_has_payment_button(self) -> None:
        order = make_order("O1", cod=True, status=OrderStatus.CUSTOMER_REACHED)
        data = _callback_data(get_step_kb(order, missing=("payment_collected",)))
        assert "pay:confirm" in data
        assert "order:locked" in data
        assert "order:complete" not in data

    def test_pickup_step_locked_until_checklist_done(self) -> None:
        order = make_order("O1", status=OrderStatus.PICKUP_REACHED)

        locked = _callback_data(get_step_kb(order, missing=("pickup_photo",)))
        assert "order:locked" in locked
        assert "step:pickup_reached:pickup_complete" not in locked

        ready = _callback_data(get_step_kb(order))
        assert "step:pickup_reached:pickup_complete" in ready
        assert "order:locked" not in ready

    def test_paid_cash_order_can_complete(self) -> None:
        order = make_order("O1", cod=True, status=OrderStatus.CUSTOMER_REACHED, payment_processed=True)
        data = _callback_data(get_step_kb(order))
        assert "pay:done" in data
        assert "order:complete" in data

    def test_offer_keyboard(self) -> None:
        assert _callback_data(get_offer_kb("X")) == ["offer:accept:X", "offer:decline:X"]


class TestDescribeEvent:
    def test_callback_action_is_prefix(self) -> None:
        event = CallbackQuery(
            id="1",
            from_user=User(id=7, is_bot=False, first_name="Ravi"),
            chat_instance="ci",
            data="offer:accept:ORD-001",
        )
        assert describe_event(event) == (7, "offer", "offer:accept:ORD-001")

    def test_command_message(self) -> None:
        event = Message(
            message_id=1,
            date=datetime(2026, 3, 10, tzinfo=timezone.utc),
            chat=Chat(id=7, type="private"),
            from_user=User(id=7, is_bot=False, first_name="Ravi"),
            text="/start hello",
        )
        assert describe_event(event) == (7, "/start", "/start hello")
