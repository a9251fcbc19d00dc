"""Tests for the courier session: offer feed, order flow, wallet and dues at the boundary."""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from database.models import OrderStatus
from services.courier_service import CourierSession
from services.errors import InsufficientBalanceError, PreconditionNotMetError, StaleTransitionError
from services.interfaces import CaptureResult, PaymentConfirmation
from services.lifecycle import ChecklistItem
from services.order_pool import demo_pool
from factories import TZ, RecordingAlert, completed_on


def _pick(order_id):
    def chooser(orders):
        return next((o for o in orders if o.id == order_id), orders[0])
    return chooser


async def _make_session(store, clock, *, alert=None, worker_id="w1", **options) -> CourierSession:
    options.setdefault("network_delay", 0)
    options.setdefault("first_offer_delay", 0.01)
    options.setdefault("next_offer_delay", 0.01)
    return await CourierSession.open(
        worker_id,
        store,
        demo_pool(mint_ids=False),
        alert or RecordingAlert(),
        tz=TZ,
        clock=clock,
        **options,
    )


async def _wait_for_offer(courier: CourierSession, timeout: float = 1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while courier.offer is None:
        if loop.time() > deadline:
            raise AssertionError("no offer surfaced")
        await asyncio.sleep(0.01)
    return courier.offer


async def _accepted(courier: CourierSession):
    await courier.go_online()
    await _wait_for_offer(courier)
    order, error = await courier.accept_offer()
    assert error is None
    return order


class TestOfferFeed:
    async def test_going_online_surfaces_offer(self, store, clock) -> None:
        alert = RecordingAlert()
        courier = await _make_session(store, clock, alert=alert)
        try:
            eligibility = await courier.go_online()
            assert eligibility.eligible

            presentation = await _wait_for_offer(courier)
            assert alert.sent == [presentation.order.id]
        finally:
            await courier.close()

    async def test_offline_courier_gets_no_offer(self, store, clock) -> None:
        alert = RecordingAlert()
        courier = await _make_session(store, clock, alert=alert)
        try:
            assert await courier.request_offer() is None
            assert alert.sent == []
        finally:
            await courier.close()

    async def test_going_offline_declines_open_offer(self, store, clock) -> None:
        courier = await _make_session(store, clock)
        try:
            await courier.go_online()
            presentation = await _wait_for_offer(courier)

            await courier.go_offline()
            assert presentation.resolved
            assert courier.offer is None
            assert await courier.accept_offer() == (None, None)
        finally:
            await courier.close()

    async def test_decline_brings_next_offer(self, store, clock) -> None:
        alert = RecordingAlert()
        courier = await _make_session(store, clock, alert=alert)
        try:
            await courier.go_online()
            await _wait_for_offer(courier)

            assert courier.decline_offer() is True
            await _wait_for_offer(courier)
            assert len(alert.sent) == 2
        finally:
            await courier.close()

    async def test_accept_after_expiry_does_nothing(self, store, clock) -> None:
        expired = []

        async def on_expired(order):
            expired.append(order.id)

        courier = await _make_session(
            store, clock, offer_timeout=0.05, next_offer_delay=10, on_expired=on_expired
        )
        try:
            await courier.go_online()
            presentation = await _wait_for_offer(courier)
            await asyncio.sleep(0.15)

            assert expired == [presentation.order.id]
            assert await courier.accept_offer() == (None, None)
            assert courier.current_order is None
        finally:
            await courier.close()

    async def test_no_second_offer_while_accept_in_flight(self, store, clock) -> None:
        courier = await _make_session(store, clock, network_delay=0.2)
        try:
            await courier.go_online()
            presentation = await _wait_for_offer(courier)

            task = asyncio.ensure_future(courier.accept_offer())
            await asyncio.sleep(0.05)
            assert courier.current_order is not None
            assert await courier.request_offer() is None
            assert courier.offer is None

            order, error = await task
            assert error is None
            assert order.id == presentation.order.id
        finally:
            await courier.close()


class TestOrderFlow:
    async def test_cash_order_end_to_end(self, store, clock) -> None:
        courier = await _make_session(store, clock, chooser=_pick("ORD-002"))
        try:
            order = await _accepted(courier)
            assert order.id == "ORD-002"
            assert courier.offer is None

            _, error = await courier.reach_pickup()
            assert error is None
            courier.set_check(ChecklistItem.ITEMS_VERIFIED)
            courier.set_check(ChecklistItem.ORDER_ID_CONFIRMED)
            courier.record_pickup_photo(CaptureResult(captured=True, file_id="p1"))
            assert (await courier.complete_pickup())[1] is None
            assert (await courier.reach_customer())[1] is None

            courier.record_delivery_photo(CaptureResult(captured=True, file_id="d1"))
            _, error = await courier.complete_order()
            assert isinstance(error, PreconditionNotMetError)
            assert error.missing == ("payment_collected",)

            paid, error = await courier.confirm_payment(PaymentConfirmation(confirmed=True))
            assert (paid, error) == (True, None)
            completed, error = await courier.complete_order()

            assert error is None
            assert completed.status == OrderStatus.COMPLETED
            assert courier.ledger.balance == Decimal("125")
            assert courier.current_order is None
            assert [o.id for o in courier.order_history] == ["ORD-002"]
        finally:
            await courier.close()

    async def test_rejections_come_back_as_errors(self, store, clock) -> None:
        courier = await _make_session(store, clock)
        try:
            await _accepted(courier)

            order, error = await courier.reach_customer()
            assert order is None
            assert isinstance(error, StaleTransitionError)
            assert error.user_message
            assert courier.current_order.status == OrderStatus.ACCEPTED

            result, error = courier.set_check(ChecklistItem.DELIVERY_PHOTO)
            assert result is None
            assert error is not None
        finally:
            await courier.close()

    async def test_accepted_order_leaves_pool(self, store, clock) -> None:
        courier = await _make_session(store, clock, chooser=_pick("ORD-004"))
        try:
            await _accepted(courier)
            assert "ORD-004" not in {o.id for o in courier._pool.candidates()}
        finally:
            await courier.close()

    async def test_reopened_session_resumes_order(self, store, clock) -> None:
        courier = await _make_session(store, clock, chooser=_pick("ORD-001"))
        await _accepted(courier)
        await courier.reach_pickup()
        await courier.close()

        reopened = await _make_session(store, clock)
        try:
            assert reopened.current_order.id == "ORD-001"
            assert reopened.next_checkpoint() == OrderStatus.PICKUP_COMPLETE
            assert reopened.checklist == frozenset()
        finally:
            await reopened.close()

    async def test_status_changes_before_network_delay(self, store, clock) -> None:
        courier = await _make_session(store, clock)
        await _accepted(courier)
        courier._network_delay = 0.2
        try:
            task = asyncio.ensure_future(courier.reach_pickup())
            await asyncio.sleep(0.05)
            assert courier.machine.status == OrderStatus.PICKUP_REACHED
            assert not task.done()
            assert (await task)[1] is None
        finally:
            await courier.close()


class TestWalletAndDues:
    async def test_transfer_more_than_balance(self, store, clock) -> None:
        await store.save("w1", {"balance": Decimal("50")})
        courier = await _make_session(store, clock)
        try:
            record, error = await courier.transfer(Decimal("80"), "courier@upi")
            assert record is None
            assert isinstance(error, InsufficientBalanceError)
            assert courier.ledger.balance == Decimal("50")

            record, error = await courier.transfer(Decimal("50"), "courier@upi")
            assert error is None
            assert courier.summary()["balance"] == Decimal("0")
        finally:
            await courier.close()

    async def test_blocked_worker_gets_offers_after_settling(self, store, clock) -> None:
        start = date(2026, 3, 1)
        history = [completed_on(start + timedelta(days=i), f"OLD-{i}") for i in range(9)]
        await store.save("w1", {"order_history": history})

        alert = RecordingAlert()
        courier = await _make_session(store, clock, alert=alert)
        try:
            eligibility = await courier.go_online()
            assert eligibility.dues_blocked
            assert courier.dues().total_due == Decimal("210")
            await asyncio.sleep(0.05)
            assert alert.sent == []

            dues = await courier.settle_dues()
            assert dues.unpaid_days == 0
            assert not dues.blocked
            await _wait_for_offer(courier)
            assert courier.summary()["settlement_watermark"] == date(2026, 3, 10)
        finally:
            await courier.close()

    async def test_memory_only_session(self, store, clock) -> None:
        courier = await _make_session(store, clock, worker_id=None)
        try:
            await _accepted(courier)
            assert courier.current_order is not None
            assert store.raw("w1") is None
        finally:
            await courier.close()


@pytest.mark.parametrize("amount", ["0", "-1", "NaN", "Infinity"])
async def test_invalid_transfer_amount(store, clock, amount) -> None:
    await store.save("w1", {"balance": Decimal("50")})
    courier = await _make_session(store, clock)
    try:
        record, error = await courier.transfer(Decimal(amount), "courier@upi")
        assert record is None
        assert error.user_message == "Сумма должна быть больше нуля"
    finally:
        await courier.close()
