"""Tests for timed offers and the demo order pool."""

import asyncio

import pytest

from services.offers import Eligibility, OfferResolution, OfferScheduler, remaining
from services.order_pool import InMemoryOrderPool, demo_pool
from factories import RecordingAlert, make_order

ELIGIBLE = Eligibility(is_online=True, has_current_order=False, dues_blocked=False)


class _StaticPool:
    def __init__(self, *orders):
        self.orders = list(orders)

    def candidates(self):
        return list(self.orders)


def _make_scheduler(alert=None, *, timeout=30.0, accepted=None, expired=None, **kwargs):
    accepted = accepted if accepted is not None else []

    async def on_accept(order):
        accepted.append(order.id)
        return order

    async def on_expired(order):
        if expired is not None:
            expired.append(order.id)

    return OfferScheduler(
        alert or RecordingAlert(),
        on_accept,
        timeout=timeout,
        on_expired=on_expired,
        **kwargs,
    )


class TestRemaining:
    def test_counts_down_from_shown_at(self) -> None:
        assert remaining(100.0, 110.0) == 20.0

    def test_never_negative(self) -> None:
        assert remaining(100.0, 200.0) == 0.0


class TestEligibility:
    @pytest.mark.parametrize(
        "online, has_order, blocked, expected",
        [
            (True, False, False, True),
            (False, False, False, False),
            (True, True, False, False),
            (True, False, True, False),
        ],
    )
    def test_eligible(self, online, has_order, blocked, expected) -> None:
        assert Eligibility(online, has_order, blocked).eligible is expected


class TestMaybeOffer:
    async def test_surfaces_offer_and_notifies(self) -> None:
        alert = RecordingAlert()
        scheduler = _make_scheduler(alert)

        presentation = await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)

        assert presentation.order.id == "O1"
        assert alert.sent == ["O1"]
        assert scheduler.presentation is presentation
        assert 29.0 < scheduler.remaining() <= 30.0
        await scheduler.close()

    async def test_not_eligible_returns_none(self) -> None:
        alert = RecordingAlert()
        scheduler = _make_scheduler(alert)
        offline = Eligibility(is_online=False, has_current_order=False, dues_blocked=False)

        assert await scheduler.maybe_offer(_StaticPool(make_order("O1")), offline) is None
        assert alert.sent == []

    async def test_second_offer_waits_for_first(self) -> None:
        scheduler = _make_scheduler()
        pool = _StaticPool(make_order("O1"), make_order("O2"))

        first = await scheduler.maybe_offer(pool, ELIGIBLE)
        assert await scheduler.maybe_offer(pool, ELIGIBLE) is None
        assert scheduler.presentation is first
        await scheduler.close()

    async def test_empty_pool_returns_none(self) -> None:
        scheduler = _make_scheduler()
        assert await scheduler.maybe_offer(_StaticPool(), ELIGIBLE) is None

    async def test_chooser_picks_candidate(self) -> None:
        scheduler = _make_scheduler(chooser=lambda orders: orders[-1])
        pool = _StaticPool(make_order("O1"), make_order("O2"))

        presentation = await scheduler.maybe_offer(pool, ELIGIBLE)
        assert presentation.order.id == "O2"
        await scheduler.close()

    async def test_notifier_failure_is_logged(self, caplog) -> None:
        scheduler = _make_scheduler(RecordingAlert(fail=True))

        presentation = await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)
        assert presentation is not None
        assert presentation.handle is not None
        assert "Notification failed" in caplog.text
        await scheduler.close()

    async def test_decline_during_notification_skips_timer(self) -> None:
        holder = {}

        class DecliningAlert:
            async def trigger(self, order):
                holder["scheduler"].decline()

        scheduler = _make_scheduler(DecliningAlert())
        holder["scheduler"] = scheduler

        presentation = await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)
        assert presentation.resolution == OfferResolution.DECLINED
        assert presentation.handle is None
        assert scheduler.presentation is None


class TestResolution:
    async def test_accept_hands_order_over(self) -> None:
        accepted = []
        scheduler = _make_scheduler(accepted=accepted)
        presentation = await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)

        order = await scheduler.accept()
        assert order.id == "O1"
        assert accepted == ["O1"]
        assert presentation.resolution == OfferResolution.ACCEPTED
        assert presentation.handle.cancelled()
        assert scheduler.presentation is None

    async def test_decline_is_idempotent(self) -> None:
        scheduler = _make_scheduler()
        await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)

        assert scheduler.decline() is True
        assert scheduler.decline() is False
        assert await scheduler.accept() is None

    async def test_offer_expires_after_timeout(self) -> None:
        expired = []
        scheduler = _make_scheduler(timeout=0.05, expired=expired)
        presentation = await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)

        await asyncio.sleep(0.15)

        assert presentation.resolution == OfferResolution.EXPIRED
        assert expired == ["O1"]
        assert scheduler.presentation is None
        assert await scheduler.accept() is None

    async def test_deadline_then_accept(self) -> None:
        accepted, expired = [], []
        scheduler = _make_scheduler(accepted=accepted, expired=expired)
        presentation = await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)

        scheduler._on_deadline(presentation)
        assert await scheduler.accept() is None
        await asyncio.sleep(0)

        assert accepted == []
        assert expired == ["O1"]
        assert presentation.resolution == OfferResolution.EXPIRED

    async def test_accept_then_deadline(self) -> None:
        accepted, expired = [], []
        scheduler = _make_scheduler(accepted=accepted, expired=expired)
        presentation = await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)

        await scheduler.accept()
        scheduler._on_deadline(presentation)
        await asyncio.sleep(0)

        assert accepted == ["O1"]
        assert expired == []
        assert presentation.resolution == OfferResolution.ACCEPTED

    async def test_new_offer_after_resolution(self) -> None:
        scheduler = _make_scheduler()
        pool = _StaticPool(make_order("O1"))
        await scheduler.maybe_offer(pool, ELIGIBLE)
        scheduler.decline()

        assert await scheduler.maybe_offer(pool, ELIGIBLE) is not None
        await scheduler.close()

    async def test_resolved_hook_skips_expiry(self) -> None:
        resolved = []
        scheduler = _make_scheduler(timeout=0.05, on_resolved=lambda order: resolved.append(order.id))

        await scheduler.maybe_offer(_StaticPool(make_order("O1")), ELIGIBLE)
        await scheduler.accept()
        await scheduler.maybe_offer(_StaticPool(make_order("O2")), ELIGIBLE)
        scheduler.decline()
        await scheduler.maybe_offer(_StaticPool(make_order("O3")), ELIGIBLE)
        await asyncio.sleep(0.15)

        assert resolved == ["O1", "O2"]


class TestOrderPool:
    def test_demo_pool_has_route_orders(self) -> None:
        pool = demo_pool(mint_ids=False)
        orders = {o.id: o for o in pool.candidates()}

        assert sorted(orders) == ["ORD-001", "ORD-002", "ORD-003", "ORD-004", "ORD-005"]
        assert orders["ORD-002"].is_cash_on_delivery
        assert orders["ORD-001"].order_time is not None
        assert pool.routes() == ["commercial-brigade", "indiranagar-whitefield", "koramangala-hsr"]

    def test_minted_ids_are_unique(self) -> None:
        pool = demo_pool()
        first = {o.id for o in pool.candidates()}
        second = {o.id for o in pool.candidates()}

        assert len(first) == 5
        assert first.isdisjoint(second)
        assert all(order_id.startswith("ORD-00") for order_id in first)

    def test_taken_template_is_not_offered_again(self) -> None:
        pool = demo_pool(mint_ids=False)
        pool.mark_taken("ORD-003")
        assert "ORD-003" not in {o.id for o in pool.candidates()}

    def test_orders_by_route(self) -> None:
        pool = InMemoryOrderPool(
            [
                {**make_order("A").to_record(), "route": "north"},
                {**make_order("B").to_record(), "route": "south"},
            ],
            mint_ids=False,
        )
        assert [o.id for o in pool.orders_by_route("south")] == ["B"]
