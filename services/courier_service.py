"""
Сессия курьера: связывает машину заказа, кошелёк, сборы и ленту предложений.

Это граница компонента для хендлеров. Ожидаемые отказы (OrderFlowError)
не пробрасываются дальше: методы возвращают (result, error), как сервисы
заказов. Состояние в памяти меняется сразу, до записи в хранилище и до
имитации сетевой задержки: задержка только следует за изменением.
"""
from __future__ import annotations

import asyncio
import logging
import random
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from config import config
from database.models import OrderStatus
from services.dues import DuesGate, DuesState
from services.errors import OrderFlowError
from services.interfaces import CaptureResult, NotificationTrigger, PaymentConfirmation
from services.ledger import EarningsLedger
from services.lifecycle import ChecklistItem, OrderLifecycleMachine
from services.offers import OFFER_TIMEOUT_SECONDS, Eligibility, OfferPresentation, OfferScheduler
from services.order_pool import InMemoryOrderPool
from services.persistence import WorkerStore
from services.schemas import BankTransfer, Order

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CourierSession:
    def __init__(
        self,
        worker_id: Optional[str],
        store: WorkerStore,
        pool: InMemoryOrderPool,
        machine: OrderLifecycleMachine,
        ledger: EarningsLedger,
        dues_gate: DuesGate,
        notifier: NotificationTrigger,
        *,
        network_delay: float = 0.0,
        first_offer_delay: float = 5.0,
        next_offer_delay: float = 20.0,
        offer_timeout: float = OFFER_TIMEOUT_SECONDS,
        chooser: Callable[[Sequence[Order]], Order] = random.choice,
        on_expired: Optional[Callable[[Order], Awaitable[None]]] = None,
        on_resolved: Optional[Callable[[Order], None]] = None,
    ):
        self.worker_id = worker_id
        self._store = store
        self._pool = pool
        self.machine = machine
        self.ledger = ledger
        self.dues_gate = dues_gate
        self._network_delay = network_delay
        self._first_offer_delay = first_offer_delay
        self._next_offer_delay = next_offer_delay
        self._on_expired = on_expired
        self.scheduler = OfferScheduler(
            notifier,
            self._take_offer,
            timeout=offer_timeout,
            chooser=chooser,
            on_expired=self._offer_expired,
            on_resolved=on_resolved,
        )
        self._online = False
        self._feed_task: Optional[asyncio.Task] = None

    @classmethod
    async def open(
        cls,
        worker_id: Optional[str],
        store: WorkerStore,
        pool: InMemoryOrderPool,
        notifier: NotificationTrigger,
        *,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = _utcnow,
        **options: Any,
    ) -> "CourierSession":
        """Загрузить снимок курьера и собрать сессию."""
        tz = tz or config.worker_tz
        options.setdefault("network_delay", config.NETWORK_DELAY_SECONDS)
        options.setdefault("first_offer_delay", config.FIRST_OFFER_DELAY_SECONDS)
        options.setdefault("next_offer_delay", config.NEXT_OFFER_DELAY_SECONDS)

        snapshot = await store.load(worker_id)
        ledger = EarningsLedger(store, worker_id, snapshot, tz=tz, clock=clock)
        await ledger.roll_day()
        machine = await OrderLifecycleMachine.restore(store, worker_id, ledger, snapshot, clock=clock)
        dues_gate = DuesGate(
            store,
            worker_id,
            snapshot.settlement_watermark,
            tz=tz,
            charge_per_day=Decimal(config.DUES_CHARGE_PER_DAY),
            cap=config.DUES_WEEKLY_CAP,
            clock=clock,
        )
        logger.info(
            "Courier session opened worker=%s current=%s history=%s",
            worker_id, machine.status.value if machine.status else None, len(snapshot.order_history)
        )
        return cls(worker_id, store, pool, machine, ledger, dues_gate, notifier, **options)

    # -------------------- служебное --------------------

    async def _delay(self) -> None:
        if self._network_delay > 0:
            await asyncio.sleep(self._network_delay)

    async def _guard(self, action: str, coro: Awaitable[T]) -> tuple[Optional[T], Optional[OrderFlowError]]:
        try:
            return await coro, None
        except OrderFlowError as e:
            logger.warning("Action rejected worker=%s action=%s: %s", self.worker_id, action, e)
            return None, e

    def _guard_sync(self, action: str, fn: Callable[[], T]) -> tuple[Optional[T], Optional[OrderFlowError]]:
        try:
            return fn(), None
        except OrderFlowError as e:
            logger.warning("Action rejected worker=%s action=%s: %s", self.worker_id, action, e)
            return None, e

    # -------------------- чтение --------------------

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def current_order(self) -> Optional[Order]:
        return self.machine.current_order

    @property
    def order_history(self) -> tuple[Order, ...]:
        return self.machine.order_history

    @property
    def checklist(self) -> frozenset[ChecklistItem]:
        return self.machine.checklist

    @property
    def offer(self) -> Optional[OfferPresentation]:
        return self.scheduler.presentation

    def next_checkpoint(self) -> Optional[OrderStatus]:
        return self.machine.next_checkpoint()

    def dues(self) -> DuesState:
        return self.dues_gate.compute(self.machine.order_history)

    def eligibility(self) -> Eligibility:
        return Eligibility(
            is_online=self._online,
            has_current_order=self.machine.has_current_order,
            dues_blocked=self.dues().blocked,
        )

    def summary(self) -> dict[str, Any]:
        history = self.machine.order_history
        data = self.ledger.summary(history)
        data["dues"] = self.dues_gate.compute(history)
        data["settlement_watermark"] = self.dues_gate.settlement_watermark
        return data

    # -------------------- лента предложений --------------------

    def _schedule_offer(self, delay: float) -> None:
        current = asyncio.current_task()
        if self._feed_task is not None and self._feed_task is not current:
            self._feed_task.cancel()
        self._feed_task = asyncio.create_task(self._feed(delay))

    async def _feed(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if not self._online:
            return
        presentation = await self.request_offer()
        if presentation is None and self._online and not self.machine.has_current_order:
            if self.scheduler.presentation is None:
                self._schedule_offer(self._next_offer_delay)

    def _cancel_feed(self) -> None:
        if self._feed_task is not None:
            self._feed_task.cancel()
            self._feed_task = None

    async def go_online(self) -> Eligibility:
        self._online = True
        eligibility = self.eligibility()
        logger.info("Courier online worker=%s eligible=%s", self.worker_id, eligibility.eligible)
        if eligibility.eligible and self.scheduler.presentation is None:
            self._schedule_offer(self._first_offer_delay)
        return eligibility

    async def go_offline(self) -> None:
        self._online = False
        self._cancel_feed()
        self.scheduler.decline()
        logger.info("Courier offline worker=%s", self.worker_id)

    async def request_offer(self) -> Optional[OfferPresentation]:
        return await self.scheduler.maybe_offer(self._pool, self.eligibility())

    async def _take_offer(self, order: Order) -> Order:
        # Заказ становится текущим в том же шаге, что и снятие предложения:
        # пока идёт задержка, лента уже видит has_current_order
        accepted = await self.machine.accept(order)
        self._pool.mark_taken(order.id)
        await self._delay()
        return accepted

    async def _offer_expired(self, order: Order) -> None:
        if self._on_expired is not None:
            await self._on_expired(order)
        if self._online:
            self._schedule_offer(self._next_offer_delay)

    async def accept_offer(self) -> tuple[Optional[Order], Optional[OrderFlowError]]:
        """(None, None) — предложение уже разрешено (отказ или истекло время)."""
        return await self._guard("accept_offer", self.scheduler.accept())

    def decline_offer(self) -> bool:
        declined = self.scheduler.decline()
        if declined and self._online:
            self._schedule_offer(self._next_offer_delay)
        return declined

    # -------------------- заказ --------------------

    def set_check(self, item: ChecklistItem, done: bool = True):
        return self._guard_sync("set_check", lambda: self.machine.set_check(item, done))

    def toggle_check(self, item: ChecklistItem):
        return self._guard_sync("toggle_check", lambda: self.machine.toggle_check(item))

    def record_pickup_photo(self, capture: CaptureResult):
        return self._guard_sync("pickup_photo", lambda: self.machine.record_pickup_photo(capture))

    def record_delivery_photo(self, capture: CaptureResult):
        return self._guard_sync("delivery_photo", lambda: self.machine.record_delivery_proof(capture))

    async def advance(
        self, expected: OrderStatus, next_status: OrderStatus
    ) -> tuple[Optional[Order], Optional[OrderFlowError]]:
        async def run() -> Order:
            order = await self.machine.advance(expected, next_status)
            await self._delay()
            return order

        return await self._guard(f"advance:{next_status.value}", run())

    async def reach_pickup(self):
        return await self.advance(OrderStatus.ACCEPTED, OrderStatus.PICKUP_REACHED)

    async def complete_pickup(self):
        return await self.advance(OrderStatus.PICKUP_REACHED, OrderStatus.PICKUP_COMPLETE)

    async def reach_customer(self):
        return await self.advance(OrderStatus.PICKUP_COMPLETE, OrderStatus.CUSTOMER_REACHED)

    async def confirm_payment(self, confirmation: PaymentConfirmation):
        return await self._guard("confirm_payment", self.machine.confirm_payment(confirmation))

    async def complete_order(self) -> tuple[Optional[Order], Optional[OrderFlowError]]:
        async def run() -> Order:
            completed = await self.machine.complete_and_settle()
            await self._delay()
            return completed

        completed, error = await self._guard("complete_order", run())
        if completed is not None and self._online:
            self._schedule_offer(self._next_offer_delay)
        return completed, error

    # -------------------- деньги --------------------

    async def transfer(
        self, amount: Decimal, destination: str
    ) -> tuple[Optional[BankTransfer], Optional[OrderFlowError]]:
        async def run() -> BankTransfer:
            record = await self.ledger.transfer(amount, destination)
            await self._delay()
            return record

        return await self._guard("transfer", run())

    async def settle_dues(self, day: Optional[date] = None) -> DuesState:
        """Оплатить сборы по day (по умолчанию — сегодня) и вернуть пересчитанный долг."""
        await self.dues_gate.settle_up_to(day)
        dues = self.dues()
        if not dues.blocked and self._online and self.scheduler.presentation is None:
            if not self.machine.has_current_order:
                self._schedule_offer(self._first_offer_delay)
        return dues

    async def close(self) -> None:
        self._online = False
        self._cancel_feed()
        await self.scheduler.close()
