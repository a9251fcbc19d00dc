"""
Жизненный цикл текущего заказа курьера.

ACCEPTED -> PICKUP_REACHED -> PICKUP_COMPLETE -> CUSTOMER_REACHED -> COMPLETED,
без ветвлений и откатов. Оплата (payment_processed) — отдельный флаг заказа,
для наложенного платежа обязателен перед завершением.

Машина — единственный источник истины о статусе: экран передаёт статус,
который считает текущим, и при расхождении получает StaleTransitionError.
Изменение в памяти происходит синхронно до любого await, запись в хранилище —
следом в том же шаге.
"""
from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from database.models import OrderStatus
from services.errors import InvalidTransitionError, PreconditionNotMetError, StaleTransitionError
from services.interfaces import CaptureResult, PaymentConfirmation
from services.ledger import EarningsLedger
from services.persistence import WorkerStore
from services.schemas import Order, WorkerSnapshot

logger = logging.getLogger(__name__)

CHECKPOINTS: tuple[OrderStatus, ...] = (
    OrderStatus.ACCEPTED,
    OrderStatus.PICKUP_REACHED,
    OrderStatus.PICKUP_COMPLETE,
    OrderStatus.CUSTOMER_REACHED,
    OrderStatus.COMPLETED,
)
_NEXT: dict[OrderStatus, OrderStatus] = dict(zip(CHECKPOINTS, CHECKPOINTS[1:]))


class ChecklistItem(str, enum.Enum):
    ITEMS_VERIFIED = "items_verified"
    ORDER_ID_CONFIRMED = "order_id_confirmed"
    PICKUP_PHOTO = "pickup_photo"
    DELIVERY_PHOTO = "delivery_photo"


# Пункты, обязательные для выхода из статуса
_REQUIRED: dict[OrderStatus, tuple[ChecklistItem, ...]] = {
    OrderStatus.PICKUP_REACHED: (
        ChecklistItem.ITEMS_VERIFIED,
        ChecklistItem.ORDER_ID_CONFIRMED,
        ChecklistItem.PICKUP_PHOTO,
    ),
    OrderStatus.CUSTOMER_REACHED: (ChecklistItem.DELIVERY_PHOTO,),
}
_ITEM_STATUS: dict[ChecklistItem, OrderStatus] = {
    item: status for status, items in _REQUIRED.items() for item in items
}

PAYMENT_COLLECTED = "payment_collected"

MISSING_MESSAGES: dict[str, str] = {
    ChecklistItem.ITEMS_VERIFIED.value: "проверьте товары",
    ChecklistItem.ORDER_ID_CONFIRMED.value: "сверьте номер заказа",
    ChecklistItem.PICKUP_PHOTO.value: "сфотографируйте заказ",
    ChecklistItem.DELIVERY_PHOTO.value: "сфотографируйте вручение",
    PAYMENT_COLLECTED: "примите оплату наличными",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderLifecycleMachine:
    def __init__(
        self,
        store: WorkerStore,
        worker_id: Optional[str],
        ledger: EarningsLedger,
        *,
        history: Optional[list[Order]] = None,
        current: Optional[Order] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._worker_id = worker_id
        self._ledger = ledger
        self._clock = clock
        self._history: list[Order] = list(history or [])
        self._current: Optional[Order] = current
        self._checks: set[ChecklistItem] = set()

    @classmethod
    async def restore(
        cls,
        store: WorkerStore,
        worker_id: Optional[str],
        ledger: EarningsLedger,
        snapshot: WorkerSnapshot,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> "OrderLifecycleMachine":
        """Поднять машину из снимка. Некорректный текущий заказ сбрасывается."""
        current = snapshot.current_order
        if current is not None:
            completed_ids = {o.id for o in snapshot.order_history}
            if current.status in (OrderStatus.PENDING, OrderStatus.COMPLETED) or current.id in completed_ids:
                logger.error(
                    "Discarding invalid current order worker=%s order=%s status=%s",
                    worker_id, current.id, current.status.value
                )
                current = None
                await store.save(worker_id, {"current_order": None})
        return cls(
            store,
            worker_id,
            ledger,
            history=snapshot.order_history,
            current=current,
            clock=clock,
        )

    # -------------------- чтение --------------------

    @property
    def current_order(self) -> Optional[Order]:
        return self._current.model_copy(deep=True) if self._current else None

    @property
    def has_current_order(self) -> bool:
        return self._current is not None

    @property
    def status(self) -> Optional[OrderStatus]:
        return self._current.status if self._current else None

    @property
    def order_history(self) -> tuple[Order, ...]:
        return tuple(o.model_copy(deep=True) for o in self._history)

    @property
    def checklist(self) -> frozenset[ChecklistItem]:
        return frozenset(self._checks)

    def next_checkpoint(self) -> Optional[OrderStatus]:
        """Следующий шаг для текущего заказа — по нему экран восстанавливает своё место."""
        if self._current is None:
            return None
        return _NEXT.get(self._current.status)

    def missing_requirements(self) -> tuple[str, ...]:
        """Что ещё не выполнено для выхода из текущего статуса."""
        if self._current is None:
            return ()
        status = self._current.status
        missing = [item.value for item in _REQUIRED.get(status, ()) if item not in self._checks]
        if (
            status == OrderStatus.CUSTOMER_REACHED
            and self._current.is_cash_on_delivery
            and not self._current.payment_processed
        ):
            missing.append(PAYMENT_COLLECTED)
        return tuple(missing)

    # -------------------- чек-лист --------------------

    def _require_current(self) -> Order:
        if self._current is None:
            raise InvalidTransitionError("no current order", "Нет активного заказа")
        return self._current

    def set_check(self, item: ChecklistItem, done: bool = True) -> frozenset[ChecklistItem]:
        current = self._require_current()
        if current.status != _ITEM_STATUS[item]:
            raise InvalidTransitionError(
                f"check {item.value} does not apply to status {current.status.value}"
            )
        if done:
            self._checks.add(item)
        else:
            self._checks.discard(item)
        return self.checklist

    def toggle_check(self, item: ChecklistItem) -> frozenset[ChecklistItem]:
        return self.set_check(item, item not in self._checks)

    def record_pickup_photo(self, capture: CaptureResult) -> bool:
        if capture.captured:
            self.set_check(ChecklistItem.PICKUP_PHOTO)
        return capture.captured

    def record_delivery_proof(self, capture: CaptureResult) -> bool:
        if capture.captured:
            self.set_check(ChecklistItem.DELIVERY_PHOTO)
        return capture.captured

    # -------------------- переходы --------------------

    async def _persist(self, **slices: Any) -> bool:
        return await self._store.save(self._worker_id, slices)

    def _check_requirements(self) -> None:
        missing = self.missing_requirements()
        if missing:
            hint = ", ".join(MISSING_MESSAGES.get(m, m) for m in missing)
            raise PreconditionNotMetError(missing, f"Сначала {hint}")

    async def accept(self, offer: Order) -> Order:
        """
        Принять предложение и сделать его текущим заказом.

        Raises:
            InvalidTransitionError: уже есть текущий заказ, либо предложение уже было принято
        """
        if self._current is not None:
            raise InvalidTransitionError(
                f"order {self._current.id} is still active",
                "Сначала завершите текущий заказ"
            )
        if offer.status != OrderStatus.PENDING:
            raise InvalidTransitionError(f"offer {offer.id} has status {offer.status.value}")
        if any(o.id == offer.id for o in self._history):
            raise InvalidTransitionError(f"order {offer.id} is already in history")

        order = offer.model_copy(deep=True)
        order.stamp(OrderStatus.ACCEPTED, self._clock())
        self._current = order
        self._checks.clear()
        logger.info("Order accepted worker=%s order=%s", self._worker_id, order.id)

        await self._persist(current_order=order.model_copy(deep=True))
        return order.model_copy(deep=True)

    async def advance(self, expected: OrderStatus, next_status: OrderStatus) -> Order:
        """
        Перейти к следующей контрольной точке.

        Raises:
            InvalidTransitionError: нет заказа или переход не следующий по порядку
            StaleTransitionError: текущий статус не совпадает с expected
            PreconditionNotMetError: не выполнен чек-лист шага
        """
        current = self._require_current()
        if current.status != expected:
            raise StaleTransitionError(expected, current.status)
        if next_status == OrderStatus.COMPLETED or _NEXT.get(expected) != next_status:
            raise InvalidTransitionError(
                f"transition {expected.value} -> {next_status.value} is not allowed"
            )
        self._check_requirements()

        current.stamp(next_status, self._clock())
        self._checks.clear()
        logger.info(
            "Order transition worker=%s order=%s %s -> %s",
            self._worker_id, current.id, expected.value, next_status.value
        )

        await self._persist(current_order=current.model_copy(deep=True))
        return current.model_copy(deep=True)

    async def confirm_payment(self, confirmation: PaymentConfirmation) -> bool:
        """Отметить заказ оплаченным (наличные приняты). Повторный вызов ничего не меняет."""
        current = self._require_current()
        if current.status != OrderStatus.CUSTOMER_REACHED:
            raise InvalidTransitionError(
                f"payment can not be confirmed in status {current.status.value}",
                "Оплата принимается у получателя"
            )
        if not confirmation.confirmed:
            return False
        if current.payment_processed:
            return True

        current.payment_processed = True
        current.paid_at = self._clock()
        logger.info("Payment confirmed worker=%s order=%s", self._worker_id, current.id)

        await self._persist(current_order=current.model_copy(deep=True))
        return True

    async def complete_and_settle(self) -> Order:
        """
        Завершить заказ: перенести в историю, зачислить заработок, очистить текущий.

        Все изменения сохраняются одной записью.
        """
        current = self._require_current()
        if current.status != OrderStatus.CUSTOMER_REACHED:
            raise InvalidTransitionError(
                f"order {current.id} can not be completed from {current.status.value}"
            )
        self._check_requirements()

        completed = current.model_copy(deep=True)
        completed.stamp(OrderStatus.COMPLETED, self._clock())
        self._history.append(completed)
        self._current = None
        self._checks.clear()
        ledger_slices = self._ledger.credit(completed)
        logger.info(
            "Order completed worker=%s order=%s earnings=%s",
            self._worker_id, completed.id, completed.partner_earnings
        )

        await self._persist(
            order_history=[o.model_copy(deep=True) for o in self._history],
            current_order=None,
            **ledger_slices,
        )
        return completed.model_copy(deep=True)
