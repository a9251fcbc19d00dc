"""
Кошелёк курьера: баланс, заработок за сегодня, переводы на банковский счёт.

Баланс растёт только на partner_earnings завершённого заказа (credit вызывает
OrderLifecycleMachine) и уменьшается только переводом, не превышающим баланс.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional

from services.errors import InsufficientBalanceError, InvalidAmountError
from services.persistence import WorkerStore
from services.schemas import BankTransfer, Order, WorkerSnapshot

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EarningsLedger:
    def __init__(
        self,
        store: WorkerStore,
        worker_id: Optional[str],
        snapshot: WorkerSnapshot,
        *,
        tz: tzinfo,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._worker_id = worker_id
        self._tz = tz
        self._clock = clock

        self._balance = snapshot.balance
        self._total_today = snapshot.total_earnings_today
        self._completed_today = snapshot.completed_orders_today
        self._counters_date = snapshot.counters_date
        self._last_transfer = snapshot.last_bank_transfer
        self._transfers = list(snapshot.transfer_history)

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def total_earnings_today(self) -> Decimal:
        self._roll_day()
        return self._total_today

    @property
    def completed_orders_today(self) -> int:
        self._roll_day()
        return self._completed_today

    @property
    def last_bank_transfer(self) -> Optional[BankTransfer]:
        return self._last_transfer

    @property
    def transfer_history(self) -> tuple[BankTransfer, ...]:
        return tuple(self._transfers)

    def _today(self) -> date:
        return self._clock().astimezone(self._tz).date()

    def _roll_day(self) -> bool:
        """Обнулить счётчики дня, если локальная дата курьера сменилась."""
        today = self._today()
        if self._counters_date == today:
            return False
        if self._counters_date is not None:
            logger.info(
                "Daily counters reset worker=%s %s -> %s", self._worker_id, self._counters_date, today
            )
        self._counters_date = today
        self._total_today = Decimal("0")
        self._completed_today = 0
        return True

    def _counter_slices(self) -> dict[str, Any]:
        return {
            "total_earnings_today": self._total_today,
            "completed_orders_today": self._completed_today,
            "counters_date": self._counters_date,
        }

    async def roll_day(self) -> None:
        """Проверить смену дня и сохранить обнулённые счётчики."""
        if self._roll_day():
            await self._store.save(self._worker_id, self._counter_slices())

    def credit(self, order: Order) -> dict[str, Any]:
        """
        Зачислить заработок за завершённый заказ.

        Вызывается только из OrderLifecycleMachine.complete_and_settle, которая
        сохраняет возвращённые срезы одной записью вместе с историей.
        """
        self._roll_day()
        earned = order.partner_earnings
        self._balance += earned
        self._total_today += earned
        self._completed_today += 1
        logger.info(
            "Ledger credit worker=%s order=%s amount=%s balance=%s",
            self._worker_id, order.id, earned, self._balance
        )
        return {"balance": self._balance, **self._counter_slices()}

    async def transfer(self, amount: Decimal, destination: str) -> BankTransfer:
        """
        Перевести сумму с баланса на банковский счёт (имитация).

        Raises:
            InvalidAmountError: amount <= 0 или не число
            InsufficientBalanceError: amount больше баланса; баланс не меняется
        """
        if not isinstance(amount, Decimal):
            try:
                amount = Decimal(str(amount))
            except InvalidOperation:
                raise InvalidAmountError(f"transfer amount {amount!r} is not a number") from None
        if not amount.is_finite():
            raise InvalidAmountError(f"transfer amount {amount} is not finite")
        if amount <= 0:
            raise InvalidAmountError(f"transfer amount {amount} must be positive")
        if amount > self._balance:
            raise InsufficientBalanceError(amount, self._balance)

        record = BankTransfer(amount=amount, bank_account=destination, transferred_at=self._clock())
        self._balance -= amount
        self._last_transfer = record
        self._transfers.append(record)
        logger.info(
            "Bank transfer worker=%s amount=%s to=%s balance=%s",
            self._worker_id, amount, destination, self._balance
        )
        await self._store.save(
            self._worker_id,
            {
                "balance": self._balance,
                "last_bank_transfer": record,
                "transfer_history": list(self._transfers),
            },
        )
        return record

    def summary(self, history: Iterable[Order] = ()) -> dict[str, Any]:
        """Сводка для экрана заработка."""
        history = list(history)
        return {
            "balance": self._balance,
            "total_earnings_today": self.total_earnings_today,
            "completed_orders_today": self.completed_orders_today,
            "lifetime_earnings": sum((o.partner_earnings for o in history), Decimal("0")),
            "lifetime_orders": len(history),
            "last_bank_transfer": self._last_transfer,
        }
