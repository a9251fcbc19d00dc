"""
Сборы платформы: сколько дней с выполненными заказами не оплачено.

Считаются различные локальные даты completed_at строго после даты оплаты
(settlement_watermark). К оплате — не больше DUES_WEEKLY_CAP дней по
DUES_CHARGE_PER_DAY; больше DUES_WEEKLY_CAP неоплаченных дней — новые
заказы не предлагаются. Значение не кешируется, считается при каждом чтении.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Callable, Iterable, Optional

from services.persistence import WorkerStore
from services.schemas import Order

logger = logging.getLogger(__name__)

DEFAULT_CHARGE_PER_DAY = Decimal("30")
DEFAULT_WEEKLY_CAP = 7


@dataclass(frozen=True, slots=True)
class DuesState:
    unpaid_days: int
    total_due: Decimal
    blocked: bool
    unpaid_dates: tuple[date, ...] = ()


def compute_dues(
    order_history: Iterable[Order],
    settlement_watermark: Optional[date],
    *,
    tz: tzinfo,
    charge_per_day: Decimal = DEFAULT_CHARGE_PER_DAY,
    cap: int = DEFAULT_WEEKLY_CAP,
) -> DuesState:
    days: set[date] = set()
    for order in order_history:
        if order.completed_at is None:
            continue
        completed_at = order.completed_at
        if completed_at.tzinfo is None:
            completed_at = completed_at.replace(tzinfo=timezone.utc)
        day = completed_at.astimezone(tz).date()
        if settlement_watermark is None or day > settlement_watermark:
            days.add(day)

    unpaid_days = len(days)
    return DuesState(
        unpaid_days=unpaid_days,
        total_due=min(unpaid_days, cap) * Decimal(charge_per_day),
        blocked=unpaid_days > cap,
        unpaid_dates=tuple(sorted(days)),
    )


class DuesGate:
    """Держит дату оплаты сборов и считает долг по истории заказов."""

    def __init__(
        self,
        store: WorkerStore,
        worker_id: Optional[str],
        watermark: Optional[date],
        *,
        tz: tzinfo,
        charge_per_day: Decimal = DEFAULT_CHARGE_PER_DAY,
        cap: int = DEFAULT_WEEKLY_CAP,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = store
        self._worker_id = worker_id
        self._watermark = watermark
        self._tz = tz
        self._charge_per_day = Decimal(charge_per_day)
        self._cap = cap
        self._clock = clock

    @property
    def settlement_watermark(self) -> Optional[date]:
        return self._watermark

    def today(self) -> date:
        return self._clock().astimezone(self._tz).date()

    def compute(self, order_history: Iterable[Order]) -> DuesState:
        return compute_dues(
            order_history,
            self._watermark,
            tz=self._tz,
            charge_per_day=self._charge_per_day,
            cap=self._cap,
        )

    async def settle_up_to(self, day: Optional[date] = None) -> bool:
        """
        Отметить сборы оплаченными по day включительно (по умолчанию — сегодня).

        Дата оплаты только растёт: более ранняя дата игнорируется.
        """
        day = day or self.today()
        if self._watermark is not None and day < self._watermark:
            logger.warning(
                "Settlement ignored worker=%s: %s is before watermark %s",
                self._worker_id, day, self._watermark
            )
            return False
        self._watermark = day
        logger.info("Dues settled worker=%s up to %s", self._worker_id, day)
        await self._store.save(self._worker_id, {"settlement_watermark": day})
        return True
