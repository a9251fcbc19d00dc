"""
Предложение заказа курьеру с дедлайном 30 секунд.

Одновременно показывается не больше одного предложения. Каждое разрешается
ровно один раз: принятие, отказ или истечение времени. И кнопка, и таймер
проходят через _resolve(), где флаг resolved проверяется и ставится
синхронно — кто первый, тот и победил, второй ничего не делает.
Таймер при этом всё равно отменяется.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from services.interfaces import NotificationTrigger, OrderSource
from services.schemas import Order

logger = logging.getLogger(__name__)

OFFER_TIMEOUT_SECONDS = 30.0


def remaining(shown_at: float, now: float, timeout: float = OFFER_TIMEOUT_SECONDS) -> float:
    """Сколько секунд осталось на ответ. Не хранится, считается от shown_at."""
    return max(0.0, timeout - (now - shown_at))


@dataclass(frozen=True, slots=True)
class Eligibility:
    is_online: bool
    has_current_order: bool
    dues_blocked: bool

    @property
    def eligible(self) -> bool:
        return self.is_online and not self.has_current_order and not self.dues_blocked


class OfferResolution(str, enum.Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


@dataclass(slots=True)
class OfferPresentation:
    order: Order
    shown_at: float
    handle: Optional[asyncio.TimerHandle] = None
    resolved: bool = False
    resolution: Optional[OfferResolution] = None


class OfferScheduler:
    def __init__(
        self,
        notifier: NotificationTrigger,
        on_accept: Callable[[Order], Awaitable[Order]],
        *,
        timeout: float = OFFER_TIMEOUT_SECONDS,
        chooser: Callable[[Sequence[Order]], Order] = random.choice,
        on_expired: Optional[Callable[[Order], Awaitable[None]]] = None,
        on_resolved: Optional[Callable[[Order], None]] = None,
    ):
        self._notifier = notifier
        self._on_accept = on_accept
        self._timeout = timeout
        self._chooser = chooser
        self._on_expired = on_expired
        # Принятие и отказ; истечение времени обрабатывает on_expired
        self._on_resolved = on_resolved
        self._presentation: Optional[OfferPresentation] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def presentation(self) -> Optional[OfferPresentation]:
        return self._presentation

    @property
    def timeout(self) -> float:
        return self._timeout

    def remaining(self) -> float:
        p = self._presentation
        if p is None:
            return 0.0
        return remaining(p.shown_at, asyncio.get_running_loop().time(), self._timeout)

    async def maybe_offer(self, pool: OrderSource, eligibility: Eligibility) -> Optional[OfferPresentation]:
        """
        Показать предложение, если курьер может его получить.

        Returns:
            Новое предложение или None (не подходит, уже есть открытое, нет заказов)
        """
        if self._presentation is not None:
            logger.debug("Offer already outstanding order=%s", self._presentation.order.id)
            return None
        if not eligibility.eligible:
            logger.debug("Offer skipped: %s", eligibility)
            return None
        candidates = pool.candidates()
        if not candidates:
            logger.info("Offer skipped: no candidate orders")
            return None

        loop = asyncio.get_running_loop()
        order = self._chooser(candidates)
        # Слот занимается до первого await, второй maybe_offer увидит его занятым
        presentation = OfferPresentation(order=order, shown_at=loop.time())
        self._presentation = presentation
        logger.info("Offer surfaced order=%s earnings=%s", order.id, order.partner_earnings)

        try:
            await self._notifier.trigger(order)
        except Exception:
            logger.warning("Notification failed for order=%s", order.id, exc_info=True)

        if presentation.resolved:
            # Курьер ответил, пока шло уведомление: карточка могла появиться
            # уже после отказа, поэтому сообщаем о разрешении ещё раз
            self._notify_resolved(order)
            return presentation
        delay = remaining(presentation.shown_at, loop.time(), self._timeout)
        presentation.handle = loop.call_later(delay, self._on_deadline, presentation)
        return presentation

    def _resolve(self, presentation: OfferPresentation, resolution: OfferResolution) -> bool:
        if presentation.resolved:
            return False
        presentation.resolved = True
        presentation.resolution = resolution
        if presentation.handle is not None:
            presentation.handle.cancel()
        if self._presentation is presentation:
            self._presentation = None
        return True

    def _on_deadline(self, presentation: OfferPresentation) -> None:
        if not self._resolve(presentation, OfferResolution.EXPIRED):
            return
        logger.info("Offer expired order=%s", presentation.order.id)
        if self._on_expired is not None:
            task = asyncio.ensure_future(self._on_expired(presentation.order))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Offer expiry callback failed", exc_info=task.exception())

    def _notify_resolved(self, order: Order) -> None:
        if self._on_resolved is not None:
            self._on_resolved(order)

    async def accept(self) -> Optional[Order]:
        """
        Принять открытое предложение и передать заказ в OrderLifecycleMachine.

        Returns:
            Принятый заказ или None, если предложение уже разрешено
        """
        presentation = self._presentation
        if presentation is None or not self._resolve(presentation, OfferResolution.ACCEPTED):
            return None
        logger.info("Offer accepted order=%s", presentation.order.id)
        self._notify_resolved(presentation.order)
        return await self._on_accept(presentation.order)

    def decline(self) -> bool:
        presentation = self._presentation
        if presentation is None or not self._resolve(presentation, OfferResolution.DECLINED):
            return False
        logger.info("Offer declined order=%s", presentation.order.id)
        self._notify_resolved(presentation.order)
        return True

    async def close(self) -> None:
        """Снять открытое предложение и дождаться фоновых колбэков."""
        self.decline()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
