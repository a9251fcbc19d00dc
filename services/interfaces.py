"""
Контракты внешних участников: уведомление о заказе, фото, приём оплаты,
идентификация курьера, оплата сборов платформы.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Protocol, Sequence, runtime_checkable

from services.schemas import Order


@dataclass(frozen=True, slots=True)
class CaptureResult:
    captured: bool
    file_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PaymentConfirmation:
    confirmed: bool
    amount: Optional[Decimal] = None


@runtime_checkable
class NotificationTrigger(Protocol):
    async def trigger(self, order: Order) -> None:
        """Сигнал о новом предложении. Ошибки глотает вызывающий (с логом)."""


class DeliveryProofCapture(Protocol):
    async def capture(self) -> CaptureResult: ...


class PaymentCollectionConfirm(Protocol):
    async def confirm(self) -> PaymentConfirmation: ...


class IdentityProvider(Protocol):
    async def current_worker_id(self) -> Optional[str]:
        """Ключ хранилища; None — курьер не опознан, работаем только в памяти."""


class SettlementAction(Protocol):
    async def settle_up_to(self, day: date) -> bool: ...


class OrderSource(Protocol):
    def candidates(self) -> Sequence[Order]: ...
