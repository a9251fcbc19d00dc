"""
Pydantic-модели заказа и снимка состояния курьера.

Сериализуются в JSON с camelCase-именами (orderHistory, partnerEarnings,
acceptedAt, pickup_reachedAt ...), в Python используются snake_case поля.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from database.models import OrderStatus, PaymentMethod


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        """JSON-совместимый словарь с внешними именами полей."""
        return self.model_dump(mode="json", by_alias=True)


class Coordinates(_Record):
    lat: float
    lng: float


class Location(_Record):
    address: str
    coordinates: Optional[Coordinates] = None
    landmark: Optional[str] = None


class ParcelDetails(_Record):
    type: str = ""
    description: str = ""
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    fragile: bool = False
    value: Decimal = Decimal("0")


class LineItem(_Record):
    name: str
    quantity: int = Field(default=1, ge=1)
    price: Decimal = Decimal("0")


# Статус -> поле с моментом входа в него
STATUS_STAMPS: dict[OrderStatus, str] = {
    OrderStatus.ACCEPTED: "accepted_at",
    OrderStatus.PICKUP_REACHED: "pickup_reached_at",
    OrderStatus.PICKUP_COMPLETE: "pickup_complete_at",
    OrderStatus.CUSTOMER_REACHED: "customer_reached_at",
    OrderStatus.COMPLETED: "completed_at",
}


class Order(_Record):
    """Заказ: предложение до принятия, затем текущий заказ курьера, затем запись истории."""

    id: str = Field(min_length=1)

    customer_name: str
    customer_phone: str = ""
    sender_name: str = ""
    sender_phone: str = ""
    pickup_location: Location
    customer_location: Location
    parcel_details: ParcelDetails = Field(default_factory=ParcelDetails)
    delivery_instructions: str = ""
    items: list[LineItem] = Field(default_factory=list)

    order_value: Decimal = Decimal("0")
    delivery_fee: Decimal = Decimal("0")
    partner_earnings: Decimal = Field(default=Decimal("0"), ge=0)
    distance: Optional[str] = None
    estimated_time: Optional[str] = None
    route: Optional[str] = None
    order_time: Optional[datetime] = None
    payment_method: PaymentMethod = PaymentMethod.UPI
    cod_amount: Decimal = Decimal("0")

    status: OrderStatus = OrderStatus.PENDING
    accepted_at: Optional[datetime] = Field(default=None, alias="acceptedAt")
    pickup_reached_at: Optional[datetime] = Field(default=None, alias="pickup_reachedAt")
    pickup_complete_at: Optional[datetime] = Field(default=None, alias="pickup_completeAt")
    customer_reached_at: Optional[datetime] = Field(default=None, alias="customer_reachedAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    paid_at: Optional[datetime] = Field(default=None, alias="paidAt")
    payment_processed: bool = False

    @property
    def is_cash_on_delivery(self) -> bool:
        return self.payment_method.is_cash_on_delivery

    @property
    def is_terminal(self) -> bool:
        return self.status == OrderStatus.COMPLETED

    @property
    def paid(self) -> bool:
        return self.payment_processed

    def stamp(self, status: OrderStatus, when: datetime) -> None:
        """Перевести в статус и записать момент входа."""
        self.status = status
        setattr(self, STATUS_STAMPS[status], when)

    def entered_at(self, status: OrderStatus) -> Optional[datetime]:
        return getattr(self, STATUS_STAMPS[status])


class BankTransfer(_Record):
    amount: Decimal = Field(gt=0)
    bank_account: str
    transferred_at: datetime


class WorkerSnapshot(_Record):
    """Всё, что хранится по курьеру. Каждое поле — отдельный срез для частичной записи."""

    order_history: list[Order] = Field(default_factory=list)
    current_order: Optional[Order] = None
    balance: Decimal = Field(default=Decimal("0"), ge=0)
    total_earnings_today: Decimal = Field(default=Decimal("0"), ge=0)
    completed_orders_today: int = Field(default=0, ge=0)
    counters_date: Optional[date] = None
    last_bank_transfer: Optional[BankTransfer] = None
    transfer_history: list[BankTransfer] = Field(default_factory=list)
    settlement_watermark: Optional[date] = None


SLICE_NAMES: frozenset[str] = frozenset(WorkerSnapshot.model_fields)
