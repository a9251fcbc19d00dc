import enum
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Integer, String, Boolean, DateTime, Date, Numeric, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from database.core import Base
from config import config


# В SQLite автоинкремент корректно работает только для PRIMARY KEY типа INTEGER (rowid).
PK_INT = Integer if config.DB_DIALECT in ("sqlite", "sqlite3") else BigInteger

# --- Enums ---

class OrderStatus(str, enum.Enum):
    PENDING = "pending"  # предложение, ещё никому не принадлежит
    ACCEPTED = "accepted"
    PICKUP_REACHED = "pickup_reached"
    PICKUP_COMPLETE = "pickup_complete"
    CUSTOMER_REACHED = "customer_reached"
    COMPLETED = "completed"


class PaymentMethod(str, enum.Enum):
    UPI = "UPI"
    CARD = "Card"
    CASH_ON_DELIVERY = "Cash on Delivery"

    @property
    def is_cash_on_delivery(self) -> bool:
        return self is PaymentMethod.CASH_ON_DELIVERY


# --- Models ---

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(PK_INT, primary_key=True, autoincrement=True)
    telegram_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        {"comment": "Курьеры"},
    )


class WorkerState(Base):
    """Снимок состояния курьера: история, текущий заказ, баланс, счётчики дня."""
    __tablename__ = "worker_states"

    worker_id: Mapped[str] = mapped_column(String, primary_key=True)

    order_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    current_order: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_earnings_today: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    completed_orders_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    counters_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    last_bank_transfer: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    transfer_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Дата, до которой (включительно) платформенные сборы оплачены
    settlement_watermark: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        {"comment": "Состояние курьеров"},
    )
