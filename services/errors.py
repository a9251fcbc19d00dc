"""
Ошибки жизненного цикла заказа, кошелька и хранилища.

OrderFlowError и наследники — ожидаемые отказы: мутация не выполняется,
CourierSession возвращает ошибку вызывающему, пользователь видит user_message.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from database.models import OrderStatus


class OrderFlowError(Exception):
    """Базовая ошибка: действие отклонено, состояние не изменилось."""

    default_message = "Действие недоступно"

    def __init__(self, detail: str, user_message: Optional[str] = None):
        super().__init__(detail)
        self.user_message = user_message or self.default_message


class InvalidTransitionError(OrderFlowError):
    default_message = "Этот шаг сейчас недоступен"


class StaleTransitionError(InvalidTransitionError):
    """Вызывающий считает активным устаревший статус (вторая вкладка, кнопка «назад»)."""

    default_message = "Экран устарел, показываем актуальный шаг"

    def __init__(self, expected: OrderStatus, actual: Optional[OrderStatus]):
        actual_value = actual.value if actual else None
        super().__init__(f"expected status {expected.value}, actual {actual_value}")
        self.expected = expected
        self.actual = actual


class PreconditionNotMetError(OrderFlowError):
    default_message = "Выполните все пункты проверки"

    def __init__(self, missing: Iterable[str], user_message: Optional[str] = None):
        self.missing = tuple(missing)
        super().__init__(f"missing: {', '.join(self.missing)}", user_message)


class LedgerError(OrderFlowError):
    default_message = "Операция с балансом отклонена"


class InvalidAmountError(LedgerError):
    default_message = "Сумма должна быть больше нуля"


class InsufficientBalanceError(LedgerError):
    default_message = "Недостаточно средств на балансе"

    def __init__(self, amount: Decimal, balance: Decimal):
        super().__init__(f"amount {amount} exceeds balance {balance}")
        self.amount = amount
        self.balance = balance


class PersistenceUnavailable(Exception):
    """Запись в хранилище не удалась. Логируется, работа продолжается в памяти."""
