"""
Валидация входных данных для handlers.
"""
from decimal import Decimal, InvalidOperation
from typing import Optional
from pydantic import BaseModel, Field, field_validator
import re


UPI_RE = re.compile(r"^[\w.\-]{2,256}@[A-Za-z]{2,64}$")
ACCOUNT_RE = re.compile(r"^\d{9,18}$")


class TransferAmountInput(BaseModel):
    """Валидация суммы перевода."""

    amount: Decimal = Field(..., gt=0, le=Decimal("1000000"), description="Сумма перевода")

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Не больше двух знаков после запятой."""
        if v.as_tuple().exponent < -2:
            raise ValueError("Сумма может содержать не больше двух знаков после запятой")
        return v

    @classmethod
    def from_string(cls, text: str) -> "TransferAmountInput":
        """Создать из строки: допускаются ₹, пробелы и запятые-разделители тысяч."""
        cleaned = text.strip().replace("₹", "").replace(",", "").replace(" ", "")
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            raise ValueError("Сумма должна быть числом")
        if not amount.is_finite():
            raise ValueError("Сумма должна быть числом")
        return cls(amount=amount)


class BankAccountInput(BaseModel):
    """Валидация счёта получателя: UPI ID или номер счёта."""

    account: str = Field(..., description="UPI ID или номер счёта")

    @field_validator("account")
    @classmethod
    def validate_account(cls, v: str) -> str:
        v = v.strip()
        digits = v.replace(" ", "")
        if ACCOUNT_RE.match(digits):
            return digits
        if UPI_RE.match(v):
            return v.lower()
        raise ValueError("Укажите UPI ID (name@bank) или номер счёта из 9–18 цифр")

    @classmethod
    def from_string(cls, text: str) -> "BankAccountInput":
        """Создать из строки."""
        return cls(account=text)


def validate_input(model_class: type[BaseModel], text: str, error_message: Optional[str] = None) -> BaseModel:
    """
    Валидировать входные данные.

    Args:
        model_class: Класс модели Pydantic
        text: Текст для валидации
        error_message: Кастомное сообщение об ошибке

    Returns:
        Валидированный объект

    Raises:
        ValueError: При ошибке валидации
    """
    try:
        return model_class.from_string(text)
    except ValueError as e:
        if error_message:
            raise ValueError(error_message) from e
        raise
