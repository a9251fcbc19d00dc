from aiogram.fsm.state import State, StatesGroup

class TransferState(StatesGroup):
    waiting_amount = State() # Сумма перевода с баланса
    waiting_account = State() # Счёт или UPI ID получателя

    # В data хранится:
    # amount: str - проверенная сумма (Decimal в строке)
