"""Local accounting of the custodied amount."""

from ..exceptions import InsufficientBalanceError, InvalidAmountError


def check_amount(amount: int) -> int:
    """Reject anything that is not a non-negative integer."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"Amount must be an integer, got {amount!r}")
    if amount < 0:
        raise InvalidAmountError(f"Amount cannot be negative: {amount}")
    return amount


class BalanceLedger:
    """
    Counter of units the vault holds on the external asset ledger.

    Increased only by deposits and decreased only by executed transfers.
    Moves no value itself.
    """

    def __init__(self, balance: int = 0):
        self._balance = check_amount(balance)

    @property
    def balance(self) -> int:
        return self._balance

    def can_debit(self, amount: int) -> bool:
        return 0 <= amount <= self._balance

    def credit(self, amount: int) -> int:
        check_amount(amount)
        if amount == 0:
            raise InvalidAmountError("Credit amount must be positive")
        self._balance += amount
        return self._balance

    def debit(self, amount: int) -> int:
        check_amount(amount)
        if amount > self._balance:
            raise InsufficientBalanceError(
                f"Insufficient balance: have {self._balance}, need {amount}"
            )
        self._balance -= amount
        return self._balance

    def __repr__(self) -> str:
        return f"<BalanceLedger balance={self._balance}>"
