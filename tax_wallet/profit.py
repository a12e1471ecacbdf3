"""
Profit Pool

Fees collected from withdrawals wait here until the owner sweeps them.
A separate lifetime counter records every fee ever collected and is never
reduced by a sweep.
"""

from .errors import InsufficientFunds, NothingToSweep
from .numeric import UINT256_MAX, as_uint, checked_add
from .storage import StorageInterface


class ProfitPool:
    """Outstanding and lifetime fee counters"""

    OUTSTANDING_KEY = "outstanding_profit"
    TOTAL_KEY = "total_profit"

    def __init__(self, storage: StorageInterface, max_value: int = UINT256_MAX,
                 table_name: str = "wallet_state"):
        self.storage = storage
        self.max_value = max_value
        self.table_name = table_name

    @property
    def outstanding(self) -> int:
        return self.storage.load_int(self.table_name, self.OUTSTANDING_KEY)

    @property
    def total(self) -> int:
        return self.storage.load_int(self.table_name, self.TOTAL_KEY)

    def accrue(self, fee: int) -> None:
        """
        Add a collected fee to both counters

        Raises:
            Overflow: If either counter would exceed the width
        """
        fee = as_uint(fee, name="fee", max_value=self.max_value)
        outstanding = checked_add(self.outstanding, fee, self.max_value)
        total = checked_add(self.total, fee, self.max_value)
        self.storage.save_int(self.table_name, self.OUTSTANDING_KEY, outstanding)
        self.storage.save_int(self.table_name, self.TOTAL_KEY, total)

    def sweep(self) -> int:
        """
        Drain the outstanding pool

        Returns:
            The amount drained

        Raises:
            NothingToSweep: If the pool is empty
        """
        amount = self.outstanding
        if amount == 0:
            raise NothingToSweep("Profit pool is empty")
        self.storage.save_int(self.table_name, self.OUTSTANDING_KEY, 0)
        return amount

    def restore(self, amount: int) -> None:
        """Return a swept amount whose payout failed to the outstanding pool"""
        amount = as_uint(amount, name="amount", max_value=self.max_value)
        outstanding = checked_add(self.outstanding, amount, self.max_value)
        self.storage.save_int(self.table_name, self.OUTSTANDING_KEY, outstanding)

    def refund(self, fee: int) -> None:
        """
        Take back a fee accrued by a withdrawal that was reversed

        Raises:
            InsufficientFunds: If the outstanding pool no longer holds the fee
        """
        fee = as_uint(fee, name="fee", max_value=self.max_value)
        outstanding = self.outstanding
        if outstanding < fee:
            raise InsufficientFunds(f"Profit pool holds {outstanding}, cannot refund {fee}")
        self.storage.save_int(self.table_name, self.OUTSTANDING_KEY, outstanding - fee)
        self.storage.save_int(self.table_name, self.TOTAL_KEY, self.total - fee)
