"""
Fee Policy

Holds the withdrawal tax rate (a whole percentage, 0 to 100) and computes
the fee levied on a withdrawal amount with integer semantics.
"""

from .errors import InvalidRate
from .numeric import UINT256_MAX, as_uint, checked_mul
from .storage import StorageInterface


MAX_TAX_RATE = 100


def compute_fee(amount: int, rate: int, max_value: int = UINT256_MAX) -> int:
    """
    Fee for a withdrawal: floor(amount * rate / 100)

    The product is checked against the balance width before dividing, so a
    withdrawal large enough to overflow the multiplication fails instead of
    wrapping.

    Raises:
        Overflow: If amount * rate exceeds max_value
    """
    amount = as_uint(amount, max_value=max_value)
    rate = as_uint(rate, name="rate")
    return checked_mul(amount, rate, max_value) // 100


class FeePolicy:
    """Persisted tax rate with bounds checking"""

    def __init__(self, storage: StorageInterface, max_value: int = UINT256_MAX,
                 table_name: str = "wallet_state"):
        self.storage = storage
        self.max_value = max_value
        self.table_name = table_name

    @property
    def rate(self) -> int:
        return self.storage.load_int(self.table_name, "tax_rate")

    def set_rate(self, new_rate: int) -> int:
        """
        Replace the stored rate

        Returns:
            The previous rate

        Raises:
            InvalidRate: If new_rate is above 100
        """
        new_rate = as_uint(new_rate, name="rate")
        if new_rate > MAX_TAX_RATE:
            raise InvalidRate(f"Tax rate must be between 0 and {MAX_TAX_RATE}, got {new_rate}")
        previous = self.rate
        self.storage.save_int(self.table_name, "tax_rate", new_rate)
        return previous

    def compute_fee(self, amount: int) -> int:
        """Fee on amount at the current rate"""
        return compute_fee(amount, self.rate, self.max_value)
