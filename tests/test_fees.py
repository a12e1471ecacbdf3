"""
Test suite for fee policy

Tests tax rate bounds and integer fee computation.
"""

import pytest

from tax_wallet.errors import InvalidRate, Overflow
from tax_wallet.fees import FeePolicy, compute_fee
from tax_wallet.numeric import UINT256_MAX
from tax_wallet.storage import InMemoryStorage


class TestComputeFee:
    """Test the fee formula"""

    def test_examples(self):
        """Fee is floor(amount * rate / 100)"""
        assert compute_fee(1000, 10) == 100
        assert compute_fee(999, 10) == 99
        assert compute_fee(1, 50) == 0
        assert compute_fee(0, 100) == 0
        assert compute_fee(1000, 0) == 0
        assert compute_fee(1000, 100) == 1000

    def test_fee_bounds_over_range(self):
        """0 <= fee <= amount and matches floor division for every rate"""
        for rate in range(0, 101):
            for amount in (0, 1, 7, 99, 100, 101, 12345, 10 ** 30 + 7):
                fee = compute_fee(amount, rate)
                assert fee == amount * rate // 100
                assert 0 <= fee <= amount

    def test_multiply_overflow(self):
        """A product past the width fails instead of wrapping"""
        with pytest.raises(Overflow):
            compute_fee(UINT256_MAX, 2)
        assert compute_fee(UINT256_MAX, 1) == UINT256_MAX // 100

    def test_narrow_width_overflow(self):
        """The check uses the configured width"""
        assert compute_fee(25, 10, max_value=255) == 2
        with pytest.raises(Overflow):
            compute_fee(26, 10, max_value=255)


class TestFeePolicy:
    """Test rate storage and validation"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.policy = FeePolicy(self.storage)

    def test_default_rate_is_zero(self):
        """No stored rate reads as zero"""
        assert self.policy.rate == 0

    def test_set_rate_returns_previous(self):
        """set_rate stores the new rate and returns the old one"""
        assert self.policy.set_rate(10) == 0
        assert self.policy.set_rate(100) == 10
        assert self.policy.rate == 100

    def test_rate_above_hundred(self):
        """Rates above 100 are rejected"""
        self.policy.set_rate(5)
        with pytest.raises(InvalidRate):
            self.policy.set_rate(101)
        assert self.policy.rate == 5

    def test_rate_must_be_unsigned_integer(self):
        """Negative and non-integer rates are rejected before storing"""
        with pytest.raises(ValueError):
            self.policy.set_rate(-1)
        with pytest.raises(TypeError):
            self.policy.set_rate(2.5)
        assert self.policy.rate == 0

    def test_compute_fee_uses_current_rate(self):
        """Instance fee uses the stored rate"""
        self.policy.set_rate(25)
        assert self.policy.compute_fee(400) == 100
