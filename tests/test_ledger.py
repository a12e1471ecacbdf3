"""
Test suite for ledger module

Tests balance reads, credits, debits and internal moves.
CRITICAL: Validates that balances never go negative and never exceed the width.
"""

import pytest

from tax_wallet.accounts import NULL_ACCOUNT
from tax_wallet.errors import InsufficientFunds, InvalidRecipient, Overflow, ZeroAmount
from tax_wallet.ledger import Ledger
from tax_wallet.numeric import UINT256_MAX
from tax_wallet.storage import InMemoryStorage


ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40


class TestLedgerBalances:
    """Test balance reads and credits"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.ledger = Ledger(self.storage)

    def test_unknown_account_reads_zero(self):
        """Absent entries read as a zero balance"""
        assert self.ledger.balance_of(ALICE) == 0
        assert self.ledger.balances() == {}

    def test_credit_creates_entry(self):
        """First credit creates the ledger entry"""
        assert self.ledger.credit(ALICE, 100) == 100
        assert self.ledger.credit(ALICE, 50) == 150
        assert self.ledger.balance_of(ALICE) == 150
        assert self.ledger.balances() == {ALICE: 150}

    def test_credit_zero_is_allowed(self):
        """A zero credit is a no-op that still succeeds"""
        assert self.ledger.credit(ALICE, 0) == 0

    def test_credit_overflow(self):
        """Credits past the balance width fail and leave the balance intact"""
        self.ledger.credit(ALICE, UINT256_MAX)
        with pytest.raises(Overflow):
            self.ledger.credit(ALICE, 1)
        assert self.ledger.balance_of(ALICE) == UINT256_MAX

    def test_full_width_balance_round_trips(self):
        """256-bit values survive storage serialization"""
        self.ledger.credit(ALICE, UINT256_MAX)
        assert self.ledger.balances() == {ALICE: UINT256_MAX}

    def test_narrow_width(self):
        """A narrower configured width bounds balances accordingly"""
        ledger = Ledger(InMemoryStorage(), max_balance=255)
        ledger.credit(ALICE, 255)
        with pytest.raises(Overflow):
            ledger.credit(ALICE, 1)

    def test_rejects_ill_typed_amounts(self):
        """Non-integer and negative amounts are rejected"""
        with pytest.raises(TypeError):
            self.ledger.credit(ALICE, 1.5)
        with pytest.raises(TypeError):
            self.ledger.credit(ALICE, True)
        with pytest.raises(ValueError):
            self.ledger.credit(ALICE, -1)


class TestLedgerDebits:
    """Test debits and internal moves"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.ledger = Ledger(self.storage)
        self.ledger.credit(ALICE, 100)

    def test_debit(self):
        """Debit reduces the balance"""
        assert self.ledger.debit(ALICE, 40) == 60
        assert self.ledger.balance_of(ALICE) == 60

    def test_debit_to_zero_keeps_entry(self):
        """A drained account keeps its entry"""
        self.ledger.debit(ALICE, 100)
        assert self.ledger.balance_of(ALICE) == 0
        assert self.ledger.balances() == {ALICE: 0}

    def test_debit_insufficient_funds(self):
        """Debits above the balance fail"""
        with pytest.raises(InsufficientFunds):
            self.ledger.debit(ALICE, 101)
        assert self.ledger.balance_of(ALICE) == 100

    def test_debit_zero_amount(self):
        """Zero debits fail"""
        with pytest.raises(ZeroAmount):
            self.ledger.debit(ALICE, 0)

    def test_move_internal(self):
        """Moves redistribute without changing the total"""
        self.ledger.move_internal(ALICE, BOB, 30)
        assert self.ledger.balance_of(ALICE) == 70
        assert self.ledger.balance_of(BOB) == 30
        assert self.ledger.total_balances() == 100

    def test_move_to_self(self):
        """Moving to the same account leaves it unchanged"""
        self.ledger.move_internal(ALICE, ALICE, 100)
        assert self.ledger.balance_of(ALICE) == 100

    def test_move_to_null_recipient(self):
        """The null identity cannot receive"""
        with pytest.raises(InvalidRecipient):
            self.ledger.move_internal(ALICE, NULL_ACCOUNT, 10)
        with pytest.raises(InvalidRecipient):
            self.ledger.move_internal(ALICE, "", 10)
        assert self.ledger.balance_of(ALICE) == 100

    def test_move_insufficient_funds(self):
        """Moves follow debit preconditions"""
        with pytest.raises(InsufficientFunds):
            self.ledger.move_internal(ALICE, BOB, 500)
        with pytest.raises(ZeroAmount):
            self.ledger.move_internal(ALICE, BOB, 0)
        assert self.ledger.balance_of(BOB) == 0
