"""
Balance Ledger

Mapping from account identity to unsigned balance. An account with no stored
entry reads as zero; entries are created on first credit and never removed.
Balances are persisted as decimal strings.
"""

from typing import Dict

from .accounts import is_null_account, require_account
from .errors import InsufficientFunds, InvalidRecipient, ZeroAmount
from .numeric import UINT256_MAX, as_uint, checked_add
from .storage import StorageInterface


class Ledger:
    """
    Account balances with overflow-checked credits and guarded debits
    """

    def __init__(self, storage: StorageInterface, max_balance: int = UINT256_MAX,
                 table_name: str = "balances"):
        self.storage = storage
        self.max_balance = max_balance
        self.table_name = table_name

    def balance_of(self, account: str) -> int:
        """Current balance, 0 for unknown accounts"""
        record = self.storage.load(self.table_name, account)
        if record is None:
            return 0
        return int(record['balance'])

    def credit(self, account: str, amount: int) -> int:
        """
        Increase an account balance

        Returns:
            The new balance

        Raises:
            Overflow: If the new balance exceeds the balance width
        """
        require_account(account)
        amount = as_uint(amount, max_value=self.max_balance)
        new_balance = checked_add(self.balance_of(account), amount, self.max_balance)
        self._save_balance(account, new_balance)
        return new_balance

    def debit(self, account: str, amount: int) -> int:
        """
        Decrease an account balance

        Returns:
            The new balance

        Raises:
            InsufficientFunds: If the balance is below amount
            ZeroAmount: If amount is zero
        """
        require_account(account)
        amount = as_uint(amount, max_value=self.max_balance)
        balance = self.balance_of(account)
        if balance < amount:
            raise InsufficientFunds(
                f"Account {account} balance {balance} is below requested {amount}"
            )
        if amount == 0:
            raise ZeroAmount("Debit amount must be greater than zero")
        new_balance = balance - amount
        self._save_balance(account, new_balance)
        return new_balance

    def move_internal(self, from_account: str, to_account: str, amount: int) -> None:
        """Debit one account and credit another as a single step"""
        if is_null_account(to_account):
            raise InvalidRecipient("Recipient must not be the null identity")
        self.debit(from_account, amount)
        self.credit(to_account, amount)

    def balances(self) -> Dict[str, int]:
        return {record['account']: int(record['balance'])
                for record in self.storage.load_all(self.table_name)}

    def total_balances(self) -> int:
        """Sum of every account balance"""
        return sum(self.balances().values())

    def _save_balance(self, account: str, balance: int) -> None:
        self.storage.save(self.table_name, account, {
            'account': account,
            'balance': str(balance)
        })
