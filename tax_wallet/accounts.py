"""
Account Identities

Accounts are opaque string tokens (addresses). The zero address is the null
identity and can never own a balance or receive a transfer.
"""

from typing import Optional


NULL_ACCOUNT = "0x" + "0" * 40


def is_null_account(account: Optional[str]) -> bool:
    """Check whether an identity is the null identity"""
    return not account or account == NULL_ACCOUNT


def require_account(account: str, name: str = "account") -> str:
    """Reject identities that cannot be used as storage keys"""
    if not isinstance(account, str):
        raise TypeError(f"{name} must be a string identity, got {type(account).__name__}")
    return account
