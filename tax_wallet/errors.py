"""
Wallet Error Types

Every failure the wallet core reports is a WalletError subclass carrying a
stable ``kind`` and a human-readable ``reason``. Errors are raised before any
state is committed; the storage transaction rolls back whatever was applied.
"""

from typing import Any, Dict


class WalletError(ValueError):
    """Base class for wallet validation failures"""

    kind = "WalletError"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for callers and log records"""
        return {"kind": self.kind, "reason": self.reason}


class Unauthorized(WalletError):
    """Caller is not the owner for an owner-gated operation"""
    kind = "Unauthorized"


class ZeroAmount(WalletError):
    """Operation would move zero value"""
    kind = "ZeroAmount"


class ZeroBalance(WalletError):
    """Caller has nothing to move"""
    kind = "ZeroBalance"


class InsufficientFunds(WalletError):
    """Requested amount exceeds the caller's balance"""
    kind = "InsufficientFunds"


class InvalidRecipient(WalletError):
    """Recipient is the null identity"""
    kind = "InvalidRecipient"


class InvalidRate(WalletError):
    """Tax rate outside [0, 100]"""
    kind = "InvalidRate"


class Overflow(WalletError):
    """Arithmetic result exceeds the balance width"""
    kind = "Overflow"


class NothingToSweep(WalletError):
    """Profit pool is empty"""
    kind = "NothingToSweep"


class InvalidOwner(WalletError):
    """Owner identity is null or conflicts with the persisted owner"""
    kind = "InvalidOwner"
