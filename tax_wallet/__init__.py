"""
Tax Wallet

A single-asset custodial ledger with owner-levied withdrawal fees,
hash-chained audit trail, and checks-effects-interactions ordering for
every outbound value transfer.
"""

__version__ = "1.0.0"
