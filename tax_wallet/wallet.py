"""
Wallet Service

Orchestrates the ledger, fee policy and profit pool. Every public operation
runs under a single re-entrant lock, held from validation to payout:

    validate -> mutate state -> record event -> commit -> send value out

The outbound payout happens only after the operation's storage transaction
has committed. A payout target that calls back into the wallet sees the
debited state and fails its own checks, and a re-entrant operation that
passes them commits independently of the one that paid out. If the payout
gateway raises, a compensating transaction puts the value back and audits
the reversal.

Domain events are buffered while operations run and published once the
outermost operation finishes, after the wallet lock is released. Handlers
may therefore call back into the wallet or wait on other threads using it.
Events from different threads are not guaranteed to be published in commit
order.
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional
import threading

from .access import AccessControl
from .accounts import is_null_account, require_account
from .audit import AuditTrail, AuditEventType
from .config import TaxWalletConfig, get_config
from .errors import (
    InsufficientFunds, InvalidOwner, InvalidRecipient, WalletError,
    ZeroAmount, ZeroBalance
)
from .events import EventDispatcher, EventPayload, WalletEvent
from .fees import FeePolicy
from .ledger import Ledger
from .logging_config import get_logger, log_action, setup_logging
from .numeric import DEFAULT_BITS, as_uint, checked_add, max_for_bits
from .payouts import PayoutGateway, RecordingPayoutGateway
from .profit import ProfitPool
from .storage import StorageInterface, create_storage


STATE_TABLE = "wallet_state"


class WalletService:
    """
    Custodial single-asset wallet with owner-levied withdrawal tax
    """

    def __init__(
        self,
        storage: StorageInterface,
        access_control: AccessControl,
        payouts: Optional[PayoutGateway] = None,
        audit_trail: Optional[AuditTrail] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        balance_bits: int = DEFAULT_BITS,
        initial_tax_rate: int = 0
    ):
        self.storage = storage
        self.access_control = access_control
        self.payouts = payouts if payouts is not None else RecordingPayoutGateway()
        self.audit_trail = audit_trail
        self.event_dispatcher = event_dispatcher
        self.max_value = max_for_bits(balance_bits)

        self.ledger = Ledger(storage, self.max_value)
        self.fee_policy = FeePolicy(storage, self.max_value, STATE_TABLE)
        self.profit_pool = ProfitPool(storage, self.max_value, STATE_TABLE)

        self.logger = get_logger("tax_wallet.wallet")
        self._pending_events: List[EventPayload] = []
        # Events recorded by each operation in progress, innermost last
        self._frames: List[List[EventPayload]] = []
        self._lock = threading.RLock()

        self._initialize_state(initial_tax_rate)

    def _initialize_state(self, initial_tax_rate: int) -> None:
        """Create wallet state on first use, or check the persisted owner"""
        owner = self.access_control.owner
        with self._lock, self.storage.atomic():
            stored_owner = self.storage.load_value(STATE_TABLE, "owner")
            if stored_owner is not None:
                if stored_owner != owner:
                    raise InvalidOwner(
                        f"Wallet state belongs to owner {stored_owner}, not {owner}"
                    )
                return

            self.storage.save_value(STATE_TABLE, "owner", owner)
            self.fee_policy.set_rate(initial_tax_rate)
            for key in (ProfitPool.OUTSTANDING_KEY, ProfitPool.TOTAL_KEY, "total_held"):
                self.storage.save_int(STATE_TABLE, key, 0)

            if self.audit_trail:
                self.audit_trail.log_event(
                    event_type=AuditEventType.WALLET_INITIALIZED,
                    entity_type="wallet",
                    entity_id=owner,
                    metadata={"owner": owner, "tax_rate": initial_tax_rate},
                    user_id=owner
                )

        log_action(
            self.logger, "info", "Wallet initialized",
            user_id=owner, action="initialize", resource="wallet",
            extra={"tax_rate": initial_tax_rate}
        )

    @contextmanager
    def _operation(self, action: str, caller: str):
        """
        One serialized wallet operation, payout included

        Events the operation recorded are dropped if it fails. Operations
        that completed inside it keep theirs.
        """
        published: List[EventPayload] = []
        try:
            with self._lock:
                self._frames.append([])
                try:
                    yield
                except WalletError as e:
                    self._discard_events(self._frames[-1])
                    log_action(
                        self.logger, "warning", f"{action} rejected: {e.reason}",
                        user_id=caller, action=action, resource="wallet",
                        extra=e.to_dict()
                    )
                    raise
                except Exception:
                    self._discard_events(self._frames[-1])
                    raise
                finally:
                    self._frames.pop()
                    if not self._frames:
                        published, self._pending_events = self._pending_events, []
        finally:
            self._publish(published)

    def _discard_events(self, events: List[EventPayload]) -> None:
        dropped = {id(event) for event in events}
        self._pending_events = [e for e in self._pending_events if id(e) not in dropped]

    def _publish(self, events: List[EventPayload]) -> None:
        if self.event_dispatcher:
            for event in events:
                self.event_dispatcher.publish(event)

    def _record(self, audit_type: AuditEventType, event_type: WalletEvent,
                caller: str, data: Dict[str, Any]) -> None:
        """Write the audit record and queue the domain event"""
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=audit_type,
                entity_type="account",
                entity_id=caller,
                metadata=data,
                user_id=caller
            )
        event = EventPayload(event_type=event_type, account=caller, data=data)
        self._pending_events.append(event)
        self._frames[-1].append(event)

    def _adjust_held(self, delta: int) -> None:
        held = self.storage.load_int(STATE_TABLE, "total_held")
        if delta >= 0:
            held = checked_add(held, delta, self.max_value)
        else:
            held -= -delta
        self.storage.save_int(STATE_TABLE, "total_held", held)

    def _send(self, action: str, recipient: str, amount: int,
              reverse: Callable[[], Dict[str, Any]]) -> None:
        """
        Outbound value transfer; always the final step of an operation

        Runs after the operation's effects are committed. If the gateway
        raises, ``reverse`` undoes those effects in a new transaction, the
        reversal is audited and the gateway's error propagates.
        """
        try:
            self.payouts.send(recipient, amount)
        except Exception as e:
            with self.storage.atomic():
                details = reverse()
                if self.audit_trail:
                    self.audit_trail.log_event(
                        event_type=AuditEventType.PAYOUT_REVERSED,
                        entity_type="account",
                        entity_id=recipient,
                        metadata=dict(details, action=action),
                        user_id=recipient
                    )
            log_action(
                self.logger, "error", f"Payout of {amount} to {recipient} failed, {action} reversed",
                user_id=recipient, action=action, resource="payout",
                extra={"amount": str(amount), "error": str(e)}
            )
            raise

    def _reverse_withdrawal(self, caller: str, amount: int, fee: int, net: int) -> Dict[str, Any]:
        """Return an unpaid withdrawal to the caller's balance"""
        # A re-entrant sweep may already have paid the fee out to the owner
        refunded_fee = fee if self.profit_pool.outstanding >= fee else 0
        self.profit_pool.refund(refunded_fee)
        self.ledger.credit(caller, net + refunded_fee)
        self._adjust_held(net)
        return {"amount": amount, "fee": fee, "net_amount": net, "refunded_fee": refunded_fee}

    def _reverse_sweep(self, amount: int) -> Dict[str, Any]:
        """Return an unpaid sweep to the outstanding pool"""
        self.profit_pool.restore(amount)
        self._adjust_held(amount)
        return {"amount": amount}

    # Mutating operations

    def deposit(self, caller: str, amount: int) -> int:
        """
        Credit attached value to the caller

        Besides the caller's balance, the deposit raises the wallet's
        ``total_held`` counter, which is bounded by the same width. A deposit
        can therefore fail with ``Overflow`` when the total across all
        accounts would exceed it, even if the caller's own balance would not.

        Returns:
            The caller's new balance

        Raises:
            Overflow: If the balance or the held total would exceed the width
        """
        require_account(caller, "caller")
        with self._operation("deposit", caller), self.storage.atomic():
            new_balance = self.ledger.credit(caller, amount)
            self._adjust_held(amount)
            self._record(AuditEventType.DEPOSIT, WalletEvent.DEPOSITED, caller,
                         {"amount": amount})

        log_action(
            self.logger, "info", f"Deposited {amount}",
            user_id=caller, action="deposit", resource="balance",
            extra={"amount": str(amount), "balance": str(new_balance)}
        )
        return new_balance

    def receive(self, caller: str, amount: int) -> int:
        """Value sent with no operation selector; identical to deposit"""
        return self.deposit(caller, amount)

    def fallback(self, caller: str, amount: int, selector: Optional[str] = None) -> int:
        """
        Value sent with an unrecognized selector

        The sender is credited exactly as a deposit so no value is held
        without a ledger entry backing it.
        """
        new_balance = self.deposit(caller, amount)
        log_action(
            self.logger, "warning", f"Unrecognized selector {selector!r}, credited as a deposit",
            user_id=caller, action="fallback", resource="balance",
            extra={"selector": selector, "amount": str(amount)}
        )
        return new_balance

    def withdraw(self, caller: str, amount: int) -> int:
        """
        Withdraw from the caller's balance, paying the tax to the profit pool

        The full amount leaves the caller's balance; the fee stays in the
        wallet as outstanding profit and the remainder is paid out.

        Returns:
            Net amount paid to the caller

        Raises:
            ZeroAmount: If amount is zero
            InsufficientFunds: If the caller's balance is below amount
            Overflow: If the fee computation or pool counters overflow
        """
        require_account(caller, "caller")
        with self._operation("withdraw", caller):
            with self.storage.atomic():
                amount = as_uint(amount, max_value=self.max_value)
                if amount == 0:
                    raise ZeroAmount("Withdrawal amount must be greater than zero")
                balance = self.ledger.balance_of(caller)
                if balance < amount:
                    raise InsufficientFunds(
                        f"Account {caller} balance {balance} is below requested {amount}"
                    )

                fee = self.fee_policy.compute_fee(amount)
                net = amount - fee

                self.ledger.debit(caller, amount)
                self.profit_pool.accrue(fee)
                self._adjust_held(-net)
                self._record(AuditEventType.WITHDRAWAL, WalletEvent.WITHDREW, caller,
                             {"amount": amount, "fee": fee, "net_amount": net})

            self._send("withdraw", caller, net,
                       lambda: self._reverse_withdrawal(caller, amount, fee, net))

        log_action(
            self.logger, "info", f"Withdrew {amount} (fee {fee}, net {net})",
            user_id=caller, action="withdraw", resource="balance",
            extra={"amount": str(amount), "fee": str(fee), "net_amount": str(net)}
        )
        return net
    def withdraw_all(self, caller: str) -> int:
        """Withdraw the caller's entire balance"""
        with self._lock:
            amount = self.ledger.balance_of(caller)
            if amount == 0:
                log_action(
                    self.logger, "warning", "withdraw_all rejected: balance is zero",
                    user_id=caller, action="withdraw_all", resource="wallet",
                    extra={"kind": ZeroAmount.kind}
                )
                raise ZeroAmount(f"Account {caller} has no balance to withdraw")
            return self.withdraw(caller, amount)

    def transfer(self, caller: str, recipient: str, amount: int) -> None:
        """
        Move balance to another account without fee or payout

        Raises:
            ZeroBalance: If the caller has no balance
            InsufficientFunds: If the caller's balance is below amount
            InvalidRecipient: If recipient is the null identity
            ZeroAmount: If amount is zero
        """
        require_account(caller, "caller")
        with self._operation("transfer", caller), self.storage.atomic():
            amount = as_uint(amount, max_value=self.max_value)
            balance = self.ledger.balance_of(caller)
            if balance == 0:
                raise ZeroBalance(f"Account {caller} has no balance to transfer")
            if balance < amount:
                raise InsufficientFunds(
                    f"Account {caller} balance {balance} is below requested {amount}"
                )
            if is_null_account(recipient):
                raise InvalidRecipient("Recipient must not be the null identity")

            self.ledger.move_internal(caller, recipient, amount)
            self._record(AuditEventType.TRANSFER, WalletEvent.TRANSFERRED, caller,
                         {"recipient": recipient, "amount": amount})

        log_action(
            self.logger, "info", f"Transferred {amount} to {recipient}",
            user_id=caller, action="transfer", resource="balance",
            extra={"recipient": recipient, "amount": str(amount)}
        )

    def sweep_profit(self, caller: str) -> int:
        """
        Pay the outstanding profit pool to the owner

        Returns:
            Amount swept

        Raises:
            Unauthorized: If caller is not the owner
            NothingToSweep: If the pool is empty
        """
        with self._operation("sweep_profit", caller):
            with self.storage.atomic():
                self.access_control.require_owner(caller)
                amount = self.profit_pool.sweep()
                self._adjust_held(-amount)
                self._record(AuditEventType.PROFIT_SWEPT, WalletEvent.PROFIT_SWEPT, caller,
                             {"amount": amount})

            self._send("sweep_profit", caller, amount, lambda: self._reverse_sweep(amount))

        log_action(
            self.logger, "info", f"Swept profit {amount}",
            user_id=caller, action="sweep_profit", resource="profit_pool",
            extra={"amount": str(amount)}
        )
        return amount

    def set_tax_rate(self, caller: str, new_rate: int) -> None:
        """
        Replace the withdrawal tax rate

        Raises:
            Unauthorized: If caller is not the owner
            InvalidRate: If new_rate is above 100
        """
        with self._operation("set_tax_rate", caller), self.storage.atomic():
            self.access_control.require_owner(caller)
            previous_rate = self.fee_policy.set_rate(new_rate)
            self._record(AuditEventType.TAX_RATE_CHANGED, WalletEvent.TAX_RATE_CHANGED, caller,
                         {"previous_rate": previous_rate, "new_rate": new_rate})

        log_action(
            self.logger, "info", f"Tax rate changed from {previous_rate} to {new_rate}",
            user_id=caller, action="set_tax_rate", resource="fee_policy",
            extra={"previous_rate": previous_rate, "new_rate": new_rate}
        )

    # Read-only accessors

    def balance_of(self, account: str) -> int:
        require_account(account)
        with self._lock:
            return self.ledger.balance_of(account)

    @property
    def owner(self) -> str:
        return self.access_control.owner

    @property
    def tax_rate(self) -> int:
        with self._lock:
            return self.fee_policy.rate

    @property
    def outstanding_profit(self) -> int:
        with self._lock:
            return self.profit_pool.outstanding

    @property
    def total_profit(self) -> int:
        with self._lock:
            return self.profit_pool.total

    @property
    def total_held(self) -> int:
        with self._lock:
            return self.storage.load_int(STATE_TABLE, "total_held")

    def reconcile(self) -> Dict[str, Any]:
        """
        Compare ledger balances plus outstanding profit against value held

        Returns:
            Dictionary with the component totals and a ``balanced`` flag
        """
        with self._lock:
            balances = self.ledger.total_balances()
            outstanding = self.profit_pool.outstanding
            held = self.storage.load_int(STATE_TABLE, "total_held")
        return {
            "total_balances": balances,
            "outstanding_profit": outstanding,
            "total_held": held,
            "balanced": balances + outstanding == held
        }


def create_wallet(
    owner: str,
    config: Optional[TaxWalletConfig] = None,
    storage: Optional[StorageInterface] = None,
    payouts: Optional[PayoutGateway] = None,
    dispatcher: Optional[EventDispatcher] = None,
    configure_logging: bool = False
) -> WalletService:
    """
    Build a wallet service wired from configuration

    Args:
        owner: Owner identity allowed to sweep profit and set the tax rate
        config: Configuration; the global instance when omitted
        storage: Storage backend; built from config when omitted
        payouts: Outbound payout gateway; a recording gateway when omitted
        dispatcher: Event dispatcher; a new one when events are enabled
        configure_logging: Install the configured log handler

    Returns:
        Ready WalletService
    """
    config = config or get_config()

    if configure_logging:
        setup_logging(config.log_level, "tax_wallet", config.log_format, config.log_file)

    if storage is None:
        storage = create_storage(config)

    audit_trail = AuditTrail(storage) if config.enable_audit_logging else None

    if not config.enable_events:
        dispatcher = None
    elif dispatcher is None:
        dispatcher = EventDispatcher()

    return WalletService(
        storage=storage,
        access_control=AccessControl(owner),
        payouts=payouts,
        audit_trail=audit_trail,
        event_dispatcher=dispatcher,
        balance_bits=config.balance_bits,
        initial_tax_rate=config.initial_tax_rate
    )
