"""
Payout Gateways

The wallet's only outbound interaction: sending value to an account outside
the ledger. A gateway may run arbitrary code, including calling back into the
wallet, so the wallet invokes it only after its own state is updated.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Tuple
import threading


class PayoutGateway(ABC):
    """Sends value out of the wallet"""

    @abstractmethod
    def send(self, recipient: str, amount: int) -> None:
        """Transfer amount to recipient; raise to abort the operation"""
        pass


class RecordingPayoutGateway(PayoutGateway):
    """In-memory gateway that records every payout"""

    def __init__(self):
        self._lock = threading.Lock()
        self.payouts: List[Tuple[str, int]] = []

    def send(self, recipient: str, amount: int) -> None:
        with self._lock:
            self.payouts.append((recipient, amount))

    def total_paid(self) -> int:
        with self._lock:
            return sum(amount for _, amount in self.payouts)

    def paid_to(self, recipient: str) -> int:
        with self._lock:
            return sum(amount for who, amount in self.payouts if who == recipient)


class CallbackPayoutGateway(RecordingPayoutGateway):
    """Hands each payout to a callback, recording it once the callback returns"""

    def __init__(self, callback: Callable[[str, int], None]):
        super().__init__()
        self.callback = callback

    def send(self, recipient: str, amount: int) -> None:
        self.callback(recipient, amount)
        super().send(recipient, amount)
