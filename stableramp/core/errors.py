"""Error taxonomy shared by the ledger adapter, the processor client and the domain.

Every error carries a ``transient`` flag. It is decided once, where a raw
transport failure is first caught, and the retry helpers only ever read it.
"""
from typing import Optional


class StableRampError(Exception):
    """Base error. ``transient`` errors may be retried, everything else is permanent."""

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.message = message
        self.transient = transient


class LedgerRpcError(StableRampError):
    """A ledger JSON-RPC call failed."""

    def __init__(self, message: str, transient: bool = False, operation: Optional[str] = None):
        super().__init__(message, transient=transient)
        self.operation = operation


class ProcessorError(StableRampError):
    """A payment-processor API call failed."""

    def __init__(self, message: str, transient: bool = False, status: Optional[int] = None):
        super().__init__(message, transient=transient)
        self.status = status


class ValidationError(StableRampError):
    pass


class NotFoundError(StableRampError):
    pass


class InsufficientBalanceError(StableRampError):
    pass


class SignatureVerificationError(StableRampError):
    pass


class OnChainTransferFailed(StableRampError):
    """The transaction was mined but its receipt reports failure."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message, transient=False)
        self.tx_hash = tx_hash


class ReceiptTimeoutError(LedgerRpcError):
    """A transfer was broadcast but its receipt could not be obtained.

    Never retried: the transaction may still be mined, so sending it again
    could pay twice.
    """

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message, transient=False, operation="wait_for_receipt")
        self.tx_hash = tx_hash


def is_transient(exc: BaseException) -> bool:
    return bool(getattr(exc, "transient", False))
