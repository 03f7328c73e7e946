"""Ledger exception classes."""


class LedgerError(RuntimeError):
    """Base class for failures talking to the election contract."""


class LedgerUnavailableError(LedgerError):
    """Raised when ledger reads cannot be completed (transport failure, open circuit, aborted sync)."""


class LedgerCallError(LedgerError):
    """Raised when a read call reverts or the deployed contract does not support it."""


class LedgerOperationFailed(LedgerError):
    """Raised when a mutating transaction is rejected, reverted, or never confirmed."""

    def __init__(self, reason: str, *, function: str = "", tx_hash: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.function = function
        self.tx_hash = tx_hash


class LedgerMisconfiguredError(LedgerError):
    """Raised when the ledger endpoint, contract address or signing keys are missing."""


__all__ = [
    "LedgerError",
    "LedgerUnavailableError",
    "LedgerCallError",
    "LedgerOperationFailed",
    "LedgerMisconfiguredError",
]
