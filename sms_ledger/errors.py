# sms_ledger/errors.py


class LedgerError(Exception):
    """Base class for errors raised by the ingestion and ledger layers."""


class ExtractionFailure(LedgerError):
    """A message from a known sender could not be turned into fields."""


class WalletNotFound(ExtractionFailure):
    """No wallet row matches the sender (and wallet name) of a message."""


class PersistenceFailure(LedgerError):
    """A storage read or write failed."""


class TransactionNotFound(LedgerError):
    pass


class StaleEditError(LedgerError):
    """The caller's view of a transaction no longer matches the stored row."""


class SyncError(LedgerError):
    pass


class SplitMismatchError(LedgerError):
    """Split parts do not add up to the transaction they divide."""
