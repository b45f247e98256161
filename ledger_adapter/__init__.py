from .adapter import (
    AdapterError,
    decode_signed_transaction,
    operation_to_transaction,
    transaction_to_operation,
)
from .models import LedgerTransaction, SignedTransaction
from .protocol import Ledger, LedgerError, SnapshotSource, SubmissionRejectedError
from .simulator import SimulatedLedger

__all__ = [
    "AdapterError",
    "Ledger",
    "LedgerError",
    "LedgerTransaction",
    "SignedTransaction",
    "SimulatedLedger",
    "SnapshotSource",
    "SubmissionRejectedError",
    "decode_signed_transaction",
    "operation_to_transaction",
    "transaction_to_operation",
]
