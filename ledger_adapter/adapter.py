"""Translate planned operations into ledger transactions and back."""

from typing import Dict
import json

from delegation_engine.models import OperationType, PlannedOperation

from .models import LedgerTransaction, SignedTransaction


class AdapterError(ValueError):
    """Raised when an operation or an encoded transaction cannot be adapted."""


_ACTIONS: Dict[OperationType, str] = {
    OperationType.DELEGATE: "delegateCCS",
    OperationType.REVOKE: "revoke",
    OperationType.REDELEGATE: "redelegate",
}
_OPERATION_TYPES = {action: operation_type for operation_type, action in _ACTIONS.items()}


def operation_to_transaction(operation: PlannedOperation, sequence: int) -> LedgerTransaction:
    if operation.operation_type not in _ACTIONS:
        raise AdapterError("Unsupported operation type for the ledger adapter.")
    if sequence < 0:
        raise AdapterError("Sequence numbers must be non-negative.")
    if operation.quantity <= 0:
        raise AdapterError("Transactions must move a positive quantity.")

    return LedgerTransaction(
        action=_ACTIONS[operation.operation_type],
        sender=operation.delegator,
        sequence=sequence,
        fee=operation.fee,
        delegatee=operation.delegatee,
        quantity=operation.quantity,
        next_delegatee=operation.next_delegatee,
    )


def transaction_to_operation(transaction: LedgerTransaction) -> PlannedOperation:
    if transaction.action not in _OPERATION_TYPES:
        raise AdapterError(f"Unknown action: {transaction.action}")
    return PlannedOperation(
        operation_type=_OPERATION_TYPES[transaction.action],
        delegator=transaction.sender,
        delegatee=transaction.delegatee,
        quantity=transaction.quantity,
        fee=transaction.fee,
        next_delegatee=transaction.next_delegatee,
    )


def decode_signed_transaction(raw: bytes) -> SignedTransaction:
    try:
        data = json.loads(raw.decode("utf-8"))
        body = data["transaction"]
        transaction = LedgerTransaction(
            action=body["action"],
            sender=body["sender"],
            sequence=_integer(body["sequence"]),
            fee=_integer(body["fee"]),
            delegatee=body["delegatee"],
            quantity=_integer(body["quantity"]),
            next_delegatee=body.get("next_delegatee"),
        )
        signature = data["signature"]
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as exc:
        raise AdapterError(f"Malformed transaction: {exc}") from exc
    if not isinstance(signature, str) or not signature:
        raise AdapterError("Malformed transaction: missing signature")
    if transaction.action not in _OPERATION_TYPES:
        raise AdapterError(f"Unknown action: {transaction.action}")
    return SignedTransaction(transaction=transaction, signature=signature)


def _integer(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer, got {value!r}")
    return value
