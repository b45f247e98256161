"""Ledger transaction models for unsigned and signed stake operations."""

from dataclasses import dataclass
from typing import Dict, Optional
import hashlib
import json


@dataclass(frozen=True)
class LedgerTransaction:
    action: str
    sender: str
    sequence: int
    fee: int
    delegatee: str
    quantity: int
    next_delegatee: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "action": self.action,
            "sender": self.sender,
            "sequence": self.sequence,
            "fee": self.fee,
            "delegatee": self.delegatee,
            "quantity": self.quantity,
        }
        if self.next_delegatee is not None:
            data["next_delegatee"] = self.next_delegatee
        return data

    def signing_payload(self) -> bytes:
        return _canonical(self.to_dict())


@dataclass(frozen=True)
class SignedTransaction:
    transaction: LedgerTransaction
    signature: str

    def encode(self) -> bytes:
        return _canonical(
            {"transaction": self.transaction.to_dict(), "signature": self.signature}
        )

    @property
    def transaction_id(self) -> str:
        return "0x" + hashlib.sha256(self.encode()).hexdigest()


def _canonical(data: Dict[str, object]) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")
