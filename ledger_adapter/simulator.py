"""In-memory ledger that settles stake transactions without network calls.

The simulator honours the per-account sequence rule: a transaction whose
sequence is ahead of the account's next sequence waits in the queue until the
gap is filled, one that is behind is rejected at submission. Queued
transactions settle whenever the ledger is polled.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Union

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from delegation_engine.documents import HoldingEntry, parse_quantity, read_json
from delegation_engine.models import OperationType, StakeSnapshot
from delegation_engine.planner import InputValidationError, PlanValidationError, apply_plan

from .adapter import AdapterError, decode_signed_transaction, transaction_to_operation
from .models import SignedTransaction
from .protocol import LedgerError, SubmissionRejectedError

log = structlog.get_logger(__name__)

_Slot = Tuple[str, int]


class LedgerAccountEntry(HoldingEntry):
    balance: int = 0
    sequence: int = Field(default=0, ge=0)

    @field_validator("balance", mode="before")
    @classmethod
    def _balance(cls, value: object) -> int:
        return parse_quantity(value)


class LedgerStateDocument(BaseModel):
    height: int = Field(default=0, ge=0)
    candidates: List[str] = Field(default_factory=list)
    accounts: List[LedgerAccountEntry] = Field(default_factory=list)


class SimulatedLedger:
    def __init__(
        self,
        snapshot: StakeSnapshot,
        candidates: Iterable[str] = (),
        balances: Optional[Dict[str, int]] = None,
        sequences: Optional[Dict[str, int]] = None,
    ) -> None:
        self._stake = snapshot
        self._height = snapshot.height
        self._candidates = frozenset(candidates)
        self._balances: Dict[str, int] = dict(balances or {})
        self._sequences: Dict[str, int] = dict(sequences or {})
        self._queued: Dict[_Slot, SignedTransaction] = {}
        self._included: Set[str] = set()
        self._hints: Dict[str, str] = {}
        self._known: Set[str] = set()
        self._rejections: Dict[_Slot, str] = {}
        self._failures: Dict[_Slot, str] = {}
        self._stalled: Set[_Slot] = set()
        self.submitted: List[str] = []
        self.sequence_queries: List[str] = []

    @classmethod
    def from_document(cls, data: object) -> "SimulatedLedger":
        try:
            document = LedgerStateDocument.model_validate(data)
        except ValidationError as exc:
            raise InputValidationError(f"Invalid ledger state: {exc}") from exc
        addresses = [entry.address for entry in document.accounts]
        if len(set(addresses)) != len(addresses):
            raise InputValidationError("Duplicated account entries in ledger state.")
        snapshot = StakeSnapshot(
            height=document.height,
            holdings=tuple(entry.to_holding() for entry in document.accounts),
        )
        return cls(
            snapshot,
            candidates=document.candidates,
            balances={entry.address: entry.balance for entry in document.accounts},
            sequences={entry.address: entry.sequence for entry in document.accounts},
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SimulatedLedger":
        return cls.from_document(read_json(path))

    def reject_submission(self, sender: str, sequence: int, reason: str) -> None:
        self._rejections[(sender, sequence)] = reason

    def fail_settlement(self, sender: str, sequence: int, hint: str) -> None:
        self._failures[(sender, sequence)] = hint

    def stall(self, sender: str, sequence: int) -> None:
        self._stalled.add((sender, sequence))

    @property
    def stake(self) -> StakeSnapshot:
        return self._stake

    async def get_best_block_number(self) -> int:
        return self._height

    async def get_snapshot(
        self, accounts: Iterable[str], height: Optional[int] = None
    ) -> StakeSnapshot:
        if height is not None and height != self._height:
            raise LedgerError(f"State at height {height} is not available.")
        return StakeSnapshot(
            height=self._height,
            holdings=tuple(self._stake.holding(account) for account in accounts),
        )

    async def get_sequence(self, account: str) -> int:
        self.sequence_queries.append(account)
        return self._sequences.get(account, 0)

    async def get_balance(self, account: str) -> int:
        return self._balances.get(account, 0)

    async def get_candidate_set(self) -> FrozenSet[str]:
        return self._candidates

    async def submit_signed_operation(self, raw: bytes) -> str:
        try:
            signed = decode_signed_transaction(raw)
        except AdapterError as exc:
            raise SubmissionRejectedError(str(exc)) from exc

        transaction = signed.transaction
        slot = (transaction.sender, transaction.sequence)
        transaction_id = signed.transaction_id
        if slot in self._rejections:
            raise SubmissionRejectedError(self._rejections[slot])
        if transaction_id in self._known:
            raise SubmissionRejectedError("Transaction already imported.")
        if transaction.sequence < self._sequences.get(transaction.sender, 0):
            raise SubmissionRejectedError(
                f"Too low sequence: expected at least {self._sequences.get(transaction.sender, 0)}, "
                f"got {transaction.sequence}."
            )
        if slot in self._queued:
            raise SubmissionRejectedError("Another transaction with the same sequence is queued.")

        self._known.add(transaction_id)
        self._queued[slot] = signed
        self.submitted.append(transaction_id)
        return transaction_id

    async def is_included(self, transaction_id: str) -> bool:
        self._settle_queued()
        return transaction_id in self._included

    async def get_failure_hint(self, transaction_id: str) -> Optional[str]:
        self._settle_queued()
        return self._hints.get(transaction_id)

    def _settle_queued(self) -> None:
        settled = False
        progress = True
        while progress:
            progress = False
            for slot in sorted(self._queued):
                sender, sequence = slot
                if sequence != self._sequences.get(sender, 0) or slot in self._stalled:
                    continue
                self._settle(self._queued.pop(slot))
                settled = progress = True
        if settled:
            self._height += 1

    def _settle(self, signed: SignedTransaction) -> None:
        transaction = signed.transaction
        transaction_id = signed.transaction_id
        slot = (transaction.sender, transaction.sequence)
        self._sequences[transaction.sender] = transaction.sequence + 1

        hint = self._failures.get(slot) or self._check_fee(transaction.sender, transaction.fee)
        if hint is None:
            self._balances[transaction.sender] = self._balances.get(transaction.sender, 0) - transaction.fee
            hint = self._apply_stake(signed)
        if hint is not None:
            self._hints[transaction_id] = hint
            log.debug("simulated_failure", transaction_id=transaction_id, hint=hint)
            return
        self._included.add(transaction_id)

    def _check_fee(self, sender: str, fee: int) -> Optional[str]:
        if self._balances.get(sender, 0) < fee:
            return f"Insufficient balance for fee: {sender}"
        return None

    def _apply_stake(self, signed: SignedTransaction) -> Optional[str]:
        operation = transaction_to_operation(signed.transaction)
        if operation.operation_type != OperationType.REVOKE and operation.target not in self._candidates:
            return f"Delegatee is not a candidate: {operation.target}"
        try:
            self._stake = apply_plan(self._stake, (operation,))
        except PlanValidationError as exc:
            return str(exc)
        return None
