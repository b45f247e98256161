"""Sign and submit planned operations, one settlement task per operation."""

import asyncio
from typing import Dict, Iterable, List, Protocol, Tuple

import structlog

from delegation_engine.models import PlannedOperation
from ledger_adapter.adapter import operation_to_transaction
from ledger_adapter.models import SignedTransaction
from ledger_adapter.protocol import Ledger, LedgerError

from .collector import ResultCollector
from .models import ExecutionOutcome, ExecutionReport, ExecutionResult, ResultRegistry, Settlement

log = structlog.get_logger(__name__)


class OperationSigner(Protocol):
    def sign(self, account: str, payload: bytes) -> str:
        ...


class BatchExecutor:
    """Drives every planned operation to a terminal outcome.

    Sequence numbers are fetched once per delegator and assigned in plan
    order before anything is submitted; the ledger rejects an account's
    transactions out of sequence. Submissions then run concurrently and a
    failure of one never cancels or blocks another. Nothing is retried.
    """

    def __init__(
        self,
        ledger: Ledger,
        signer: OperationSigner,
        collector: ResultCollector,
    ) -> None:
        self._ledger = ledger
        self._signer = signer
        self._collector = collector

    async def allocate_sequences(
        self, operations: Iterable[PlannedOperation]
    ) -> Tuple[int, ...]:
        next_sequence: Dict[str, int] = {}
        sequences: List[int] = []
        for operation in operations:
            delegator = operation.delegator
            if delegator not in next_sequence:
                next_sequence[delegator] = await self._ledger.get_sequence(delegator)
                log.debug("sequence_fetched", account=delegator, sequence=next_sequence[delegator])
            sequences.append(next_sequence[delegator])
            next_sequence[delegator] += 1
        return tuple(sequences)

    def sign_all(
        self,
        operations: Iterable[PlannedOperation],
        sequences: Iterable[int],
    ) -> Tuple[SignedTransaction, ...]:
        signed = []
        for operation, sequence in zip(operations, sequences):
            transaction = operation_to_transaction(operation, sequence)
            signature = self._signer.sign(operation.delegator, transaction.signing_payload())
            signed.append(SignedTransaction(transaction=transaction, signature=signature))
        return tuple(signed)

    async def execute(
        self, operations: Iterable[PlannedOperation], dry_run: bool = False
    ) -> ExecutionReport:
        operations = tuple(operations)
        sequences = await self.allocate_sequences(operations)
        transactions = self.sign_all(operations, sequences)
        registry = ResultRegistry()

        if dry_run:
            for index, (operation, signed) in enumerate(zip(operations, transactions)):
                registry.record(
                    ExecutionResult(
                        index=index,
                        transaction_id=signed.transaction_id,
                        operation=operation,
                        sequence=signed.transaction.sequence,
                        outcome=ExecutionOutcome.SKIPPED,
                        submitted=False,
                    )
                )
        else:
            await asyncio.gather(
                *(
                    self._submit_and_settle(registry, index, operation, signed)
                    for index, (operation, signed) in enumerate(zip(operations, transactions))
                )
            )

        report = ExecutionReport(
            dry_run=dry_run,
            results=tuple(registry.get(signed.transaction_id) for signed in transactions),
        )
        log.info(
            "batch_finished",
            dry_run=dry_run,
            **{outcome.value: report.count(outcome) for outcome in ExecutionOutcome},
        )
        return report

    async def _submit_and_settle(
        self,
        registry: ResultRegistry,
        index: int,
        operation: PlannedOperation,
        signed: SignedTransaction,
    ) -> None:
        transaction_id = signed.transaction_id
        sequence = signed.transaction.sequence
        # Errors are recorded against this operation only.
        try:
            await self._ledger.submit_signed_operation(signed.encode())
        except Exception as exc:
            log.warning(
                "submission_rejected",
                transaction_id=transaction_id,
                account=operation.delegator,
                sequence=sequence,
                error=str(exc),
                ledger_error=isinstance(exc, LedgerError),
            )
            registry.record(
                ExecutionResult(
                    index=index,
                    transaction_id=transaction_id,
                    operation=operation,
                    sequence=sequence,
                    outcome=ExecutionOutcome.FAILED,
                    submitted=False,
                    reason=f"Error in submission: {exc}",
                )
            )
            return

        log.debug("submitted", transaction_id=transaction_id, account=operation.delegator, sequence=sequence)
        try:
            settlement = await self._collector.collect(transaction_id)
        except Exception as exc:
            log.warning("settlement_unknown", transaction_id=transaction_id, error=repr(exc))
            settlement = Settlement(ExecutionOutcome.FAILED, f"Error while polling: {exc}")
        log.info(
            "settled",
            transaction_id=transaction_id,
            outcome=settlement.outcome.value,
            reason=settlement.reason,
        )
        registry.record(
            ExecutionResult(
                index=index,
                transaction_id=transaction_id,
                operation=operation,
                sequence=sequence,
                outcome=settlement.outcome,
                submitted=True,
                reason=settlement.reason,
            )
        )
