"""Execution outcomes, per-operation results, and the batch report."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from delegation_engine.models import PlannedOperation


class ExecutionOutcome(Enum):
    CONFIRMED = "confirmed"
    SKIPPED = "skipped"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class Settlement:
    outcome: ExecutionOutcome
    reason: Optional[str] = None


@dataclass(frozen=True)
class ExecutionResult:
    """Terminal state of one planned operation.

    ``submitted`` is False for dry runs and for operations the ledger refused
    at submission; a refused operation is FAILED with the rejection as reason.
    """

    index: int
    transaction_id: str
    operation: PlannedOperation
    sequence: int
    outcome: ExecutionOutcome
    submitted: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "index": self.index,
            "transaction_id": self.transaction_id,
            "sequence": self.sequence,
            "operation": self.operation.to_dict(),
            "outcome": self.outcome.value,
            "submitted": self.submitted,
            "reason": self.reason,
        }


class ResultRegistry:
    """Write-once mapping from transaction id to result."""

    def __init__(self) -> None:
        self._results: Dict[str, ExecutionResult] = {}

    def record(self, result: ExecutionResult) -> None:
        if result.transaction_id in self._results:
            raise ValueError(f"Result already recorded for {result.transaction_id}.")
        self._results[result.transaction_id] = result

    def get(self, transaction_id: str) -> ExecutionResult:
        return self._results[transaction_id]

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._results

    def __len__(self) -> int:
        return len(self._results)


@dataclass(frozen=True)
class ExecutionReport:
    dry_run: bool
    results: Tuple[ExecutionResult, ...]

    def count(self, outcome: ExecutionOutcome) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def succeeded(self) -> bool:
        return all(
            result.outcome in (ExecutionOutcome.CONFIRMED, ExecutionOutcome.SKIPPED)
            for result in self.results
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "dry_run": self.dry_run,
            "summary": {outcome.value: self.count(outcome) for outcome in ExecutionOutcome},
            "results": [result.to_dict() for result in self.results],
        }
