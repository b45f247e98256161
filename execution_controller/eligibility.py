"""Live-ledger checks a plan must pass before anything is submitted."""

import asyncio
from typing import Iterable, Mapping, Sequence

import structlog

from delegation_engine.models import PlannedOperation
from delegation_engine.planner import fee_totals
from ledger_adapter.protocol import Ledger

log = structlog.get_logger(__name__)


class EligibilityError(ValueError):
    """Raised when a plan cannot be executed against the live ledger."""


class InvalidDelegateeError(EligibilityError):
    def __init__(self, validator: str) -> None:
        super().__init__(f"Delegatee is not a candidate: {validator}")
        self.validator = validator


class InsufficientFeeError(EligibilityError):
    def __init__(self, stakeholder: str, required: int, balance: int) -> None:
        self.stakeholder = stakeholder
        self.required = required
        self.balance = balance
        self.shortfall = required - balance
        super().__init__(
            f"Stakeholder {stakeholder} doesn't have enough balance for fees: "
            f"needs {required:,}, has {balance:,} (short {self.shortfall:,})"
        )


def check_delegatees(operations: Iterable[PlannedOperation], candidates: Iterable[str]) -> None:
    candidate_set = frozenset(candidates)
    for operation in operations:
        if operation.target not in candidate_set:
            raise InvalidDelegateeError(operation.target)


def check_fees(operations: Iterable[PlannedOperation], balances: Mapping[str, int]) -> None:
    for delegator, required in fee_totals(operations).items():
        balance = balances.get(delegator, 0)
        if balance < required:
            raise InsufficientFeeError(delegator, required, balance)


def check_eligibility(
    operations: Sequence[PlannedOperation],
    candidates: Iterable[str],
    balances: Mapping[str, int],
) -> None:
    check_delegatees(operations, candidates)
    check_fees(operations, balances)


class EligibilityChecker:
    def __init__(self, ledger: Ledger) -> None:
        self._ledger = ledger

    async def check(self, operations: Sequence[PlannedOperation]) -> None:
        candidates = await self._ledger.get_candidate_set()
        check_delegatees(operations, candidates)

        delegators = list(fee_totals(operations))
        fetched = await asyncio.gather(
            *(self._ledger.get_balance(delegator) for delegator in delegators)
        )
        check_fees(operations, dict(zip(delegators, fetched)))
        log.info(
            "eligibility_passed",
            operations=len(operations),
            delegators=len(delegators),
            candidates=len(candidates),
        )
