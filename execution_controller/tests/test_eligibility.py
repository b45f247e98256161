import unittest

from delegation_engine.models import OperationType, PlannedOperation
from execution_controller.eligibility import (
    EligibilityChecker,
    InsufficientFeeError,
    InvalidDelegateeError,
    check_eligibility,
)
from ledger_adapter.simulator import SimulatedLedger


def _op(kind, delegator, delegatee, quantity, fee=10, next_delegatee=None):
    return PlannedOperation(
        operation_type=kind,
        delegator=delegator,
        delegatee=delegatee,
        quantity=quantity,
        fee=fee,
        next_delegatee=next_delegatee,
    )


_PLAN = (
    _op(OperationType.REDELEGATE, "X", "V1", 500, next_delegatee="V2"),
    _op(OperationType.DELEGATE, "X", "V3", 100),
    _op(OperationType.REVOKE, "Y", "V1", 200),
)


class CheckEligibilityTests(unittest.TestCase):
    def test_passes_with_candidates_and_fees(self) -> None:
        check_eligibility(_PLAN, ["V1", "V2", "V3"], {"X": 20, "Y": 10})

    def test_redelegation_target_must_be_candidate(self) -> None:
        with self.assertRaises(InvalidDelegateeError) as ctx:
            check_eligibility(_PLAN, ["V1", "V3"], {"X": 20, "Y": 10})
        self.assertEqual(ctx.exception.validator, "V2")
        self.assertEqual(str(ctx.exception), "Delegatee is not a candidate: V2")

    def test_revoke_target_must_be_candidate(self) -> None:
        with self.assertRaises(InvalidDelegateeError):
            check_eligibility(_PLAN, ["V2", "V3"], {"X": 20, "Y": 10})

    def test_fees_are_summed_per_stakeholder(self) -> None:
        with self.assertRaises(InsufficientFeeError) as ctx:
            check_eligibility(_PLAN, ["V1", "V2", "V3"], {"X": 19, "Y": 10})

        self.assertEqual(ctx.exception.stakeholder, "X")
        self.assertEqual(ctx.exception.required, 20)
        self.assertEqual(ctx.exception.balance, 19)
        self.assertEqual(ctx.exception.shortfall, 1)

    def test_missing_balance_counts_as_zero(self) -> None:
        with self.assertRaises(InsufficientFeeError) as ctx:
            check_eligibility(_PLAN, ["V1", "V2", "V3"], {"X": 20})
        self.assertEqual(ctx.exception.stakeholder, "Y")

    def test_delegatees_checked_before_fees(self) -> None:
        with self.assertRaises(InvalidDelegateeError):
            check_eligibility(_PLAN, ["V1"], {})

    def test_empty_plan_is_eligible(self) -> None:
        check_eligibility((), [], {})


class EligibilityCheckerTests(unittest.IsolatedAsyncioTestCase):
    def _ledger(self, y_balance: int) -> SimulatedLedger:
        return SimulatedLedger.from_document(
            {
                "candidates": ["V1", "V2", "V3"],
                "accounts": [
                    {"address": "X", "balance": 1000},
                    {"address": "Y", "balance": y_balance},
                ],
            }
        )

    async def test_reads_candidates_and_balances_from_ledger(self) -> None:
        await EligibilityChecker(self._ledger(y_balance=10)).check(_PLAN)

    async def test_reports_fee_shortfall(self) -> None:
        with self.assertRaises(InsufficientFeeError) as ctx:
            await EligibilityChecker(self._ledger(y_balance=3)).check(_PLAN)
        self.assertEqual(ctx.exception.shortfall, 7)


if __name__ == "__main__":
    unittest.main()
