"""Settlement behaviour of the in-memory ledger."""

import unittest

from delegation_engine.models import OperationType, PlannedOperation, StakeHolding, StakeSnapshot

from ledger_adapter.adapter import operation_to_transaction
from ledger_adapter.models import SignedTransaction
from ledger_adapter.protocol import LedgerError, SubmissionRejectedError
from ledger_adapter.simulator import SimulatedLedger


def _state():
    return {
        "height": 10,
        "candidates": ["V1", "V2"],
        "accounts": [
            {"address": "X", "balance": 1000, "sequence": 3, "undelegated": 40000},
            {
                "address": "Y",
                "balance": 5,
                "sequence": 0,
                "delegations": [{"delegatee": "V1", "quantity": 30000}],
            },
        ],
    }


def _signed(operation, sequence):
    return SignedTransaction(operation_to_transaction(operation, sequence), "sig")


def _delegate(quantity=100, delegatee="V1", fee=10):
    return PlannedOperation(
        operation_type=OperationType.DELEGATE,
        delegator="X",
        delegatee=delegatee,
        quantity=quantity,
        fee=fee,
    )


class SimulatedLedgerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.ledger = SimulatedLedger.from_document(_state())

    async def test_reads_state(self) -> None:
        self.assertEqual(await self.ledger.get_sequence("X"), 3)
        self.assertEqual(await self.ledger.get_balance("X"), 1000)
        self.assertEqual(await self.ledger.get_balance("unknown"), 0)
        self.assertEqual(await self.ledger.get_candidate_set(), frozenset({"V1", "V2"}))
        snapshot = await self.ledger.get_snapshot(["X", "Y"])
        self.assertEqual(snapshot.height, 10)
        self.assertEqual(snapshot.delegated("Y", "V1"), 30000)

    async def test_zero_fee_without_balance_entry(self) -> None:
        ledger = SimulatedLedger(
            StakeSnapshot(height=0, holdings=(StakeHolding(account="X", undelegated=500),)),
            candidates=["V1"],
        )
        transaction_id = await ledger.submit_signed_operation(_signed(_delegate(fee=0), 0).encode())

        self.assertTrue(await ledger.is_included(transaction_id))
        self.assertEqual(await ledger.get_balance("X"), 0)
        self.assertEqual(ledger.stake.delegated("X", "V1"), 100)

    async def test_snapshot_at_unknown_height(self) -> None:
        with self.assertRaises(LedgerError):
            await self.ledger.get_snapshot(["X"], height=3)

    async def test_included_transaction_applies_effects(self) -> None:
        signed = _signed(_delegate(), 3)
        transaction_id = await self.ledger.submit_signed_operation(signed.encode())

        self.assertEqual(transaction_id, signed.transaction_id)
        self.assertTrue(await self.ledger.is_included(transaction_id))
        self.assertEqual(self.ledger.stake.delegated("X", "V1"), 100)
        self.assertEqual(await self.ledger.get_balance("X"), 990)
        self.assertEqual(await self.ledger.get_sequence("X"), 4)
        self.assertEqual(await self.ledger.get_best_block_number(), 11)

    async def test_future_sequence_waits_for_gap(self) -> None:
        later = _signed(_delegate(quantity=1), 4)
        earlier = _signed(_delegate(quantity=2), 3)

        await self.ledger.submit_signed_operation(later.encode())
        self.assertFalse(await self.ledger.is_included(later.transaction_id))

        await self.ledger.submit_signed_operation(earlier.encode())
        self.assertTrue(await self.ledger.is_included(later.transaction_id))
        self.assertTrue(await self.ledger.is_included(earlier.transaction_id))

    async def test_stale_sequence_rejected(self) -> None:
        with self.assertRaises(SubmissionRejectedError):
            await self.ledger.submit_signed_operation(_signed(_delegate(), 2).encode())
        self.assertEqual(self.ledger.submitted, [])

    async def test_malformed_bytes_rejected(self) -> None:
        with self.assertRaises(SubmissionRejectedError):
            await self.ledger.submit_signed_operation(b"garbage")

    async def test_duplicate_rejected(self) -> None:
        raw = _signed(_delegate(), 3).encode()
        await self.ledger.submit_signed_operation(raw)
        with self.assertRaises(SubmissionRejectedError):
            await self.ledger.submit_signed_operation(raw)

    async def test_non_candidate_yields_hint(self) -> None:
        signed = _signed(_delegate(delegatee="V9"), 3)
        await self.ledger.submit_signed_operation(signed.encode())

        self.assertFalse(await self.ledger.is_included(signed.transaction_id))
        hint = await self.ledger.get_failure_hint(signed.transaction_id)
        self.assertIn("not a candidate", hint)

    async def test_insufficient_fee_yields_hint(self) -> None:
        revoke = PlannedOperation(
            operation_type=OperationType.REVOKE,
            delegator="Y",
            delegatee="V1",
            quantity=10,
            fee=10,
        )
        signed = _signed(revoke, 0)
        await self.ledger.submit_signed_operation(signed.encode())

        hint = await self.ledger.get_failure_hint(signed.transaction_id)
        self.assertIn("Insufficient balance", hint)

    async def test_overdrawn_stake_yields_hint(self) -> None:
        signed = _signed(_delegate(quantity=50000), 3)
        await self.ledger.submit_signed_operation(signed.encode())

        self.assertIsNotNone(await self.ledger.get_failure_hint(signed.transaction_id))
        self.assertEqual(self.ledger.stake.undelegated("X"), 40000)

    async def test_hooks(self) -> None:
        self.ledger.reject_submission("X", 3, "mempool full")
        with self.assertRaisesRegex(SubmissionRejectedError, "mempool full"):
            await self.ledger.submit_signed_operation(_signed(_delegate(), 3).encode())

        ledger = SimulatedLedger.from_document(_state())
        ledger.stall("X", 3)
        stalled = _signed(_delegate(), 3)
        await ledger.submit_signed_operation(stalled.encode())
        self.assertFalse(await ledger.is_included(stalled.transaction_id))
        self.assertIsNone(await ledger.get_failure_hint(stalled.transaction_id))

        ledger = SimulatedLedger.from_document(_state())
        ledger.fail_settlement("X", 3, "out of gas")
        failed = _signed(_delegate(), 3)
        await ledger.submit_signed_operation(failed.encode())
        self.assertEqual(await ledger.get_failure_hint(failed.transaction_id), "out of gas")


if __name__ == "__main__":
    unittest.main()
