"""Smoke tests for the operator CLI."""

import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from pathlib import Path
from unittest import mock

from operator_cli.cli import main


class OperatorCliSmokeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tempdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tempdir.name)
        self.keystore = str(self.root / "keystore.json")

        code, output, _ = self._run(["key", "create", "--keystore", self.keystore, "--passphrase", "pa"])
        self.assertEqual(code, 0)
        self.alice = output.strip()
        code, output, _ = self._run(["key", "create", "--keystore", self.keystore, "--passphrase", "pb"])
        self.assertEqual(code, 0)
        self.bob = output.strip()

        self.distribution = self._write(
            "distribution.json",
            {
                "stakeholders": [self.alice, self.bob],
                "fee": 10,
                "distributions": [
                    {"validator": "V1", "quantity": 10000},
                    {"validator": "V2", "quantity": 30000},
                ],
            },
        )
        self.ledger_state = self._ledger_state(bob_balance=100)
        self.passwords = self._write(
            "passwords.json",
            [
                {"address": self.alice, "password": "pa"},
                {"address": self.bob, "password": "pb"},
            ],
        )

    def tearDown(self) -> None:
        self.tempdir.cleanup()

    def _run(self, args):
        out, err = StringIO(), StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(args)
        return code, out.getvalue(), err.getvalue()

    def _write(self, name, data) -> str:
        path = self.root / name
        path.write_text(json.dumps(data))
        return str(path)

    def _ledger_state(self, bob_balance: int) -> str:
        return self._write(
            "ledger.json",
            {
                "height": 42,
                "candidates": ["V1", "V2"],
                "accounts": [
                    {"address": self.alice, "balance": 100, "sequence": 0, "undelegated": 50000},
                    {
                        "address": self.bob,
                        "balance": bob_balance,
                        "sequence": 7,
                        "delegations": [{"delegatee": "V1", "quantity": 20000}],
                    },
                ],
            },
        )

    def _batch(self, *extra):
        return self._run(
            [
                "batch-delegate",
                self.distribution,
                "--password-path",
                self.passwords,
                "--ledger-state",
                self.ledger_state,
                "--keystore",
                self.keystore,
                *extra,
            ]
        )

    def test_key_list(self) -> None:
        code, output, _ = self._run(["key", "list", "--keystore", self.keystore])
        self.assertEqual(code, 0)
        self.assertEqual(output.split(), [self.alice, self.bob])

    def test_plan_outputs_json(self) -> None:
        code, output, _ = self._run(["plan", self.distribution, "--ledger-state", self.ledger_state])

        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(payload["height"], 42)
        self.assertEqual(
            payload["operations"],
            [
                {
                    "type": "redelegate",
                    "delegator": self.bob,
                    "delegatee": "V1",
                    "quantity": 10000,
                    "fee": 10,
                    "next_delegatee": "V2",
                },
                {
                    "type": "delegate",
                    "delegator": self.alice,
                    "delegatee": "V2",
                    "quantity": 20000,
                    "fee": 10,
                },
            ],
        )
        self.assertEqual(payload["fees"], {self.bob: 10, self.alice: 10})

    def test_plan_rejects_unknown_height(self) -> None:
        code, _, err = self._run(
            ["plan", self.distribution, "--ledger-state", self.ledger_state, "--height", "7"]
        )
        self.assertEqual(code, 2)
        self.assertIn("ERROR:", err)

    def test_dry_run_skips_everything(self) -> None:
        code, output, _ = self._batch("--dry-run")

        self.assertEqual(code, 0)
        report = json.loads(output)["report"]
        self.assertTrue(report["dry_run"])
        self.assertEqual(report["summary"]["skipped"], 2)
        self.assertEqual([r["sequence"] for r in report["results"]], [7, 0])
        self.assertFalse(any(r["submitted"] for r in report["results"]))

    def test_json_logs_carry_run_context(self) -> None:
        code, _, err = self._batch("--dry-run", "--verbose", "--log-json")

        self.assertEqual(code, 0)
        events = [json.loads(line) for line in err.splitlines() if line.strip()]
        finished = [event for event in events if event["event"] == "batch_finished"]
        self.assertEqual(len(finished), 1)
        self.assertEqual(finished[0]["command"], "batch-delegate")
        self.assertEqual(finished[0]["height"], 42)
        self.assertEqual(finished[0]["operations"], 2)
        self.assertEqual(finished[0]["skipped"], 2)

    def test_execute_with_yes(self) -> None:
        code, output, _ = self._batch("--yes", "--poll-interval", "0.01", "--timeout", "1")

        self.assertEqual(code, 0)
        report = json.loads(output)["report"]
        self.assertEqual(report["summary"]["confirmed"], 2)
        self.assertTrue(all(r["transaction_id"].startswith("0x") for r in report["results"]))

    def test_declined_confirmation_aborts(self) -> None:
        with mock.patch("builtins.input", return_value="n"):
            code, output, err = self._batch()

        self.assertEqual(code, 2)
        self.assertEqual(output, "")
        self.assertIn("confirmation denied", err)

    def test_accepted_confirmation_executes(self) -> None:
        with mock.patch("builtins.input", return_value="yes"):
            code, output, _ = self._batch("--poll-interval", "0.01")

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["report"]["summary"]["confirmed"], 2)

    def test_missing_password_is_fatal(self) -> None:
        self.passwords = self._write("passwords.json", [{"address": self.alice, "password": "pa"}])

        code, output, err = self._batch("--yes")

        self.assertEqual(code, 2)
        self.assertEqual(output, "")
        self.assertIn(f"No password for: {self.bob}", err)

    def test_wrong_password_is_fatal(self) -> None:
        self.passwords = self._write(
            "passwords.json",
            [
                {"address": self.alice, "password": "pa"},
                {"address": self.bob, "password": "wrong"},
            ],
        )

        code, _, err = self._batch("--yes")

        self.assertEqual(code, 2)
        self.assertIn("Cannot unlock key", err)

    def test_insufficient_fee_balance_is_fatal(self) -> None:
        self.ledger_state = self._ledger_state(bob_balance=5)

        code, _, err = self._batch("--yes")

        self.assertEqual(code, 2)
        self.assertIn("doesn't have enough balance for fees", err)

    def test_oversubscribed_distribution_is_fatal(self) -> None:
        self.distribution = self._write(
            "distribution.json",
            {
                "stakeholders": [self.alice, self.bob],
                "fee": 10,
                "distributions": [{"validator": "V2", "quantity": 80000}],
            },
        )

        code, _, err = self._batch("--yes")

        self.assertEqual(code, 2)
        self.assertIn("is less than the sum of distributions", err)

    def test_keystore_from_environment(self) -> None:
        with mock.patch.dict(os.environ, {"STAKE_REBALANCE_KEYSTORE_PATH": self.keystore}):
            code, output, _ = self._run(["key", "list"])

        self.assertEqual(code, 0)
        self.assertIn(self.alice, output)

    def test_missing_keystore_is_fatal(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            code, _, err = self._run(["key", "list"])

        self.assertEqual(code, 2)
        self.assertIn("keystore path is required", err)


if __name__ == "__main__":
    unittest.main()
