"""Operator CLI for batch stake rebalancing."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog

from delegation_engine.documents import load_distribution
from delegation_engine.models import DistributionSpec, PlannedOperation, StakeSnapshot
from delegation_engine.planner import RebalancePlanner, fee_totals
from execution_controller.collector import ResultCollector
from execution_controller.eligibility import EligibilityChecker
from execution_controller.executor import BatchExecutor
from execution_controller.models import ExecutionReport
from ledger_adapter.protocol import LedgerError
from ledger_adapter.simulator import SimulatedLedger
from wallet_core.credentials import CredentialResolver, load_credentials
from wallet_core.keystore import FileKeyStore
from wallet_core.signer import LocalSigner, PassphraseEncryptor, SigningError

from operator_cli.log_config import bind_run_context, configure_logging
from operator_cli.settings import RebalanceSettings

log = structlog.get_logger(__name__)


class ExecutionDeclinedError(RuntimeError):
    """Raised when the operator does not confirm execution."""


def main(argv: Optional[List[str]] = None) -> int:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", action="store_true", default=None)
    common.add_argument("--log-json", action="store_true", default=None)

    parser = argparse.ArgumentParser(prog="stake-rebalance")
    subparsers = parser.add_subparsers(dest="command", required=True)

    key_parser = subparsers.add_parser("key")
    key_sub = key_parser.add_subparsers(dest="key_command", required=True)

    key_create = key_sub.add_parser("create", parents=[common])
    key_create.add_argument("--keystore")
    key_create.add_argument("--passphrase", required=True)
    key_create.set_defaults(func=_key_create)

    key_list = key_sub.add_parser("list", parents=[common])
    key_list.add_argument("--keystore")
    key_list.set_defaults(func=_key_list)

    plan_parser = subparsers.add_parser("plan", parents=[common])
    plan_parser.add_argument("distribution")
    plan_parser.add_argument("--ledger-state", required=True)
    plan_parser.add_argument("--height", type=int)
    plan_parser.set_defaults(func=_plan)

    batch_parser = subparsers.add_parser("batch-delegate", parents=[common])
    batch_parser.add_argument("distribution")
    batch_parser.add_argument("--password-path", required=True)
    batch_parser.add_argument("--ledger-state", required=True)
    batch_parser.add_argument("--keystore")
    batch_parser.add_argument("--height", type=int)
    batch_parser.add_argument("--dry-run", action="store_true")
    batch_parser.add_argument("--yes", action="store_true")
    batch_parser.add_argument("--poll-interval", type=float)
    batch_parser.add_argument("--timeout", type=float)
    batch_parser.set_defaults(func=_batch_delegate)

    args = parser.parse_args(argv)

    try:
        settings = _build_settings(args)
        configure_logging(verbose=settings.verbose, log_json=settings.log_json)
        bind_run_context(command=args.command)
        return args.func(args, settings)
    except (ValueError, LedgerError, SigningError, ExecutionDeclinedError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


def _build_settings(args: argparse.Namespace) -> RebalanceSettings:
    overrides = {
        "verbose": args.verbose,
        "log_json": args.log_json,
        "keystore_path": getattr(args, "keystore", None),
        "poll_interval_s": getattr(args, "poll_interval", None),
        "settle_timeout_s": getattr(args, "timeout", None),
    }
    return RebalanceSettings(**{key: value for key, value in overrides.items() if value is not None})


def _key_create(args: argparse.Namespace, settings: RebalanceSettings) -> int:
    signer = _signer(settings)
    record = signer.create_key(passphrase=args.passphrase)
    print(record.address)
    return 0


def _key_list(args: argparse.Namespace, settings: RebalanceSettings) -> int:
    for address in _signer(settings).addresses():
        print(address)
    return 0


def _plan(args: argparse.Namespace, settings: RebalanceSettings) -> int:
    spec = load_distribution(args.distribution)
    ledger = SimulatedLedger.from_file(args.ledger_state)
    snapshot, plan = asyncio.run(_snapshot_and_plan(ledger, spec, args.height))
    bind_run_context(command=args.command, height=snapshot.height, operations=len(plan))
    print(json.dumps(_plan_to_dict(snapshot, plan), indent=2))
    return 0


def _batch_delegate(args: argparse.Namespace, settings: RebalanceSettings) -> int:
    spec = load_distribution(args.distribution)
    resolver = CredentialResolver(_signer(settings), load_credentials(args.password_path))
    ledger = SimulatedLedger.from_file(args.ledger_state)

    snapshot, plan = asyncio.run(_snapshot_and_plan(ledger, spec, args.height))
    bind_run_context(command=args.command, height=snapshot.height, operations=len(plan))
    resolver.require(operation.delegator for operation in plan)
    plan_document = _plan_to_dict(snapshot, plan)

    if plan and not args.dry_run and not args.yes:
        print(json.dumps(plan_document, indent=2), file=sys.stderr)
        if not _confirm("Execute transactions? [y/N]: "):
            raise ExecutionDeclinedError("Execution confirmation denied.")

    collector = ResultCollector(
        ledger,
        poll_interval=settings.poll_interval_s,
        timeout=settings.settle_timeout_s,
    )
    executor = BatchExecutor(ledger, resolver, collector)
    report = asyncio.run(_check_and_execute(ledger, executor, plan, args.dry_run))

    print(json.dumps({**plan_document, "report": report.to_dict()}, indent=2))
    return 0 if report.succeeded else 1


async def _snapshot_and_plan(
    ledger: SimulatedLedger, spec: DistributionSpec, height: Optional[int]
) -> Tuple[StakeSnapshot, Tuple[PlannedOperation, ...]]:
    if height is None:
        height = await ledger.get_best_block_number()
    snapshot = await ledger.get_snapshot(spec.stakeholders, height=height)
    log.info("snapshot_loaded", height=snapshot.height, stakeholders=len(spec.stakeholders))
    return snapshot, RebalancePlanner().plan(snapshot, spec)


async def _check_and_execute(
    ledger: SimulatedLedger,
    executor: BatchExecutor,
    plan: Tuple[PlannedOperation, ...],
    dry_run: bool,
) -> ExecutionReport:
    await EligibilityChecker(ledger).check(plan)
    return await executor.execute(plan, dry_run=dry_run)


def _signer(settings: RebalanceSettings) -> LocalSigner:
    if settings.keystore_path is None:
        raise ValueError("A keystore path is required (--keystore or STAKE_REBALANCE_KEYSTORE_PATH).")
    return LocalSigner(keystore=FileKeyStore(Path(settings.keystore_path)), encryptor=PassphraseEncryptor())


def _plan_to_dict(snapshot: StakeSnapshot, plan: Tuple[PlannedOperation, ...]) -> Dict[str, object]:
    return {
        "height": snapshot.height,
        "operations": [operation.to_dict() for operation in plan],
        "fees": fee_totals(plan),
    }


def _confirm(prompt: str) -> bool:
    response = input(prompt)
    return response.strip().lower() in {"y", "yes"}


if __name__ == "__main__":
    raise SystemExit(main())
