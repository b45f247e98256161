"""Interfaces of the ledger collaborator consumed by planning and execution."""

from typing import FrozenSet, Iterable, Optional, Protocol

from delegation_engine.models import StakeSnapshot


class LedgerError(RuntimeError):
    """Raised when a ledger call fails."""


class SubmissionRejectedError(LedgerError):
    """Raised when the ledger synchronously refuses a signed transaction."""


class Ledger(Protocol):
    async def get_sequence(self, account: str) -> int:
        ...

    async def get_balance(self, account: str) -> int:
        ...

    async def get_candidate_set(self) -> FrozenSet[str]:
        ...

    async def submit_signed_operation(self, raw: bytes) -> str:
        ...

    async def is_included(self, transaction_id: str) -> bool:
        ...

    async def get_failure_hint(self, transaction_id: str) -> Optional[str]:
        ...


class SnapshotSource(Protocol):
    async def get_best_block_number(self) -> int:
        ...

    async def get_snapshot(
        self, accounts: Iterable[str], height: Optional[int] = None
    ) -> StakeSnapshot:
        ...
