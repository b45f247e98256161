"""Poll the ledger until a submitted transaction settles or the budget runs out."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

import structlog

from ledger_adapter.protocol import Ledger, LedgerError

from .models import ExecutionOutcome, Settlement

log = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_S = 1.0
DEFAULT_TIMEOUT_S = 20.0


class ResultCollector:
    def __init__(
        self,
        ledger: Ledger,
        poll_interval: float = DEFAULT_POLL_INTERVAL_S,
        timeout: float = DEFAULT_TIMEOUT_S,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("Poll interval must be positive.")
        if timeout < 0:
            raise ValueError("Timeout must be non-negative.")
        self._ledger = ledger
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep

    async def collect(self, transaction_id: str) -> Settlement:
        started = self._clock()
        while True:
            try:
                if await self._ledger.is_included(transaction_id):
                    return Settlement(ExecutionOutcome.CONFIRMED)
                hint = await self._ledger.get_failure_hint(transaction_id)
                if hint is not None:
                    return Settlement(ExecutionOutcome.FAILED, hint)
            except LedgerError as exc:
                log.warning("poll_failed", transaction_id=transaction_id, error=str(exc))

            if self._clock() - started >= self._timeout:
                return Settlement(ExecutionOutcome.TIMED_OUT, "Timeout")
            await self._sleep(self._poll_interval)
