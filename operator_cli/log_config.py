"""structlog setup for the operator CLI.

Events go to stderr so the JSON report on stdout stays parseable. Each run
binds its command, snapshot height and plan size into the context, so every
event of a batch carries them.
"""

from __future__ import annotations

import logging
import sys
from typing import List

import structlog

PROJECT_LOGGERS = (
    "delegation_engine",
    "execution_controller",
    "ledger_adapter",
    "operator_cli",
    "wallet_core",
)


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> None:
    """Route structlog events through one stderr handler.

    Args:
        verbose: Show DEBUG and INFO events from the project loggers; otherwise
            only warnings and errors reach stderr.
        log_json: One JSON object per line instead of console rendering.
    """
    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_json),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    level = logging.DEBUG if verbose else logging.WARNING
    for name in PROJECT_LOGGERS:
        logging.getLogger(name).setLevel(level)


def bind_run_context(**values: object) -> None:
    """Replace the per-run context attached to every subsequent event."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


def _pre_chain() -> List[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def _renderer(log_json: bool) -> structlog.types.Processor:
    if log_json:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
