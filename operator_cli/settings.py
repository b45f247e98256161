"""Runtime settings for the operator CLI.

Priority (highest first): CLI flags passed as init kwargs, ``STAKE_REBALANCE_*``
environment variables, then the defaults below.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from execution_controller.collector import DEFAULT_POLL_INTERVAL_S, DEFAULT_TIMEOUT_S


class RebalanceSettings(BaseSettings):
    model_config = {
        "frozen": True,
        "env_prefix": "STAKE_REBALANCE_",
    }

    poll_interval_s: float = Field(default=DEFAULT_POLL_INTERVAL_S, gt=0)
    settle_timeout_s: float = Field(default=DEFAULT_TIMEOUT_S, ge=0)
    keystore_path: Optional[Path] = None
    verbose: bool = False
    log_json: bool = False
