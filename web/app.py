"""Local-first FastAPI shell for planning stake rebalances."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from delegation_engine.documents import distribution_from_dict, snapshot_from_dict
from delegation_engine.models import PlannedOperation, StakeSnapshot
from delegation_engine.planner import RebalancePlanner, fee_totals
from execution_controller.eligibility import EligibilityChecker, EligibilityError
from ledger_adapter.protocol import LedgerError
from ledger_adapter.simulator import SimulatedLedger

log = structlog.get_logger(__name__)

app = FastAPI(title="Stake Rebalance", description="Local-first planning shell")


class PlanRequest(BaseModel):
    distribution: dict
    snapshot: dict


class CheckRequest(BaseModel):
    distribution: dict
    ledger_state: dict
    height: Optional[int] = None


@app.middleware("http")
async def _local_only(request: Request, call_next):
    client = request.client
    if client is not None:
        host = client.host
        if host not in {"127.0.0.1", "::1", "testclient"}:
            return JSONResponse({"error": "Remote access disabled."}, status_code=403)
    return await call_next(request)


async def _handle_errors(request: Request, exc: Exception):
    return JSONResponse({"error": str(exc)}, status_code=400)


for _exc_class in (ValueError, LedgerError):
    app.add_exception_handler(_exc_class, _handle_errors)


@app.get("/", response_class=HTMLResponse)
async def index():
    return HTMLResponse(_INDEX_HTML)


@app.get("/api/status")
async def status():
    return {"status": "ok", "service": "stake-rebalance"}


@app.post("/api/plan")
async def create_plan(payload: PlanRequest):
    spec = distribution_from_dict(payload.distribution)
    snapshot = snapshot_from_dict(payload.snapshot)
    plan = RebalancePlanner().plan(snapshot, spec)
    return _plan_to_dict(snapshot, plan)


@app.post("/api/check")
async def check_plan(payload: CheckRequest):
    spec = distribution_from_dict(payload.distribution)
    ledger = SimulatedLedger.from_document(payload.ledger_state)
    height = payload.height
    if height is None:
        height = await ledger.get_best_block_number()
    snapshot = await ledger.get_snapshot(spec.stakeholders, height=height)
    plan = RebalancePlanner().plan(snapshot, spec)

    result = _plan_to_dict(snapshot, plan)
    try:
        await EligibilityChecker(ledger).check(plan)
    except EligibilityError as exc:
        log.info("plan_not_eligible", error=str(exc))
        return {**result, "eligible": False, "error": str(exc)}
    return {**result, "eligible": True, "error": None}


def _plan_to_dict(snapshot: StakeSnapshot, plan: Tuple[PlannedOperation, ...]) -> Dict[str, object]:
    return {
        "height": snapshot.height,
        "operations": [operation.to_dict() for operation in plan],
        "fees": fee_totals(plan),
    }


_INDEX_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Stake Rebalance</title>
  <style>
    body { font-family: system-ui, sans-serif; margin: 2rem; max-width: 48rem; }
    code { background: #f2f2f2; padding: 0 0.25rem; }
  </style>
</head>
<body>
  <h1>Stake Rebalance</h1>
  <p>Planning only. Nothing here signs or submits transactions.</p>
  <ul>
    <li><code>GET /api/status</code></li>
    <li><code>POST /api/plan</code> with <code>distribution</code> and <code>snapshot</code></li>
    <li><code>POST /api/check</code> with <code>distribution</code> and <code>ledger_state</code></li>
  </ul>
</body>
</html>
"""
