# paygate/monitoring.py
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from paygate.core.config import Settings
from paygate.database import ping


def _check(name: str, ok: bool, detail: str = "", extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {"name": name, "ok": bool(ok)}
    if detail:
        row["detail"] = detail
    if extra:
        row["extra"] = extra
    return row


async def run_selftest(settings: Settings, services: Optional[Any], quick: bool = True) -> dict:
    checks: List[Dict[str, Any]] = []

    # --- ENV sanity (presence only, never values) ---
    checks.append(_check("env:RPC_URL", bool(settings.RPC_URL)))
    checks.append(_check("env:PRIVATE_KEY", settings.PRIVATE_KEY is not None))
    if settings.REPLAY_PROTECTION:
        checks.append(_check("env:DATABASE_URL", bool(settings.DATABASE_URL), detail="required by REPLAY_PROTECTION"))

    checks.append(_check("services:wired", services is not None, detail="" if services else "startup did not complete"))

    # --- Optional deeper checks (skipped for quick) ---
    if not quick and services is not None:
        rpc_ok = False
        rpc_err = ""
        t0 = time.time()
        try:
            bn = await services.ledger.block_number()
            rpc_ok = True
            rpc_err = f"block={bn}"
        except Exception as e:
            rpc_err = repr(e)
        checks.append(_check("rpc:block_number", rpc_ok, detail=rpc_err, extra={"ms": int((time.time() - t0) * 1000)}))

        if services.engine is not None:
            db_ok = False
            db_err = ""
            t0 = time.time()
            try:
                ping(services.engine)
                db_ok = True
            except Exception as e:
                db_err = repr(e)
            checks.append(_check("db:select1", db_ok, detail=db_err, extra={"ms": int((time.time() - t0) * 1000)}))

    status = "ok" if all(c.get("ok") for c in checks) else "degraded"
    return {"status": status, "checks": checks}
