from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kafka_governance.core.runtime_state import snapshot_runtime_state
from kafka_governance.db.db import get_db
from kafka_governance.db.models import KafkaRequest

router = APIRouter(tags=["ops"])
logger = logging.getLogger("kafka_governance.api.health")


@router.get("/healthz")
def healthz():
    return {"status": "ok", "runtime": snapshot_runtime_state()}


@router.get("/readyz")
def readyz(response: Response, db: Session = Depends(get_db)):
    """Ready once the process is not draining and the request table is queryable."""
    state = snapshot_runtime_state()
    checks: dict[str, str] = {}

    checks["lifecycle"] = "shutting_down" if state["is_shutting_down"] else "ok"

    try:
        db.execute(select(KafkaRequest.id).limit(1))
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Readiness database probe failed: %s", exc)
        checks["database"] = "unavailable"

    ready = all(value == "ok" for value in checks.values())
    if not ready:
        response.status_code = 503
    return {"status": "ready" if ready else "not_ready", "checks": checks, "runtime": state}
