from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from kafka_governance.core.config import get_settings
from kafka_governance.core.permissions import build_permission_view
from kafka_governance.core.rate_limit import FailedLoginLimiter
from kafka_governance.db.db import get_db
from kafka_governance.db.models import Team, User
from kafka_governance.schemas.auth import LoginRequest, MeResponse, NotificationItem, TokenResponse
from kafka_governance.security.authz import Identity, resolve_allowed_environments
from kafka_governance.security.deps import get_current_identity
from kafka_governance.security.security import create_token, verify_password
from kafka_governance.services.notifications import list_user_notifications

router = APIRouter()
logger = logging.getLogger("kafka_governance.api.auth")
_settings = get_settings()
_login_limiter = FailedLoginLimiter(
    max_failures=_settings.login_rate_limit_attempts,
    window_seconds=_settings.login_rate_limit_window_seconds,
)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """
    Authenticate user and return JWT token.
    Repeated failures for one client and username lock that pair out for the window.
    """
    client_ip = request.client.host if request.client else "unknown"
    limiter_key = f"{client_ip}:{payload.username.strip().lower()}"
    decision = _login_limiter.check(limiter_key)
    if decision.locked:
        logger.warning("Login locked out for username=%s client_ip=%s", payload.username, client_ip)
        raise HTTPException(
            status_code=429,
            detail="Too many failed login attempts. Try again later.",
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    user = db.scalar(select(User).where(User.username == payload.username))
    if not user or not verify_password(payload.password, user.password_hash):
        _login_limiter.record_failure(limiter_key)
        logger.warning("Login failed for username=%s client_ip=%s", payload.username, client_ip)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    _login_limiter.clear(limiter_key)
    logger.info("Login succeeded for username=%s client_ip=%s", user.username, client_ip)
    return {"access_token": create_token(user.username, tenant_id=user.tenant_id)}


@router.get("/me", response_model=MeResponse)
def me(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    team = db.get(Team, identity.team_id)
    try:
        environments = sorted(resolve_allowed_environments(db, identity.username))
    except LookupError:
        environments = []

    permissions = sorted(identity.permissions)
    return {
        "username": identity.username,
        "tenant_id": identity.tenant_id,
        "team_id": identity.team_id,
        "team_name": team.name if team else None,
        "role": identity.role,
        "permissions": permissions,
        "permission_details": [build_permission_view(p) for p in permissions],
        "environments": environments,
    }


@router.get("/notifications", response_model=list[NotificationItem])
def my_notifications(
    limit: int = Query(default=50, ge=1, le=500),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    rows = list_user_notifications(db, identity.username, identity.tenant_id, limit=limit)
    return [
        {
            "id": n.id,
            "kind": n.kind,
            "topic": n.topic,
            "body": n.body,
            "payload": json.loads(n.payload or "{}"),
            "is_read": n.is_read,
            "created_at": n.created_at,
        }
        for n in rows
    ]
