from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from kafka_governance.core.config import get_settings
from kafka_governance.core.logging import set_log_username
from kafka_governance.db.db import get_db
from kafka_governance.security.authz import Identity, resolve_identity
from kafka_governance.security.security import decode_token
from kafka_governance.services.cluster_api import ClusterApi, ClusterApiClient
from kafka_governance.services.requests import RequestLifecycleService


auth_scheme = HTTPBearer()


def get_bearer_token(
    creds: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> str:
    return creds.credentials


def get_current_username(
    token: str = Depends(get_bearer_token),
) -> str:
    return decode_token(token)


def get_current_identity(
    username: str = Depends(get_current_username),
    db: Session = Depends(get_db),
) -> Identity:
    identity = resolve_identity(db, username)
    set_log_username(identity.username)
    return identity


def get_cluster_api() -> ClusterApi:
    return ClusterApiClient.from_settings(get_settings())


def get_lifecycle_service(
    db: Session = Depends(get_db),
    cluster_api: ClusterApi = Depends(get_cluster_api),
) -> RequestLifecycleService:
    return RequestLifecycleService(db, cluster_api=cluster_api, settings=get_settings())
