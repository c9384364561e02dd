from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PermissionDetail(BaseModel):
    permission: str
    title: str
    description: str


class MeResponse(BaseModel):
    """The caller's identity, effective permissions and reachable environments."""
    username: str
    tenant_id: int
    team_id: int
    team_name: str | None
    role: str
    permissions: List[str]
    permission_details: List[PermissionDetail]
    environments: List[str]


class NotificationItem(BaseModel):
    id: int
    kind: str
    topic: str | None
    body: str
    payload: dict[str, Any]
    is_read: bool
    created_at: datetime
