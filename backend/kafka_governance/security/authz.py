from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from kafka_governance.core.errors import NotAuthorized, NotFound
from kafka_governance.core.permissions import PermissionType
from kafka_governance.db.models import Permission, Role, User, role_permissions


@dataclass(frozen=True)
class Identity:
    """Caller context threaded through every lifecycle operation."""

    user_id: int
    username: str
    tenant_id: int
    team_id: int
    role: str
    permissions: frozenset[str]


def _role_permission_names(db: Session, role_name: str, tenant_id: int) -> set[str]:
    rows = db.scalars(
        select(Permission.name)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .join(Role, Role.id == role_permissions.c.role_id)
        .where(Role.name == role_name, Role.tenant_id == tenant_id)
    ).all()
    return set(rows)


def _get_user(db: Session, username: str) -> User:
    user = db.scalar(select(User).where(User.username == username))
    if not user:
        raise NotFound(f"User not found: {username}")
    return user


def resolve_identity(db: Session, username: str) -> Identity:
    """Resolve tenant, team, role and permissions of a user."""
    user = _get_user(db, username)
    return Identity(
        user_id=user.id,
        username=user.username,
        tenant_id=user.tenant_id,
        team_id=user.team_id,
        role=user.role,
        permissions=frozenset(_role_permission_names(db, user.role, user.tenant_id)),
    )


def resolve_tenant(db: Session, username: str) -> int:
    return _get_user(db, username).tenant_id


def resolve_team(db: Session, username: str) -> int:
    return _get_user(db, username).team_id


def resolve_approver_roles(db: Session, permission: PermissionType | str, tenant_id: int) -> list[str]:
    """Names of the tenant's roles holding the given approval permission."""
    permission_name = permission.value if isinstance(permission, PermissionType) else permission
    rows = db.scalars(
        select(Role.name)
        .join(role_permissions, role_permissions.c.role_id == Role.id)
        .join(Permission, Permission.id == role_permissions.c.permission_id)
        .where(Permission.name == permission_name, Role.tenant_id == tenant_id)
        .order_by(Role.name)
    ).all()
    return list(rows)


def resolve_allowed_environments(db: Session, username: str) -> set[str]:
    """
    Environments the user may see requests for.
    Raises LookupError when none are configured.
    """
    user = _get_user(db, username)
    allowed = {env.id for env in user.environments if env.tenant_id == user.tenant_id}
    if not allowed:
        raise LookupError(f"No environments configured for user {username}")
    return allowed


def is_authorized(identity: Identity, permission: PermissionType | str) -> bool:
    permission_name = permission.value if isinstance(permission, PermissionType) else permission
    return permission_name in identity.permissions


def require(identity: Identity, permission: PermissionType | str) -> None:
    """Check if the identity has the required permission."""
    if not is_authorized(identity, permission):
        permission_name = permission.value if isinstance(permission, PermissionType) else permission
        raise NotAuthorized(permission_name)
