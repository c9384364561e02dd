from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from kafka_governance.core.permissions import APPROVER_ROLE, ROLE_TO_PERMS, SUPERADMIN_ROLE, USER_ROLE
from kafka_governance.db.models import (
    Acl,
    Environment,
    EnvironmentKind,
    Permission,
    Role,
    Team,
    Tenant,
    User,
)
from kafka_governance.security.security import hash_password


DEFAULT_TENANT = (1, "default")

DEFAULT_TEAMS = [
    (101, "Octopus"),
    (102, "Seahorses"),
]

DEFAULT_ENVIRONMENTS = [
    ("DEV", "DEV", EnvironmentKind.KAFKA.value),
    ("TST", "TST", EnvironmentKind.KAFKA.value),
    ("DEV_CONNECT", "DEV-CONNECT", EnvironmentKind.KAFKA_CONNECT.value),
]

# username, password, team id, role, environments
DEFAULT_USERS = [
    ("alice", "password", 101, USER_ROLE, ["DEV", "TST", "DEV_CONNECT"]),
    ("bob", "password", 101, APPROVER_ROLE, ["DEV", "TST", "DEV_CONNECT"]),
    ("carol", "password", 101, APPROVER_ROLE, ["DEV", "TST", "DEV_CONNECT"]),
    ("dave", "password", 102, USER_ROLE, ["TST"]),
    ("superadmin", "admin", 101, SUPERADMIN_ROLE, ["DEV", "TST", "DEV_CONNECT"]),
]

# team id, environment, topic, consumer group
DEFAULT_CONSUMER_ACLS = [
    (101, "DEV", "orders", "g1"),
    (101, "TST", "orders", "g1"),
    (101, "DEV", "payments", "payments-app"),
    (102, "TST", "shipments", "shipping-app"),
]


def _get_or_create_permission(db: Session, name: str) -> Permission:
    """
    Get or create a Permission by name.
    """
    perm = db.scalar(select(Permission).where(Permission.name == name))
    if perm:
        return perm
    perm = Permission(name=name)
    db.add(perm)
    return perm


def _get_or_create_role(db: Session, name: str, tenant_id: int) -> Role:
    role = db.scalar(select(Role).where(Role.name == name, Role.tenant_id == tenant_id))
    if role:
        return role
    role = Role(name=name, tenant_id=tenant_id)
    db.add(role)
    return role


def _get_or_create_user(db: Session, username: str, tenant_id: int, team_id: int, role: str) -> User:
    user = db.scalar(select(User).where(User.username == username))
    if user:
        user.team_id = team_id
        user.role = role
        return user
    user = User(username=username, password_hash="", tenant_id=tenant_id, team_id=team_id, role=role)
    db.add(user)
    return user


def seed(db: Session) -> None:
    """
    Idempotent seeding:
    - ensures tenant, teams and environments exist
    - ensures roles exist and have correct permissions
    - ensures users exist with role, team and allowed environments
    - ensures the demo consumer ACLs exist
    """
    tenant_id, tenant_name = DEFAULT_TENANT
    if not db.get(Tenant, tenant_id):
        db.add(Tenant(id=tenant_id, name=tenant_name))

    for team_id, team_name in DEFAULT_TEAMS:
        if not db.get(Team, team_id):
            db.add(Team(id=team_id, tenant_id=tenant_id, name=team_name))

    env_objs: dict[str, Environment] = {}
    for env_id, env_name, kind in DEFAULT_ENVIRONMENTS:
        env = db.get(Environment, env_id)
        if not env:
            env = Environment(id=env_id, tenant_id=tenant_id, name=env_name, kind=kind)
            db.add(env)
        env_objs[env_id] = env

    perm_objs: dict[str, Permission] = {}
    for p in sorted({p for perms in ROLE_TO_PERMS.values() for p in perms}):
        perm_objs[p] = _get_or_create_permission(db, p)

    for role_name, perm_names in ROLE_TO_PERMS.items():
        role = _get_or_create_role(db, role_name, tenant_id)
        role.permissions = [perm_objs[p] for p in perm_names]  # overwrite to desired set

    # Flush so teams/environments have PKs before linking users
    db.flush()

    for username, password, team_id, role_name, env_ids in DEFAULT_USERS:
        user = _get_or_create_user(db, username, tenant_id, team_id, role_name)
        if not user.password_hash:
            user.password_hash = hash_password(password)
        user.environments = [env_objs[e] for e in env_ids]

    for team_id, env_id, topicname, consumer_group in DEFAULT_CONSUMER_ACLS:
        existing = db.scalar(
            select(Acl).where(
                Acl.tenant_id == tenant_id,
                Acl.team_id == team_id,
                Acl.environment == env_id,
                Acl.topicname == topicname,
                Acl.consumer_group == consumer_group,
            )
        )
        if not existing:
            db.add(
                Acl(
                    tenant_id=tenant_id,
                    team_id=team_id,
                    environment=env_id,
                    topicname=topicname,
                    consumer_group=consumer_group,
                    acl_type="CONSUMER",
                    status="APPROVED",
                )
            )

    db.commit()
