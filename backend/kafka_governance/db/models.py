from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from kafka_governance.core.time import utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class RequestType(str, Enum):
    RESET_CONSUMER_OFFSETS = "RESET_CONSUMER_OFFSETS"
    CREATE_CONNECTOR = "CREATE_CONNECTOR"
    UPDATE_CONNECTOR = "UPDATE_CONNECTOR"
    DELETE_CONNECTOR = "DELETE_CONNECTOR"


class RequestStatus(str, Enum):
    CREATED = "CREATED"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    DELETED = "DELETED"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.CREATED


class OffsetResetType(str, Enum):
    EARLIEST = "EARLIEST"
    LATEST = "LATEST"
    TO_DATE_TIME = "TO_DATE_TIME"

    @property
    def requires_timestamp(self) -> bool:
        return self is OffsetResetType.TO_DATE_TIME


class EnvironmentKind(str, Enum):
    KAFKA = "KAFKA"
    KAFKA_CONNECT = "KAFKA_CONNECT"


CONNECTOR_REQUEST_TYPES = frozenset(
    {RequestType.CREATE_CONNECTOR, RequestType.UPDATE_CONNECTOR, RequestType.DELETE_CONNECTOR}
)


# --- RBAC association tables ---
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", ForeignKey("roles.id"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id"), primary_key=True),
)

user_environments = Table(
    "user_environments",
    Base.metadata,
    Column("user_id", ForeignKey("users.id"), primary_key=True),
    Column("environment_id", ForeignKey("environments.id"), primary_key=True),
)


# --- Tenancy ---
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class Role(Base):
    """
    Role model; roles are defined per tenant.
    """
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)

    permissions: Mapped[list["Permission"]] = relationship("Permission", secondary=role_permissions)


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)


class User(Base):
    """
    Application user. `role` names a Role within the user's tenant.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String, nullable=False, default="")
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String, nullable=False)

    environments: Mapped[list["Environment"]] = relationship("Environment", secondary=user_environments)


class Environment(Base):
    """
    A target Kafka cluster (or Kafka Connect cluster) registered in a tenant.
    """
    __tablename__ = "environments"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False, default=EnvironmentKind.KAFKA.value)


class Acl(Base):
    """
    Access grant held by a team on a topic / consumer group pair.
    """
    __tablename__ = "acls"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    environment: Mapped[str] = mapped_column(ForeignKey("environments.id"), nullable=False)
    topicname: Mapped[str] = mapped_column(String, nullable=False)
    consumer_group: Mapped[str | None] = mapped_column(String, nullable=True)
    acl_type: Mapped[str] = mapped_column(String, nullable=False, default="CONSUMER")  # PRODUCER|CONSUMER
    status: Mapped[str] = mapped_column(String, nullable=False, default="APPROVED")


# --- Requests ---
class KafkaRequest(Base):
    """
    A request for a cluster-affecting operation awaiting or having received approval.
    Offset reset and connector requests share this table, keyed by request_type.
    """
    __tablename__ = "kafka_requests"
    __table_args__ = (
        # At most one pending request per requestor and coordinates.
        Index(
            "uq_kafka_requests_pending",
            "tenant_id",
            "requestor",
            "dedup_key",
            unique=True,
            sqlite_where=text("request_status = 'CREATED'"),
            postgresql_where=text("request_status = 'CREATED'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    request_type: Mapped[str] = mapped_column(String, nullable=False)
    request_status: Mapped[str] = mapped_column(String, nullable=False, default=RequestStatus.CREATED.value)

    requestor: Mapped[str] = mapped_column(String, nullable=False, index=True)
    requesting_team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    approver: Mapped[str | None] = mapped_column(String, nullable=True)
    environment: Mapped[str] = mapped_column(String, nullable=False)

    # Offset reset payload
    topicname: Mapped[str | None] = mapped_column(String, nullable=True)
    consumer_group: Mapped[str | None] = mapped_column(String, nullable=True)
    offset_reset_type: Mapped[str | None] = mapped_column(String, nullable=True)
    reset_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Connector payload
    connector_name: Mapped[str | None] = mapped_column(String, nullable=True)
    connector_config: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    dedup_key: Mapped[str] = mapped_column(String, nullable=False)
    decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    execution_result: Mapped[str | None] = mapped_column(Text, nullable=True)

    requesttime: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    approving_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    username: Mapped[str] = mapped_column(String, nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    topic: Mapped[str | None] = mapped_column(String, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


def build_dedup_key(
    request_type: str,
    environment: str,
    topicname: str | None,
    consumer_group: str | None,
    connector_name: str | None = None,
) -> str:
    """Canonical pending-request coordinates used by the partial unique index."""
    return "|".join(
        [
            request_type,
            environment,
            topicname or "",
            consumer_group or "",
            connector_name or "",
        ]
    )
