from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from kafka_governance.core.errors import InvalidFormat, MissingField
from kafka_governance.core.time import OFFSET_RESET_TIMESTAMP_FORMAT, parse_offset_reset_timestamp
from kafka_governance.db.models import Environment, EnvironmentKind, OffsetResetType, RequestType, build_dedup_key
from kafka_governance.services.store import RequestStore

logger = logging.getLogger("kafka_governance.validation")

CONNECTOR_NAME_RE = re.compile(r"^[a-zA-Z0-9._-]{3,}$")
DESCRIPTION_RE = re.compile(r"^[a-zA-Z 0-9_.,-]{3,}$")


@dataclass(frozen=True)
class EnvironmentInfo:
    id: str
    name: str


class RequestValidator:
    """Preconditions a request must satisfy before it is persisted."""

    def __init__(self, db: Session, store: RequestStore | None = None):
        self.db = db
        self.store = store or RequestStore(db)

    def get_environment(self, environment_id: str, tenant_id: int) -> Environment | None:
        return self.db.scalar(
            select(Environment).where(
                Environment.id == environment_id,
                Environment.tenant_id == tenant_id,
            )
        )

    def validate_target_ownership(
        self,
        environment: str,
        topicname: str | None,
        consumer_group: str | None,
        team_id: int,
        tenant_id: int,
    ) -> EnvironmentInfo | None:
        """
        The requesting team must hold an approved ACL on topic + consumer group in the environment.
        Returns None when it does not (or when no consumer group was given).
        """
        logger.debug("validate_target_ownership %s %s %s", environment, topicname, consumer_group)
        if not consumer_group or not consumer_group.strip():
            return None
        if not topicname:
            return None

        acls = self.store.find_approved_acls(
            environment=environment,
            topicname=topicname,
            team_id=team_id,
            consumer_group=consumer_group,
            tenant_id=tenant_id,
        )
        if not acls:
            return None

        env = self.get_environment(environment, tenant_id)
        if env is None:
            return None
        return EnvironmentInfo(id=env.id, name=env.name)

    def validate_connect_environment(self, environment: str, tenant_id: int) -> EnvironmentInfo | None:
        env = self.get_environment(environment, tenant_id)
        if env is None or env.kind != EnvironmentKind.KAFKA_CONNECT.value:
            return None
        return EnvironmentInfo(id=env.id, name=env.name)

    def validate_reset_timestamp(
        self,
        offset_reset_type: OffsetResetType,
        reset_timestamp: str | None,
    ) -> datetime | None:
        """
        TO_DATE_TIME resets need an explicit timestamp; other types carry none.
        """
        if not offset_reset_type.requires_timestamp:
            return None
        if reset_timestamp is None or not reset_timestamp.strip():
            raise MissingField("Reset timestamp is mandatory for reset type TO_DATE_TIME")
        try:
            return parse_offset_reset_timestamp(reset_timestamp)
        except ValueError as exc:
            raise InvalidFormat(
                f"Reset timestamp must be in format {OFFSET_RESET_TIMESTAMP_FORMAT}"
            ) from exc

    def validate_connector_fields(
        self,
        connector_name: str | None,
        description: str | None,
        connector_config: str | None,
    ) -> dict:
        if not connector_name:
            raise MissingField("Connector name is mandatory")
        if not CONNECTOR_NAME_RE.match(connector_name):
            raise InvalidFormat("Invalid connector name")
        if not description:
            raise MissingField("Description is mandatory")
        if not DESCRIPTION_RE.match(description):
            raise InvalidFormat("Invalid description")
        if not connector_config or not connector_config.strip():
            raise MissingField("Connector config is mandatory")
        try:
            config = json.loads(connector_config)
        except json.JSONDecodeError as exc:
            raise InvalidFormat("Connector config must be valid JSON") from exc
        if not isinstance(config, dict):
            raise InvalidFormat("Connector config must be a JSON object")
        return config

    def check_duplicate(
        self,
        *,
        requestor: str,
        request_type: RequestType,
        environment: str,
        topicname: str | None,
        consumer_group: str | None,
        tenant_id: int,
        connector_name: str | None = None,
    ) -> bool:
        """True when a CREATED request with the same coordinates already exists."""
        pending = self.store.find_pending(
            tenant_id=tenant_id,
            requestor=requestor,
            dedup_key=build_dedup_key(
                request_type.value,
                environment,
                topicname,
                consumer_group,
                connector_name,
            ),
        )
        return bool(pending)
