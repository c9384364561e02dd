from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from kafka_governance.db.models import Notification, User

logger = logging.getLogger("kafka_governance.notifications")


class NotificationKind(str, Enum):
    RESET_CONSUMER_OFFSET_REQUESTED = "RESET_CONSUMER_OFFSET_REQUESTED"
    RESET_CONSUMER_OFFSET_APPROVED = "RESET_CONSUMER_OFFSET_APPROVED"
    CONNECTOR_CREATE_REQUESTED = "CONNECTOR_CREATE_REQUESTED"
    CONNECTOR_REQUEST_APPROVED = "CONNECTOR_REQUEST_APPROVED"
    REQUEST_DECLINED = "REQUEST_DECLINED"
    REQUEST_DELETED = "REQUEST_DELETED"


_TEMPLATES: dict[NotificationKind, str] = {
    NotificationKind.RESET_CONSUMER_OFFSET_REQUESTED: "A request to reset consumer offsets on topic {topic} is awaiting approval.",
    NotificationKind.RESET_CONSUMER_OFFSET_APPROVED: "Consumer offsets on topic {topic} have been reset.",
    NotificationKind.CONNECTOR_CREATE_REQUESTED: "A connector request for {topic} is awaiting approval.",
    NotificationKind.CONNECTOR_REQUEST_APPROVED: "Connector request for {topic} has been approved.",
    NotificationKind.REQUEST_DECLINED: "Request for {topic} has been declined.",
    NotificationKind.REQUEST_DELETED: "Request for {topic} has been deleted.",
}


def render_notification(kind: NotificationKind, topic: str | None, body: str, login_url: str) -> str:
    header = _TEMPLATES[kind].format(topic=topic or "-")
    parts = [header]
    if body:
        parts.append(body)
    if login_url:
        parts.append(f"Log in to review: {login_url}")
    return "\n\n".join(parts)


class Notifier:
    """
    Fire-and-forget notifications persisted as in-app messages.
    Failures are logged and swallowed; they never reach the caller.
    """

    def __init__(self, db: Session):
        self.db = db

    def _recipients(self, requestor: str, approver: str | None, team_id: int | None, tenant_id: int) -> list[str]:
        recipients: set[str] = {requestor}
        if approver:
            recipients.add(approver)
        if team_id is not None:
            team_members = self.db.scalars(
                select(User.username).where(User.team_id == team_id, User.tenant_id == tenant_id)
            ).all()
            recipients |= set(team_members)
        return sorted(recipients)

    def notify(
        self,
        *,
        topic: str | None,
        body: str,
        requestor: str,
        approver: str | None,
        team_id: int | None,
        tenant_id: int,
        kind: NotificationKind,
        login_url: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        try:
            with self.db.begin_nested():
                text = render_notification(kind, topic, body, login_url)
                encoded_payload = json.dumps(payload or {}, default=str)
                for username in self._recipients(requestor, approver, team_id, tenant_id):
                    self.db.add(
                        Notification(
                            tenant_id=tenant_id,
                            username=username,
                            kind=kind.value,
                            topic=topic,
                            body=text,
                            payload=encoded_payload,
                            is_read=False,
                        )
                    )
                self.db.flush()
            logger.info("Notification %s sent for topic=%s requestor=%s", kind.value, topic, requestor)
        except Exception:
            logger.exception("Failed to send %s notification for topic=%s", kind.value, topic)


def list_user_notifications(db: Session, username: str, tenant_id: int, limit: int = 100) -> list[Notification]:
    return list(
        db.scalars(
            select(Notification)
            .where(Notification.username == username, Notification.tenant_id == tenant_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        ).all()
    )
