"""
SQLAlchemy-backed store for Kafka requests.

The store never commits; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kafka_governance.core.errors import DuplicateRequest
from kafka_governance.core.time import utcnow
from kafka_governance.db.models import Acl, KafkaRequest, RequestStatus, RequestType

logger = logging.getLogger("kafka_governance.store")

RESULT_SUCCESS = "success"
RESULT_FAILURE = "failure"


@dataclass(frozen=True)
class StoreResult:
    result: str
    request_id: int | None = None

    @property
    def is_success(self) -> bool:
        return self.result == RESULT_SUCCESS


def _value(enum_or_str) -> str | None:
    if enum_or_str is None:
        return None
    return getattr(enum_or_str, "value", enum_or_str)


class RequestStore:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, request: KafkaRequest) -> StoreResult:
        """
        Persist a new request.
        A concurrent pending twin trips the partial unique index and surfaces as DuplicateRequest.
        """
        try:
            with self.db.begin_nested():
                self.db.add(request)
                self.db.flush()
        except IntegrityError as exc:
            logger.info(
                "Pending request already exists requestor=%s key=%s",
                request.requestor,
                request.dedup_key,
            )
            raise DuplicateRequest("A request already exists for these details") from exc
        except SQLAlchemyError:
            logger.exception("Failed to insert request requestor=%s type=%s", request.requestor, request.request_type)
            return StoreResult(result=f"{RESULT_FAILURE}: unable to save request")

        logger.info("Request %s stored type=%s env=%s", request.id, request.request_type, request.environment)
        return StoreResult(result=RESULT_SUCCESS, request_id=request.id)

    def find_by_id(self, request_id: int, tenant_id: int) -> KafkaRequest | None:
        return self.db.scalar(
            select(KafkaRequest).where(
                KafkaRequest.id == request_id,
                KafkaRequest.tenant_id == tenant_id,
            )
        )

    def query(
        self,
        *,
        tenant_id: int,
        requestor: str | None = None,
        request_type: RequestType | str | None = None,
        status: RequestStatus | str | None = None,
        environment: str | None = None,
        topicname: str | None = None,
        consumer_group: str | None = None,
        connector_name: str | None = None,
        wildcard: str | None = None,
        mine_only: bool = False,
    ) -> list[KafkaRequest]:
        """
        Filtered lookup; every filter left as None is unconstrained, tenant always applies.
        mine_only narrows to the given requestor and needs one.
        """
        if mine_only and not requestor:
            raise ValueError("mine_only requires a requestor")
        stmt = select(KafkaRequest).where(KafkaRequest.tenant_id == tenant_id)

        if requestor:
            stmt = stmt.where(KafkaRequest.requestor == requestor)
        if request_type is not None:
            stmt = stmt.where(KafkaRequest.request_type == _value(request_type))
        if status is not None and _value(status) != "ALL":
            stmt = stmt.where(KafkaRequest.request_status == _value(status))
        if environment:
            stmt = stmt.where(KafkaRequest.environment == environment)
        if topicname:
            stmt = stmt.where(KafkaRequest.topicname == topicname)
        if consumer_group:
            stmt = stmt.where(KafkaRequest.consumer_group == consumer_group)
        if connector_name:
            stmt = stmt.where(KafkaRequest.connector_name == connector_name)
        if wildcard:
            pattern = f"%{wildcard.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(KafkaRequest.topicname).like(pattern),
                    func.lower(KafkaRequest.consumer_group).like(pattern),
                    func.lower(KafkaRequest.connector_name).like(pattern),
                )
            )

        return list(self.db.scalars(stmt.order_by(KafkaRequest.id.asc())).all())

    def find_pending(
        self,
        *,
        tenant_id: int,
        requestor: str,
        dedup_key: str,
    ) -> list[KafkaRequest]:
        return list(
            self.db.scalars(
                select(KafkaRequest).where(
                    KafkaRequest.tenant_id == tenant_id,
                    KafkaRequest.requestor == requestor,
                    KafkaRequest.dedup_key == dedup_key,
                    KafkaRequest.request_status == RequestStatus.CREATED.value,
                )
            ).all()
        )

    def update_status(
        self,
        request_id: int,
        new_status: RequestStatus,
        approver: str | None,
        *,
        tenant_id: int,
        reason: str | None = None,
        decided_at: datetime | None = None,
    ) -> StoreResult:
        """
        Conditional CREATED -> new_status transition.
        Zero matched rows means the request was missing or already decided.
        """
        values: dict = {"request_status": new_status.value}
        if new_status in (RequestStatus.APPROVED, RequestStatus.DECLINED):
            values["approver"] = approver
            values["approving_time"] = decided_at or utcnow()
        if reason is not None:
            values["decline_reason"] = reason

        result = self.db.execute(
            update(KafkaRequest)
            .where(
                KafkaRequest.id == request_id,
                KafkaRequest.tenant_id == tenant_id,
                KafkaRequest.request_status == RequestStatus.CREATED.value,
            )
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            logger.warning("Status transition to %s skipped for request %s", new_status.value, request_id)
            return StoreResult(result=f"{RESULT_FAILURE}: request is not pending", request_id=request_id)

        logger.info("Request %s -> %s by %s", request_id, new_status.value, approver)
        return StoreResult(result=RESULT_SUCCESS, request_id=request_id)

    def annotate_execution(self, request_id: int, tenant_id: int, text: str) -> None:
        self.db.execute(
            update(KafkaRequest)
            .where(KafkaRequest.id == request_id, KafkaRequest.tenant_id == tenant_id)
            .values(execution_result=text)
            .execution_options(synchronize_session="evaluate")
        )

    def find_approved_acls(
        self,
        *,
        environment: str,
        topicname: str,
        team_id: int,
        consumer_group: str,
        tenant_id: int,
    ) -> list[Acl]:
        return list(
            self.db.scalars(
                select(Acl).where(
                    Acl.tenant_id == tenant_id,
                    Acl.environment == environment,
                    Acl.topicname == topicname,
                    Acl.team_id == team_id,
                    Acl.consumer_group == consumer_group,
                    Acl.status == "APPROVED",
                )
            ).all()
        )

    def count_by_status_and_type(self, tenant_id: int, requestor: str | None = None) -> list[tuple[str, str, int]]:
        stmt = (
            select(KafkaRequest.request_type, KafkaRequest.request_status, func.count(KafkaRequest.id))
            .where(KafkaRequest.tenant_id == tenant_id)
            .group_by(KafkaRequest.request_type, KafkaRequest.request_status)
        )
        if requestor:
            stmt = stmt.where(KafkaRequest.requestor == requestor)
        return [(row[0], row[1], int(row[2])) for row in self.db.execute(stmt).all()]
