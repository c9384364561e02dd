"""
Request lifecycle: creation, listing, approval, decline and deletion of Kafka requests.

Every public operation returns an OperationResult (or a list for listings);
authorization, validation and remote failures never escape as exceptions.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kafka_governance.core.config import Settings
from kafka_governance.core.errors import (
    DuplicateRequest,
    ErrorCode,
    GovernanceError,
    NotAuthorized,
    NotFound,
    OperationResult,
    RemoteExecutionFailure,
    RequestAlreadyProcessed,
    TargetNotAccessible,
)
from kafka_governance.core.permissions import PermissionType
from kafka_governance.core.time import as_utc, format_offset_reset_timestamp
from kafka_governance.db.models import (
    CONNECTOR_REQUEST_TYPES,
    Environment,
    KafkaRequest,
    OffsetResetType,
    RequestStatus,
    RequestType,
    Team,
    User,
    build_dedup_key,
)
from kafka_governance.schemas.requests import ConnectorRequestCreate, ConsumerOffsetResetCreate
from kafka_governance.security.authz import (
    Identity,
    is_authorized,
    require,
    resolve_allowed_environments,
    resolve_approver_roles,
)
from kafka_governance.services.cluster_api import (
    ClusterApi,
    ConnectorParams,
    ExecutionOutcome,
    OffsetMeasurements,
    OffsetResetParams,
)
from kafka_governance.services.notifications import NotificationKind, Notifier
from kafka_governance.services.pager import PageContext, get_items_list
from kafka_governance.services.store import RequestStore
from kafka_governance.services.validation import RequestValidator

logger = logging.getLogger("kafka_governance.requests")


class RequestOrder(str, Enum):
    ASC_REQUESTED_TIME = "ASC_REQUESTED_TIME"
    DESC_REQUESTED_TIME = "DESC_REQUESTED_TIME"


@dataclass(frozen=True)
class RequestFilters:
    request_type: RequestType | None = None
    status: RequestStatus | None = None
    environment: str | None = None
    topicname: str | None = None
    consumer_group: str | None = None
    wildcard: str | None = None


def approval_permission_for(request_type: str) -> PermissionType:
    if request_type in {t.value for t in CONNECTOR_REQUEST_TYPES}:
        return PermissionType.APPROVE_CONNECTORS
    return PermissionType.APPROVE_OPERATIONAL_REQS


def creation_permission_for(request_type: str) -> PermissionType:
    if request_type in {t.value for t in CONNECTOR_REQUEST_TYPES}:
        return PermissionType.REQUEST_CREATE_CONNECTORS
    return PermissionType.REQUEST_CREATE_SUBSCRIPTIONS


def sort_requests(requests: list[KafkaRequest], order: RequestOrder) -> list[KafkaRequest]:
    return sorted(
        requests,
        key=lambda r: (as_utc(r.requesttime), r.id),
        reverse=order is RequestOrder.DESC_REQUESTED_TIME,
    )


def format_offsets(offsets: dict[str, int]) -> str:
    if not offsets:
        return " : none"
    return "".join(f"\n{partition} : {offset}" for partition, offset in sorted(offsets.items()))


def format_offset_reset_details(consumer_group: str | None, measurements: OffsetMeasurements | None) -> str:
    details = f"Consumer group : {consumer_group or ''}"
    if measurements is None:
        return details
    before = "\n\nBefore Offset Reset" + format_offsets(measurements.before)
    after = "\n\nAfter Offset Reset" + format_offsets(measurements.after)
    return details + "\n" + before + after


def build_approver_info(
    team_name: str | None,
    team_users: list[User],
    approver_roles: list[str],
    requestor: str,
) -> str:
    """Team name plus the approver-role users of that team, the requestor excluded."""
    approving_info = f"Team : {team_name or ''}, Users : "
    for user in team_users:
        if user.role in approver_roles and user.username != requestor:
            approving_info += f"{user.username},"
    return approving_info


def request_item(req: KafkaRequest) -> dict[str, Any]:
    return {
        "id": req.id,
        "request_type": req.request_type,
        "request_status": req.request_status,
        "requestor": req.requestor,
        "requesting_team_id": req.requesting_team_id,
        "approver": req.approver,
        "tenant_id": req.tenant_id,
        "environment": req.environment,
        "topicname": req.topicname,
        "consumer_group": req.consumer_group,
        "offset_reset_type": req.offset_reset_type,
        "reset_timestamp": format_offset_reset_timestamp(req.reset_timestamp) if req.reset_timestamp else None,
        "connector_name": req.connector_name,
        "description": req.description,
        "decline_reason": req.decline_reason,
        "requesttime": as_utc(req.requesttime).isoformat(),
        "approving_time": as_utc(req.approving_time).isoformat() if req.approving_time else None,
    }


class RequestLifecycleService:
    def __init__(
        self,
        db: Session,
        *,
        cluster_api: ClusterApi,
        settings: Settings,
        notifier: Notifier | None = None,
        store: RequestStore | None = None,
    ):
        self.db = db
        self.cluster_api = cluster_api
        self.settings = settings
        self.notifier = notifier or Notifier(db)
        self.store = store or RequestStore(db)
        self.validator = RequestValidator(db, self.store)

    # --- creation ---

    def create_offset_reset_request(self, identity: Identity, payload: ConsumerOffsetResetCreate) -> OperationResult:
        logger.info(
            "create_offset_reset_request env=%s topic=%s group=%s",
            payload.environment,
            payload.topicname,
            payload.consumer_group,
        )
        try:
            require(identity, PermissionType.REQUEST_CREATE_SUBSCRIPTIONS)

            env_info = self.validator.validate_target_ownership(
                payload.environment,
                payload.topicname,
                payload.consumer_group,
                identity.team_id,
                identity.tenant_id,
            )
            if env_info is None:
                raise TargetNotAccessible(
                    "Your team does not own a consumer ACL for this topic and consumer group"
                )

            reset_type = OffsetResetType(payload.offset_reset_type)
            reset_timestamp = self.validator.validate_reset_timestamp(reset_type, payload.reset_timestamp)

            if self.validator.check_duplicate(
                requestor=identity.username,
                request_type=RequestType.RESET_CONSUMER_OFFSETS,
                environment=payload.environment,
                topicname=payload.topicname,
                consumer_group=payload.consumer_group,
                tenant_id=identity.tenant_id,
            ):
                raise DuplicateRequest("A request already exists for this topic and consumer group")

            req = KafkaRequest(
                tenant_id=identity.tenant_id,
                request_type=RequestType.RESET_CONSUMER_OFFSETS.value,
                request_status=RequestStatus.CREATED.value,
                requestor=identity.username,
                requesting_team_id=identity.team_id,
                environment=payload.environment,
                topicname=payload.topicname,
                consumer_group=payload.consumer_group,
                offset_reset_type=reset_type.value,
                reset_timestamp=reset_timestamp,
                dedup_key=build_dedup_key(
                    RequestType.RESET_CONSUMER_OFFSETS.value,
                    payload.environment,
                    payload.topicname,
                    payload.consumer_group,
                ),
            )
            result = self.store.insert(req)
        except GovernanceError as exc:
            logger.info("Offset reset request rejected: %s (%s)", exc.code, exc.message)
            return OperationResult.from_error(exc)

        if not result.is_success:
            return OperationResult.failed(ErrorCode.STORE_FAILURE, result.result)

        self.notifier.notify(
            topic=req.topicname,
            body=f"Consumer group : {req.consumer_group}",
            requestor=req.requestor,
            approver=req.approver,
            team_id=req.requesting_team_id,
            tenant_id=req.tenant_id,
            kind=NotificationKind.RESET_CONSUMER_OFFSET_REQUESTED,
            login_url=self.settings.login_url,
            payload={"request_id": req.id},
        )
        return OperationResult.ok(result.result, request_id=result.request_id)

    def create_connector_request(self, identity: Identity, payload: ConnectorRequestCreate) -> OperationResult:
        logger.info("create_connector_request env=%s connector=%s", payload.environment, payload.connector_name)
        try:
            require(identity, PermissionType.REQUEST_CREATE_CONNECTORS)

            request_type = RequestType(payload.request_type)
            self.validator.validate_connector_fields(
                payload.connector_name,
                payload.description,
                payload.connector_config,
            )
            if self.validator.validate_connect_environment(payload.environment, identity.tenant_id) is None:
                raise TargetNotAccessible("Environment is not a Kafka Connect environment of your tenant")

            if self.validator.check_duplicate(
                requestor=identity.username,
                request_type=request_type,
                environment=payload.environment,
                topicname=None,
                consumer_group=None,
                connector_name=payload.connector_name,
                tenant_id=identity.tenant_id,
            ):
                raise DuplicateRequest("A request already exists for this connector")

            req = KafkaRequest(
                tenant_id=identity.tenant_id,
                request_type=request_type.value,
                request_status=RequestStatus.CREATED.value,
                requestor=identity.username,
                requesting_team_id=identity.team_id,
                environment=payload.environment,
                connector_name=payload.connector_name,
                connector_config=payload.connector_config,
                description=payload.description,
                dedup_key=build_dedup_key(
                    request_type.value,
                    payload.environment,
                    None,
                    None,
                    payload.connector_name,
                ),
            )
            result = self.store.insert(req)
        except GovernanceError as exc:
            logger.info("Connector request rejected: %s (%s)", exc.code, exc.message)
            return OperationResult.from_error(exc)

        if not result.is_success:
            return OperationResult.failed(ErrorCode.STORE_FAILURE, result.result)

        self.notifier.notify(
            topic=req.connector_name,
            body=f"Connector : {req.connector_name} ({req.request_type})",
            requestor=req.requestor,
            approver=req.approver,
            team_id=req.requesting_team_id,
            tenant_id=req.tenant_id,
            kind=NotificationKind.CONNECTOR_CREATE_REQUESTED,
            login_url=self.settings.login_url,
            payload={"request_id": req.id},
        )
        return OperationResult.ok(result.result, request_id=result.request_id)

    # --- listing ---

    def list_requests(
        self,
        identity: Identity,
        *,
        page_no: int = 1,
        filters: RequestFilters | None = None,
        order: RequestOrder = RequestOrder.DESC_REQUESTED_TIME,
        mine_only: bool = False,
    ) -> list[dict[str, Any]]:
        filters = filters or RequestFilters()
        logger.debug("list_requests page=%s filters=%s mine_only=%s", page_no, filters, mine_only)

        rows = self.store.query(
            tenant_id=identity.tenant_id,
            requestor=identity.username if mine_only else None,
            request_type=filters.request_type,
            status=filters.status,
            environment=filters.environment,
            topicname=filters.topicname,
            consumer_group=filters.consumer_group,
            wildcard=filters.wildcard,
            mine_only=mine_only,
        )

        try:
            allowed_envs = resolve_allowed_environments(self.db, identity.username)
        except LookupError:
            logger.error("No environments/clusters found for %s", identity.username)
            return []

        visible = sort_requests([r for r in rows if r.environment in allowed_envs], order)
        if not visible:
            return []

        env_names = self._environment_names(identity.tenant_id)
        team_names = self._team_names(identity.tenant_id)
        caller_team_users = list(
            self.db.scalars(
                select(User)
                .where(User.team_id == identity.team_id, User.tenant_id == identity.tenant_id)
                .order_by(User.username)
            ).all()
        )
        approver_roles: dict[PermissionType, list[str]] = {}

        def _to_view(ctx: PageContext, req: KafkaRequest) -> dict[str, Any]:
            item = request_item(req)
            item["current_page"] = ctx.page_no
            item["total_no_pages"] = ctx.total_pages
            item["all_page_nos"] = ctx.all_page_nos
            item["environment_name"] = env_names.get(req.environment)
            item["teamname"] = team_names.get(req.requesting_team_id)

            item["approving_team_details"] = None
            if not RequestStatus(req.request_status).is_terminal:
                permission = approval_permission_for(req.request_type)
                if permission not in approver_roles:
                    approver_roles[permission] = resolve_approver_roles(self.db, permission, identity.tenant_id)
                item["approving_team_details"] = build_approver_info(
                    team_names.get(identity.team_id),
                    caller_team_users,
                    approver_roles[permission],
                    req.requestor,
                )

            is_own_pending = (
                req.request_status == RequestStatus.CREATED.value and req.requestor == identity.username
            )
            item["editable"] = is_own_pending
            item["deletable"] = is_own_pending
            return item

        return get_items_list(page_no, visible, _to_view)

    def _environment_names(self, tenant_id: int) -> dict[str, str]:
        rows = self.db.execute(
            select(Environment.id, Environment.name).where(Environment.tenant_id == tenant_id)
        ).all()
        return {row.id: row.name for row in rows}

    def _team_names(self, tenant_id: int) -> dict[int, str]:
        rows = self.db.execute(select(Team.id, Team.name).where(Team.tenant_id == tenant_id)).all()
        return {row.id: row.name for row in rows}

    # --- decisions ---

    def _load_for_decision(self, identity: Identity, request_id: int) -> KafkaRequest:
        if not (
            is_authorized(identity, PermissionType.APPROVE_OPERATIONAL_REQS)
            or is_authorized(identity, PermissionType.APPROVE_CONNECTORS)
        ):
            raise NotAuthorized(PermissionType.APPROVE_OPERATIONAL_REQS.value)

        req = self.store.find_by_id(request_id, identity.tenant_id)
        if req is None:
            raise NotFound(f"Request {request_id} not found")

        require(identity, approval_permission_for(req.request_type))
        if req.request_status != RequestStatus.CREATED.value:
            raise RequestAlreadyProcessed(f"Request {request_id} is already {req.request_status}")
        return req

    def _execute(self, req: KafkaRequest) -> ExecutionOutcome:
        if req.request_type == RequestType.RESET_CONSUMER_OFFSETS.value:
            params = OffsetResetParams(
                topicname=req.topicname or "",
                consumer_group=req.consumer_group or "",
                offset_reset_type=req.offset_reset_type or "",
                reset_timestamp=as_utc(req.reset_timestamp) if req.reset_timestamp else None,
            )
            return self.cluster_api.reset_consumer_offsets(params, req.environment, req.tenant_id)

        params = ConnectorParams(
            request_type=req.request_type,
            connector_name=req.connector_name or "",
            connector_config=json.loads(req.connector_config or "{}"),
        )
        return self.cluster_api.execute_connector_request(params, req.environment, req.tenant_id)

    def _run_remote(self, req: KafkaRequest) -> ExecutionOutcome:
        try:
            outcome = self._execute(req)
        except Exception as exc:
            logger.exception("Cluster execution failed for request %s", req.id)
            raise RemoteExecutionFailure("failure") from exc
        if not outcome.success:
            logger.warning("Cluster API reported failure for request %s: %s", req.id, outcome.message)
            raise RemoteExecutionFailure(outcome.message or "failure")
        return outcome

    def approve_request(self, identity: Identity, request_id: int) -> OperationResult:
        """
        Claim the request (CREATED -> APPROVED) before touching the cluster, so a
        request that lost a race to another decision is never executed. Claim and
        execution share a SAVEPOINT; a failed execution rolls the claim back.
        """
        logger.info("approve_request %s", request_id)
        try:
            req = self._load_for_decision(identity, request_id)
        except GovernanceError as exc:
            logger.info("Approval of %s refused: %s", request_id, exc.code)
            return OperationResult.from_error(exc)

        try:
            with self.db.begin_nested():
                transition = self.store.update_status(
                    req.id,
                    RequestStatus.APPROVED,
                    identity.username,
                    tenant_id=identity.tenant_id,
                )
                if not transition.is_success:
                    raise RequestAlreadyProcessed(transition.result)
                outcome = self._run_remote(req)
                self.store.annotate_execution(req.id, identity.tenant_id, outcome.message or "success")
        except GovernanceError as exc:
            self.db.expire(req)
            return OperationResult.from_error(exc)
        except SQLAlchemyError:
            logger.exception("Could not record approval of request %s", request_id)
            self.db.expire(req)
            return OperationResult.failed(ErrorCode.STORE_FAILURE, "failure")

        if req.request_type == RequestType.RESET_CONSUMER_OFFSETS.value:
            kind = NotificationKind.RESET_CONSUMER_OFFSET_APPROVED
            topic = req.topicname
            body = format_offset_reset_details(req.consumer_group, outcome.measurements)
        else:
            kind = NotificationKind.CONNECTOR_REQUEST_APPROVED
            topic = req.connector_name
            body = f"Connector : {req.connector_name} ({req.request_type})"

        self.notifier.notify(
            topic=topic,
            body=body,
            requestor=req.requestor,
            approver=identity.username,
            team_id=req.requesting_team_id,
            tenant_id=req.tenant_id,
            kind=kind,
            login_url=self.settings.login_url,
            payload={"request_id": req.id},
        )
        return OperationResult.ok("success", request_id=req.id)

    def decline_request(self, identity: Identity, request_id: int, reason: str | None = None) -> OperationResult:
        logger.info("decline_request %s", request_id)
        try:
            req = self._load_for_decision(identity, request_id)
        except GovernanceError as exc:
            return OperationResult.from_error(exc)

        transition = self.store.update_status(
            req.id,
            RequestStatus.DECLINED,
            identity.username,
            tenant_id=identity.tenant_id,
            reason=reason,
        )
        if not transition.is_success:
            return OperationResult.failed(ErrorCode.REQUEST_ALREADY_PROCESSED, transition.result)

        self.notifier.notify(
            topic=req.topicname or req.connector_name,
            body=f"Reason : {reason or '-'}",
            requestor=req.requestor,
            approver=identity.username,
            team_id=req.requesting_team_id,
            tenant_id=req.tenant_id,
            kind=NotificationKind.REQUEST_DECLINED,
            login_url=self.settings.login_url,
            payload={"request_id": req.id},
        )
        return OperationResult.ok("success", request_id=req.id)

    def delete_request(self, identity: Identity, request_id: int) -> OperationResult:
        """Requestors may withdraw their own pending requests."""
        logger.info("delete_request %s", request_id)
        try:
            if not (
                is_authorized(identity, PermissionType.REQUEST_CREATE_SUBSCRIPTIONS)
                or is_authorized(identity, PermissionType.REQUEST_CREATE_CONNECTORS)
            ):
                raise NotAuthorized(PermissionType.REQUEST_CREATE_SUBSCRIPTIONS.value)

            req = self.store.find_by_id(request_id, identity.tenant_id)
            if req is None:
                raise NotFound(f"Request {request_id} not found")
            require(identity, creation_permission_for(req.request_type))
            if req.requestor != identity.username:
                raise NotAuthorized(
                    creation_permission_for(req.request_type).value,
                    "Only the requestor can delete this request",
                )
            if req.request_status != RequestStatus.CREATED.value:
                raise RequestAlreadyProcessed(f"Request {request_id} is already {req.request_status}")
        except GovernanceError as exc:
            return OperationResult.from_error(exc)

        transition = self.store.update_status(req.id, RequestStatus.DELETED, None, tenant_id=identity.tenant_id)
        if not transition.is_success:
            return OperationResult.failed(ErrorCode.REQUEST_ALREADY_PROCESSED, transition.result)

        self.notifier.notify(
            topic=req.topicname or req.connector_name,
            body="",
            requestor=req.requestor,
            approver=None,
            team_id=req.requesting_team_id,
            tenant_id=req.tenant_id,
            kind=NotificationKind.REQUEST_DELETED,
            login_url=self.settings.login_url,
            payload={"request_id": req.id},
        )
        return OperationResult.ok("success", request_id=req.id)

    # --- statistics ---

    def get_request_statistics(self, identity: Identity, *, mine_only: bool = True) -> OperationResult:
        try:
            if not mine_only:
                require(identity, PermissionType.VIEW_ALL_REQUEST_STATISTICS)
        except GovernanceError as exc:
            return OperationResult.from_error(exc)

        rows = self.store.count_by_status_and_type(
            identity.tenant_id,
            requestor=identity.username if mine_only else None,
        )
        type_counts: dict[str, int] = {}
        status_counts: dict[str, int] = {}
        for request_type, request_status, count in rows:
            type_counts[request_type] = type_counts.get(request_type, 0) + count
            status_counts[request_status] = status_counts.get(request_status, 0) + count

        return OperationResult.ok(
            "success",
            request_type_counts=type_counts,
            request_status_counts=status_counts,
            total=sum(type_counts.values()),
        )
