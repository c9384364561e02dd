from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from kafka_governance.core.errors import OperationResult, http_status_for
from kafka_governance.db.db import get_db
from kafka_governance.db.models import RequestStatus, RequestType
from kafka_governance.schemas.requests import (
    ConnectorRequestCreate,
    ConsumerOffsetResetCreate,
    KafkaRequestItem,
    OperationResultResponse,
    RequestDecision,
)
from kafka_governance.security.authz import Identity
from kafka_governance.security.deps import get_current_identity, get_lifecycle_service
from kafka_governance.services.requests import RequestFilters, RequestLifecycleService, RequestOrder

router = APIRouter(tags=["requests"])
logger = logging.getLogger("kafka_governance.api.requests")


def _respond(db: Session, result: OperationResult) -> dict:
    """Commit on success; otherwise roll back and surface the result code as an HTTP error."""
    if result.success:
        db.commit()
        return result.as_dict()
    db.rollback()
    logger.info("Request operation failed code=%s message=%s", result.code, result.message)
    raise HTTPException(status_code=http_status_for(result.code), detail=result.as_dict())


@router.post("/requests/consumer-offsets", response_model=OperationResultResponse)
def create_consumer_offsets_reset_request(
    payload: ConsumerOffsetResetCreate,
    identity: Identity = Depends(get_current_identity),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
    db: Session = Depends(get_db),
):
    return _respond(db, service.create_offset_reset_request(identity, payload))


@router.post("/requests/connectors", response_model=OperationResultResponse)
def create_connector_request(
    payload: ConnectorRequestCreate,
    identity: Identity = Depends(get_current_identity),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
    db: Session = Depends(get_db),
):
    return _respond(db, service.create_connector_request(identity, payload))


@router.get("/requests", response_model=list[KafkaRequestItem])
def list_requests(
    page_no: int = Query(default=1, ge=1),
    request_type: RequestType | None = None,
    request_status: RequestStatus | None = None,
    env: str | None = None,
    topicname: str | None = None,
    consumer_group: str | None = None,
    search: str | None = None,
    order: RequestOrder = RequestOrder.DESC_REQUESTED_TIME,
    mine_only: bool = False,
    identity: Identity = Depends(get_current_identity),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
):
    filters = RequestFilters(
        request_type=request_type,
        status=request_status,
        environment=env,
        topicname=topicname,
        consumer_group=consumer_group,
        wildcard=search,
    )
    return service.list_requests(identity, page_no=page_no, filters=filters, order=order, mine_only=mine_only)


@router.get("/requests/statistics", response_model=OperationResultResponse)
def request_statistics(
    mine_only: bool = True,
    identity: Identity = Depends(get_current_identity),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
    db: Session = Depends(get_db),
):
    return _respond(db, service.get_request_statistics(identity, mine_only=mine_only))


@router.post("/requests/{request_id}/approve", response_model=OperationResultResponse)
def approve_request(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
    db: Session = Depends(get_db),
):
    return _respond(db, service.approve_request(identity, request_id))


@router.post("/requests/{request_id}/decline", response_model=OperationResultResponse)
def decline_request(
    request_id: int,
    payload: RequestDecision,
    identity: Identity = Depends(get_current_identity),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
    db: Session = Depends(get_db),
):
    return _respond(db, service.decline_request(identity, request_id, payload.reason))


@router.delete("/requests/{request_id}", response_model=OperationResultResponse)
def delete_request(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
    db: Session = Depends(get_db),
):
    return _respond(db, service.delete_request(identity, request_id))
