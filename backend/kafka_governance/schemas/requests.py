from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

from kafka_governance.db.models import OffsetResetType


class ConsumerOffsetResetCreate(BaseModel):
    environment: str
    topicname: str
    consumer_group: str | None = None
    offset_reset_type: OffsetResetType
    # yyyy-MM-dd'T'HH:mm:ss.SSSZ, only for TO_DATE_TIME
    reset_timestamp: str | None = None


class ConnectorRequestCreate(BaseModel):
    environment: str
    connector_name: str
    connector_config: str
    description: str
    request_type: Literal["CREATE_CONNECTOR", "UPDATE_CONNECTOR", "DELETE_CONNECTOR"] = "CREATE_CONNECTOR"


class RequestDecision(BaseModel):
    reason: str | None = None


class OperationResultResponse(BaseModel):
    success: bool
    code: str
    message: str
    data: dict[str, Any] = {}


class KafkaRequestItem(BaseModel):
    id: int
    request_type: str
    request_status: str
    requestor: str
    requesting_team_id: int
    approver: str | None
    tenant_id: int
    environment: str
    environment_name: str | None
    teamname: str | None
    topicname: str | None
    consumer_group: str | None
    offset_reset_type: str | None
    reset_timestamp: str | None
    connector_name: str | None
    description: str | None
    decline_reason: str | None
    requesttime: str
    approving_time: str | None
    approving_team_details: str | None
    editable: bool
    deletable: bool
    current_page: int
    total_no_pages: int
    all_page_nos: list[int]
