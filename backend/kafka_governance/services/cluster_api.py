from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from kafka_governance.core.config import Settings
from kafka_governance.core.errors import ClusterApiError
from kafka_governance.core.time import format_offset_reset_timestamp

logger = logging.getLogger("kafka_governance.cluster_api")


class OffsetsTiming(str, Enum):
    BEFORE_OFFSET_RESET = "BEFORE_OFFSET_RESET"
    AFTER_OFFSET_RESET = "AFTER_OFFSET_RESET"


@dataclass(frozen=True)
class OffsetResetParams:
    topicname: str
    consumer_group: str
    offset_reset_type: str
    reset_timestamp: datetime | None = None


@dataclass(frozen=True)
class ConnectorParams:
    request_type: str
    connector_name: str
    connector_config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OffsetMeasurements:
    """Per-partition offsets captured around a reset."""

    before: dict[str, int]
    after: dict[str, int]


@dataclass(frozen=True)
class ExecutionOutcome:
    success: bool
    message: str = ""
    measurements: OffsetMeasurements | None = None


class ClusterApi(Protocol):
    def reset_consumer_offsets(
        self, params: OffsetResetParams, environment: str, tenant_id: int
    ) -> ExecutionOutcome: ...

    def execute_connector_request(
        self, params: ConnectorParams, environment: str, tenant_id: int
    ) -> ExecutionOutcome: ...


def _to_offsets(value: Any) -> dict[str, int]:
    if not isinstance(value, dict):
        return {}
    offsets: dict[str, int] = {}
    for key, raw in value.items():
        try:
            offsets[str(key)] = int(raw)
        except (TypeError, ValueError):
            continue
    return offsets


def parse_measurements(data: Any) -> OffsetMeasurements | None:
    """Translate the remote before/after offsets map into OffsetMeasurements."""
    if not isinstance(data, dict):
        return None
    before = data.get(OffsetsTiming.BEFORE_OFFSET_RESET.value)
    after = data.get(OffsetsTiming.AFTER_OFFSET_RESET.value)
    if before is None and after is None:
        return None
    return OffsetMeasurements(before=_to_offsets(before), after=_to_offsets(after))


class ClusterApiClient:
    """
    HTTP client for the cluster API service that performs Kafka-side mutations.
    Each call is a single attempt; retries belong to the caller resubmitting.
    """

    def __init__(self, base_url: str, timeout_s: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClusterApiClient":
        return cls(settings.cluster_api_url, settings.cluster_api_timeout_seconds)

    def _post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        req = urllib.request.Request(
            f"{self.base_url}{path}",
            data=json.dumps(body, default=str).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "User-Agent": "kafka-governance/1.0",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            raise ClusterApiError(f"Cluster API returned HTTP {exc.code}", status_code=exc.code) from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise ClusterApiError(f"Cluster API unreachable: {exc}") from exc

        try:
            payload = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise ClusterApiError("Cluster API returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise ClusterApiError("Cluster API returned an unexpected payload")
        return payload

    def reset_consumer_offsets(
        self, params: OffsetResetParams, environment: str, tenant_id: int
    ) -> ExecutionOutcome:
        body = {
            "clusterIdentification": environment,
            "tenantId": tenant_id,
            "topicName": params.topicname,
            "consumerGroup": params.consumer_group,
            "offsetResetType": params.offset_reset_type,
            "resetToDateTimeTimeStamp": (
                format_offset_reset_timestamp(params.reset_timestamp) if params.reset_timestamp else None
            ),
        }
        logger.info("Resetting offsets group=%s topic=%s env=%s", params.consumer_group, params.topicname, environment)
        payload = self._post_json("/topics/consumerGroup/resetOffsets", body)
        return ExecutionOutcome(
            success=bool(payload.get("success")),
            message=str(payload.get("message") or ""),
            measurements=parse_measurements(payload.get("data")),
        )

    def execute_connector_request(
        self, params: ConnectorParams, environment: str, tenant_id: int
    ) -> ExecutionOutcome:
        body = {
            "env": environment,
            "tenantId": tenant_id,
            "connectorName": params.connector_name,
            "connectorConfig": params.connector_config,
            "requestType": params.request_type,
        }
        logger.info("Executing %s for connector=%s env=%s", params.request_type, params.connector_name, environment)
        payload = self._post_json("/connectors/execute", body)
        return ExecutionOutcome(
            success=bool(payload.get("success")),
            message=str(payload.get("message") or ""),
        )
