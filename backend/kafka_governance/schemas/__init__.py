from .auth import TokenResponse, MeResponse, LoginRequest, PermissionDetail, NotificationItem
from .requests import (
    ConsumerOffsetResetCreate,
    ConnectorRequestCreate,
    RequestDecision,
    OperationResultResponse,
    KafkaRequestItem,
)

__all__ = [
    "TokenResponse",
    "MeResponse",
    "LoginRequest",
    "PermissionDetail",
    "NotificationItem",
    "ConsumerOffsetResetCreate",
    "ConnectorRequestCreate",
    "RequestDecision",
    "OperationResultResponse",
    "KafkaRequestItem",
]
