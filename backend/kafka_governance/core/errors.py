from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ErrorCode:
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"
    TARGET_NOT_ACCESSIBLE = "TARGET_NOT_ACCESSIBLE"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    REQUEST_ALREADY_PROCESSED = "REQUEST_ALREADY_PROCESSED"
    EXECUTION_FAILURE = "EXECUTION_FAILURE"
    STORE_FAILURE = "STORE_FAILURE"


class GovernanceError(Exception):
    """Base for every failure the request lifecycle reports as a result code."""

    code: str = "FAILURE"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotAuthorized(GovernanceError):
    code = ErrorCode.NOT_AUTHORIZED

    def __init__(self, permission: str, message: str | None = None):
        super().__init__(message or f"Not authorized: missing permission {permission}")
        self.permission = permission

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "explanation": self.message,
            "next_actions": ["Ask a superadmin to grant your role this permission."],
        }


class ValidationFailed(GovernanceError, ValueError):
    code = "VALIDATION_FAILED"


class MissingField(ValidationFailed):
    code = ErrorCode.MISSING_FIELD


class InvalidFormat(ValidationFailed):
    code = ErrorCode.INVALID_FORMAT


class TargetNotAccessible(ValidationFailed):
    code = ErrorCode.TARGET_NOT_ACCESSIBLE


class DuplicateRequest(ValidationFailed):
    code = ErrorCode.DUPLICATE_REQUEST


class RequestAlreadyProcessed(ValidationFailed):
    code = ErrorCode.REQUEST_ALREADY_PROCESSED


class NotFound(GovernanceError, LookupError):
    code = ErrorCode.NOT_FOUND


class RemoteExecutionFailure(GovernanceError):
    code = ErrorCode.EXECUTION_FAILURE


class ClusterApiError(Exception):
    """Raised by the cluster API client when the remote call fails or errors out."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


_HTTP_STATUS_BY_CODE: dict[str, int] = {
    ErrorCode.NOT_AUTHORIZED: 403,
    ErrorCode.MISSING_FIELD: 400,
    ErrorCode.INVALID_FORMAT: 400,
    ErrorCode.TARGET_NOT_ACCESSIBLE: 400,
    ErrorCode.DUPLICATE_REQUEST: 409,
    ErrorCode.REQUEST_ALREADY_PROCESSED: 409,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.EXECUTION_FAILURE: 502,
    ErrorCode.STORE_FAILURE: 500,
}


def http_status_for(code: str) -> int:
    return _HTTP_STATUS_BY_CODE.get(code, 400)


@dataclass(frozen=True)
class OperationResult:
    """Single pass/fail outcome of a lifecycle operation."""

    success: bool
    code: str
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str = "success", **data: Any) -> "OperationResult":
        return cls(success=True, code="SUCCESS", message=message, data=data)

    @classmethod
    def failed(cls, code: str, message: str = "failure") -> "OperationResult":
        return cls(success=False, code=code, message=message)

    @classmethod
    def from_error(cls, exc: GovernanceError) -> "OperationResult":
        return cls.failed(exc.code, exc.message)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }
