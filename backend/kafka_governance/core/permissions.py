from __future__ import annotations

from enum import Enum


class PermissionType(str, Enum):
    VIEW_REQUESTS = "VIEW_REQUESTS"
    REQUEST_CREATE_SUBSCRIPTIONS = "REQUEST_CREATE_SUBSCRIPTIONS"
    REQUEST_CREATE_CONNECTORS = "REQUEST_CREATE_CONNECTORS"
    APPROVE_OPERATIONAL_REQS = "APPROVE_OPERATIONAL_REQS"
    APPROVE_CONNECTORS = "APPROVE_CONNECTORS"
    VIEW_ALL_REQUEST_STATISTICS = "VIEW_ALL_REQUEST_STATISTICS"


def _to_title_case(input_value: str) -> str:
    return " ".join(part.capitalize() for part in input_value.split("_") if part)


KNOWN_PERMISSION_DESCRIPTIONS: dict[str, dict[str, str]] = {
    PermissionType.VIEW_REQUESTS.value: {
        "title": "View requests",
        "description": "Can browse requests raised in the tenant.",
    },
    PermissionType.REQUEST_CREATE_SUBSCRIPTIONS.value: {
        "title": "Request consumer operations",
        "description": "Can request consumer group offset resets for owned subscriptions.",
    },
    PermissionType.REQUEST_CREATE_CONNECTORS.value: {
        "title": "Request connectors",
        "description": "Can request new Kafka Connect connectors.",
    },
    PermissionType.APPROVE_OPERATIONAL_REQS.value: {
        "title": "Approve operational requests",
        "description": "Can approve or decline consumer offset reset requests.",
    },
    PermissionType.APPROVE_CONNECTORS.value: {
        "title": "Approve connector requests",
        "description": "Can approve or decline connector requests.",
    },
    PermissionType.VIEW_ALL_REQUEST_STATISTICS.value: {
        "title": "View request statistics",
        "description": "Can see request counts for the whole tenant.",
    },
}


USER_ROLE = "USER"
APPROVER_ROLE = "APPROVER"
SUPERADMIN_ROLE = "SUPERADMIN"

_REQUESTOR_PERMS = [
    PermissionType.VIEW_REQUESTS.value,
    PermissionType.REQUEST_CREATE_SUBSCRIPTIONS.value,
    PermissionType.REQUEST_CREATE_CONNECTORS.value,
]

_APPROVER_EXTRA_PERMS = [
    PermissionType.APPROVE_OPERATIONAL_REQS.value,
    PermissionType.APPROVE_CONNECTORS.value,
]

ROLE_TO_PERMS: dict[str, list[str]] = {
    USER_ROLE: _REQUESTOR_PERMS,
    APPROVER_ROLE: _REQUESTOR_PERMS + _APPROVER_EXTRA_PERMS,
    SUPERADMIN_ROLE: _REQUESTOR_PERMS + _APPROVER_EXTRA_PERMS + [PermissionType.VIEW_ALL_REQUEST_STATISTICS.value],
}


def describe_permission(permission: str) -> dict[str, str]:
    known = KNOWN_PERMISSION_DESCRIPTIONS.get(permission)
    if known:
        return known

    title = _to_title_case(permission.lower())
    return {
        "title": title,
        "description": f"Can {title.lower()}.",
    }


def build_permission_view(permission: str) -> dict[str, str]:
    description = describe_permission(permission)
    return {
        "permission": permission,
        "title": description["title"],
        "description": description["description"],
    }
