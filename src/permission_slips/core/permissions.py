"""
Role-Based Authorization

Single source of truth for which roles may perform which operation.
Each endpoint declares the Operation it performs and depends on
``require_permission(operation)``; the role check happens exactly once
per request, here.

Resource-level rules (form ownership, same-school reviewer, parent link)
need the loaded resource and are enforced in the service layer.
"""

import logging
from enum import Enum

from fastapi import Depends, HTTPException, status

from permission_slips.core.auth import CurrentUser, get_current_user
from permission_slips.modules.users.models import UserRole

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Operations subject to role authorization."""

    FORM_CREATE = "form:create"
    FORM_VIEW = "form:view"
    FORM_UPDATE = "form:update"
    FORM_DELETE = "form:delete"
    FORM_DUPLICATE = "form:duplicate"
    FORM_SHARE = "form:share"
    FORM_DISTRIBUTE = "form:distribute"
    FORM_CLOSE = "form:close"
    FORM_REOPEN = "form:reopen"
    FORM_BULK_CLOSE = "form:bulk_close"
    FORM_BULK_REMIND = "form:bulk_remind"
    FORM_EXPORT = "form:export"
    FORM_SUBMIT_FOR_REVIEW = "form:submit_for_review"
    FORM_APPROVE = "form:approve"
    FORM_REQUEST_REVISION = "form:request_revision"
    FORM_REVIEW_LOG_VIEW = "form:review_log"
    FORM_SIGN_VIEW = "form:sign_view"
    FORM_SIGN = "form:sign"
    SUBMISSION_PDF_DOWNLOAD = "submission:pdf"
    INVITE_CREATE = "invite:create"
    JOBS_TRIGGER = "jobs:trigger"


_STAFF = frozenset({UserRole.TEACHER, UserRole.ADMIN, UserRole.SUPER_ADMIN})

ROLE_PERMISSIONS: dict[Operation, frozenset[UserRole]] = {
    Operation.FORM_CREATE: _STAFF,
    Operation.FORM_VIEW: _STAFF | {UserRole.REVIEWER},
    Operation.FORM_UPDATE: _STAFF,
    Operation.FORM_DELETE: _STAFF,
    Operation.FORM_DUPLICATE: _STAFF,
    Operation.FORM_SHARE: _STAFF,
    Operation.FORM_DISTRIBUTE: _STAFF,
    Operation.FORM_CLOSE: _STAFF,
    Operation.FORM_REOPEN: _STAFF,
    Operation.FORM_BULK_CLOSE: _STAFF,
    Operation.FORM_BULK_REMIND: _STAFF,
    Operation.FORM_EXPORT: _STAFF,
    Operation.FORM_SUBMIT_FOR_REVIEW: _STAFF,
    Operation.FORM_APPROVE: frozenset({UserRole.REVIEWER}),
    Operation.FORM_REQUEST_REVISION: frozenset({UserRole.REVIEWER}),
    Operation.FORM_REVIEW_LOG_VIEW: _STAFF | {UserRole.REVIEWER},
    Operation.FORM_SIGN_VIEW: frozenset({UserRole.PARENT}),
    Operation.FORM_SIGN: frozenset({UserRole.PARENT}),
    Operation.SUBMISSION_PDF_DOWNLOAD: _STAFF | {UserRole.PARENT},
    Operation.INVITE_CREATE: frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN}),
    Operation.JOBS_TRIGGER: frozenset({UserRole.SUPER_ADMIN}),
}


def is_allowed(role: str | UserRole, operation: Operation) -> bool:
    """
    Check whether a role may perform an operation.

    Unknown roles are never allowed.
    """
    try:
        user_role = UserRole(role)
    except ValueError:
        return False
    return user_role in ROLE_PERMISSIONS.get(operation, frozenset())


def require_permission(operation: Operation):
    """
    Build a FastAPI dependency that authorizes the caller for an operation.

    Usage:
        @router.post("/{form_id}/approve")
        async def approve(
            user: CurrentUser = Depends(require_permission(Operation.FORM_APPROVE)),
        ):
            ...

    Raises:
        HTTPException 403: If the caller's role is not allowed
    """

    async def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not is_allowed(user.role, operation):
            logger.warning(
                f"Access denied: user {user.id} with role '{user.role}' "
                f"attempted '{operation.value}'"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "FORBIDDEN",
                    "message": "You do not have permission to perform this action.",
                },
            )
        return user

    return _dependency


__all__ = ["Operation", "ROLE_PERMISSIONS", "is_allowed", "require_permission"]
