"""
Unit tests for role-based authorization.
"""

import pytest
from factories import make_user
from fastapi import HTTPException

from permission_slips.core.permissions import (
    ROLE_PERMISSIONS,
    Operation,
    is_allowed,
    require_permission,
)
from permission_slips.modules.users.models import UserRole

STAFF = {UserRole.TEACHER, UserRole.ADMIN, UserRole.SUPER_ADMIN}

EXPECTED = {
    Operation.FORM_CREATE: STAFF,
    Operation.FORM_VIEW: STAFF | {UserRole.REVIEWER},
    Operation.FORM_UPDATE: STAFF,
    Operation.FORM_DELETE: STAFF,
    Operation.FORM_DUPLICATE: STAFF,
    Operation.FORM_SHARE: STAFF,
    Operation.FORM_DISTRIBUTE: STAFF,
    Operation.FORM_CLOSE: STAFF,
    Operation.FORM_REOPEN: STAFF,
    Operation.FORM_BULK_CLOSE: STAFF,
    Operation.FORM_BULK_REMIND: STAFF,
    Operation.FORM_EXPORT: STAFF,
    Operation.FORM_SUBMIT_FOR_REVIEW: STAFF,
    Operation.FORM_APPROVE: {UserRole.REVIEWER},
    Operation.FORM_REQUEST_REVISION: {UserRole.REVIEWER},
    Operation.FORM_REVIEW_LOG_VIEW: STAFF | {UserRole.REVIEWER},
    Operation.FORM_SIGN_VIEW: {UserRole.PARENT},
    Operation.FORM_SIGN: {UserRole.PARENT},
    Operation.SUBMISSION_PDF_DOWNLOAD: STAFF | {UserRole.PARENT},
    Operation.INVITE_CREATE: {UserRole.ADMIN, UserRole.SUPER_ADMIN},
    Operation.JOBS_TRIGGER: {UserRole.SUPER_ADMIN},
}


def test_every_operation_has_a_rule():
    assert set(ROLE_PERMISSIONS) == set(Operation)


@pytest.mark.parametrize("operation", list(Operation))
@pytest.mark.parametrize("role", list(UserRole))
def test_role_table(operation, role):
    assert is_allowed(role, operation) == (role in EXPECTED[operation])


def test_role_given_as_string():
    assert is_allowed("REVIEWER", Operation.FORM_APPROVE) is True
    assert is_allowed("TEACHER", Operation.FORM_APPROVE) is False


def test_unknown_role_is_denied():
    assert is_allowed("JANITOR", Operation.FORM_VIEW) is False


@pytest.mark.asyncio
async def test_require_permission_passes_allowed_user_through():
    user = make_user(UserRole.PARENT)
    dependency = require_permission(Operation.FORM_SIGN)

    assert await dependency(user=user) is user


@pytest.mark.asyncio
async def test_require_permission_rejects_with_403():
    user = make_user(UserRole.TEACHER)
    dependency = require_permission(Operation.FORM_SIGN)

    with pytest.raises(HTTPException) as exc_info:
        await dependency(user=user)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail["error"] == "FORBIDDEN"
