"""
Unit tests for turning access tokens into the current user.
"""

import pytest
from fastapi import HTTPException

from permission_slips.core.auth import user_from_token
from permission_slips.core.security import create_access_token, create_refresh_token


def test_access_token_claims():
    token = create_access_token(
        subject="user-1",
        additional_claims={
            "email": "ms.frizzle@springfield.edu",
            "role": "TEACHER",
            "school_id": "school-1",
            "name": "Valerie Frizzle",
        },
    )

    user = user_from_token(token)

    assert user.id == "user-1"
    assert user.role == "TEACHER"
    assert user.school_id == "school-1"
    assert user.name == "Valerie Frizzle"


def test_refresh_token_is_refused():
    with pytest.raises(HTTPException) as exc_info:
        user_from_token(create_refresh_token(subject="user-1"))

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail["error"] == "INVALID_TOKEN_TYPE"


def test_missing_role_claim():
    with pytest.raises(HTTPException) as exc_info:
        user_from_token(create_access_token(subject="user-1"))

    assert exc_info.value.detail["error"] == "INVALID_TOKEN_CLAIMS"


def test_garbage_token():
    with pytest.raises(HTTPException) as exc_info:
        user_from_token("not.a.jwt")

    assert exc_info.value.detail["error"] == "INVALID_TOKEN"
    assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}
