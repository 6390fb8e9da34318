"""
HTTP tests for login and token refresh.
"""

from unittest.mock import AsyncMock, patch

import pytest
from factories import make_account
from fastapi.testclient import TestClient

from permission_slips.core.security import create_access_token, create_refresh_token, decode_token
from permission_slips.modules.audit import AuditAction
from permission_slips.modules.users.models import UserRole

ROUTER = "permission_slips.modules.auth.router"


@pytest.fixture
def account():
    return make_account("Grace", "Hopper", role=UserRole.TEACHER)


@pytest.fixture
def mock_record():
    with patch(f"{ROUTER}.record", new_callable=AsyncMock) as rec:
        yield rec


class TestLogin:
    def test_success_issues_claims(self, app, account, mock_record):
        with (
            patch(f"{ROUTER}.UserRepository.get_by_email", new_callable=AsyncMock, return_value=account),
            patch(f"{ROUTER}.verify_password", return_value=True),
        ):
            response = TestClient(app).post(
                "/api/v1/auth/login", json={"email": account.email, "password": "pw"}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["account"]["role"] == "TEACHER"
        assert body["account"]["full_name"] == "Grace Hopper"

        claims = decode_token(body["access_token"])
        assert claims["sub"] == account.id
        assert claims["role"] == "TEACHER"
        assert claims["school_id"] == account.school_id
        assert claims["type"] == "access"
        assert mock_record.call_args.args[0] == AuditAction.USER_LOGIN

    def test_unknown_email(self, app, mock_record):
        with patch(f"{ROUTER}.UserRepository.get_by_email", new_callable=AsyncMock, return_value=None):
            response = TestClient(app).post(
                "/api/v1/auth/login", json={"email": "nobody@springfield.edu", "password": "pw"}
            )

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "INVALID_CREDENTIALS"
        mock_record.assert_not_called()

    def test_wrong_password_looks_like_unknown_email(self, app, account, mock_record):
        with (
            patch(f"{ROUTER}.UserRepository.get_by_email", new_callable=AsyncMock, return_value=account),
            patch(f"{ROUTER}.verify_password", return_value=False),
        ):
            response = TestClient(app).post(
                "/api/v1/auth/login", json={"email": account.email, "password": "nope"}
            )

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "INVALID_CREDENTIALS"

    def test_inactive_account(self, app, account, mock_record):
        account.is_active = False

        with (
            patch(f"{ROUTER}.UserRepository.get_by_email", new_callable=AsyncMock, return_value=account),
            patch(f"{ROUTER}.verify_password", return_value=True),
        ):
            response = TestClient(app).post(
                "/api/v1/auth/login", json={"email": account.email, "password": "pw"}
            )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "ACCOUNT_INACTIVE"


class TestRefresh:
    def test_refresh_rereads_role(self, app, account):
        account.role = UserRole.REVIEWER
        token = create_refresh_token(subject=account.id)

        with patch(f"{ROUTER}.UserRepository.get_by_id", new_callable=AsyncMock, return_value=account):
            response = TestClient(app).post("/api/v1/auth/refresh", json={"refresh_token": token})

        assert response.status_code == 200
        assert decode_token(response.json()["access_token"])["role"] == "REVIEWER"

    def test_access_token_is_not_a_refresh_token(self, app, account):
        token = create_access_token(subject=account.id, additional_claims={"role": "TEACHER"})

        response = TestClient(app).post("/api/v1/auth/refresh", json={"refresh_token": token})

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "INVALID_REFRESH_TOKEN"

    def test_garbage_token(self, app):
        response = TestClient(app).post("/api/v1/auth/refresh", json={"refresh_token": "not-a-jwt"})

        assert response.status_code == 401

    def test_deleted_account(self, app, account):
        token = create_refresh_token(subject=account.id)

        with patch(f"{ROUTER}.UserRepository.get_by_id", new_callable=AsyncMock, return_value=None):
            response = TestClient(app).post("/api/v1/auth/refresh", json={"refresh_token": token})

        assert response.status_code == 401
