"""
Tests for the health, readiness and debug endpoints.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from permission_slips.core.auth import get_current_user
from permission_slips.main import app


@pytest.fixture
def client_as():
    def _client(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


def test_health():
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_ready_reports_rate_limit_backend():
    with (
        patch("permission_slips.main._database_ok", new_callable=AsyncMock),
        patch(
            "permission_slips.main.redis_status",
            new_callable=AsyncMock,
            return_value={"redis": "not initialized", "rate_limit_backend": "memory"},
        ),
    ):
        response = TestClient(app).get("/ready")

    assert response.json() == {"status": "ready", "rate_limit_backend": "memory"}


def test_not_ready_without_database():
    with patch(
        "permission_slips.main._database_ok",
        new_callable=AsyncMock,
        side_effect=ConnectionRefusedError("refused"),
    ):
        response = TestClient(app).get("/ready")

    assert response.status_code == 503
    assert response.json()["detail"]["error"] == "DATABASE_UNAVAILABLE"


def test_debug_endpoints_require_super_admin(client_as, admin):
    response = client_as(admin).get("/debug/jobs")

    assert response.status_code == 403


def test_trigger_unknown_job(client_as, super_admin):
    response = client_as(super_admin).post("/debug/jobs/nope/trigger")

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "JOB_NOT_FOUND"
