"""
Shared fixtures: mock database session and callers of each role.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from factories import OTHER_SCHOOL_ID, make_form, make_user
from fastapi import FastAPI
from fastapi.testclient import TestClient

import permission_slips.models  # noqa: F401
from permission_slips.api import api_router
from permission_slips.core import rate_limit
from permission_slips.core.auth import get_current_user
from permission_slips.core.database import get_db
from permission_slips.modules.users.models import UserRole


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.flush = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture(autouse=True)
def clear_rate_limits():
    """Start every test with an empty in-memory rate limit store."""
    rate_limit._memory_store.clear()
    yield
    rate_limit._memory_store.clear()


@pytest.fixture
def teacher():
    return make_user(UserRole.TEACHER)


@pytest.fixture
def other_teacher():
    return make_user(UserRole.TEACHER)


@pytest.fixture
def admin():
    return make_user(UserRole.ADMIN)


@pytest.fixture
def other_school_admin():
    return make_user(UserRole.ADMIN, school_id=OTHER_SCHOOL_ID)


@pytest.fixture
def super_admin():
    return make_user(UserRole.SUPER_ADMIN, school_id=None)


@pytest.fixture
def reviewer():
    return make_user(UserRole.REVIEWER)


@pytest.fixture
def parent():
    return make_user(UserRole.PARENT)


@pytest.fixture
def draft_form(teacher):
    return make_form(teacher.id)


@pytest.fixture
def app(mock_db):
    """The API routers on a bare FastAPI app, with the database session mocked."""
    application = FastAPI()
    application.include_router(api_router, prefix="/api/v1")

    async def _get_db():
        yield mock_db

    application.dependency_overrides[get_db] = _get_db
    return application


@pytest.fixture
def client_for(app):
    """Build a TestClient authenticated as the given user."""

    def _client(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return TestClient(app)

    return _client
