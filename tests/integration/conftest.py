"""
Fixtures for integration tests
"""

import pytest
from httpx import ASGITransport, AsyncClient

from pickem.core.config import get_settings
from pickem.main import app
from pickem.database import Database

ADMIN_KEY = "test-admin-key"


@pytest.fixture
async def client(test_db, settings):
    """
    HTTP client for testing API endpoints.

    Points the app at the test database and the test settings.
    """
    original_db = Database.db
    Database.db = test_db

    settings.admin_api_key = ADMIN_KEY
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    Database.db = original_db


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}
