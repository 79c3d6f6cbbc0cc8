"""Fixtures for API tests."""

import httpx
import pytest
from fastapi.testclient import TestClient

from schoolbilling.main import app


@pytest.fixture
def test_app():
    """The application, with dependency overrides cleared after each test."""
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


@pytest.fixture
async def async_client(test_app):
    """Client that runs the app on the test's event loop, for database-backed tests."""
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
