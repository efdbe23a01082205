from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from auth import dependencies as auth_dependencies
from core.cache import TTLCache
from main import app


@pytest.fixture()
def user() -> dict:
    return {
        "id": 1,
        "name": "Nova Sound",
        "email": "manager@novasound.example",
        "role": "user",
        "is_active": True,
        "two_factor_enabled": False,
        "two_factor_secret": None,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }


@pytest.fixture()
def admin(user: dict) -> dict:
    return {**user, "id": 99, "email": "admin@novasound.example", "role": "admin"}


@pytest.fixture()
def client(user: dict):
    """
    API client authenticated as `user`; the lifespan (DB pool, workers) is not started.
    """
    app.dependency_overrides[auth_dependencies.get_current_user] = lambda: user
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_client(admin: dict):
    app.dependency_overrides[auth_dependencies.get_current_user] = lambda: admin
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def anonymous_client():
    app.dependency_overrides.clear()
    return TestClient(app)


@pytest.fixture()
def fresh_cache() -> TTLCache:
    return TTLCache(default_ttl_s=60.0, max_entries=4)
