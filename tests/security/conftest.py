"""HTTP-level fixtures.

- `app`: the full FastAPI app (routes, error handlers, limiter, CORS)
- Billing store dependency overridden with the in-memory FakeSupabase
- Redis dedup replaced by a MagicMock (every event is new by default)
- Supabase auth replaced by `signed_in_user` for Bearer-token tests
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from winprod.app import create_app
from winprod.db.store import BillingStore, get_billing_store
from winprod.security.auth import AuthenticatedUser
from winprod.security.middleware import limiter

AUTH_HEADERS = {"Authorization": "Bearer test-access-token"}


@pytest.fixture(scope="module")
def app():
    return create_app()


@pytest.fixture(autouse=True)
def _billing_store(app, fake_db):
    app.dependency_overrides[get_billing_store] = lambda: BillingStore(fake_db)
    yield
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture(autouse=True)
def mock_redis():
    """Redis client used for webhook dedup. `set` returns True (new event)."""
    mock_r = MagicMock()
    mock_r.set.return_value = True
    with patch("winprod.webhooks.idempotency._get_redis", return_value=mock_r):
        yield mock_r


@pytest.fixture
def client(app):
    """Unauthenticated TestClient."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def signed_in_user():
    user = AuthenticatedUser(id="user-1", email="jane@example.com")
    with patch("winprod.security.auth.resolve_user", return_value=user):
        yield user


@pytest.fixture
def authenticated_client(app, signed_in_user):
    """TestClient sending a Bearer token that resolves to `signed_in_user`."""
    with TestClient(app, raise_server_exceptions=False, headers=AUTH_HEADERS) as c:
        yield c
