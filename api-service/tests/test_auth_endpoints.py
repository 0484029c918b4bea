from unittest.mock import AsyncMock

from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest

from app.api.v1.endpoints import auth
from app.core.cache import InMemoryTTLStore, ResponseCache
from app.core.database import get_db
from app.core.deps import get_response_cache
from app.core.errors import UpstreamFailureError
from app.core.security import create_access_token, create_oauth_state


@pytest.fixture
def resolve_identity(monkeypatch):
    mock = AsyncMock(side_effect=UpstreamFailureError("Discord authentication failed"))
    monkeypatch.setattr(auth.discord_oauth_client, "resolve_identity", mock)
    return mock


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(auth.router, prefix="/auth")

    async def override_db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_response_cache] = lambda: ResponseCache(InMemoryTTLStore())
    return TestClient(app)


def test_callback_requires_state(client, resolve_identity):
    response = client.get("/auth/discord/callback", params={"code": "good-code"})

    assert response.status_code == 422
    resolve_identity.assert_not_called()


def test_callback_rejects_forged_state(client, resolve_identity):
    response = client.get("/auth/discord/callback", params={"code": "good-code", "state": "made-up"})

    assert response.status_code == 401
    resolve_identity.assert_not_called()


def test_callback_rejects_access_token_as_state(client, resolve_identity):
    state = create_access_token(subject="account-1")

    response = client.get("/auth/discord/callback", params={"code": "good-code", "state": state})

    assert response.status_code == 401
    resolve_identity.assert_not_called()


def test_callback_with_issued_state_reaches_discord(client, resolve_identity):
    response = client.get("/auth/discord/callback", params={"code": "good-code", "state": create_oauth_state()})

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "UPSTREAM_FAILURE"
    resolve_identity.assert_called_once_with("good-code")
