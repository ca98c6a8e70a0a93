import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import TokenVerificationError, get_token_verifier
from database import get_db
from main import app

TOKENS = {
    "buyer-token": "buyer@example.com",
    "seller-token": "seller@example.com",
}


def fake_verifier(token: str) -> str:
    try:
        return TOKENS[token]
    except KeyError:
        raise TokenVerificationError(f"unknown token {token!r}")


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db():
    return mongomock.MongoClient()["smart_db"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_token_verifier] = lambda: fake_verifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
