import asyncio

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

import main
from dataBase import get_db

ADMIN_EMAIL = "admin@example.com"
PASSWORD = "Secret123!"


def run(coro):
    """Drive a motor-style coroutine from synchronous test code."""
    return asyncio.run(coro)


def signup(client, email, full_name="Test Reader"):
    """Register and log in; returns the auth headers and user id."""
    response = client.post(
        "/register",
        json={"email": email, "password": PASSWORD, "fullName": full_name},
    )
    assert response.status_code == 201, response.text
    login = client.post("/login", json={"email": email, "password": PASSWORD})
    assert login.status_code == 200, login.text
    body = login.json()
    return {
        "id": body["user_id"],
        "headers": {"Authorization": f"Bearer {body['access_token']}"},
    }


@pytest.fixture
def db():
    return AsyncMongoMockClient()["ghazal_library_test"]


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", ADMIN_EMAIL)
    monkeypatch.setattr(main, "default_db", db)
    monkeypatch.setattr("email_service.RESEND_API_KEY", None)
    main.app.dependency_overrides[get_db] = lambda: db
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin(client):
    return signup(client, ADMIN_EMAIL, "Store Admin")


@pytest.fixture
def user(client):
    return signup(client, "reader@example.com", "Rana Reader")


@pytest.fixture
def other_user(client):
    return signup(client, "second@example.com", "Sami Second")
