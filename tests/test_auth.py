import pytest

import main
from conftest import ADMIN_EMAIL, PASSWORD, signup


def test_register_returns_user_without_password(client):
    response = client.post(
        "/register",
        json={"email": "New@Example.com", "password": PASSWORD, "fullName": "New Reader"},
    )
    assert response.status_code == 201
    user = response.json()["user"]
    assert user["email"] == "new@example.com"
    assert user["full_name"] == "New Reader"
    assert user["role"] == "user"
    assert "password" not in user


def test_register_accepts_field_names(client):
    response = client.post(
        "/register",
        json={
            "email": "plain@example.com",
            "password": PASSWORD,
            "full_name": "Plain Names",
            "date_of_birth": "1990-05-01",
        },
    )
    assert response.status_code == 201
    assert response.json()["user"]["full_name"] == "Plain Names"
    assert response.json()["user"]["date_of_birth"] == "1990-05-01"


def test_register_rejects_duplicate_email(client, user):
    response = client.post(
        "/register",
        json={"email": "reader@example.com", "password": PASSWORD, "fullName": "Again"},
    )
    assert response.status_code == 400


def test_register_enforces_password_rules(client):
    response = client.post(
        "/register",
        json={"email": "weak@example.com", "password": "alllowercase1", "fullName": "Weak"},
    )
    assert response.status_code == 422


def test_admin_email_gets_admin_role(client):
    response = client.post(
        "/register",
        json={"email": ADMIN_EMAIL, "password": PASSWORD, "fullName": "Store Admin"},
    )
    assert response.json()["user"]["role"] == "admin"


def test_login_with_bad_password(client, user):
    response = client.post("/login", json={"email": "reader@example.com", "password": "Wrong123!"})
    assert response.status_code == 401


def test_login_returns_token_details(client):
    client.post("/register", json={"email": "t@example.com", "password": PASSWORD, "fullName": "Tee"})
    body = client.post("/login", json={"email": "T@example.com", "password": PASSWORD}).json()
    assert body["token_type"] == "bearer"
    assert body["role"] == "user"
    assert body["expires_in"] == 7 * 24 * 60 * 60


def test_profile_requires_token(client):
    assert client.get("/users/me").status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert client.get("/users/me", headers=bad).status_code == 401


def test_update_profile(client, user):
    response = client.put(
        "/users/me",
        json={"phone": "+961 3 123456", "address": "Hamra, Beirut"},
        headers=user["headers"],
    )
    assert response.status_code == 200
    assert response.json()["address"] == "Hamra, Beirut"

    profile = client.get("/users/me", headers=user["headers"]).json()
    assert profile["id"] == user["id"]
    assert profile["phone"] == "+961 3 123456"


def test_update_profile_needs_fields(client, user):
    assert client.put("/users/me", json={}, headers=user["headers"]).status_code == 400


def test_admin_routes_reject_regular_users(client, user):
    assert client.get("/admin/users", headers=user["headers"]).status_code == 403


def test_signup_helper_creates_distinct_users(client):
    first = signup(client, "a@example.com")
    second = signup(client, "b@example.com")
    assert first["id"] != second["id"]


NEW_PASSWORD = "Fresh456#"


def login_status(client, email, password):
    return client.post("/login", json={"email": email, "password": password}).status_code


class TestPasswords:
    @pytest.fixture
    def sent(self, monkeypatch):
        emails = []
        monkeypatch.setattr(
            main, "send_password_reset_email",
            lambda email, full_name, token: emails.append({"email": email, "token": token}),
        )
        return emails

    def test_forgot_password_emails_a_token(self, client, user, sent):
        response = client.post("/password/forgot", json={"email": "Reader@example.com"})
        assert response.status_code == 200
        assert len(sent) == 1
        assert sent[0]["email"] == "reader@example.com"

    def test_forgot_password_hides_unknown_emails(self, client, sent):
        response = client.post("/password/forgot", json={"email": "nobody@example.com"})
        assert response.status_code == 200
        assert sent == []

    def test_reset_password_with_token(self, client, user, sent):
        client.post("/password/forgot", json={"email": "reader@example.com"})
        token = sent[0]["token"]

        response = client.post("/password/reset", json={"token": token, "new_password": NEW_PASSWORD})
        assert response.status_code == 200
        assert login_status(client, "reader@example.com", PASSWORD) == 401
        assert login_status(client, "reader@example.com", NEW_PASSWORD) == 200

        reused = client.post("/password/reset", json={"token": token, "new_password": "Another789$"})
        assert reused.status_code == 400

    def test_reset_token_is_not_a_login_token(self, client, user, sent):
        client.post("/password/forgot", json={"email": "reader@example.com"})
        headers = {"Authorization": f"Bearer {sent[0]['token']}"}
        assert client.get("/users/me", headers=headers).status_code == 401

    def test_reset_rejects_bad_tokens(self, client, user):
        bad = client.post("/password/reset", json={"token": "garbage", "new_password": NEW_PASSWORD})
        assert bad.status_code == 400

        access_token = user["headers"]["Authorization"].split()[1]
        wrong_kind = client.post("/password/reset", json={"token": access_token, "new_password": NEW_PASSWORD})
        assert wrong_kind.status_code == 400

    def test_reset_enforces_password_rules(self, client, user, sent):
        client.post("/password/forgot", json={"email": "reader@example.com"})
        weak = client.post("/password/reset", json={"token": sent[0]["token"], "new_password": "nouppercase1!"})
        assert weak.status_code == 422

    def test_change_password(self, client, user):
        wrong = client.put(
            "/users/me/password",
            json={"current_password": "Wrong123!", "new_password": NEW_PASSWORD},
            headers=user["headers"],
        )
        assert wrong.status_code == 400

        changed = client.put(
            "/users/me/password",
            json={"current_password": PASSWORD, "new_password": NEW_PASSWORD},
            headers=user["headers"],
        )
        assert changed.status_code == 200
        assert login_status(client, "reader@example.com", NEW_PASSWORD) == 200

    def test_change_password_requires_login(self, client):
        response = client.put(
            "/users/me/password", json={"current_password": PASSWORD, "new_password": NEW_PASSWORD}
        )
        assert response.status_code == 401
