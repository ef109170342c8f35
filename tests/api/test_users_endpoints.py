"""
Integration tests for User management endpoints.

Tests self-service profile access, admin-only listing and deactivation,
and that deactivation ends the user's sessions.
"""

import pytest


PASSWORD = "TestPassword123"


def login_as(client, context, email, admin=False, **extra):
    """Provision a user and return (user, tokens)."""
    user = context.create_user(email=email, password=PASSWORD, admin=admin, **extra)
    response = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    return user, response.json()["tokens"]


def bearer(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def error_of(response):
    return response.json()["detail"]["error"]


class TestListUsers:

    @pytest.mark.api
    def test_admin_lists_users(self, api_client, context):
        _, admin_tokens = login_as(api_client, context, "admin@example.com", admin=True)
        for i in range(3):
            context.create_user(email=f"user{i}@example.com", password=PASSWORD)

        response = api_client.get("/api/v1/users?limit=2&page=2", headers=bearer(admin_tokens))

        assert response.status_code == 200
        data = response.json()
        assert data["page"] == 2
        assert data["count"] == 2
        assert [u["email"] for u in data["users"]] == ["user1@example.com", "user2@example.com"]
        assert "password_hash" not in data["users"][0]

    @pytest.mark.api
    def test_non_admin_forbidden(self, api_client, context):
        _, tokens = login_as(api_client, context, "test.user@example.com")

        response = api_client.get("/api/v1/users", headers=bearer(tokens))

        assert response.status_code == 403
        assert error_of(response) == "forbidden"

    @pytest.mark.api
    def test_requires_token(self, api_client, context):
        response = api_client.get("/api/v1/users")

        assert response.status_code == 401

    @pytest.mark.api
    def test_bad_paging(self, api_client, context):
        _, admin_tokens = login_as(api_client, context, "admin@example.com", admin=True)

        response = api_client.get("/api/v1/users?limit=0", headers=bearer(admin_tokens))

        assert response.status_code == 422


class TestGetUser:

    @pytest.mark.api
    def test_get_self(self, api_client, context):
        user, tokens = login_as(api_client, context, "test.user@example.com")

        response = api_client.get(f"/api/v1/users/{user.user_id}", headers=bearer(tokens))

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "test.user@example.com"
        assert data["last_login"] is not None

    @pytest.mark.api
    def test_get_other_user_forbidden(self, api_client, context):
        _, tokens = login_as(api_client, context, "test.user@example.com")
        other = context.create_user(email="other@example.com", password=PASSWORD)

        response = api_client.get(f"/api/v1/users/{other.user_id}", headers=bearer(tokens))

        assert response.status_code == 403

    @pytest.mark.api
    def test_admin_gets_any_user(self, api_client, context):
        _, admin_tokens = login_as(api_client, context, "admin@example.com", admin=True)
        other = context.create_user(email="other@example.com", password=PASSWORD)

        response = api_client.get(f"/api/v1/users/{other.user_id}", headers=bearer(admin_tokens))

        assert response.status_code == 200
        assert response.json()["email"] == "other@example.com"

    @pytest.mark.api
    def test_admin_gets_unknown_user(self, api_client, context):
        _, admin_tokens = login_as(api_client, context, "admin@example.com", admin=True)

        response = api_client.get("/api/v1/users/missing", headers=bearer(admin_tokens))

        assert response.status_code == 404
        assert error_of(response) == "not_found"


class TestUpdateUser:

    @pytest.mark.api
    def test_update_own_profile(self, api_client, context):
        user, tokens = login_as(
            api_client, context, "test.user@example.com",
            phone="+5511999999999", verified=True
        )

        response = api_client.put(
            f"/api/v1/users/{user.user_id}",
            json={"first_name": "Ana", "phone": "+55 (11) 98888-7777"},
            headers=bearer(tokens)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["first_name"] == "Ana"
        assert data["phone"] == "+5511988887777"
        assert data["phone_verified"] is False
        assert data["email_verified"] is True

    @pytest.mark.api
    def test_update_invalid_phone(self, api_client, context):
        user, tokens = login_as(api_client, context, "test.user@example.com")

        response = api_client.put(
            f"/api/v1/users/{user.user_id}", json={"phone": "12345"}, headers=bearer(tokens)
        )

        assert response.status_code == 422
        assert error_of(response) == "invalid_request"

    @pytest.mark.api
    def test_user_cannot_change_is_active(self, api_client, context):
        user, tokens = login_as(api_client, context, "test.user@example.com")

        response = api_client.put(
            f"/api/v1/users/{user.user_id}", json={"is_active": False}, headers=bearer(tokens)
        )

        assert response.status_code == 403
        assert context.find_user("test.user@example.com").is_active is True

    @pytest.mark.api
    def test_admin_reactivates_user(self, api_client, context):
        _, admin_tokens = login_as(api_client, context, "admin@example.com", admin=True)
        other = context.create_user(email="other@example.com", password=PASSWORD)
        context.gateway.set_active(other.user_id, False)

        response = api_client.put(
            f"/api/v1/users/{other.user_id}", json={"is_active": True}, headers=bearer(admin_tokens)
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is True
        login = api_client.post(
            "/api/v1/auth/login", json={"email": "other@example.com", "password": PASSWORD}
        )
        assert login.status_code == 200


class TestDeactivateUser:

    @pytest.mark.api
    def test_admin_deactivates_and_sessions_end(self, api_client, context):
        _, admin_tokens = login_as(api_client, context, "admin@example.com", admin=True)
        user, tokens = login_as(api_client, context, "test.user@example.com")

        response = api_client.delete(f"/api/v1/users/{user.user_id}", headers=bearer(admin_tokens))

        assert response.status_code == 200
        assert response.json()["is_active"] is False

        refreshed = api_client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 401
        assert error_of(refreshed) == "token_invalid"

        me = api_client.get("/api/v1/auth/me", headers=bearer(tokens))
        assert me.status_code == 403
        assert error_of(me) == "inactive"

        # The record is kept
        assert context.find_user("test.user@example.com") is not None

    @pytest.mark.api
    def test_non_admin_cannot_deactivate(self, api_client, context):
        user, tokens = login_as(api_client, context, "test.user@example.com")

        response = api_client.delete(f"/api/v1/users/{user.user_id}", headers=bearer(tokens))

        assert response.status_code == 403
        assert context.find_user("test.user@example.com").is_active is True

    @pytest.mark.api
    def test_deactivate_unknown_user(self, api_client, context):
        _, admin_tokens = login_as(api_client, context, "admin@example.com", admin=True)

        response = api_client.delete("/api/v1/users/missing", headers=bearer(admin_tokens))

        assert response.status_code == 404
