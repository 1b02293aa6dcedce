"""User administration: service rules and the ADMIN-only /api/users API."""

import pytest

from backoffice.errors import ConflictError, ForbiddenError, NotFoundError
from backoffice.extensions import db
from backoffice.models import SessionToken, User
from backoffice.services import auth_service, session_service, user_service
from backoffice.services.auth_service import PasswordValidationError
from backoffice.validation import ValidationError

from conftest import TEST_PASSWORD, headers_for


# =============================================================================
# Service
# =============================================================================

class TestUserService:
    def test_create_defaults_to_salesperson(self, db_session):
        user = user_service.create_user({"name": "Ana Lima", "email": " Ana@Example.com", "password": "secret1"})

        assert user.role == "SALESPERSON"
        assert user.is_active is True
        assert user.email == "ana@example.com"

    def test_create_inactive(self, db_session):
        user = user_service.create_user({
            "name": "Ana Lima", "email": "ana@example.com", "password": "secret1", "is_active": False,
        })
        assert db.session.get(User, user.id).is_active is False

    @pytest.mark.parametrize("payload", [
        {"name": "Ana Lima", "email": "ana@example.com"},
        {"name": "Al", "email": "ana@example.com", "password": "secret1"},
        {"name": "Ana Lima", "email": "not-an-email", "password": "secret1"},
        {"name": "Ana Lima", "email": "ana@example.com", "password": "secret1", "role": "OWNER"},
        {"name": "Ana Lima", "email": "ana@example.com", "password": "secret1", "password_hash": "x"},
    ])
    def test_create_rejects_bad_payload(self, db_session, payload):
        with pytest.raises(ValidationError):
            user_service.create_user(payload)

    def test_create_short_password(self, db_session):
        with pytest.raises(PasswordValidationError):
            user_service.create_user({"name": "Ana Lima", "email": "ana@example.com", "password": "123"})

    def test_create_duplicate_email(self, admin_user):
        with pytest.raises(ConflictError):
            user_service.create_user({"name": "Other", "email": "ADMIN@test.local", "password": "secret1"})

    def test_update_fields(self, admin_user, salesperson_user):
        user = user_service.update_user(
            salesperson_user.id, {"name": "Seller Two", "role": "MANAGER"}, admin_user.id
        )
        assert (user.name, user.role) == ("Seller Two", "MANAGER")

    def test_update_email_taken(self, admin_user, salesperson_user):
        with pytest.raises(ConflictError):
            user_service.update_user(salesperson_user.id, {"email": "admin@test.local"}, admin_user.id)

    def test_cannot_change_own_role(self, admin_user):
        with pytest.raises(ForbiddenError):
            user_service.update_user(admin_user.id, {"role": "SALESPERSON"}, admin_user.id)

        assert db.session.get(User, admin_user.id).role == "ADMIN"

    def test_own_profile_edit_keeps_role(self, admin_user):
        user = user_service.update_user(admin_user.id, {"name": "Head Admin", "role": "ADMIN"}, admin_user.id)
        assert user.name == "Head Admin"

    def test_cannot_deactivate_self(self, admin_user):
        with pytest.raises(ForbiddenError):
            user_service.deactivate_user(admin_user.id, admin_user.id)
        with pytest.raises(ForbiddenError):
            user_service.update_user(admin_user.id, {"is_active": False}, admin_user.id)

    def test_deactivate_revokes_sessions(self, admin_user, salesperson_user):
        _, token = session_service.create_session(salesperson_user.id)

        user = user_service.deactivate_user(salesperson_user.id, admin_user.id)

        assert user.is_active is False
        live = db.session.query(SessionToken).filter_by(user_id=salesperson_user.id, is_revoked=False).count()
        assert live == 0
        assert session_service.validate_session(token) is None

    def test_deactivate_missing(self, admin_user):
        with pytest.raises(NotFoundError):
            user_service.deactivate_user(999, admin_user.id)

    def test_change_password(self, salesperson_user):
        user_service.change_password(salesperson_user.id, "new-secret")

        assert auth_service.authenticate("seller@test.local", "new-secret") is not None
        assert auth_service.authenticate("seller@test.local", TEST_PASSWORD) is None

    def test_list_filters(self, admin_user, manager_user, salesperson_user):
        user_service.deactivate_user(salesperson_user.id, admin_user.id)

        assert user_service.list_users(role="MANAGER")["count"] == 1
        assert user_service.list_users(is_active=False)["items"][0]["email"] == "seller@test.local"
        assert [u["name"] for u in user_service.list_users(search="test.local")["items"]] == [
            "Admin", "Manager", "Seller",
        ]

    def test_list_unknown_role(self, db_session):
        with pytest.raises(ValidationError):
            user_service.list_users(role="OWNER")

    def test_statistics(self, admin_user, manager_user, salesperson_user):
        user_service.deactivate_user(salesperson_user.id, admin_user.id)

        stats = user_service.user_statistics()
        assert stats["total"] == 3
        assert stats["active"] == 2
        assert stats["inactive"] == 1
        assert stats["by_role"] == {"ADMIN": 1, "MANAGER": 1, "SALESPERSON": 1}


# =============================================================================
# API
# =============================================================================

class TestUsersApi:
    def test_create_and_get(self, client, admin_headers):
        response = client.post(
            "/api/users",
            json={"name": "Ana Lima", "email": "ana@example.com", "password": "secret1", "role": "MANAGER"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        data = response.get_json()["user"]
        assert "password_hash" not in data

        fetched = client.get(f"/api/users/{data['id']}", headers=admin_headers)
        assert fetched.get_json()["user"]["role"] == "MANAGER"

    def test_get_missing(self, client, admin_headers):
        assert client.get("/api/users/999", headers=admin_headers).status_code == 404

    def test_list_with_filters(self, client, admin_headers, salesperson_user):
        response = client.get("/api/users?role=SALESPERSON&is_active=true", headers=admin_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data["count"] == 1
        assert data["pagination"]["total"] == 1

    def test_update(self, client, admin_headers, salesperson_user):
        response = client.put(
            f"/api/users/{salesperson_user.id}", json={"role": "MANAGER"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.get_json()["user"]["role"] == "MANAGER"

    def test_update_own_role_forbidden(self, client, admin_user):
        response = client.put(
            f"/api/users/{admin_user.id}", json={"role": "MANAGER"}, headers=headers_for(admin_user)
        )
        assert response.status_code == 403
        assert response.get_json()["error"] == "Cannot change your own role"

    def test_deactivate_locks_out_user(self, client, admin_headers, salesperson_user, salesperson_headers):
        response = client.delete(f"/api/users/{salesperson_user.id}", headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()["user"]["is_active"] is False
        assert client.get("/api/users/me", headers=salesperson_headers).status_code == 401

    def test_delete_self_forbidden(self, client, admin_user):
        response = client.delete(f"/api/users/{admin_user.id}", headers=headers_for(admin_user))
        assert response.status_code == 403

    def test_me(self, client, salesperson_headers):
        response = client.get("/api/users/me", headers=salesperson_headers)

        assert response.status_code == 200
        assert response.get_json()["user"]["email"] == "seller@test.local"

    def test_statistics(self, client, admin_headers):
        data = client.get("/api/users/statistics", headers=admin_headers).get_json()
        assert data["by_role"]["ADMIN"] == 1

    def test_owner_changes_own_password(self, client, salesperson_user, salesperson_headers):
        response = client.put(
            f"/api/users/{salesperson_user.id}/password", json={"password": "new-secret"}, headers=salesperson_headers
        )
        assert response.status_code == 204

        login = client.post("/api/auth/login", json={"email": "seller@test.local", "password": "new-secret"})
        assert login.status_code == 200

    def test_admin_resets_password(self, client, admin_headers, salesperson_user):
        response = client.put(
            f"/api/users/{salesperson_user.id}/password", json={"password": "reset-123"}, headers=admin_headers
        )
        assert response.status_code == 204

    def test_short_password(self, client, salesperson_user, salesperson_headers):
        response = client.put(
            f"/api/users/{salesperson_user.id}/password", json={"password": "123"}, headers=salesperson_headers
        )
        assert response.status_code == 400

    def test_cannot_change_someone_elses_password(self, client, admin_user, salesperson_headers):
        response = client.put(
            f"/api/users/{admin_user.id}/password", json={"password": "hijacked"}, headers=salesperson_headers
        )
        assert response.status_code == 403
        assert auth_service.authenticate("admin@test.local", TEST_PASSWORD) is not None

    @pytest.mark.parametrize("method, path", [
        ("get", "/api/users"),
        ("post", "/api/users"),
        ("get", "/api/users/statistics"),
        ("get", "/api/users/1"),
        ("put", "/api/users/1"),
        ("delete", "/api/users/1"),
    ])
    def test_non_admin_denied(self, client, manager_user, method, path):
        response = getattr(client, method)(path, json={}, headers=headers_for(manager_user))

        assert response.status_code == 403
        assert response.get_json()["required_roles"] == ["ADMIN"]
