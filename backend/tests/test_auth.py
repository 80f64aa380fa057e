"""
Operator accounts and sessions.

Verifies:
- bcrypt hashing with strength rules
- session validation, revocation and deactivated users
- admin-only user management routes
"""

from datetime import timedelta

import pytest

from backoffice.errors import ConflictError, ValidationError
from backoffice.extensions import db
from backoffice.models import SessionToken
from backoffice.services import auth_service, session_service
from backoffice.services.auth_service import PasswordValidationError


TEST_PASSWORD = "Password123!"


class TestPasswords:
    @pytest.mark.parametrize("password", ["short1!", "alllower1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial12"])
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self, app):
        hashed = auth_service.hash_password(TEST_PASSWORD)
        assert hashed != TEST_PASSWORD
        assert auth_service.verify_password(TEST_PASSWORD, hashed)
        assert not auth_service.verify_password("Wrong123!", hashed)
        assert not auth_service.verify_password(TEST_PASSWORD, "not-a-hash")


class TestSessions:
    def test_token_resolves_to_identity(self, db_session, attendant):
        _, token = session_service.create_session(attendant.id)
        identity = session_service.validate_session(token)

        assert identity.user_id == attendant.id
        assert identity.is_admin is False
        assert identity.can_act_on(attendant.id)
        assert not identity.can_act_on(attendant.id + 1)

    def test_only_hash_is_stored(self, db_session, attendant):
        record, token = session_service.create_session(attendant.id)
        assert record.token_hash != token
        assert record.token_hash == session_service.hash_token(token)

    def test_admin_can_act_on_anyone(self, admin_identity):
        assert admin_identity.can_act_on(12345)

    def test_unknown_and_empty_tokens(self, db_session):
        assert session_service.validate_session("") is None
        assert session_service.validate_session("bogus") is None

    def test_expired_session(self, db_session, attendant):
        record, token = session_service.create_session(attendant.id)
        record.expires_at = record.expires_at - timedelta(days=2)
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_idle_session_is_revoked(self, db_session, attendant):
        record, token = session_service.create_session(attendant.id)
        record.last_used_at = record.last_used_at - session_service.SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
        db_session.commit()

        assert session_service.validate_session(token) is None
        db.session.expire_all()
        assert db.session.get(SessionToken, record.id).is_revoked

    def test_revoke_all(self, db_session, attendant):
        _, first = session_service.create_session(attendant.id)
        _, second = session_service.create_session(attendant.id)

        assert session_service.revoke_all_user_sessions(attendant.id) == 2
        assert session_service.validate_session(first) is None
        assert session_service.validate_session(second) is None

    def test_inactive_user_cannot_start_session(self, db_session, attendant):
        attendant.is_active = False
        db_session.commit()
        with pytest.raises(ValueError):
            session_service.create_session(attendant.id)


class TestUserService:
    def test_create_normalizes_email(self, db_session):
        user = auth_service.create_user(first_name="Caio", email="  CAIO@Example.com ", password=TEST_PASSWORD)
        assert user.email == "caio@example.com"
        assert auth_service.verify_password(TEST_PASSWORD, user.password_hash)

    def test_duplicate_email(self, db_session, attendant):
        with pytest.raises(ConflictError):
            auth_service.create_user(first_name="Ana", email="ANA@backoffice.test", password=TEST_PASSWORD)

    def test_weak_password_rejected(self, db_session):
        with pytest.raises(PasswordValidationError):
            auth_service.create_user(first_name="Caio", email="caio@example.com", password="weak")

    def test_password_change_revokes_sessions(self, db_session, attendant):
        _, token = session_service.create_session(attendant.id)
        auth_service.update_user(attendant.id, {"password": "Another456!"})
        assert session_service.validate_session(token) is None

    def test_invalid_update_is_rolled_back(self, db_session, attendant, other_attendant):
        with pytest.raises(ConflictError):
            auth_service.update_user(attendant.id, {"first_name": "Changed", "email": other_attendant.email})
        db.session.expire_all()
        assert auth_service.get_user(attendant.id).first_name == "Ana"

        with pytest.raises(ValidationError):
            auth_service.update_user(attendant.id, {"role": "admin"})

    def test_deactivation_revokes_sessions(self, db_session, admin_user, attendant):
        _, token = session_service.create_session(attendant.id)
        user = auth_service.deactivate_user(attendant.id, actor_user_id=admin_user.id)

        assert user.is_active is False
        assert user.deactivated_at is not None
        assert session_service.validate_session(token) is None

    def test_cannot_deactivate_self(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            auth_service.deactivate_user(admin_user.id, actor_user_id=admin_user.id)


class TestUserRoutes:
    def test_admin_manages_users(self, client, db_session, admin_headers):
        response = client.post("/api/admin/users", json={
            "first_name": "Davi",
            "last_name": "Reis",
            "email": "davi@backoffice.test",
            "password": TEST_PASSWORD,
        }, headers=admin_headers)
        assert response.status_code == 201
        user = response.get_json()["user"]
        assert user["full_name"] == "Davi Reis"
        assert "password_hash" not in user

        response = client.put(f"/api/admin/users/{user['id']}", json={"is_admin": True}, headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["user"]["is_admin"] is True

        response = client.delete(f"/api/admin/users/{user['id']}", headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["user"]["is_active"] is False

        active = client.get("/api/admin/users", headers=admin_headers).get_json()["users"]
        assert user["id"] not in [u["id"] for u in active]

    def test_route_errors(self, client, db_session, admin_headers, attendant):
        weak = client.post("/api/admin/users", json={
            "first_name": "Eli", "email": "eli@backoffice.test", "password": "weak",
        }, headers=admin_headers)
        assert weak.status_code == 400
        assert weak.get_json()["code"] == "WEAK_PASSWORD"

        dup = client.post("/api/admin/users", json={
            "first_name": "Ana", "email": attendant.email, "password": TEST_PASSWORD,
        }, headers=admin_headers)
        assert dup.status_code == 409

        assert client.put("/api/admin/users/999", json={"first_name": "X"}, headers=admin_headers).status_code == 404

    def test_attendants_are_forbidden(self, client, db_session, attendant_headers):
        assert client.get("/api/admin/users", headers=attendant_headers).status_code == 403

    def test_deactivated_user_loses_access(self, client, db_session, admin_headers, attendant, attendant_headers):
        assert client.get("/api/sales", headers=attendant_headers).status_code == 200
        client.delete(f"/api/admin/users/{attendant.id}", headers=admin_headers)
        assert client.get("/api/sales", headers=attendant_headers).status_code == 401
