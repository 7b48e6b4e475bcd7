"""
Integration tests for the user directory API
"""

import uuid
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, select

from tenant_hub.api import users as users_api
from tenant_hub.core.auth import hash_reset_token, verify_password
from tenant_hub.core.config import Settings
from tenant_hub.core.database import engine
from tenant_hub.core.exceptions import NotFoundError
from tenant_hub.models.organization import OrganizationMembership
from tenant_hub.models.password_reset import PasswordResetToken
from tenant_hub.models.user import User, UserRole, UserStatus
from tenant_hub.services import directory
from tests.conftest import DEFAULT_PASSWORD, auth_headers


def _register(client, email="new@example.com", password="password123", **fields):
    body = {"email": email, "password": password, "firstName": "New", "lastName": "User", **fields}
    return client.post("/api/users", json=body)


def _login(client, email, password):
    return client.post("/api/users/login", json={"email": email, "password": password})


class TestCreateUser:

    def test_create_user_hides_password(self, client):
        response = _register(client)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["email"] == "new@example.com"
        assert data["role"] == "user"
        assert data["status"] == "active"
        assert data["emailVerified"] is False
        assert data["preferences"]["theme"] == "light"
        assert data["preferences"]["notifications"] == {"email": True, "push": True, "sms": False}
        assert "password" not in response.text
        assert "passwordHash" not in data

    def test_password_is_hashed(self, client, session):
        _register(client)

        user = session.exec(select(User).where(User.email == "new@example.com")).one()
        assert user.password_hash != "password123"
        assert verify_password("password123", user.password_hash)

    def test_duplicate_email_conflicts(self, client):
        _register(client)

        response = _register(client, email="NEW@example.com")

        assert response.status_code == 409

    def test_short_password_is_rejected(self, client):
        response = _register(client, password="short")

        assert response.status_code == 400

    def test_invalid_email_is_rejected(self, client):
        response = _register(client, email="not-an-email")

        assert response.status_code == 400

    def test_self_registration_cannot_claim_admin(self, client):
        response = _register(client, role="admin")

        assert response.status_code == 403

    def test_admin_can_create_manager(self, client, admin):
        body = {"email": "m@example.com", "password": "password123", "firstName": "M", "lastName": "G", "role": "manager"}

        response = client.post("/api/users", json=body, headers=auth_headers(admin))

        assert response.status_code == 201
        assert response.json()["data"]["role"] == "manager"


class TestReadAndUpdateUser:

    def test_user_can_read_self(self, client, owner):
        response = client.get(f"/api/users/{owner.id}", headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.json()["data"]["email"] == owner.email

    def test_user_cannot_read_others(self, client, owner, outsider):
        response = client.get(f"/api/users/{outsider.id}", headers=auth_headers(owner))

        assert response.status_code == 403

    def test_unknown_user(self, client, admin):
        response = client.get(f"/api/users/{uuid.uuid4()}", headers=auth_headers(admin))

        assert response.status_code == 404

    def test_update_profile_merges_preferences(self, client, owner):
        response = client.put(
            f"/api/users/{owner.id}",
            json={"firstName": "Renamed", "preferences": {"theme": "dark", "language": "fr"}},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["firstName"] == "Renamed"
        assert data["preferences"]["theme"] == "dark"
        assert data["preferences"]["language"] == "fr"

    def test_user_cannot_change_own_role(self, client, owner):
        response = client.put(f"/api/users/{owner.id}", json={"role": "admin"}, headers=auth_headers(owner))

        assert response.status_code == 403

    def test_admin_can_change_role(self, client, admin, owner):
        response = client.put(f"/api/users/{owner.id}", json={"role": "manager"}, headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.json()["data"]["role"] == "manager"

    def test_email_change_conflict(self, client, owner, outsider):
        response = client.put(f"/api/users/{owner.id}", json={"email": outsider.email}, headers=auth_headers(owner))

        assert response.status_code == 409


class TestDeleteUser:

    def test_delete_requires_admin(self, client, owner, outsider):
        response = client.delete(f"/api/users/{outsider.id}", headers=auth_headers(owner))

        assert response.status_code == 403

    def test_admin_deletes_user_and_memberships(self, client, admin, owner, organization):
        response = client.delete(f"/api/users/{owner.id}", headers=auth_headers(admin))

        assert response.status_code == 200
        with Session(engine) as fresh:
            assert fresh.get(User, owner.id) is None
            memberships = fresh.exec(
                select(OrganizationMembership).where(OrganizationMembership.user_id == owner.id)
            ).all()
            assert memberships == []

    def test_manager_cannot_delete(self, client, owner, make_user):
        manager = make_user(role=UserRole.MANAGER)

        response = client.delete(f"/api/users/{owner.id}", headers=auth_headers(manager))

        assert response.status_code == 403
        assert response.json()["error"] == "Permission required: user:delete"

    def test_delete_unknown_user(self, client, admin):
        response = client.delete(f"/api/users/{uuid.uuid4()}", headers=auth_headers(admin))

        assert response.status_code == 404

    def test_deleted_user_token_is_rejected(self, client, admin, owner):
        headers = auth_headers(owner)
        client.delete(f"/api/users/{owner.id}", headers=auth_headers(admin))

        response = client.get(f"/api/users/{owner.id}", headers=headers)

        assert response.status_code == 401


class TestListUsers:

    def test_list_requires_permission(self, client, owner):
        response = client.get("/api/users", headers=auth_headers(owner))

        assert response.status_code == 403

    def test_filters_and_pagination(self, client, admin, make_user):
        for _ in range(3):
            make_user()
        make_user(role=UserRole.MANAGER)

        everyone = client.get("/api/users?limit=2&page=1", headers=auth_headers(admin)).json()
        managers = client.get("/api/users?role=manager", headers=auth_headers(admin)).json()
        verified = client.get("/api/users?emailVerified=true", headers=auth_headers(admin)).json()

        assert everyone["pagination"] == {"page": 1, "limit": 2, "total": 5, "pages": 3}
        assert len(everyone["data"]) == 2
        assert [user["role"] for user in managers["data"]] == ["manager"]
        assert verified["data"] == []

    def test_manager_can_list(self, client, make_user):
        manager = make_user(role=UserRole.MANAGER)

        response = client.get("/api/users", headers=auth_headers(manager))

        assert response.status_code == 200


class TestUserStats:

    def test_overview_counts(self, client, admin, owner, make_user, session):
        inactive = make_user()
        inactive.status = UserStatus.INACTIVE
        owner.email_verified = True
        session.add(inactive)
        session.add(owner)
        session.commit()

        response = client.get("/api/users/stats/overview", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.json()["data"] == {
            "totalUsers": 3,
            "activeUsers": 2,
            "inactiveUsers": 1,
            "verifiedUsers": 1,
            "adminUsers": 1,
        }

    def test_overview_requires_permission(self, client, owner, make_user):
        manager = make_user(role=UserRole.MANAGER)

        assert client.get("/api/users/stats/overview", headers=auth_headers(owner)).status_code == 403
        assert client.get("/api/users/stats/overview", headers=auth_headers(manager)).status_code == 200
        assert client.get("/api/users/stats/overview").status_code == 401


class TestLogin:

    def test_login_issues_token(self, client, owner):
        response = _login(client, owner.email, DEFAULT_PASSWORD)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["tokenType"] == "bearer"
        assert data["user"]["id"] == str(owner.id)

        me = client.get(f"/api/users/{owner.id}", headers={"Authorization": f"Bearer {data['accessToken']}"})
        assert me.status_code == 200
        assert me.json()["data"]["lastLoginAt"] is not None

    def test_wrong_password(self, client, owner):
        response = _login(client, owner.email, "wrong-password")

        assert response.status_code == 401

    def test_lockout_after_repeated_failures(self, client, owner):
        for _ in range(5):
            assert _login(client, owner.email, "wrong-password").status_code == 401

        response = _login(client, owner.email, DEFAULT_PASSWORD)

        assert response.status_code == 403

    def test_invalid_token_is_rejected(self, client, owner):
        response = client.get(f"/api/users/{owner.id}", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401


class TestPasswords:

    def test_change_password(self, client, owner):
        response = client.post(
            f"/api/users/{owner.id}/change-password",
            json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "new-password-1"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        assert _login(client, owner.email, "new-password-1").status_code == 200
        assert _login(client, owner.email, DEFAULT_PASSWORD).status_code == 401

    def test_wrong_current_password_keeps_hash(self, client, owner):
        original_hash = owner.password_hash

        response = client.post(
            f"/api/users/{owner.id}/change-password",
            json={"currentPassword": "not-my-password", "newPassword": "new-password-1"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 400
        with Session(engine) as fresh:
            assert fresh.get(User, owner.id).password_hash == original_hash
        assert _login(client, owner.email, DEFAULT_PASSWORD).status_code == 200

    def test_cannot_change_other_users_password(self, client, owner, outsider):
        response = client.post(
            f"/api/users/{outsider.id}/change-password",
            json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "new-password-1"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 403

    def test_reset_flow(self, client, owner):
        reset = client.post("/api/users/reset-password", json={"email": owner.email})
        assert reset.status_code == 200
        token = reset.json()["data"]["resetToken"]

        # The password is untouched until the token is used
        assert _login(client, owner.email, DEFAULT_PASSWORD).status_code == 200

        response = client.post("/api/users/set-password", json={"token": token, "newPassword": "brand-new-pass"})

        assert response.status_code == 200
        assert _login(client, owner.email, "brand-new-pass").status_code == 200

    def test_reset_token_is_single_use(self, client, owner):
        token = client.post("/api/users/reset-password", json={"email": owner.email}).json()["data"]["resetToken"]
        client.post("/api/users/set-password", json={"token": token, "newPassword": "brand-new-pass"})

        response = client.post("/api/users/set-password", json={"token": token, "newPassword": "another-pass-1"})

        assert response.status_code == 400

    def test_using_one_token_invalidates_others(self, client, owner):
        first = client.post("/api/users/reset-password", json={"email": owner.email}).json()["data"]["resetToken"]
        second = client.post("/api/users/reset-password", json={"email": owner.email}).json()["data"]["resetToken"]
        client.post("/api/users/set-password", json={"token": second, "newPassword": "brand-new-pass"})

        response = client.post("/api/users/set-password", json={"token": first, "newPassword": "another-pass-1"})

        assert response.status_code == 400

    def test_expired_token_is_rejected(self, client, owner, session):
        token = client.post("/api/users/reset-password", json={"email": owner.email}).json()["data"]["resetToken"]
        reset = session.exec(
            select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_reset_token(token))
        ).one()
        reset.expires_at = datetime.utcnow() - timedelta(minutes=1)
        session.add(reset)
        session.commit()

        response = client.post("/api/users/set-password", json={"token": token, "newPassword": "brand-new-pass"})

        assert response.status_code == 400

    def test_reset_token_hidden_unless_exposure_enabled(self, client, owner, monkeypatch):
        monkeypatch.setattr(users_api.settings, "EXPOSE_RESET_TOKENS", False)

        response = client.post("/api/users/reset-password", json={"email": owner.email})

        assert response.status_code == 200
        assert "data" not in response.json()

    def test_reset_token_exposure_is_off_by_default(self, monkeypatch):
        monkeypatch.delenv("EXPOSE_RESET_TOKENS", raising=False)

        assert Settings(_env_file=None).EXPOSE_RESET_TOKENS is False

    def test_reset_matches_email_case_insensitively(self, client, owner):
        response = client.post("/api/users/reset-password", json={"email": owner.email.upper()})

        assert "resetToken" in response.json()["data"]

    def test_unknown_email_gets_same_answer(self, client):
        response = client.post("/api/users/reset-password", json={"email": "nobody@example.com"})

        assert response.status_code == 200
        assert "data" not in response.json()


class TestUserOrganizations:

    def test_lists_memberships(self, client, owner, organization):
        response = client.get(f"/api/users/{owner.id}/organizations", headers=auth_headers(owner))

        assert response.status_code == 200
        rows = response.json()["data"]
        assert [row["organization"]["id"] for row in rows] == [str(organization.id)]
        assert rows[0]["membership"]["role"] == "admin"

    def test_org_admin_adds_and_removes_user(self, client, owner, outsider, organization):
        added = client.post(
            f"/api/users/{outsider.id}/organizations",
            json={"organizationId": str(organization.id), "role": "manager"},
            headers=auth_headers(owner),
        )
        assert added.status_code == 201
        assert added.json()["data"]["role"] == "manager"

        removed = client.delete(
            f"/api/users/{outsider.id}/organizations/{organization.id}",
            headers=auth_headers(owner),
        )
        assert removed.status_code == 200

    def test_non_admin_cannot_add_members(self, client, outsider, organization, make_user):
        target = make_user()

        response = client.post(
            f"/api/users/{target.id}/organizations",
            json={"organizationId": str(organization.id)},
            headers=auth_headers(outsider),
        )

        assert response.status_code == 403

class TestUserLookup:

    def test_get_user_by_email_ignores_case(self, session, owner):
        assert directory.get_user_by_email(session, "  Owner@Example.COM ").id == owner.id

    def test_get_user_by_email_unknown(self, session):
        with pytest.raises(NotFoundError):
            directory.get_user_by_email(session, "nobody@example.com")
