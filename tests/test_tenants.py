"""
Integration tests for the tenant registry API
"""

import uuid

from sqlmodel import Session, select

from tenant_hub.core.database import engine
from tenant_hub.models.audit import AuditEvent
from tenant_hub.models.isolation import TenantIsolationPolicy
from tenant_hub.models.tenant import Tenant
from tenant_hub.services import tenant_registry
from tenant_hub.services.billing import BillingService
from tests.conftest import auth_headers


class TestCreateTenant:
    """POST /api/tenants"""

    def test_create_tenant_defaults_to_active(self, create_tenant, organization):
        """Created tenant is active and carries the submitted fields"""
        tenant = create_tenant(domain="acme.example.com", subdomain="acme", plan="professional")

        assert tenant["status"] == "active"
        assert tenant["domain"] == "acme.example.com"
        assert tenant["subdomain"] == "acme"
        assert tenant["plan"] == "professional"
        assert tenant["features"] == []
        assert tenant["settings"] == {}
        assert tenant["organizationId"] == str(organization.id)

    def test_create_tenant_initializes_isolation(self, create_tenant, session):
        """Tenant creation records an isolation policy with defaults"""
        tenant = create_tenant()

        policy = session.get(TenantIsolationPolicy, uuid.UUID(tenant["id"]))
        assert policy is not None
        assert policy.encryption_required is True
        assert policy.retention_period_days == 90
        assert policy.data_residency == "global"
        assert policy.cross_tenant_access is False

    def test_create_tenant_custom_isolation(self, create_tenant, session):
        tenant = create_tenant(isolation={"encryptionRequired": False, "retentionPeriod": 30, "dataResidency": "eu"})

        policy = session.get(TenantIsolationPolicy, uuid.UUID(tenant["id"]))
        assert policy.encryption_required is False
        assert policy.retention_period_days == 30
        assert policy.data_residency == "eu"

    def test_duplicate_domain_conflicts(self, client, owner, organization, create_tenant, session):
        """Second tenant with the same domain is rejected and nothing is stored"""
        create_tenant(domain="acme.example.com")

        response = client.post(
            "/api/tenants",
            json={"organizationId": str(organization.id), "name": "Other", "domain": "acme.example.com"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 409
        assert response.json()["success"] is False
        assert len(session.exec(select(Tenant)).all()) == 1

    def test_duplicate_subdomain_conflicts(self, client, owner, organization, create_tenant):
        create_tenant(domain="one.example.com", subdomain="shared")

        response = client.post(
            "/api/tenants",
            json={
                "organizationId": str(organization.id),
                "name": "Two",
                "domain": "two.example.com",
                "subdomain": "shared",
            },
            headers=auth_headers(owner),
        )

        assert response.status_code == 409

    def test_missing_organization_is_not_found(self, client, owner):
        response = client.post(
            "/api/tenants",
            json={"organizationId": str(uuid.uuid4()), "name": "Ghost", "domain": "ghost.example.com"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Organization not found"

    def test_validation_errors(self, client, owner, organization):
        """Malformed fields are rejected with 400 before anything is stored"""
        base = {"organizationId": str(organization.id), "name": "Acme", "domain": "acme.example.com"}

        for override in ({"name": "A"}, {"domain": "ab"}, {"subdomain": "x"}, {"plan": "gold"}):
            response = client.post("/api/tenants", json={**base, **override}, headers=auth_headers(owner))
            assert response.status_code == 400, override
            assert response.json()["error"] == "Validation failed"

    def test_anonymous_creation_requires_authentication(self, client, organization):
        response = client.post(
            "/api/tenants",
            json={"organizationId": str(organization.id), "name": "Acme", "domain": "acme.example.com"},
        )

        assert response.status_code == 401

    def test_non_member_cannot_create_under_organization(self, client, outsider, organization, session):
        response = client.post(
            "/api/tenants",
            json={"organizationId": str(organization.id), "name": "Acme", "domain": "acme.example.com"},
            headers=auth_headers(outsider),
        )

        assert response.status_code == 403
        assert session.exec(select(Tenant)).all() == []

    def test_creator_comes_from_caller_not_body(self, client, owner, outsider, organization, session):
        response = client.post(
            "/api/tenants",
            json={
                "organizationId": str(organization.id),
                "name": "Acme",
                "domain": "acme.example.com",
                "createdBy": str(outsider.id),
            },
            headers=auth_headers(owner),
        )

        assert response.status_code == 201
        assert response.json()["data"]["createdBy"] == str(owner.id)
        event = session.exec(select(AuditEvent).where(AuditEvent.action == "tenant_created")).one()
        assert event.user_id == owner.id

    def test_domains_are_stored_lower_case(self, create_tenant):
        tenant = create_tenant(domain="Shop.Example.COM", subdomain="Shop")

        assert tenant["domain"] == "shop.example.com"
        assert tenant["subdomain"] == "shop"

    def test_domain_differing_only_in_case_conflicts(self, client, owner, organization, create_tenant, session):
        create_tenant(domain="acme.example.com", subdomain="acme")

        for override in ({"domain": "ACME.example.com"}, {"domain": "new.example.com", "subdomain": "ACME"}):
            response = client.post(
                "/api/tenants",
                json={"organizationId": str(organization.id), "name": "Copy", **override},
                headers=auth_headers(owner),
            )
            assert response.status_code == 409, override
        assert len(session.exec(select(Tenant)).all()) == 1


class TestReadTenant:
    """GET /api/tenants/{id} and /api/tenants/domain/{domain}"""

    def test_round_trip(self, client, owner, create_tenant):
        tenant = create_tenant(domain="shop.example.com", plan="enterprise", features=["sso"], settings={"a": 1})

        response = client.get(f"/api/tenants/{tenant['id']}", headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["domain"] == "shop.example.com"
        assert data["name"] == "Acme"
        assert data["plan"] == "enterprise"
        assert data["features"] == ["sso"]
        assert data["settings"] == {"a": 1}
        assert data["status"] == "active"

    def test_repeated_get_is_identical(self, client, owner, create_tenant):
        tenant = create_tenant()
        headers = auth_headers(owner)

        first = client.get(f"/api/tenants/{tenant['id']}", headers=headers).json()
        second = client.get(f"/api/tenants/{tenant['id']}", headers=headers).json()

        assert first == second

    def test_get_by_domain(self, client, owner, create_tenant):
        tenant = create_tenant(domain="bydomain.example.com")

        response = client.get("/api/tenants/domain/bydomain.example.com", headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.json()["data"]["id"] == tenant["id"]

    def test_get_by_domain_ignores_case(self, client, owner, create_tenant):
        tenant = create_tenant(domain="bydomain.example.com")

        response = client.get("/api/tenants/domain/ByDomain.Example.COM", headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.json()["data"]["id"] == tenant["id"]

    def test_unknown_tenant_is_not_found(self, client, owner):
        response = client.get(f"/api/tenants/{uuid.uuid4()}", headers=auth_headers(owner))
        assert response.status_code == 404

        response = client.get("/api/tenants/domain/missing.example.com", headers=auth_headers(owner))
        assert response.status_code == 404

    def test_non_member_is_forbidden(self, client, outsider, create_tenant):
        tenant = create_tenant()

        response = client.get(f"/api/tenants/{tenant['id']}", headers=auth_headers(outsider))

        assert response.status_code == 403

    def test_not_found_precedes_forbidden(self, client, outsider):
        """Existence is checked before authorization"""
        response = client.get(f"/api/tenants/{uuid.uuid4()}", headers=auth_headers(outsider))

        assert response.status_code == 404

    def test_global_admin_can_read_any_tenant(self, client, admin, create_tenant):
        tenant = create_tenant()

        response = client.get(f"/api/tenants/{tenant['id']}", headers=auth_headers(admin))

        assert response.status_code == 200

    def test_anonymous_read_requires_authentication(self, client, create_tenant):
        tenant = create_tenant()

        response = client.get(f"/api/tenants/{tenant['id']}")

        assert response.status_code == 401

    def test_invalid_tenant_id_is_validation_error(self, client, owner):
        response = client.get("/api/tenants/not-a-uuid", headers=auth_headers(owner))

        assert response.status_code == 400

    def test_tenant_config(self, client, owner, create_tenant):
        tenant = create_tenant(plan="professional")

        response = client.get(f"/api/tenants/{tenant['id']}/config", headers=auth_headers(owner))

        assert response.status_code == 200
        config = response.json()["data"]
        assert config["plan"] == "professional"
        assert config["limits"]["maxUsers"] == 50
        assert config["features"]["aiAnalysis"] is True
        assert config["features"]["sso"] is False
        assert config["support"] == "priority"
        assert config["isolation"]["encryptionRequired"] is True

    def test_list_tenants_only_shows_member_tenants(
        self, client, owner, outsider, admin, make_organization, create_tenant
    ):
        create_tenant(domain="one.example.com")
        create_tenant(domain="two.example.com")
        other_org = make_organization(outsider, name="Other")
        client.post(
            "/api/tenants",
            json={"organizationId": str(other_org.id), "name": "Other", "domain": "other.example.com"},
            headers=auth_headers(outsider),
        )

        owner_view = client.get("/api/tenants", headers=auth_headers(owner)).json()
        admin_view = client.get("/api/tenants?limit=2", headers=auth_headers(admin)).json()

        assert {t["domain"] for t in owner_view["data"]} == {"one.example.com", "two.example.com"}
        assert owner_view["pagination"]["total"] == 2
        assert admin_view["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert len(admin_view["data"]) == 2


class TestTenantStats:
    """GET /api/tenants/{id}/stats"""

    def test_stats_report_members_usage_and_activity(self, client, owner, organization, create_tenant, session):
        tenant = create_tenant()
        create_tenant(domain="second.example.com")
        billing = BillingService(session)
        billing.track_usage(organization.id, "apiCalls", 2)
        billing.track_usage(organization.id, "apiCalls", 3)

        response = client.get(f"/api/tenants/{tenant['id']}/stats", headers=auth_headers(owner))

        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["tenantId"] == tenant["id"]
        assert stats["status"] == "active"
        assert stats["plan"] == "basic"
        assert stats["memberCount"] == 1
        assert stats["organizationTenants"] == 2
        assert stats["usage"]["apiCalls"]["total"] == 5
        assert stats["usage"]["apiCalls"]["count"] == 2
        assert stats["lastActivity"] is not None

    def test_last_activity_follows_audit_trail(self, client, owner, create_tenant, session):
        tenant = create_tenant()
        client.post(f"/api/tenants/{tenant['id']}/suspend", json={"reason": "audit"}, headers=auth_headers(owner))

        latest = session.exec(
            select(AuditEvent)
            .where(AuditEvent.tenant_id == uuid.UUID(tenant["id"]))
            .order_by(AuditEvent.created_at.desc())
        ).first()
        stored = session.get(Tenant, uuid.UUID(tenant["id"]))

        assert tenant_registry.last_activity(session, stored) == latest.created_at

    def test_last_activity_falls_back_to_creation_time(self, session, organization):
        tenant = Tenant(name="Quiet", domain="quiet.example.com", organization_id=organization.id)
        session.add(tenant)
        session.commit()
        session.refresh(tenant)

        assert tenant_registry.last_activity(session, tenant) == tenant.created_at

    def test_stats_not_found_then_forbidden(self, client, outsider, create_tenant):
        tenant = create_tenant()

        missing = client.get(f"/api/tenants/{uuid.uuid4()}/stats", headers=auth_headers(outsider))
        forbidden = client.get(f"/api/tenants/{tenant['id']}/stats", headers=auth_headers(outsider))

        assert missing.status_code == 404
        assert forbidden.status_code == 403


class TestUpdateTenant:
    """PUT /api/tenants/{id}"""

    def test_partial_update(self, client, owner, create_tenant):
        tenant = create_tenant()

        response = client.put(
            f"/api/tenants/{tenant['id']}",
            json={"name": "Renamed", "settings": {"theme": "dark"}},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "Renamed"
        assert data["settings"] == {"theme": "dark"}
        assert data["domain"] == tenant["domain"]

    def test_domain_change_rechecks_uniqueness(self, client, owner, create_tenant):
        create_tenant(domain="taken.example.com")
        tenant = create_tenant(domain="mine.example.com")

        response = client.put(
            f"/api/tenants/{tenant['id']}",
            json={"domain": "taken.example.com"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 409

    def test_keeping_own_domain_is_allowed(self, client, owner, create_tenant):
        tenant = create_tenant(domain="mine.example.com")

        response = client.put(
            f"/api/tenants/{tenant['id']}",
            json={"domain": "mine.example.com", "name": "Same"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200

    def test_non_member_cannot_update(self, client, outsider, create_tenant):
        tenant = create_tenant()

        response = client.put(f"/api/tenants/{tenant['id']}", json={"name": "Hacked"}, headers=auth_headers(outsider))

        assert response.status_code == 403


class TestTenantLifecycle:
    """Suspend, reactivate and delete"""

    def test_suspend_and_reactivate(self, client, owner, create_tenant):
        tenant = create_tenant()
        headers = auth_headers(owner)

        suspended = client.post(
            f"/api/tenants/{tenant['id']}/suspend", json={"reason": "non-payment"}, headers=headers
        ).json()["data"]
        assert suspended["status"] == "suspended"
        assert suspended["suspensionReason"] == "non-payment"
        assert suspended["suspendedAt"] is not None

        reactivated = client.post(f"/api/tenants/{tenant['id']}/reactivate", headers=headers).json()["data"]
        assert reactivated["status"] == "active"
        assert reactivated["suspensionReason"] is None
        assert reactivated["reactivatedAt"] is not None

    def test_suspend_twice_overwrites_reason(self, client, owner, create_tenant):
        tenant = create_tenant()
        headers = auth_headers(owner)

        client.post(f"/api/tenants/{tenant['id']}/suspend", json={"reason": "first"}, headers=headers)
        response = client.post(f"/api/tenants/{tenant['id']}/suspend", json={"reason": "second"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["data"]["suspensionReason"] == "second"

    def test_reactivate_active_tenant_conflicts(self, client, owner, create_tenant):
        tenant = create_tenant()

        response = client.post(f"/api/tenants/{tenant['id']}/reactivate", headers=auth_headers(owner))

        assert response.status_code == 409

    def test_suspend_unknown_tenant(self, client, owner):
        response = client.post(f"/api/tenants/{uuid.uuid4()}/suspend", json={"reason": "x"}, headers=auth_headers(owner))

        assert response.status_code == 404

    def test_access_survives_suspension(self, client, owner, outsider, create_tenant):
        """Membership-based access is unaffected by suspend/reactivate"""
        tenant = create_tenant()
        client.post(f"/api/tenants/{tenant['id']}/suspend", json={"reason": "audit"}, headers=auth_headers(owner))

        assert client.get(f"/api/tenants/{tenant['id']}", headers=auth_headers(owner)).status_code == 200
        assert client.get(f"/api/tenants/{tenant['id']}", headers=auth_headers(outsider)).status_code == 403

    def test_inactive_tenant_can_be_suspended_then_reactivated(self, client, owner, create_tenant):
        tenant = create_tenant()
        headers = auth_headers(owner)

        inactive = client.put(f"/api/tenants/{tenant['id']}", json={"status": "inactive"}, headers=headers)
        assert inactive.json()["data"]["status"] == "inactive"
        assert client.post(f"/api/tenants/{tenant['id']}/reactivate", headers=headers).status_code == 409

        suspended = client.post(f"/api/tenants/{tenant['id']}/suspend", json={"reason": "review"}, headers=headers)
        assert suspended.json()["data"]["status"] == "suspended"

        reactivated = client.post(f"/api/tenants/{tenant['id']}/reactivate", headers=headers)
        assert reactivated.status_code == 200
        assert reactivated.json()["data"]["status"] == "active"

    def test_access_after_reactivation(self, client, owner, outsider, create_tenant):
        tenant = create_tenant()
        client.post(f"/api/tenants/{tenant['id']}/suspend", json={"reason": "audit"}, headers=auth_headers(owner))
        client.post(f"/api/tenants/{tenant['id']}/reactivate", headers=auth_headers(owner))

        assert client.get(f"/api/tenants/{tenant['id']}", headers=auth_headers(owner)).status_code == 200
        assert client.get(f"/api/tenants/{tenant['id']}", headers=auth_headers(outsider)).status_code == 403

    def test_delete_tears_down_isolation(self, client, owner, create_tenant):
        tenant = create_tenant()
        tenant_id = uuid.UUID(tenant["id"])

        response = client.delete(f"/api/tenants/{tenant_id}", headers=auth_headers(owner))

        assert response.status_code == 200
        with Session(engine) as fresh:
            assert fresh.get(Tenant, tenant_id) is None
            assert fresh.get(TenantIsolationPolicy, tenant_id) is None
        assert client.get(f"/api/tenants/{tenant_id}", headers=auth_headers(owner)).status_code == 404

    def test_delete_frees_domain(self, client, owner, create_tenant):
        tenant = create_tenant(domain="reuse.example.com")
        client.delete(f"/api/tenants/{tenant['id']}", headers=auth_headers(owner))

        again = create_tenant(domain="reuse.example.com")

        assert again["domain"] == "reuse.example.com"
