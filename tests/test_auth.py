"""Tests for staff authentication, tenant administration and tenant scoping"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from bookflow.database import utcnow
from bookflow.models.tenant import Holiday

from conftest import bearer, make_booking


async def login(client, email, password="testpass123"):
    return await client.post("/auth/login", data={"username": email, "password": password})


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, test_user):
    response = await login(client, "owner@example.com")

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["expires_in"] == 15 * 60


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_user):
    response = await login(client, "owner@example.com", "wrong")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_login_disabled_user(client: AsyncClient, test_db, test_user):
    test_user.is_active = False
    await test_db.commit()

    response = await login(client, "owner@example.com")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_issues_new_tokens(client: AsyncClient, test_user):
    tokens = (await login(client, "owner@example.com")).json()

    response = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["access_token"]

    wrong_type = await client.post("/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert wrong_type.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_refresh_token(client: AsyncClient, test_user):
    tokens = (await login(client, "owner@example.com")).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    assert (await client.post("/auth/logout", headers=headers)).status_code == 200

    response = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_and_role(client: AsyncClient, test_user, viewer_headers, auth_headers):
    me = await client.get("/auth/me", headers=auth_headers)
    assert me.json()["email"] == "owner@example.com"

    admin_role = (await client.get("/auth/me/role", headers=auth_headers)).json()
    viewer_role = (await client.get("/auth/me/role", headers=viewer_headers)).json()

    assert admin_role["role"] == "restaurant_admin"
    assert admin_role["is_staff"] is True
    assert admin_role["user_id"] == str(test_user.id)
    assert viewer_role["role"] == "staff_viewer"
    assert viewer_role["is_staff"] is False


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    response = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


# Tenant administration

@pytest.mark.asyncio
async def test_super_admin_lists_and_creates_tenants(client: AsyncClient, test_tenant, admin_headers):
    listing = await client.get("/tenants", headers=admin_headers)
    assert [t["slug"] for t in listing.json()] == ["auto-bistro"]

    created = await client.post(
        "/tenants",
        json={"name": "Chez Nous", "slug": "chez-nous", "timezone": "Europe/Paris", "currency": "EUR"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    tenant_id = created.json()["id"]

    settings = await client.get(f"/tenants/{tenant_id}/settings", headers=admin_headers)
    assert settings.json()["approval_mode"] == "auto"
    assert settings.json()["hours_json"]["monday"] == {"open": "11:00", "close": "22:00"}

    policy = await client.get(f"/tenants/{tenant_id}/deposit_policy", headers=admin_headers)
    assert policy.json()["enabled"] is False

    duplicate = await client.post("/tenants", json={"name": "Again", "slug": "chez-nous"}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_tenant_admin_cannot_manage_tenants(client: AsyncClient, auth_headers):
    listing = await client.get("/tenants", headers=auth_headers)
    created = await client.post("/tenants", json={"name": "Nope", "slug": "nope"}, headers=auth_headers)

    assert listing.status_code == 403
    assert created.status_code == 403


@pytest.mark.asyncio
async def test_users_only_see_their_tenant(client: AsyncClient, test_tenant, manual_tenant, auth_headers):
    own = await client.get(f"/tenants/{test_tenant.id}", headers=auth_headers)
    other = await client.get(f"/tenants/{manual_tenant.id}", headers=auth_headers)

    assert own.status_code == 200
    assert own.json()["slug"] == "auto-bistro"
    assert other.status_code == 403
    assert other.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_viewer_cannot_change_settings(client: AsyncClient, test_tenant, viewer_headers):
    response = await client.put(
        f"/tenants/{test_tenant.id}/settings",
        json={"approval_mode": "manual"},
        headers=viewer_headers,
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_settings_change_switches_to_manual_approval(
    client: AsyncClient, test_tenant, auth_headers, next_tuesday
):
    response = await client.put(
        f"/tenants/{test_tenant.id}/settings",
        json={"approval_mode": "manual", "pacing_cap": 2},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["approval_mode"] == "manual"
    assert response.json()["pacing_cap"] == 2

    invalid = await client.put(
        f"/tenants/{test_tenant.id}/settings",
        json={"approval_mode": "sometimes"},
        headers=auth_headers,
    )
    assert invalid.status_code == 422

    resolved = await client.get(f"/public/tenants/resolve/{test_tenant.slug}")
    assert resolved.json()["features"]["approval_mode"] == "manual"


@pytest.mark.asyncio
async def test_deposit_policy_update_enables_deposits(client: AsyncClient, test_tenant, auth_headers, next_tuesday):
    response = await client.put(
        f"/tenants/{test_tenant.id}/deposit_policy",
        json={"enabled": True, "large_party_threshold": 4, "large_party_amount": "40.00"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["enabled"] is True

    availability = await client.post(
        f"/public/tenants/{test_tenant.id}/availability",
        json={"party_size": 4, "service_date": next_tuesday.isoformat()},
    )
    assert availability.json()["deposit_policy"]["required"] is True
    assert availability.json()["deposit_policy"]["amount_cents"] == 4000


@pytest.mark.asyncio
async def test_tables_and_holidays(client: AsyncClient, test_tenant, auth_headers, next_tuesday):
    table = await client.post(
        f"/tenants/{test_tenant.id}/tables",
        json={"name": "Patio", "capacity": 8},
        headers=auth_headers,
    )
    assert table.status_code == 201

    tables = await client.get(f"/tenants/{test_tenant.id}/tables", headers=auth_headers)
    assert [t["name"] for t in tables.json()][-1] == "Patio"

    holiday = await client.post(
        f"/tenants/{test_tenant.id}/holidays",
        json={"holiday_date": next_tuesday.isoformat(), "name": "Inventory"},
        headers=auth_headers,
    )
    assert holiday.status_code == 201

    resolved = await client.get(f"/public/tenants/resolve/{test_tenant.slug}")
    assert resolved.json()["holidays"] == [next_tuesday.isoformat()]

    removed = await client.delete(
        f"/tenants/{test_tenant.id}/holidays/{holiday.json()['id']}",
        headers=auth_headers,
    )
    assert removed.status_code == 204


# Widget bootstrap

@pytest.mark.asyncio
async def test_resolve_by_slug_and_id(client: AsyncClient, test_db, test_tenant):
    test_db.add(Holiday(tenant_id=test_tenant.id, holiday_date=(utcnow() - timedelta(days=3)).date()))
    await test_db.commit()

    by_slug = await client.get("/public/tenants/resolve/auto-bistro")
    by_id = await client.get(f"/public/tenants/resolve/{test_tenant.id}")

    assert by_slug.status_code == by_id.status_code == 200
    data = by_slug.json()
    assert data == by_id.json()
    assert data["tenant_id"] == str(test_tenant.id)
    assert data["timezone"] == "America/New_York"
    assert "monday" not in data["business_hours"]
    assert data["features"] == {"deposits_enabled": False, "approval_mode": "auto", "max_party_size": 12}
    # Past closures are not sent to the widget
    assert data["holidays"] == []


@pytest.mark.asyncio
async def test_resolve_unknown_or_inactive(client: AsyncClient, test_tenant, admin_headers):
    unknown = await client.get("/public/tenants/resolve/no-such-place")
    assert unknown.status_code == 404
    assert unknown.json()["error"]["code"] == "TENANT_NOT_FOUND"

    assert (await client.delete(f"/tenants/{test_tenant.id}", headers=admin_headers)).status_code == 204

    inactive = await client.get("/public/tenants/resolve/auto-bistro")
    assert inactive.status_code == 404


@pytest.mark.asyncio
async def test_soft_deleted_tenant_keeps_its_bookings(client: AsyncClient, test_tenant, admin_headers, next_tuesday):
    await make_booking(client, test_tenant, next_tuesday)

    assert (await client.delete(f"/tenants/{test_tenant.id}", headers=admin_headers)).status_code == 204

    listing = await client.get("/tenants", headers=admin_headers)
    assert listing.json() == []

    tenant = await client.get(f"/tenants/{test_tenant.id}", headers=admin_headers)
    assert tenant.status_code == 200
    assert tenant.json()["is_active"] is False

    bookings = await client.get(f"/tenants/{test_tenant.id}/bookings", headers=admin_headers)
    assert bookings.json()["total"] == 1

@pytest.mark.asyncio
async def test_super_admin_reaches_every_tenant(client: AsyncClient, test_tenant, manual_tenant, test_admin_user):
    headers = bearer(test_admin_user)

    for tenant in (test_tenant, manual_tenant):
        response = await client.get(f"/tenants/{tenant.id}/bookings", headers=headers)
        assert response.status_code == 200
        assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"]
