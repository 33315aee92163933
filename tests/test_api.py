"""End-to-end tests through the HTTP API."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient

from src.models import AccountKind, AccountRole, AccountStatus
from src.utils.dates import utcnow

from conftest import auth_headers_for

API = "/api/v1"


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(client: AsyncClient):
    response = await client.get(f"{API}/accounts/me")

    assert response.status_code == 401
    assert response.json()["errors"][0]["code"] == "AUTHORIZATION_REQUIRED"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client: AsyncClient):
    response = await client.get(f"{API}/accounts/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["errors"][0]["code"] == "INVALID_JWT_TOKEN"


@pytest.mark.asyncio
async def test_sign_up_profile_completion_and_approval(client: AsyncClient, admin, auth_headers):
    """A new influencer signs up, completes the profile and is approved by an administrator."""
    principal_id = uuid.uuid4()
    headers = auth_headers_for(principal_id, "minji@example.com")

    response = await client.post(f"{API}/accounts", json={"kind": "INFLUENCER", "name": "Minji"}, headers=headers)
    assert response.status_code == 201
    created = response.json()
    assert created["id"] == str(principal_id)
    assert created["status"] == "profile_pending"
    assert created["plan"] == "free"

    duplicate = await client.post(f"{API}/accounts", json={"kind": "INFLUENCER"}, headers=headers)
    assert duplicate.status_code == 422
    assert duplicate.json()["errors"][0]["code"] == "ACCOUNT_EXISTS"

    incomplete = await client.post(
        f"{API}/accounts/{principal_id}/transitions",
        json={"to_status": "pending", "profile": {"bio": "Travel and food"}},
        headers=headers,
    )
    assert incomplete.status_code == 422
    error = incomplete.json()["errors"][0]
    assert error["code"] == "REQUIRED_FIELD_MISSING"
    assert error["source"]["pointer"] == "/data/attributes/instagram_url"

    submitted = await client.post(
        f"{API}/accounts/{principal_id}/transitions",
        json={"to_status": "pending", "profile": {"instagram_url": "https://instagram.com/minji", "bio": "Travel"}},
        headers=headers,
    )
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "pending"

    self_approval = await client.post(
        f"{API}/accounts/{principal_id}/transitions", json={"to_status": "active"}, headers=headers
    )
    assert self_approval.status_code == 403

    approved = await client.post(
        f"{API}/accounts/{principal_id}/transitions",
        json={"to_status": "active", "expected_status": "pending"},
        headers=auth_headers(admin),
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "active"

    me = await client.get(f"{API}/accounts/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["instagram_url"] == "https://instagram.com/minji"


@pytest.mark.asyncio
async def test_stale_transition_reports_conflict(client: AsyncClient, admin, make_account, auth_headers):
    account = await make_account(status=AccountStatus.PENDING.value)

    response = await client.post(
        f"{API}/accounts/{account.id}/transitions",
        json={"to_status": "active", "expected_status": "rejected"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 409
    error = response.json()["errors"][0]
    assert error["code"] == "INVALID_TRANSITION"
    assert error["meta"] == {"from_status": "pending", "to_status": "active", "stale": True}


@pytest.mark.asyncio
async def test_accounts_are_private_to_their_owner(client: AsyncClient, admin, make_account, auth_headers):
    account = await make_account()
    other = await make_account()

    assert (await client.get(f"{API}/accounts/{account.id}", headers=auth_headers(other))).status_code == 403
    assert (await client.get(f"{API}/accounts/{account.id}", headers=auth_headers(account))).status_code == 200
    assert (await client.get(f"{API}/accounts/{account.id}", headers=auth_headers(admin))).status_code == 200


@pytest.mark.asyncio
async def test_consume_until_quota_exceeded(client: AsyncClient, make_account, auth_headers):
    influencer = await make_account()
    headers = auth_headers(influencer)

    for expected in range(1, 11):
        response = await client.post(f"{API}/usage/consume", json={"action_kind": "request"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["count"] == expected

    refused = await client.post(f"{API}/usage/consume", json={"action_kind": "request"}, headers=headers)
    assert refused.status_code == 429
    error = refused.json()["errors"][0]
    assert error["code"] == "QUOTA_EXCEEDED"
    assert (error["meta"]["count"], error["meta"]["limit"]) == (10, 10)

    usage = await client.get(f"{API}/usage/me", headers=headers)
    assert usage.json()["used"] == 10
    assert usage.json()["limit"] == 10


@pytest.mark.asyncio
async def test_consume_rejects_wrong_action(client: AsyncClient, make_account, auth_headers):
    company = await make_account(kind=AccountKind.COMPANY.value)

    wrong_kind = await client.post(
        f"{API}/usage/consume", json={"action_kind": "request"}, headers=auth_headers(company)
    )
    unknown = await client.post(
        f"{API}/usage/consume", json={"action_kind": "campaign"}, headers=auth_headers(company)
    )

    assert wrong_kind.status_code == 422
    assert wrong_kind.json()["errors"][0]["code"] == "ACTION_NOT_ALLOWED"
    assert unknown.status_code == 422


@pytest.mark.asyncio
async def test_upgrade_request_and_plan_assignment(client: AsyncClient, admin, make_account, auth_headers):
    company = await make_account(kind=AccountKind.COMPANY.value)
    headers = auth_headers(company)

    created = await client.post(f"{API}/accounts/me/upgrade-requests", json={"depositor_name": "Acme Ltd"}, headers=headers)
    assert created.status_code == 201
    request_id = created.json()["id"]

    pending = await client.get(f"{API}/admin/upgrade-requests", headers=auth_headers(admin))
    assert [r["id"] for r in pending.json()] == [request_id]

    completed = await client.post(f"{API}/admin/upgrade-requests/{request_id}/complete", headers=auth_headers(admin))
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"

    expiry = (utcnow() + timedelta(days=30)).replace(microsecond=0)
    assigned = await client.post(
        f"{API}/admin/accounts/{company.id}/plan",
        json={"plan": "pro", "plan_expiry": expiry.isoformat(), "follower_search_limit": 50000},
        headers=auth_headers(admin),
    )
    assert assigned.status_code == 200
    assert assigned.json()["plan"] == "pro"
    assert assigned.json()["follower_search_limit"] == 50000

    consumed = await client.post(f"{API}/usage/consume", json={"action_kind": "proposal"}, headers=headers)
    assert consumed.json() == {
        "month_key": consumed.json()["month_key"],
        "count": None,
        "limit": -1,
        "unlimited": True,
    }


@pytest.mark.asyncio
async def test_admin_endpoints_require_admin(client: AsyncClient, make_account, auth_headers):
    user = await make_account()
    headers = auth_headers(user)

    for method, path in [
        ("GET", "/admin/dormancy"),
        ("GET", "/admin/deletions"),
        ("GET", "/admin/upgrade-requests"),
        ("GET", "/admin/plan-settings/COMPANY"),
    ]:
        response = await client.request(method, f"{API}{path}", headers=headers)
        assert response.status_code == 403
        assert response.json()["errors"][0]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_plan_settings_limit_applies_to_consumption(client: AsyncClient, admin, make_account, auth_headers):
    influencer = await make_account()

    updated = await client.put(
        f"{API}/admin/plan-settings/INFLUENCER",
        json={"monthly_limit": 2, "price": "29,000 KRW"},
        headers=auth_headers(admin),
    )
    assert updated.status_code == 200
    assert updated.json()["effective_monthly_limit"] == 2

    statuses = [
        (await client.post(f"{API}/usage/consume", json={"action_kind": "request"}, headers=auth_headers(influencer))).status_code
        for _ in range(3)
    ]
    assert statuses == [200, 200, 429]

    negative = await client.put(
        f"{API}/admin/plan-settings/INFLUENCER", json={"monthly_limit": -5}, headers=auth_headers(admin)
    )
    assert negative.status_code == 422


@pytest.mark.asyncio
async def test_dormancy_review(client: AsyncClient, admin, make_account, auth_headers):
    idle = await make_account(last_login_at=utcnow() - timedelta(days=400))
    await make_account(last_login_at=utcnow() - timedelta(days=5))

    scan = await client.get(f"{API}/admin/dormancy", headers=auth_headers(admin))
    assert scan.status_code == 200
    assert [c["id"] for c in scan.json()["eligible"]] == [str(idle.id)]
    assert scan.json()["approaching"] == []

    confirmed = await client.post(f"{API}/admin/dormancy/{idle.id}/confirm", headers=auth_headers(admin))
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "dormant"

    reactivated = await client.post(
        f"{API}/accounts/{idle.id}/transitions", json={"to_status": "active"}, headers=auth_headers(idle)
    )
    assert reactivated.status_code == 200
    assert reactivated.json()["status"] == "active"


@pytest.mark.asyncio
async def test_deletion_request_and_cancel(client: AsyncClient, make_account, auth_headers):
    account = await make_account()
    headers = auth_headers(account)

    unconfirmed = await client.post(f"{API}/accounts/me/deletion", json={"confirmed": False}, headers=headers)
    assert unconfirmed.status_code == 422
    assert unconfirmed.json()["errors"][0]["code"] == "CONFIRMATION_REQUIRED"

    requested = await client.post(f"{API}/accounts/me/deletion", json={"confirmed": True}, headers=headers)
    assert requested.status_code == 200
    assert requested.json()["status"] == "deletion_requested"
    assert requested.json()["hard_delete_scheduled_at"] is not None

    cancelled = await client.delete(f"{API}/accounts/me/deletion", headers=headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "active"
    assert cancelled.json()["deletion_requested_at"] is None


@pytest.mark.asyncio
async def test_hard_delete_through_admin_api(client: AsyncClient, admin, make_account, auth_headers):
    waiting = await make_account(
        status=AccountStatus.DELETION_REQUESTED.value,
        deletion_requested_at=utcnow() - timedelta(days=1),
    )
    overdue = await make_account(
        status=AccountStatus.DELETION_REQUESTED.value,
        deletion_requested_at=utcnow() - timedelta(days=31),
    )

    listing = await client.get(f"{API}/admin/deletions", headers=auth_headers(admin))
    assert [(d["id"], d["eligible_for_hard_delete"]) for d in listing.json()] == [
        (str(overdue.id), True),
        (str(waiting.id), False),
    ]

    too_early = await client.delete(f"{API}/admin/accounts/{waiting.id}", headers=auth_headers(admin))
    assert too_early.status_code == 409

    deleted = await client.delete(f"{API}/admin/accounts/{overdue.id}", headers=auth_headers(admin))
    assert deleted.status_code == 204

    gone = await client.get(f"{API}/accounts/{overdue.id}", headers=auth_headers(admin))
    assert gone.status_code == 404
    assert gone.json()["errors"][0]["code"] == "ACCOUNT_NOT_FOUND"


@pytest.mark.asyncio
async def test_login_endpoint_reports_usage(client: AsyncClient, make_account, auth_headers):
    company = await make_account(kind=AccountKind.COMPANY.value)

    response = await client.post(f"{API}/accounts/me/login", headers=auth_headers(company))

    assert response.status_code == 200
    data = response.json()
    assert data["last_login_at"] is not None
    assert (data["monthly_used"], data["monthly_limit"]) == (0, 10)


@pytest.mark.asyncio
async def test_suspended_admin_cannot_use_admin_endpoints(client: AsyncClient, make_account, auth_headers):
    suspended_admin = await make_account(
        role=AccountRole.ADMIN.value, kind=AccountKind.COMPANY.value, status=AccountStatus.SUSPENDED.value
    )

    response = await client.get(f"{API}/admin/dormancy", headers=auth_headers(suspended_admin))

    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "UNAUTHORIZED"
