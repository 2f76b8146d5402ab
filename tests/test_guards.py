"""
Tests for the role gate, ownership, completion, email and rate limit guards
"""

import pytest
from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient
from pydantic import ValidationError

from conftest import make_settings
from skills_bridge.middleware.auth import (
    NO_TOKEN,
    assert_owner,
    check_ownership,
    rate_limit_by_user,
    require_email_verification,
    require_profile_completion,
    require_roles,
)
from skills_bridge.middleware.rate_limit import SlidingWindowCounter
from skills_bridge.models import User, UserRole
from skills_bridge.utils.errors import AuthorizationError


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def guarded_client(app, clock) -> TestClient:
    router = APIRouter()
    sensitive_limiter = rate_limit_by_user(2, 60, clock=clock)

    @router.get("/admin-only")
    async def admin_only(user: User = Depends(require_roles("admin", UserRole.rtb_admin))):
        return {"success": True, "data": user.id}

    @router.get("/complete-profiles")
    async def complete_profiles(user: User = Depends(require_profile_completion(50))):
        return {"success": True}

    @router.get("/verified")
    async def verified(user: User = Depends(require_email_verification)):
        return {"success": True}

    @router.get("/resources/{owner_id}")
    async def resource(owner_id: str, user: User = Depends(check_ownership("owner"))):
        assert_owner(user, owner_id)
        return {"success": True}

    @router.post("/sensitive")
    async def sensitive(user: User = Depends(sensitive_limiter)):
        return {"success": True}

    app.include_router(router, prefix="/guarded")
    return TestClient(app)


def test_role_gate_requires_token(guarded_client):
    response = guarded_client.get("/guarded/admin-only")
    assert response.status_code == 401
    assert response.json()["message"] == NO_TOKEN


def test_role_gate_rejects_other_roles(guarded_client, make_user, auth_headers):
    user = make_user(role="job-seeker")
    response = guarded_client.get("/guarded/admin-only", headers=auth_headers(user["id"]))
    assert response.status_code == 403
    assert response.json()["message"] == (
        "Access denied. Required roles: admin, rtb-admin. Your role: job-seeker"
    )


@pytest.mark.parametrize("role", ["admin", "rtb-admin"])
def test_role_gate_allows_listed_roles(guarded_client, make_user, auth_headers, role):
    user = make_user(role=role)
    response = guarded_client.get("/guarded/admin-only", headers=auth_headers(user["id"]))
    assert response.status_code == 200
    assert response.json()["data"] == user["id"]


def test_profile_completion_below_minimum(guarded_client, make_user, auth_headers):
    user = make_user(profileCompletion=30)
    response = guarded_client.get("/guarded/complete-profiles", headers=auth_headers(user["id"]))
    assert response.status_code == 403
    data = response.json()
    assert data["message"] == (
        "Profile completion required. Your profile is 30% complete. Minimum required: 50%"
    )
    assert data["currentCompletion"] == 30
    assert data["requiredCompletion"] == 50


def test_profile_completion_at_minimum(guarded_client, make_user, auth_headers):
    user = make_user(profileCompletion=50)
    response = guarded_client.get("/guarded/complete-profiles", headers=auth_headers(user["id"]))
    assert response.status_code == 200


def test_email_verification_required(guarded_client, make_user, auth_headers):
    unverified = make_user(isEmailVerified=False)
    verified = make_user(isEmailVerified=True)

    response = guarded_client.get("/guarded/verified", headers=auth_headers(unverified["id"]))
    assert response.status_code == 403
    assert response.json()["requiresEmailVerification"] is True

    response = guarded_client.get("/guarded/verified", headers=auth_headers(verified["id"]))
    assert response.status_code == 200


def test_ownership_checked_by_handler(guarded_client, make_user, auth_headers):
    owner = make_user()
    stranger = make_user()
    admin = make_user(role="admin")

    url = f"/guarded/resources/{owner['id']}"
    assert guarded_client.get(url, headers=auth_headers(owner["id"])).status_code == 200
    assert guarded_client.get(url, headers=auth_headers(stranger["id"])).status_code == 403
    assert guarded_client.get(url, headers=auth_headers(admin["id"])).status_code == 200


def test_user_rate_limit_window(guarded_client, make_user, auth_headers, clock):
    user = make_user()
    other = make_user()
    headers = auth_headers(user["id"])

    assert guarded_client.post("/guarded/sensitive", headers=headers).status_code == 200
    clock.advance(10)
    assert guarded_client.post("/guarded/sensitive", headers=headers).status_code == 200

    response = guarded_client.post("/guarded/sensitive", headers=headers)
    assert response.status_code == 429
    data = response.json()
    assert data["message"] == "Too many requests. Please try again later."
    assert data["retryAfter"] == 60
    assert response.headers["Retry-After"] == "60"

    # Counters are per principal
    assert guarded_client.post("/guarded/sensitive", headers=auth_headers(other["id"])).status_code == 200

    # The first hit leaves the window; one slot frees up
    clock.advance(51)
    assert guarded_client.post("/guarded/sensitive", headers=headers).status_code == 200
    assert guarded_client.post("/guarded/sensitive", headers=headers).status_code == 429


def test_sliding_window_counter_does_not_record_rejections(clock):
    counter = SlidingWindowCounter(2, 60, clock=clock)
    assert counter.hit("u1").allowed
    assert counter.hit("u1").remaining == 0

    clock.advance(30)
    rejected = counter.hit("u1")
    assert not rejected.allowed
    assert rejected.retry_after == 60

    # Both accepted hits are older than the window now; the rejection was not kept
    clock.advance(31)
    decision = counter.hit("u1")
    assert decision.allowed
    assert decision.remaining == 1


def test_sliding_window_counter_cleans_idle_keys(clock):
    counter = SlidingWindowCounter(5, 60, clock=clock, cleanup_interval=120)
    counter.hit("a")
    counter.hit("b")
    assert len(counter) == 2

    clock.advance(200)
    counter.hit("c")
    assert len(counter) == 1


def test_assert_owner_for_admin_and_missing_owner():
    admin = User(id="a1", email="a@example.com", name="Admin", role=UserRole.admin)
    seeker = User(id="s1", email="s@example.com", name="Seeker")
    assert_owner(admin, None)
    assert_owner(seeker, "s1")
    with pytest.raises(AuthorizationError) as excinfo:
        assert_owner(seeker, None)
    assert excinfo.value.status_code == 403


def test_sliding_window_counter_without_budget(clock):
    counter = SlidingWindowCounter(0, 60, clock=clock)
    decision = counter.hit("u1")
    assert not decision.allowed
    assert decision.reset_at == clock.now + 60


def test_settings_reject_empty_rate_limit():
    with pytest.raises(ValidationError):
        make_settings(rate_limit_requests=0)
