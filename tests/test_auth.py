"""
Auth endpoint tests: registration, login, token handling, profile and
password change.
"""
import uuid

import pytest
from httpx import AsyncClient
from jose import jwt
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import User
from app.security import create_access_token

REGISTER = {
    "email": "newbie@example.com",
    "password": "Password123!",
    "firstName": "New",
    "lastName": "Bie",
}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_register_returns_token_and_user(async_client: AsyncClient):
    resp = await async_client.post("/api/auth/register", json=REGISTER)
    assert resp.status_code == 201
    data = resp.json()
    assert data["accessToken"]
    user = data["user"]
    assert user["email"] == REGISTER["email"]
    assert user["role"] == "user"
    assert user["firstName"] == "New"
    assert "password" not in user and "passwordHash" not in user

    claims = jwt.decode(data["accessToken"], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert claims["sub"] == user["id"]
    assert claims["username"] == REGISTER["email"]
    assert claims["role"] == "user"
    assert claims["firstName"] == "New"
    assert claims["lastName"] == "Bie"
    assert claims["exp"] - claims["iat"] == settings.JWT_EXPIRES_IN


@pytest.mark.asyncio
async def test_register_duplicate_email_conflicts(async_client: AsyncClient, db_session: AsyncSession):
    assert (await async_client.post("/api/auth/register", json=REGISTER)).status_code == 201
    resp = await async_client.post("/api/auth/register", json=REGISTER)
    assert resp.status_code == 409

    count = (
        await db_session.execute(select(func.count()).select_from(User).where(User.email == REGISTER["email"]))
    ).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_register_as_admin_is_forbidden(async_client: AsyncClient):
    resp = await async_client.post("/api/auth/register", json={**REGISTER, "role": "admin"})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_register_validation(async_client: AsyncClient):
    for override in (
        {"email": "not-an-email"},
        {"password": "short"},
        {"password": "x" * 51},
        {"firstName": ""},
        {"role": "superuser"},
    ):
        resp = await async_client.post("/api/auth/register", json={**REGISTER, **override})
        assert resp.status_code == 422, override


@pytest.mark.asyncio
async def test_password_is_stored_hashed(async_client: AsyncClient, db_session: AsyncSession):
    await async_client.post("/api/auth/register", json=REGISTER)
    user = (await db_session.execute(select(User).where(User.email == REGISTER["email"]))).scalar_one()
    assert user.password_hash != REGISTER["password"]
    assert user.password_hash.startswith("$pbkdf2-sha256$")


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_login_success(async_client: AsyncClient, regular_user):
    resp = await async_client.post(
        "/api/auth/login", json={"email": "alice@example.com", "password": "Password123!"}
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == str(regular_user.id)


@pytest.mark.asyncio
async def test_login_failures_share_one_message(async_client: AsyncClient, regular_user):
    wrong_password = await async_client.post(
        "/api/auth/login", json={"email": "alice@example.com", "password": "WrongPass1!"}
    )
    again = await async_client.post(
        "/api/auth/login", json={"email": "alice@example.com", "password": "WrongPass2!"}
    )
    unknown = await async_client.post(
        "/api/auth/login", json={"email": "ghost@example.com", "password": "Password123!"}
    )
    for resp in (wrong_password, again, unknown):
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Invalid credentials"}


@pytest.mark.asyncio
async def test_email_match_is_case_sensitive(async_client: AsyncClient, regular_user):
    resp = await async_client.post(
        "/api/auth/login", json={"email": "Alice@example.com", "password": "Password123!"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_email_domain_normalised_local_part_kept(async_client: AsyncClient):
    payload = {**REGISTER, "email": "Mixed.Case@Example.COM"}
    resp = await async_client.post("/api/auth/register", json=payload)
    assert resp.status_code == 201
    assert resp.json()["user"]["email"] == "Mixed.Case@example.com"

    as_typed = await async_client.post(
        "/api/auth/login", json={"email": "Mixed.Case@Example.COM", "password": REGISTER["password"]}
    )
    assert as_typed.status_code == 200
    lowered = await async_client.post(
        "/api/auth/login", json={"email": "mixed.case@example.com", "password": REGISTER["password"]}
    )
    assert lowered.status_code == 401


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_expired_token_rejected(async_client: AsyncClient, regular_user):
    token = create_access_token({"sub": str(regular_user.id)}, expires_in=-10)
    resp = await async_client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_tampered_token_rejected(async_client: AsyncClient, regular_user):
    token = jwt.encode({"sub": str(regular_user.id)}, "some-other-secret", algorithm="HS256")
    resp = await async_client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_token_for_deleted_user_rejected(
    async_client: AsyncClient, regular_user, user_headers: dict, db_session: AsyncSession
):
    await db_session.execute(delete(User).where(User.id == regular_user.id))
    await db_session.commit()

    resp = await async_client.get("/api/auth/profile", headers=user_headers)
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_token_with_non_uuid_subject_rejected(async_client: AsyncClient):
    token = create_access_token({"sub": "42"})
    resp = await async_client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_profile(async_client: AsyncClient, regular_user, user_headers: dict):
    resp = await async_client.get("/api/auth/profile", headers=user_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["id"] == str(regular_user.id)
    assert data["email"] == "alice@example.com"
    assert set(data) == {"id", "email", "role", "firstName", "lastName", "createdAt", "updatedAt"}


@pytest.mark.asyncio
async def test_update_profile(async_client: AsyncClient, user_headers: dict):
    resp = await async_client.patch(
        "/api/auth/profile",
        json={"firstName": "Alicia", "email": "alicia@example.com"},
        headers=user_headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["firstName"] == "Alicia"
    assert data["lastName"] == "Smith"
    assert data["email"] == "alicia@example.com"

    resp = await async_client.post(
        "/api/auth/login", json={"email": "alicia@example.com", "password": "Password123!"}
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_update_profile_noop_keeps_timestamp(async_client: AsyncClient, user_headers: dict):
    before = (await async_client.get("/api/auth/profile", headers=user_headers)).json()
    resp = await async_client.patch(
        "/api/auth/profile", json={"firstName": before["firstName"]}, headers=user_headers
    )
    assert resp.status_code == 200
    assert resp.json()["updatedAt"] == before["updatedAt"]


@pytest.mark.asyncio
async def test_update_profile_email_taken(async_client: AsyncClient, admin_user, user_headers: dict):
    resp = await async_client.patch(
        "/api/auth/profile", json={"email": "admin@example.com"}, headers=user_headers
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_profile_requires_token(async_client: AsyncClient):
    resp = await async_client.get("/api/auth/profile")
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Password change
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_change_password(async_client: AsyncClient, user_headers: dict):
    resp = await async_client.post(
        "/api/auth/profile/change-password",
        json={"currentPassword": "Password123!", "newPassword": "NewPassword456!"},
        headers=user_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["message"]

    old = await async_client.post(
        "/api/auth/login", json={"email": "alice@example.com", "password": "Password123!"}
    )
    new = await async_client.post(
        "/api/auth/login", json={"email": "alice@example.com", "password": "NewPassword456!"}
    )
    assert old.status_code == 401
    assert new.status_code == 200


@pytest.mark.asyncio
async def test_change_password_wrong_current(async_client: AsyncClient, user_headers: dict):
    resp = await async_client.post(
        "/api/auth/profile/change-password",
        json={"currentPassword": "nope-nope", "newPassword": "NewPassword456!"},
        headers=user_headers,
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_change_password_same_as_old(async_client: AsyncClient, user_headers: dict):
    resp = await async_client.post(
        "/api/auth/profile/change-password",
        json={"currentPassword": "Password123!", "newPassword": "Password123!"},
        headers=user_headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_change_password_too_short(async_client: AsyncClient, user_headers: dict):
    resp = await async_client.post(
        "/api/auth/profile/change-password",
        json={"currentPassword": "Password123!", "newPassword": "short"},
        headers=user_headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_subject_uuid_rejected(async_client: AsyncClient):
    token = create_access_token({"sub": str(uuid.uuid4())})
    resp = await async_client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
