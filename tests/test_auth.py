from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import RefreshToken, User
from app.core.models import School, SubRole


@pytest.mark.asyncio
async def test_register_admin_creates_school(client: AsyncClient, db_session: AsyncSession) -> None:
    payload = {
        "email": "jane@example.com",
        "password": "StrongPass123",
        "name": "Jane Doe",
        "role": "admin",
        "schoolName": "Acme School",
    }

    response = await client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    data = response.json()

    assert data["tokenType"] == "bearer"
    assert data["accessToken"]
    assert data["refreshToken"]
    user = data["user"]
    assert user["role"] == "admin"
    school_id = UUID(user["schoolId"])

    school = await db_session.get(School, school_id)
    assert school is not None
    assert school.name == "Acme School"

    # Default sub-roles are seeded for the new school
    result = await db_session.execute(select(func.count()).select_from(SubRole).where(SubRole.school_id == school_id))
    assert result.scalar_one() == 8


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient) -> None:
    payload = {"email": "dup@example.com", "password": "StrongPass123", "name": "Dup", "role": "student"}
    first = await client.post("/api/auth/register", json=payload)
    assert first.status_code == 201

    second = await client.post("/api/auth/register", json={**payload, "email": "DUP@example.com"})
    assert second.status_code == 400
    assert second.json()["message"] == "Email is already registered"


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient) -> None:
    register_payload = {
        "email": "john.admin@example.com",
        "password": "StrongPass123",
        "name": "John Admin",
        "role": "admin",
        "schoolName": "Acme HR",
    }
    register_resp = await client.post("/api/auth/register", json=register_payload)
    assert register_resp.status_code == 201

    response = await client.post(
        "/api/auth/login",
        json={"email": register_payload["email"], "password": register_payload["password"]},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["user"]["email"] == register_payload["email"]
    assert data["expiresIn"] > 0

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['accessToken']}"})
    assert me.status_code == 200
    assert me.json()["name"] == "John Admin"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, factory) -> None:
    """Unknown email and wrong password produce the same 401."""
    user = await factory.student(None)

    response = await client.post("/api/auth/login", json={"email": user.email, "password": "nope-nope"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"

    response = await client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "nope-nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_token(client: AsyncClient, db_session: AsyncSession, factory) -> None:
    user = await factory.student(None)
    login = await client.post("/api/auth/login", json={"email": user.email, "password": "StrongPass123"})
    old_refresh = login.json()["refreshToken"]

    response = await client.post("/api/auth/refresh", json={"refreshToken": old_refresh})
    assert response.status_code == 200
    new_refresh = response.json()["refreshToken"]
    assert new_refresh != old_refresh

    # The presented token is single-use
    again = await client.post("/api/auth/refresh", json={"refreshToken": old_refresh})
    assert again.status_code == 401

    result = await db_session.execute(select(RefreshToken.token).where(RefreshToken.user_id == user.id))
    assert set(result.scalars().all()) == {new_refresh}


@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient) -> None:
    response = await client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json() == {"message": "Authentication required"}


@pytest.mark.asyncio
async def test_employee_registration_has_no_school(client: AsyncClient, db_session: AsyncSession) -> None:
    payload = {"email": "emp@example.com", "password": "StrongPass123", "name": "Emp", "role": "employee"}
    response = await client.post("/api/auth/register", json=payload)
    assert response.status_code == 201

    result = await db_session.execute(select(User).where(User.email == "emp@example.com"))
    user = result.scalar_one()
    assert user.school_id is None
    assert user.sub_role is None
