from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import AcademicYear


def _year(name: str, start_year: int, **extra) -> dict:
    return {
        "name": name,
        "startDate": date(start_year, 1, 1).isoformat(),
        "endDate": date(start_year, 12, 31).isoformat(),
        **extra,
    }


async def _active_names(db_session: AsyncSession, school) -> list:
    db_session.expunge_all()
    result = await db_session.execute(
        select(AcademicYear.name).where(AcademicYear.school_id == school.id, AcademicYear.is_active.is_(True))
    )
    return sorted(result.scalars().all())


@pytest.fixture()
async def school_admin(factory):
    school = await factory.school("Riverside School")
    admin = await factory.admin(school)
    return school, admin


@pytest.mark.asyncio
async def test_first_year_becomes_active(
    client: AsyncClient, db_session: AsyncSession, school_admin, auth
) -> None:
    school, admin = school_admin
    headers = auth(admin)

    first = await client.post("/api/sms/academic-years", json=_year("2025", 2025), headers=headers)
    assert first.status_code == 201
    assert first.json()["isActive"] is True

    second = await client.post("/api/sms/academic-years", json=_year("2026", 2026), headers=headers)
    assert second.status_code == 201
    assert second.json()["isActive"] is False

    assert await _active_names(db_session, school) == ["2025"]


@pytest.mark.asyncio
async def test_creating_an_active_year_deactivates_the_others(
    client: AsyncClient, db_session: AsyncSession, school_admin, auth
) -> None:
    school, admin = school_admin
    headers = auth(admin)
    await client.post("/api/sms/academic-years", json=_year("2025", 2025), headers=headers)

    response = await client.post("/api/sms/academic-years", json=_year("2026", 2026, isActive=True), headers=headers)
    assert response.status_code == 201
    assert response.json()["isActive"] is True

    assert await _active_names(db_session, school) == ["2026"]


@pytest.mark.asyncio
async def test_activating_a_year_switches_the_active_one(
    client: AsyncClient, db_session: AsyncSession, factory, school_admin, auth
) -> None:
    school, admin = school_admin
    await factory.academic_year(school, "2025", active=True)
    next_year = await factory.academic_year(
        school, "2026", active=False, start_date=date(2026, 1, 1), end_date=date(2026, 12, 31)
    )
    # Activation in one school leaves other schools alone
    other = await factory.school("Hillside School")
    await factory.academic_year(other, "2025", active=True)

    response = await client.patch(
        f"/api/sms/academic-years/{next_year.id}", json={"isActive": True}, headers=auth(admin)
    )
    assert response.status_code == 200
    assert response.json()["isActive"] is True

    assert await _active_names(db_session, school) == ["2026"]
    assert await _active_names(db_session, other) == ["2025"]


@pytest.mark.asyncio
async def test_active_year_cannot_be_switched_off(
    client: AsyncClient, db_session: AsyncSession, factory, school_admin, auth
) -> None:
    school, admin = school_admin
    year = await factory.academic_year(school, "2025", active=True)

    response = await client.patch(f"/api/sms/academic-years/{year.id}", json={"isActive": False}, headers=auth(admin))
    assert response.status_code == 400
    assert response.json()["message"] == "Activate another academic year instead of deactivating this one"

    assert await _active_names(db_session, school) == ["2025"]


@pytest.mark.asyncio
async def test_active_year_cannot_be_deleted(
    client: AsyncClient, db_session: AsyncSession, factory, school_admin, auth
) -> None:
    school, admin = school_admin
    headers = auth(admin)
    active = await factory.academic_year(school, "2025", active=True)
    old = await factory.academic_year(
        school, "2024", active=False, start_date=date(2024, 1, 1), end_date=date(2024, 12, 31)
    )

    response = await client.delete(f"/api/sms/academic-years/{active.id}", headers=headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete the active academic year"

    response = await client.delete(f"/api/sms/academic-years/{old.id}", headers=headers)
    assert response.status_code == 204

    listed = await client.get("/api/sms/academic-years", headers=headers)
    assert [y["name"] for y in listed.json()] == ["2025"]


@pytest.mark.asyncio
async def test_year_end_must_follow_start(client: AsyncClient, school_admin, auth) -> None:
    _, admin = school_admin
    payload = {"name": "2025", "startDate": "2025-06-01", "endDate": "2025-06-01"}

    response = await client.post("/api/sms/academic-years", json=payload, headers=auth(admin))
    assert response.status_code == 400
    assert response.json()["message"] == "End date must be after start date"


@pytest.mark.asyncio
async def test_class_grade_level_is_derived_from_name(client: AsyncClient, school_admin, auth) -> None:
    _, admin = school_admin
    headers = auth(admin)

    derived = await client.post("/api/sms/classes", json={"name": "Grade 3"}, headers=headers)
    assert derived.status_code == 201
    assert derived.json()["gradeLevel"] == 3

    explicit = await client.post("/api/sms/classes", json={"name": "Grade 4", "gradeLevel": 7}, headers=headers)
    assert explicit.json()["gradeLevel"] == 7

    unnamed = await client.post("/api/sms/classes", json={"name": "Kindergarten"}, headers=headers)
    assert unnamed.status_code == 201
    assert unnamed.json()["gradeLevel"] is None

    duplicate = await client.post("/api/sms/classes", json={"name": "Grade 3"}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "Class name already exists for this school"
