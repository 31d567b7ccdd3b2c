from datetime import date
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import ensure_same_school
from app.auth.schemas import AdminActor, EmployeeActor
from app.core.exceptions import AuthorizationError
from app.core.models import SchoolClass


@pytest.fixture()
async def rival(factory):
    """A second school with its own admin, year and class."""
    school = await factory.school("Rival High")
    admin = await factory.admin(school)
    year = await factory.academic_year(school, "2025")
    term = await factory.term(year)
    school_class = await factory.school_class(school, "Grade 1", grade_level=1)
    return {"school": school, "admin": admin, "year": year, "term": term, "class": school_class}


@pytest.mark.asyncio
async def test_listings_only_show_own_school(client: AsyncClient, campus, rival, auth) -> None:
    response = await client.get("/api/sms/classes", headers=campus.admin_headers)
    assert response.status_code == 200
    assert [c["id"] for c in response.json()] == [str(campus.grade1.id)]

    response = await client.get("/api/sms/classes", headers=auth(rival["admin"]))
    assert [c["id"] for c in response.json()] == [str(rival["class"].id)]


@pytest.mark.asyncio
async def test_foreign_ids_are_not_found(client: AsyncClient, db_session: AsyncSession, campus, rival) -> None:
    response = await client.delete(f"/api/sms/classes/{rival['class'].id}", headers=campus.admin_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Class not found"

    # The foreign class is untouched
    assert await db_session.get(SchoolClass, rival["class"].id) is not None

    response = await client.post(
        "/api/sms/attendance/sessions",
        json={
            "academicYearId": str(rival["year"].id),
            "termId": str(rival["term"].id),
            "classId": str(rival["class"].id),
            "date": date(2025, 3, 10).isoformat(),
        },
        headers=campus.admin_headers,
    )
    assert response.status_code == 404

    response = await client.post(
        "/api/sms/sections",
        json={"classId": str(rival["class"].id), "name": "Section 9"},
        headers=campus.admin_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_without_school_is_rejected(client: AsyncClient, factory, auth) -> None:
    orphan_admin = await factory.user(None, "admin")

    response = await client.get("/api/sms/classes", headers=auth(orphan_admin))
    assert response.status_code == 403
    assert response.json()["message"] == "Admin is not linked to a school"


@pytest.mark.asyncio
async def test_student_without_school_is_rejected(client: AsyncClient, factory, auth) -> None:
    student = await factory.student(None)

    response = await client.get("/api/sms/assignments", headers=auth(student))
    assert response.status_code == 403
    assert response.json()["message"] == "User is not linked to a school"


def test_ensure_same_school() -> None:
    school_id = uuid4()
    actor = EmployeeActor(id=uuid4(), school_id=school_id)

    ensure_same_school(actor, school_id)

    with pytest.raises(AuthorizationError):
        ensure_same_school(actor, uuid4())
    with pytest.raises(AuthorizationError):
        ensure_same_school(AdminActor(id=uuid4()), school_id)
