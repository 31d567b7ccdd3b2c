from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.models import AuditLog, StudentEnrollment


async def _next_year(factory, campus):
    return await factory.academic_year(
        campus.school, "2026", active=False, start_date=date(2026, 1, 1), end_date=date(2026, 12, 31)
    )


@pytest.mark.asyncio
async def test_promotion_processes_every_student(
    client: AsyncClient, db_session: AsyncSession, factory, campus
) -> None:
    target = await _next_year(factory, campus)
    grade2 = await factory.school_class(campus.school, "Grade 2", grade_level=2)
    grade2_s1 = await factory.section(grade2, "Section 1")
    grade3 = await factory.school_class(campus.school, "Grade 3", grade_level=3)
    grade6 = await factory.school_class(campus.school, "Grade 6", grade_level=6)
    kindergarten = await factory.school_class(campus.school, "Kindergarten")

    alice = await factory.student(campus.school, "Alice")
    bob = await factory.student(campus.school, "Bob")
    carl = await factory.student(campus.school, "Carl")
    dana = await factory.student(campus.school, "Dana")
    alice_old = await factory.enroll(alice, campus.year, campus.grade1, campus.section1)
    bob_old = await factory.enroll(bob, campus.year, grade6)
    carl_old = await factory.enroll(carl, campus.year, kindergarten)
    await factory.enroll(dana, campus.year, grade3)

    response = await client.post(
        "/api/sms/students/promote",
        json={"targetYearId": str(target.id)},
        headers=campus.admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Student promotion completed"
    assert data["totalProcessed"] == 4
    assert data["promoted"] == 1
    assert data["graduated"] == 1
    by_name = {r["studentName"]: r for r in data["results"]}
    assert by_name["Alice"]["action"] == "promoted"
    assert by_name["Alice"]["fromGrade"] == "Grade 1"
    assert by_name["Alice"]["toGrade"] == "Grade 2"
    assert by_name["Bob"]["action"] == "graduated"
    assert by_name["Carl"]["action"] == "error"
    assert by_name["Carl"]["message"] == "Class 'Kindergarten' has no grade level"
    assert by_name["Dana"]["action"] == "no_next_class"

    db_session.expunge_all()
    assert (await db_session.get(StudentEnrollment, alice_old.id)).status == "promoted"
    result = await db_session.execute(
        select(StudentEnrollment).where(
            StudentEnrollment.student_id == alice.id, StudentEnrollment.academic_year_id == target.id
        )
    )
    moved = result.scalar_one()
    assert (moved.class_id, moved.section_id, moved.status) == (grade2.id, grade2_s1.id, "active")
    assert by_name["Alice"]["newEnrollmentId"] == str(moved.id)
    assert (await db_session.get(User, alice.id)).grade == "Grade 2"

    assert (await db_session.get(StudentEnrollment, bob_old.id)).status == "graduated"
    assert (await db_session.get(User, bob.id)).grade is None

    # The failed student is left as it was
    assert (await db_session.get(StudentEnrollment, carl_old.id)).status == "active"

    result = await db_session.execute(select(AuditLog.action).order_by(AuditLog.action))
    assert result.scalars().all() == ["student_graduated", "student_promoted"]


@pytest.mark.asyncio
async def test_promotion_is_also_under_enrollment(client: AsyncClient, factory, campus) -> None:
    target = await _next_year(factory, campus)

    response = await client.post(
        "/api/enrollment/promote",
        json={"targetYearId": str(target.id)},
        headers=campus.admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["totalProcessed"] == 0


@pytest.mark.asyncio
async def test_promotion_preconditions(client: AsyncClient, db_session: AsyncSession, factory, campus) -> None:
    url = "/api/sms/students/promote"
    headers = campus.admin_headers

    response = await client.post(url, json={}, headers=headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Target academic year ID required"

    response = await client.post(url, json={"targetYearId": str(campus.year.id)}, headers=headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Target academic year must differ from the active academic year"

    other_school = await factory.school("Elsewhere")
    foreign_year = await factory.academic_year(other_school, "2026", active=False)
    response = await client.post(url, json={"targetYearId": str(foreign_year.id)}, headers=headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Target academic year not found"

    target = await _next_year(factory, campus)
    campus.year.is_active = False
    await db_session.commit()
    response = await client.post(url, json={"targetYearId": str(target.id)}, headers=headers)
    assert response.status_code == 400
    assert response.json()["message"] == "No active academic year found"


@pytest.mark.asyncio
async def test_promotion_requires_admin(client: AsyncClient, factory, campus, auth) -> None:
    await factory.sub_role(campus.school, "principal", ["manage_users"])
    principal = await factory.employee(campus.school, "principal")

    response = await client.post("/api/sms/students/promote", json={}, headers=auth(principal))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_auto_enroll_places_orphans(
    client: AsyncClient, db_session: AsyncSession, factory, campus
) -> None:
    placed = await factory.student(campus.school, "Already Placed")
    await factory.enroll(placed, campus.year, campus.grade1, campus.section1)
    stale = await factory.student(campus.school, "Bea")
    await factory.enroll(stale, campus.year, campus.grade1)
    stale.grade = None
    await db_session.commit()
    orphan = await factory.student(campus.school, "Abe")

    response = await client.post("/api/enrollment/auto-enroll", headers=campus.admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Auto-enrollment completed"
    assert data["totalOrphans"] == 2
    assert data["enrolled"] == 1
    assert [(r["studentName"], r["status"]) for r in data["results"]] == [
        ("Abe", "enrolled"),
        ("Bea", "already_enrolled"),
    ]
    assert data["results"][0]["className"] == "Grade 1"
    assert data["results"][0]["section"] == "Section 1"

    db_session.expunge_all()
    result = await db_session.execute(select(StudentEnrollment).where(StudentEnrollment.student_id == orphan.id))
    enrollment = result.scalar_one()
    assert (enrollment.class_id, enrollment.section_id) == (campus.grade1.id, campus.section1.id)
    assert (await db_session.get(User, orphan.id)).grade == "Grade 1"

    response = await client.post("/api/enrollment/auto-enroll", headers=campus.admin_headers)
    assert response.json()["message"] == "Auto-enrollment completed"
    assert response.json()["enrolled"] == 0


@pytest.mark.asyncio
async def test_auto_enroll_without_orphans(client: AsyncClient, campus) -> None:
    response = await client.post("/api/enrollment/auto-enroll", headers=campus.admin_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "No orphaned students found"
    assert response.json()["results"] == []


@pytest.mark.asyncio
async def test_auto_enroll_needs_default_class(client: AsyncClient, factory, auth) -> None:
    school = await factory.school("Montessori House")
    admin = await factory.admin(school)
    await factory.academic_year(school, "2025")
    await factory.school_class(school, "Lower Elementary")
    await factory.student(school)

    response = await client.post("/api/enrollment/auto-enroll", headers=auth(admin))
    assert response.status_code == 400
    assert response.json()["message"] == "No default class found for enrollment"


@pytest.mark.asyncio
async def test_dashboard_statistics(client: AsyncClient, factory, campus) -> None:
    grade6 = await factory.school_class(campus.school, "Grade 6", grade_level=6)
    senior = await factory.student(campus.school, "Senior")
    junior = await factory.student(campus.school, "Junior")
    await factory.student(campus.school, "Unplaced")
    await factory.enroll(senior, campus.year, grade6)
    await factory.enroll(junior, campus.year, campus.grade1, campus.section1)

    response = await client.get("/api/enrollment/dashboard", headers=campus.admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["academicYear"]["id"] == str(campus.year.id)
    assert data["statistics"] == {
        "unassignedStudents": 1,
        "pendingEnrollments": 0,
        "graduationCandidates": 1,
        "totalActiveEnrollments": 2,
    }
    assert [s["name"] for s in data["unassignedStudents"]] == ["Unplaced"]
    assert [c["studentName"] for c in data["graduationCandidates"]] == ["Senior"]
