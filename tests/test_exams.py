import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.exams.service import GRADES_LOCKED_MESSAGE
from app.core.models import AuditLog


@pytest.fixture()
async def grading(factory, campus):
    await factory.sub_role(campus.school, "teacher", ["edit_grades"])
    teacher = await factory.employee(campus.school, "teacher")
    alice = await factory.student(campus.school, "Alice")
    bob = await factory.student(campus.school, "Bob")
    parent = await factory.parent(campus.school, children=[alice])
    return {"teacher": teacher, "alice": alice, "bob": bob, "parent": parent}


async def _create_exam(client: AsyncClient, campus) -> dict:
    response = await client.post(
        "/api/sms/exams",
        json={
            "academicYearId": str(campus.year.id),
            "termId": str(campus.term.id),
            "name": "Midterm",
            "type": "exam",
            "startDate": "2025-04-01",
            "endDate": "2025-04-05",
        },
        headers=campus.admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["status"] == "draft"
    return response.json()


def _mark(student, campus, obtained, total=100) -> dict:
    return {
        "studentId": str(student.id),
        "subjectId": str(campus.subject.id),
        "marksObtained": obtained,
        "totalMarks": total,
    }


@pytest.mark.asyncio
async def test_marks_upsert_and_audit(
    client: AsyncClient, db_session: AsyncSession, campus, grading, auth
) -> None:
    exam = await _create_exam(client, campus)
    url = f"/api/sms/exams/{exam['id']}/marks"
    teacher = auth(grading["teacher"])

    response = await client.post(url, json=[_mark(grading["alice"], campus, 70), _mark(grading["bob"], campus, 55)], headers=teacher)
    assert response.status_code == 200
    assert len(response.json()) == 2

    response = await client.post(url, json=[_mark(grading["alice"], campus, 82)], headers=teacher)
    assert response.status_code == 200

    response = await client.get(url, headers=teacher)
    by_student = {m["student"]["name"]: m["marksObtained"] for m in response.json()}
    assert by_student == {"Alice": 82, "Bob": 55}

    result = await db_session.execute(select(AuditLog).where(AuditLog.action == "grade_save"))
    audits = result.scalars().all()
    assert sorted(a.meta["count"] for a in audits) == [1, 2]
    assert {a.meta["examId"] for a in audits} == {exam["id"]}


@pytest.mark.asyncio
async def test_marks_cannot_exceed_total(client: AsyncClient, campus, grading, auth) -> None:
    exam = await _create_exam(client, campus)

    response = await client.post(
        f"/api/sms/exams/{exam['id']}/marks",
        json=[_mark(grading["alice"], campus, 120, 100)],
        headers=auth(grading["teacher"]),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Marks obtained (120) cannot exceed total marks (100)"


@pytest.mark.asyncio
async def test_published_exam_locks_grades(client: AsyncClient, campus, grading, auth) -> None:
    exam = await _create_exam(client, campus)
    url = f"/api/sms/exams/{exam['id']}/marks"
    await client.post(url, json=[_mark(grading["alice"], campus, 70)], headers=auth(grading["teacher"]))

    response = await client.post(f"/api/sms/exams/{exam['id']}/publish", headers=campus.admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "published"
    assert response.json()["publishedAt"] is not None

    response = await client.post(f"/api/sms/exams/{exam['id']}/publish", headers=campus.admin_headers)
    assert response.status_code == 409
    assert response.json()["message"] == "Exam is already published"

    # Admins are locked out too
    for headers in (auth(grading["teacher"]), campus.admin_headers):
        response = await client.post(url, json=[_mark(grading["alice"], campus, 90)], headers=headers)
        assert response.status_code == 403
        assert response.json()["message"] == GRADES_LOCKED_MESSAGE

    response = await client.get(url, headers=campus.admin_headers)
    assert [m["marksObtained"] for m in response.json()] == [70]


@pytest.mark.asyncio
async def test_students_and_parents_see_published_marks_only(client: AsyncClient, campus, grading, auth) -> None:
    exam = await _create_exam(client, campus)
    url = f"/api/sms/exams/{exam['id']}/marks"
    await client.post(
        url,
        json=[_mark(grading["alice"], campus, 70), _mark(grading["bob"], campus, 55)],
        headers=auth(grading["teacher"]),
    )

    response = await client.get(url, headers=auth(grading["alice"]))
    assert response.status_code == 200
    assert response.json() == []

    await client.post(f"/api/sms/exams/{exam['id']}/publish", headers=campus.admin_headers)

    response = await client.get(url, headers=auth(grading["alice"]))
    assert [m["studentId"] for m in response.json()] == [str(grading["alice"].id)]

    response = await client.get(url, headers=auth(grading["bob"]))
    assert [m["marksObtained"] for m in response.json()] == [55]

    response = await client.get(url, headers=auth(grading["parent"]))
    assert [m["studentId"] for m in response.json()] == [str(grading["alice"].id)]


@pytest.mark.asyncio
async def test_marks_for_foreign_student_are_rejected(client: AsyncClient, factory, campus, grading, auth) -> None:
    exam = await _create_exam(client, campus)
    outsider = await factory.student(await factory.school("Elsewhere"))

    response = await client.post(
        f"/api/sms/exams/{exam['id']}/marks",
        json=[_mark(outsider, campus, 50)],
        headers=auth(grading["teacher"]),
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Student not found"


@pytest.mark.asyncio
async def test_exam_dates_are_validated(client: AsyncClient, campus) -> None:
    response = await client.post(
        "/api/sms/exams",
        json={
            "academicYearId": str(campus.year.id),
            "termId": str(campus.term.id),
            "name": "Backwards",
            "startDate": "2025-04-05",
            "endDate": "2025-04-01",
        },
        headers=campus.admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid input"
