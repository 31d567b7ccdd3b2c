from datetime import date

import pytest
from httpx import AsyncClient


async def _locked_session(client: AsyncClient, campus, on_date: date, statuses: dict) -> None:
    headers = campus.admin_headers
    response = await client.post(
        "/api/sms/attendance/sessions",
        json={
            "academicYearId": str(campus.year.id),
            "termId": str(campus.term.id),
            "classId": str(campus.grade1.id),
            "sectionId": str(campus.section1.id),
            "date": on_date.isoformat(),
        },
        headers=headers,
    )
    session_id = response.json()["id"]
    entries = [{"studentId": str(student.id), "status": status} for student, status in statuses.items()]
    await client.post(f"/api/sms/attendance/sessions/{session_id}/entries", json={"entries": entries}, headers=headers)
    await client.post(f"/api/sms/attendance/sessions/{session_id}/submit", headers=headers)
    await client.post(f"/api/sms/attendance/sessions/{session_id}/lock", headers=headers)


@pytest.mark.asyncio
async def test_attendance_report_counts_locked_sessions(client: AsyncClient, factory, campus) -> None:
    alice = await factory.student(campus.school, "Alice")
    bob = await factory.student(campus.school, "Bob")
    await _locked_session(client, campus, date(2025, 3, 10), {alice: "present", bob: "absent"})
    await _locked_session(client, campus, date(2025, 3, 11), {alice: "late", bob: "present"})
    await _locked_session(client, campus, date(2025, 3, 12), {alice: "absent", bob: "excused"})

    response = await client.get("/api/sms/reports/attendance", headers=campus.admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["academicYearId"] == str(campus.year.id)
    alice_row, bob_row = data["rows"]
    assert alice_row["studentName"] == "Alice"
    assert (alice_row["present"], alice_row["late"], alice_row["absent"], alice_row["total"]) == (1, 1, 1, 3)
    assert alice_row["presenceRate"] == 66.7
    assert bob_row["presenceRate"] == 33.3


@pytest.mark.asyncio
async def test_summary_cards(client: AsyncClient, factory, campus) -> None:
    student = await factory.student(campus.school)
    await factory.enroll(student, campus.year, campus.grade1, campus.section1)
    await factory.employee(campus.school, "teacher")

    for amount in ("120.50", "79.50"):
        response = await client.post(
            "/api/sms/expenses",
            json={"category": "Supplies", "title": "Chalk", "amount": amount, "date": "2025-02-01"},
            headers=campus.admin_headers,
        )
        assert response.status_code == 201

    response = await client.get("/api/sms/reports/summary", headers=campus.admin_headers)
    assert response.status_code == 200
    cards = response.json()["cards"]
    assert cards["students"] == "1"
    assert cards["employees"] == "1"
    assert cards["pendingAdmissions"] == "0"
    assert cards["totalExpenses"] == "200.00"
    assert cards["feeCollection"] == "0.00"
    assert cards["openInvoices"] == "0"
    assert cards["examsCount"] == "0"


@pytest.mark.asyncio
async def test_exam_report_percentages(client: AsyncClient, factory, campus) -> None:
    alice = await factory.student(campus.school, "Alice")
    science = await factory.subject(campus.school, "Science", "SCI")
    response = await client.post(
        "/api/sms/exams",
        json={"academicYearId": str(campus.year.id), "termId": str(campus.term.id), "name": "Finals"},
        headers=campus.admin_headers,
    )
    exam_id = response.json()["id"]
    await client.post(
        f"/api/sms/exams/{exam_id}/marks",
        json=[
            {"studentId": str(alice.id), "subjectId": str(campus.subject.id), "marksObtained": 45, "totalMarks": 50},
            {"studentId": str(alice.id), "subjectId": str(science.id), "marksObtained": 30, "totalMarks": 50},
        ],
        headers=campus.admin_headers,
    )

    response = await client.get(f"/api/sms/reports/exams/{exam_id}", headers=campus.admin_headers)
    assert response.status_code == 200
    (row,) = response.json()["rows"]
    assert (row["subjects"], row["marksObtained"], row["totalMarks"], row["percentage"]) == (2, 75.0, 100.0, 75.0)


@pytest.mark.asyncio
async def test_reports_need_view_reports(client: AsyncClient, factory, campus, auth) -> None:
    await factory.sub_role(campus.school, "teacher", ["mark_attendance"])
    teacher = await factory.employee(campus.school, "teacher")

    response = await client.get("/api/sms/reports/summary", headers=auth(teacher))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_expenses_listing_and_access(client: AsyncClient, factory, campus, auth) -> None:
    teacher = await factory.employee(campus.school, "teacher")
    student = await factory.student(campus.school)

    response = await client.post(
        "/api/sms/expenses",
        json={"category": "Repairs", "title": "Window", "amount": "0.50"},
        headers=campus.admin_headers,
    )
    assert response.status_code == 400

    response = await client.post(
        "/api/sms/expenses",
        json={"category": "Repairs", "title": "Window", "amount": "300"},
        headers=auth(teacher),
    )
    assert response.status_code == 403

    response = await client.post(
        "/api/sms/expenses",
        json={"category": "Repairs", "title": "Window", "amount": "300"},
        headers=campus.admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["recordedBy"] == str(campus.admin.id)

    response = await client.get("/api/sms/expenses", headers=auth(teacher))
    assert response.status_code == 200
    assert [e["title"] for e in response.json()] == ["Window"]

    response = await client.get("/api/sms/expenses", headers=auth(student))
    assert response.status_code == 403
