import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import StaffAttendanceEntry, StaffAttendanceSession

SESSIONS_URL = "/api/sms/staff-attendance/sessions"


@pytest.mark.asyncio
async def test_one_staff_session_per_day(
    client: AsyncClient, db_session: AsyncSession, campus
) -> None:
    first = await client.post(SESSIONS_URL, json={"date": "2025-03-10"}, headers=campus.admin_headers)
    assert first.status_code == 201
    assert first.json()["status"] == "draft"
    assert first.json()["markedBy"] == str(campus.admin.id)

    again = await client.post(SESSIONS_URL, json={"date": "2025-03-10"}, headers=campus.admin_headers)
    assert again.status_code == 200
    assert again.json()["id"] == first.json()["id"]

    await client.post(SESSIONS_URL, json={"date": "2025-03-11"}, headers=campus.admin_headers)
    listed = await client.get(SESSIONS_URL, headers=campus.admin_headers)
    assert [s["date"] for s in listed.json()] == ["2025-03-11", "2025-03-10"]

    result = await db_session.execute(select(func.count()).select_from(StaffAttendanceSession))
    assert result.scalar_one() == 2


@pytest.mark.asyncio
async def test_staff_entries_are_upserted(
    client: AsyncClient, db_session: AsyncSession, factory, campus
) -> None:
    teacher = await factory.employee(campus.school, "teacher")
    bursar = await factory.employee(campus.school, "bursar")
    session = await client.post(SESSIONS_URL, json={"date": "2025-03-10"}, headers=campus.admin_headers)
    entries_url = f"{SESSIONS_URL}/{session.json()['id']}/entries"

    response = await client.post(
        entries_url,
        json={
            "entries": [
                {"staffId": str(teacher.id), "status": "present"},
                {"staffId": str(bursar.id), "status": "absent", "note": "Sick leave"},
            ]
        },
        headers=campus.admin_headers,
    )
    assert response.status_code == 200
    assert {e["staffId"]: e["status"] for e in response.json()} == {
        str(teacher.id): "present",
        str(bursar.id): "absent",
    }

    response = await client.post(
        entries_url,
        json={"entries": [{"staffId": str(teacher.id), "status": "late", "note": "Traffic"}]},
        headers=campus.admin_headers,
    )
    assert response.status_code == 200

    response = await client.get(entries_url, headers=campus.admin_headers)
    rows = {e["staffId"]: e for e in response.json()}
    assert (rows[str(teacher.id)]["status"], rows[str(teacher.id)]["note"]) == ("late", "Traffic")
    assert rows[str(teacher.id)]["subRole"] == "teacher"
    assert rows[str(bursar.id)]["status"] == "absent"

    result = await db_session.execute(select(func.count()).select_from(StaffAttendanceEntry))
    assert result.scalar_one() == 2


@pytest.mark.asyncio
async def test_only_school_employees_can_be_marked(
    client: AsyncClient, db_session: AsyncSession, factory, campus
) -> None:
    teacher = await factory.employee(campus.school, "teacher")
    student = await factory.student(campus.school)
    outsider = await factory.employee(await factory.school("Elsewhere"), "teacher")
    session = await client.post(SESSIONS_URL, json={"date": "2025-03-10"}, headers=campus.admin_headers)
    entries_url = f"{SESSIONS_URL}/{session.json()['id']}/entries"

    for stranger in (student, outsider):
        response = await client.post(
            entries_url,
            json={
                "entries": [
                    {"staffId": str(teacher.id), "status": "present"},
                    {"staffId": str(stranger.id), "status": "present"},
                ]
            },
            headers=campus.admin_headers,
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Staff member not found"

    result = await db_session.execute(select(func.count()).select_from(StaffAttendanceEntry))
    assert result.scalar_one() == 0

    response = await client.post(
        entries_url,
        json={"entries": [{"staffId": str(teacher.id), "status": "on_leave"}]},
        headers=campus.admin_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_staff_attendance_is_admin_only_and_tenant_scoped(
    client: AsyncClient, factory, campus, auth
) -> None:
    await factory.sub_role(campus.school, "teacher", ["mark_attendance", "view_attendance"])
    teacher = await factory.employee(campus.school, "teacher")
    response = await client.post(SESSIONS_URL, json={"date": "2025-03-10"}, headers=auth(teacher))
    assert response.status_code == 403

    session = await client.post(SESSIONS_URL, json={"date": "2025-03-10"}, headers=campus.admin_headers)
    other_admin = auth(await factory.admin(await factory.school("Elsewhere")))
    response = await client.get(f"{SESSIONS_URL}/{session.json()['id']}/entries", headers=other_admin)
    assert response.status_code == 404
    assert response.json()["message"] == "Session not found"

    response = await client.get(SESSIONS_URL, headers=other_admin)
    assert response.json() == []
