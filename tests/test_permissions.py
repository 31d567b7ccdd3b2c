from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.auth.rbac import can_perform
from app.auth.schemas import AdminActor, EmployeeActor, ParentActor, StudentActor


def test_can_perform_by_role() -> None:
    school_id = uuid4()
    admin = AdminActor(id=uuid4(), school_id=school_id)
    teacher = EmployeeActor(id=uuid4(), school_id=school_id, sub_role="teacher", grants=frozenset({"mark_attendance"}))
    student = StudentActor(id=uuid4(), school_id=school_id)
    parent = ParentActor(id=uuid4(), school_id=school_id)

    assert can_perform(admin, "manage_school_settings")
    assert can_perform(teacher, "mark_attendance")
    assert not can_perform(teacher, "edit_grades")
    assert can_perform(student, "submit_assignments")
    assert not can_perform(student, "mark_attendance")
    assert can_perform(parent, "view_payments")
    assert not can_perform(parent, "submit_assignments")


def test_employee_without_sub_role_has_nothing() -> None:
    employee = EmployeeActor(id=uuid4(), school_id=uuid4())
    assert not can_perform(employee, "view_dashboard")


@pytest.mark.asyncio
async def test_replacing_grants_changes_access(client: AsyncClient, factory, campus, auth) -> None:
    role = await factory.sub_role(campus.school, "assistant", [])
    assistant = await factory.employee(campus.school, "assistant")
    sessions_url = "/api/sms/attendance/sessions"

    response = await client.get(sessions_url, headers=auth(assistant))
    assert response.status_code == 403

    response = await client.put(
        "/api/sms/sub-role-grants",
        json={"subRoleId": str(role.id), "permissionKeys": ["view_attendance", "view_attendance"]},
        headers=campus.admin_headers,
    )
    assert response.status_code == 200
    assert [g["permissionKey"] for g in response.json()] == ["view_attendance"]

    # Grants are read per request, no re-login needed
    response = await client.get(sessions_url, headers=auth(assistant))
    assert response.status_code == 200

    response = await client.put(
        "/api/sms/sub-role-grants",
        json={"subRoleId": str(role.id), "permissionKeys": []},
        headers=campus.admin_headers,
    )
    assert response.status_code == 200
    assert response.json() == []

    response = await client.get(sessions_url, headers=auth(assistant))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_permission_key_is_rejected(client: AsyncClient, factory, campus) -> None:
    role = await factory.sub_role(campus.school, "assistant", ["view_attendance"])

    response = await client.put(
        "/api/sms/sub-role-grants",
        json={"subRoleId": str(role.id), "permissionKeys": ["view_attendance", "fly_rockets"]},
        headers=campus.admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "One or more permission keys are invalid"

    response = await client.get(
        "/api/sms/sub-role-grants",
        params={"subRoleId": str(role.id)},
        headers=campus.admin_headers,
    )
    assert [g["permissionKey"] for g in response.json()] == ["view_attendance"]


@pytest.mark.asyncio
async def test_students_cannot_manage_grants(client: AsyncClient, factory, campus, auth) -> None:
    student = await factory.student(campus.school)

    response = await client.get("/api/sms/sub-roles", headers=auth(student))
    assert response.status_code == 403
    assert response.json()["message"] == "Not allowed"


@pytest.mark.asyncio
async def test_student_cannot_mark_attendance(client: AsyncClient, factory, campus, auth) -> None:
    student = await factory.student(campus.school)

    response = await client.get("/api/sms/attendance/sessions", headers=auth(student))
    assert response.status_code == 403
