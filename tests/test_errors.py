import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_validation_errors_use_message_envelope(client: AsyncClient) -> None:
    response = await client.post("/api/auth/register", json={"email": "not-an-email", "role": "wizard"})
    assert response.status_code == 400
    data = response.json()
    assert data["message"] == "Invalid input"
    fields = {e["field"] for e in data["errors"]}
    assert {"email", "password", "name", "role"} <= fields
    assert all(e["message"] for e in data["errors"])


@pytest.mark.asyncio
async def test_invalid_path_parameter(client: AsyncClient, campus) -> None:
    response = await client.post("/api/sms/exams/not-a-uuid/publish", headers=campus.admin_headers)
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "exam_id"


@pytest.mark.asyncio
async def test_bad_token_is_unauthorized(client: AsyncClient) -> None:
    response = await client.get("/api/sms/classes", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json() == {"message": "Invalid or expired token"}


@pytest.mark.asyncio
async def test_unknown_route(client: AsyncClient) -> None:
    response = await client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"message": "Not Found"}


@pytest.mark.asyncio
async def test_missing_entity_message(client: AsyncClient, campus) -> None:
    response = await client.delete(
        "/api/sms/subjects/00000000-0000-0000-0000-000000000000",
        headers=campus.admin_headers,
    )
    assert response.status_code == 404
    assert response.json() == {"message": "Subject not found"}
