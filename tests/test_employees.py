"""Tests for employee CRUD and work-week endpoints."""

import pytest
from httpx import AsyncClient

@pytest.mark.asyncio
async def test_create_employee(async_client: AsyncClient):
    """POST /employees should create a new employee."""
    resp = await async_client.post("/api/v1/employees", json={
        "name": "Bob Jones",
        "email": "bob@example.com",
        "department": "Engineering",
        "designation": "Developer",
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "Bob Jones"
    assert data["designation"] == "Developer"
    assert data["is_active"] is True
    assert data["id"] is not None


@pytest.mark.asyncio
async def test_create_employee_blank_name_rejected(async_client: AsyncClient):
    """A whitespace-only name fails validation."""
    resp = await async_client.post("/api/v1/employees", json={"name": "   "})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_employees(async_client: AsyncClient):
    """GET /employees should return all active employees."""
    await async_client.post("/api/v1/employees", json={"name": "E1"})
    await async_client.post("/api/v1/employees", json={"name": "E2"})
    resp = await async_client.get("/api/v1/employees")
    assert resp.status_code == 200
    data = resp.json()
    assert len(data) >= 2


@pytest.mark.asyncio
async def test_list_employees_pagination(async_client: AsyncClient):
    """GET /employees with skip/limit should paginate."""
    for i in range(5):
        await async_client.post("/api/v1/employees", json={"name": f"P{i}"})
    resp = await async_client.get("/api/v1/employees?skip=2&limit=2")
    assert resp.status_code == 200
    assert len(resp.json()) == 2


@pytest.mark.asyncio
async def test_search_employees(async_client: AsyncClient):
    """Search matches by name and treats LIKE wildcards literally."""
    await async_client.post("/api/v1/employees", json={"name": "Anita Rao"})
    await async_client.post("/api/v1/employees", json={"name": "Rahul Verma"})
    resp = await async_client.get("/api/v1/employees?search=anita")
    assert [e["name"] for e in resp.json()] == ["Anita Rao"]
    resp = await async_client.get("/api/v1/employees?search=%25")
    assert resp.json() == []


@pytest.mark.asyncio
async def test_get_employee_by_id(async_client: AsyncClient):
    """GET /employees/{id} should return one employee."""
    create = await async_client.post("/api/v1/employees", json={"name": "Solo"})
    eid = create.json()["id"]
    resp = await async_client.get(f"/api/v1/employees/{eid}")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Solo"


@pytest.mark.asyncio
async def test_get_employee_not_found(async_client: AsyncClient):
    """Requesting a non-existent employee should return 404."""
    resp = await async_client.get("/api/v1/employees/9999")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_employee(async_client: AsyncClient):
    """PUT /employees/{id} should update employee details."""
    create = await async_client.post("/api/v1/employees", json={"name": "Old Name"})
    eid = create.json()["id"]
    resp = await async_client.put(f"/api/v1/employees/{eid}", json={"name": "New Name", "department": "Sales"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "New Name"
    assert data["department"] == "Sales"


@pytest.mark.asyncio
async def test_delete_employee_soft(async_client: AsyncClient):
    """DELETE /employees/{id} should soft-delete (deactivate)."""
    create = await async_client.post("/api/v1/employees", json={"name": "Del Me"})
    eid = create.json()["id"]
    resp = await async_client.delete(f"/api/v1/employees/{eid}")
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    # Should no longer appear in active list
    listed = await async_client.get("/api/v1/employees")
    assert eid not in [e["id"] for e in listed.json()]
    everyone = await async_client.get("/api/v1/employees?include_inactive=true")
    assert eid in [e["id"] for e in everyone.json()]


@pytest.mark.asyncio
async def test_work_days_default_and_update(async_client: AsyncClient):
    """Work week defaults to Mon–Fri; PUT applies a partial update."""
    create = await async_client.post("/api/v1/employees", json={"name": "Weekender"})
    eid = create.json()["id"]

    resp = await async_client.get(f"/api/v1/employees/{eid}/work-days")
    assert resp.status_code == 200
    assert resp.json()["saturday"] is False
    assert resp.json()["friday"] is True

    resp = await async_client.put(f"/api/v1/employees/{eid}/work-days", json={"saturday": True})
    assert resp.status_code == 200
    assert resp.json()["saturday"] is True
    assert resp.json()["monday"] is True

    resp = await async_client.get(f"/api/v1/employees/{eid}/work-days")
    assert resp.json()["saturday"] is True


@pytest.mark.asyncio
async def test_work_days_unknown_employee(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/employees/9999/work-days")
    assert resp.status_code == 404
