"""
PayFlow - Category Tests
"""

import pytest
from httpx import AsyncClient


async def _create_category(client, headers, **body):
    body.setdefault("name", "Utilities")
    response = await client.post("/api/categories", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.anyio
async def test_create_category_with_defaults(client: AsyncClient, register):
    ana = await register()
    category = await _create_category(client, ana.headers)
    assert category["name"] == "Utilities"
    assert category["color"] == "#3b82f6"
    assert category["icon"] == "CreditCard"
    assert category["userId"] == ana.user["id"]


@pytest.mark.anyio
async def test_list_only_own_categories(client: AsyncClient, register):
    ana = await register()
    bob = await register("Bob", "bob@x.com")
    await _create_category(client, ana.headers, name="Rent")
    await _create_category(client, bob.headers, name="Car")

    response = await client.get("/api/categories", headers=ana.headers)
    assert response.status_code == 200
    assert [c["name"] for c in response.json()] == ["Rent"]


@pytest.mark.anyio
async def test_update_category(client: AsyncClient, register):
    ana = await register()
    category = await _create_category(client, ana.headers)
    response = await client.put(
        f"/api/categories/{category['id']}",
        json={"color": "#ff0000"},
        headers=ana.headers,
    )
    assert response.status_code == 200
    assert response.json()["color"] == "#ff0000"
    assert response.json()["name"] == "Utilities"


@pytest.mark.anyio
async def test_category_name_required(client: AsyncClient, register):
    ana = await register()
    response = await client.post("/api/categories", json={"color": "#fff"}, headers=ana.headers)
    assert response.status_code == 400

    category = await _create_category(client, ana.headers)
    response = await client.put(
        f"/api/categories/{category['id']}",
        json={"name": None},
        headers=ana.headers,
    )
    assert response.status_code == 400


@pytest.mark.anyio
async def test_missing_category_is_404(client: AsyncClient, register):
    ana = await register()
    response = await client.get("/api/categories/nope", headers=ana.headers)
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.anyio
@pytest.mark.parametrize("method", ["get", "put", "delete"])
async def test_cross_owner_category_access_is_403(client: AsyncClient, register, method):
    ana = await register()
    bob = await register("Bob", "bob@x.com")
    category = await _create_category(client, ana.headers)

    kwargs = {"json": {"name": "Stolen"}} if method == "put" else {}
    response = await client.request(
        method.upper(),
        f"/api/categories/{category['id']}",
        headers=bob.headers,
        **kwargs,
    )
    assert response.status_code == 403
    assert "Utilities" not in response.text


@pytest.mark.anyio
async def test_delete_category_detaches_bills(client: AsyncClient, register):
    ana = await register()
    category = await _create_category(client, ana.headers)
    bill = await client.post(
        "/api/bills",
        json={
            "name": "Power",
            "amount": 5000,
            "dueDate": "2030-01-01T00:00:00Z",
            "categoryId": category["id"],
        },
        headers=ana.headers,
    )
    assert bill.status_code == 201

    response = await client.delete(f"/api/categories/{category['id']}", headers=ana.headers)
    assert response.status_code == 204

    response = await client.get(f"/api/bills/{bill.json()['id']}", headers=ana.headers)
    assert response.status_code == 200
    assert response.json()["categoryId"] is None
