"""
PayFlow - Bill Tests
CRUD, ownership, the category invariant and the upcoming-bills view.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from payflow.models.schemas import MAX_AMOUNT


def _days(n: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=n)).isoformat()


async def _create_bill(client, headers, **body):
    body.setdefault("name", "Rent")
    body.setdefault("amount", 150000)
    body.setdefault("dueDate", _days(10))
    response = await client.post("/api/bills", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# CRUD
# =============================================================================

@pytest.mark.anyio
async def test_create_and_get_bill(client: AsyncClient, register):
    """Owner reads back the exact amount; another user is refused."""
    ana = await register()
    bob = await register("Bob", "bob@x.com")
    bill = await _create_bill(client, ana.headers, name="Rent", amount=150000)

    response = await client.get(f"/api/bills/{bill['id']}", headers=ana.headers)
    assert response.status_code == 200
    assert response.json()["amount"] == 150000
    assert response.json()["isPaid"] is False
    assert response.json()["userId"] == ana.user["id"]

    response = await client.get(f"/api/bills/{bill['id']}", headers=bob.headers)
    assert response.status_code == 403
    assert "150000" not in response.text


@pytest.mark.anyio
async def test_user_id_in_body_is_ignored(client: AsyncClient, register):
    ana = await register()
    bob = await register("Bob", "bob@x.com")
    bill = await _create_bill(client, ana.headers, userId=bob.user["id"])
    assert bill["userId"] == ana.user["id"]

    response = await client.put(
        f"/api/bills/{bill['id']}",
        json={"userId": bob.user["id"], "isPaid": True},
        headers=ana.headers,
    )
    assert response.status_code == 200
    assert response.json()["userId"] == ana.user["id"]
    assert response.json()["isPaid"] is True


@pytest.mark.anyio
async def test_list_bills_latest_due_first(client: AsyncClient, register):
    ana = await register()
    bob = await register("Bob", "bob@x.com")
    await _create_bill(client, ana.headers, name="Soon", dueDate=_days(1))
    await _create_bill(client, ana.headers, name="Later", dueDate=_days(30))
    await _create_bill(client, bob.headers, name="Not mine")

    response = await client.get("/api/bills", headers=ana.headers)
    assert response.status_code == 200
    assert [b["name"] for b in response.json()] == ["Later", "Soon"]


@pytest.mark.anyio
async def test_partial_update_keeps_other_fields(client: AsyncClient, register):
    ana = await register()
    bill = await _create_bill(client, ana.headers, description="Monthly")
    response = await client.put(f"/api/bills/{bill['id']}", json={"amount": 99}, headers=ana.headers)
    assert response.status_code == 200
    data = response.json()
    assert data["amount"] == 99
    assert data["name"] == "Rent"
    assert data["description"] == "Monthly"


@pytest.mark.anyio
async def test_delete_bill(client: AsyncClient, register):
    ana = await register()
    bill = await _create_bill(client, ana.headers)
    response = await client.delete(f"/api/bills/{bill['id']}", headers=ana.headers)
    assert response.status_code == 204
    response = await client.get(f"/api/bills/{bill['id']}", headers=ana.headers)
    assert response.status_code == 404


@pytest.mark.anyio
async def test_missing_bill_is_404(client: AsyncClient, register):
    ana = await register()
    for method in ("GET", "PUT", "DELETE"):
        kwargs = {"json": {"amount": 1}} if method == "PUT" else {}
        response = await client.request(method, "/api/bills/nope", headers=ana.headers, **kwargs)
        assert response.status_code == 404


# =============================================================================
# Ownership
# =============================================================================

@pytest.mark.anyio
@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
async def test_cross_owner_bill_access_is_403(client: AsyncClient, register, method):
    ana = await register()
    bob = await register("Bob", "bob@x.com")
    bill = await _create_bill(client, ana.headers)

    kwargs = {"json": {"isPaid": True}} if method == "PUT" else {}
    response = await client.request(method, f"/api/bills/{bill['id']}", headers=bob.headers, **kwargs)
    assert response.status_code == 403

    # Untouched
    response = await client.get(f"/api/bills/{bill['id']}", headers=ana.headers)
    assert response.status_code == 200
    assert response.json()["isPaid"] is False


@pytest.mark.anyio
async def test_bill_cannot_use_someone_elses_category(client: AsyncClient, register):
    ana = await register()
    bob = await register("Bob", "bob@x.com")
    bobs = await client.post("/api/categories", json={"name": "Bob's"}, headers=bob.headers)

    response = await client.post(
        "/api/bills",
        json={"name": "Rent", "amount": 1, "dueDate": _days(3), "categoryId": bobs.json()["id"]},
        headers=ana.headers,
    )
    assert response.status_code == 400
    foreign_message = response.json()["message"]

    response = await client.post(
        "/api/bills",
        json={"name": "Rent", "amount": 1, "dueDate": _days(3), "categoryId": "no-such-category"},
        headers=ana.headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == foreign_message

    bill = await _create_bill(client, ana.headers)
    response = await client.put(
        f"/api/bills/{bill['id']}",
        json={"categoryId": bobs.json()["id"]},
        headers=ana.headers,
    )
    assert response.status_code == 400


@pytest.mark.anyio
async def test_bill_with_own_category(client: AsyncClient, register):
    ana = await register()
    category = await client.post("/api/categories", json={"name": "Home"}, headers=ana.headers)
    bill = await _create_bill(client, ana.headers, categoryId=category.json()["id"])
    assert bill["categoryId"] == category.json()["id"]

    response = await client.put(f"/api/bills/{bill['id']}", json={"categoryId": None}, headers=ana.headers)
    assert response.status_code == 200
    assert response.json()["categoryId"] is None


# =============================================================================
# Validation
# =============================================================================

@pytest.mark.anyio
@pytest.mark.parametrize("amount", [150.5, "150", -1, None, True])
async def test_amount_must_be_non_negative_integer(client: AsyncClient, register, amount):
    ana = await register()
    response = await client.post(
        "/api/bills",
        json={"name": "Rent", "amount": amount, "dueDate": _days(3)},
        headers=ana.headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


@pytest.mark.anyio
async def test_amount_upper_bound(client: AsyncClient, register):
    """Largest amount the bills.amount column holds is accepted; one more is 400."""
    ana = await register()
    bill = await _create_bill(client, ana.headers, amount=MAX_AMOUNT)
    assert bill["amount"] == 2_147_483_647

    response = await client.post(
        "/api/bills",
        json={"name": "Rent", "amount": MAX_AMOUNT + 1, "dueDate": _days(3)},
        headers=ana.headers,
    )
    assert response.status_code == 400
    assert response.json()["details"][0]["loc"] == ["body", "amount"]

    response = await client.put(
        f"/api/bills/{bill['id']}", json={"amount": 3_000_000_000}, headers=ana.headers
    )
    assert response.status_code == 400


@pytest.mark.anyio
async def test_required_bill_fields(client: AsyncClient, register):
    ana = await register()
    response = await client.post("/api/bills", json={"amount": 5}, headers=ana.headers)
    assert response.status_code == 400
    locs = {tuple(d["loc"]) for d in response.json()["details"]}
    assert ("body", "name") in locs
    assert ("body", "dueDate") in locs


@pytest.mark.anyio
async def test_update_cannot_null_required_fields(client: AsyncClient, register):
    ana = await register()
    bill = await _create_bill(client, ana.headers)
    response = await client.put(f"/api/bills/{bill['id']}", json={"name": None}, headers=ana.headers)
    assert response.status_code == 400


@pytest.mark.anyio
async def test_naive_due_date_is_treated_as_utc(client: AsyncClient, register):
    ana = await register()
    bill = await _create_bill(client, ana.headers, dueDate="2030-06-01T12:00:00")
    assert datetime.fromisoformat(bill["dueDate"].replace("Z", "+00:00")) == datetime(
        2030, 6, 1, 12, tzinfo=timezone.utc
    )


# =============================================================================
# Upcoming
# =============================================================================

@pytest.mark.anyio
async def test_upcoming_bills(client: AsyncClient, register):
    """Only unpaid future bills, soonest first."""
    ana = await register()
    five = await _create_bill(client, ana.headers, name="Five days", dueDate=_days(5))
    two = await _create_bill(client, ana.headers, name="Two days", dueDate=_days(2))
    await _create_bill(client, ana.headers, name="Paid", dueDate=_days(1), isPaid=True)
    await _create_bill(client, ana.headers, name="Overdue", dueDate=_days(-1))

    response = await client.get("/api/bills/upcoming", params={"limit": 10}, headers=ana.headers)
    assert response.status_code == 200
    assert [b["id"] for b in response.json()] == [two["id"], five["id"]]


@pytest.mark.anyio
async def test_upcoming_respects_limit(client: AsyncClient, register):
    ana = await register()
    for n in range(1, 5):
        await _create_bill(client, ana.headers, name=f"Bill {n}", dueDate=_days(n))

    response = await client.get("/api/bills/upcoming", params={"limit": 2}, headers=ana.headers)
    assert [b["name"] for b in response.json()] == ["Bill 1", "Bill 2"]

    response = await client.get("/api/bills/upcoming", params={"limit": 0}, headers=ana.headers)
    assert response.status_code == 400
