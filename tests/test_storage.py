"""
PayFlow - Storage Backend Tests
Both backends run the same contract; the database one against SQLite.
"""

from datetime import datetime, timedelta, timezone

import pytest

from payflow.core.errors import ConflictError
from payflow.services.storage.database import DatabaseStorage
from payflow.services.storage.memory import MemoryStorage

NOW = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "database"])
async def storage(request, tmp_path):
    if request.param == "memory":
        backend = MemoryStorage()
    else:
        backend = DatabaseStorage(f"sqlite+aiosqlite:///{tmp_path / 'payflow-test.db'}")
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
async def user(storage):
    return await storage.create_user("Ana", "Ana@X.com", password_hash="hash")


# =============================================================================
# Users
# =============================================================================

@pytest.mark.anyio
async def test_create_and_fetch_user(storage, user):
    assert user.email == "ana@x.com"
    assert (await storage.get_user(user.id)).name == "Ana"
    assert (await storage.get_user_by_email("ANA@x.com")).id == user.id
    assert await storage.get_user("missing") is None


@pytest.mark.anyio
async def test_duplicate_email_conflicts(storage, user):
    with pytest.raises(ConflictError):
        await storage.create_user("Other", "ana@x.com")


@pytest.mark.anyio
async def test_ping(storage):
    assert await storage.ping() is True


# =============================================================================
# Categories
# =============================================================================

@pytest.mark.anyio
async def test_category_lifecycle(storage, user):
    category = await storage.create_category(user.id, "Home")
    assert category.color == "#3b82f6"
    assert category.icon == "CreditCard"

    updated = await storage.update_category(category.id, {"name": "House"})
    assert updated.name == "House"
    assert [c.id for c in await storage.list_categories(user.id)] == [category.id]

    assert await storage.delete_category(category.id) is True
    assert await storage.delete_category(category.id) is False
    assert await storage.update_category(category.id, {"name": "x"}) is None


@pytest.mark.anyio
async def test_update_rejects_immutable_fields(storage, user):
    category = await storage.create_category(user.id, "Home")
    with pytest.raises(ValueError):
        await storage.update_category(category.id, {"user_id": "someone-else"})

    bill = await storage.create_bill(user.id, "Rent", 100, NOW)
    with pytest.raises(ValueError):
        await storage.update_bill(bill.id, {"id": "new-id"})


@pytest.mark.anyio
async def test_deleting_category_keeps_bills(storage, user):
    category = await storage.create_category(user.id, "Home")
    bill = await storage.create_bill(user.id, "Rent", 100, NOW, category_id=category.id)
    await storage.delete_category(category.id)
    assert (await storage.get_bill(bill.id)).category_id is None


# =============================================================================
# Bills
# =============================================================================

@pytest.mark.anyio
async def test_bill_round_trip_keeps_utc(storage, user):
    bill = await storage.create_bill(user.id, "Rent", 150000, NOW, description="Monthly")
    fetched = await storage.get_bill(bill.id)
    assert fetched.amount == 150000
    assert fetched.due_date == NOW
    assert fetched.due_date.tzinfo is not None
    assert fetched.is_paid is False
    assert fetched.description == "Monthly"


@pytest.mark.anyio
async def test_update_and_delete_bill(storage, user):
    bill = await storage.create_bill(user.id, "Rent", 100, NOW)
    updated = await storage.update_bill(bill.id, {"is_paid": True, "amount": 250})
    assert updated.is_paid is True
    assert updated.amount == 250
    assert updated.name == "Rent"

    assert await storage.delete_bill(bill.id) is True
    assert await storage.delete_bill(bill.id) is False
    assert await storage.update_bill(bill.id, {"amount": 1}) is None


@pytest.mark.anyio
async def test_list_bills_latest_due_first(storage, user):
    other = await storage.create_user("Bob", "bob@x.com")
    await storage.create_bill(user.id, "Early", 1, NOW)
    await storage.create_bill(user.id, "Late", 1, NOW + timedelta(days=9))
    await storage.create_bill(other.id, "Bob's", 1, NOW)
    assert [b.name for b in await storage.list_bills(user.id)] == ["Late", "Early"]


@pytest.mark.anyio
async def test_upcoming_bills(storage, user):
    """Two unpaid future bills come back, two-day one first."""
    await storage.create_bill(user.id, "Five", 1, NOW + timedelta(days=5))
    await storage.create_bill(user.id, "Two", 1, NOW + timedelta(days=2))
    await storage.create_bill(user.id, "Paid", 1, NOW + timedelta(days=1), is_paid=True)
    await storage.create_bill(user.id, "Past", 1, NOW - timedelta(days=1))

    upcoming = await storage.get_upcoming_bills(user.id, limit=10, now=NOW)
    assert [b.name for b in upcoming] == ["Two", "Five"]

    upcoming = await storage.get_upcoming_bills(user.id, limit=1, now=NOW)
    assert [b.name for b in upcoming] == ["Two"]


@pytest.mark.anyio
async def test_clear_all_data(storage, user):
    category = await storage.create_category(user.id, "Home")
    await storage.create_bill(user.id, "Rent", 1, NOW, category_id=category.id)
    counts = await storage.clear_all_data()
    assert counts == {"bills": 1, "categories": 1, "users": 1}
    assert await storage.get_user(user.id) is None
