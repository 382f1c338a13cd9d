"""
In-memory storage backend (development and tests).
"""

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from payflow.core.errors import ConflictError
from payflow.services.storage.base import (
    BILL_MUTABLE_FIELDS,
    CATEGORY_MUTABLE_FIELDS,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    DEFAULT_UPCOMING_LIMIT,
    BillRecord,
    CategoryRecord,
    Storage,
    UserRecord,
    as_utc,
    check_fields,
    utcnow,
)


class MemoryStorage(Storage):
    """Dict-backed storage. Returned records are copies."""

    def __init__(self):
        self._users: dict[str, UserRecord] = {}
        self._categories: dict[str, CategoryRecord] = {}
        self._bills: dict[str, BillRecord] = {}
        self._lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    async def ping(self) -> bool:
        return True

    # Users

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> UserRecord:
        email = email.strip().lower()
        async with self._lock:
            if any(u.email == email for u in self._users.values()):
                raise ConflictError("Email already in use")
            user = UserRecord(
                id=user_id or str(uuid.uuid4()),
                name=name,
                email=email,
                password_hash=password_hash,
                created_at=utcnow(),
            )
            if user.id in self._users:
                raise ConflictError("User already exists")
            self._users[user.id] = user
            return replace(user)

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        email = email.strip().lower()
        for user in self._users.values():
            if user.email == email:
                return replace(user)
        return None

    # Categories

    async def list_categories(self, user_id: str) -> list[CategoryRecord]:
        categories = [c for c in self._categories.values() if c.user_id == user_id]
        categories.sort(key=lambda c: c.name.lower())
        return [replace(c) for c in categories]

    async def get_category(self, category_id: str) -> Optional[CategoryRecord]:
        category = self._categories.get(category_id)
        return replace(category) if category else None

    async def create_category(
        self,
        user_id: str,
        name: str,
        color: Optional[str] = DEFAULT_CATEGORY_COLOR,
        icon: Optional[str] = DEFAULT_CATEGORY_ICON,
    ) -> CategoryRecord:
        category = CategoryRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            color=color,
            icon=icon,
            created_at=utcnow(),
        )
        async with self._lock:
            self._categories[category.id] = category
        return replace(category)

    async def update_category(self, category_id: str, changes: dict[str, Any]) -> Optional[CategoryRecord]:
        check_fields(changes, CATEGORY_MUTABLE_FIELDS)
        async with self._lock:
            category = self._categories.get(category_id)
            if category is None:
                return None
            updated = replace(category, **changes)
            self._categories[category_id] = updated
            return replace(updated)

    async def delete_category(self, category_id: str) -> bool:
        async with self._lock:
            if self._categories.pop(category_id, None) is None:
                return False
            for bill_id, bill in self._bills.items():
                if bill.category_id == category_id:
                    self._bills[bill_id] = replace(bill, category_id=None)
            return True

    # Bills

    async def list_bills(self, user_id: str) -> list[BillRecord]:
        bills = [b for b in self._bills.values() if b.user_id == user_id]
        bills.sort(key=lambda b: b.due_date, reverse=True)
        return [replace(b) for b in bills]

    async def get_bill(self, bill_id: str) -> Optional[BillRecord]:
        bill = self._bills.get(bill_id)
        return replace(bill) if bill else None

    async def create_bill(
        self,
        user_id: str,
        name: str,
        amount: int,
        due_date: datetime,
        is_paid: bool = False,
        description: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> BillRecord:
        bill = BillRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            amount=amount,
            due_date=as_utc(due_date),
            is_paid=is_paid,
            description=description,
            category_id=category_id,
            created_at=utcnow(),
        )
        async with self._lock:
            self._bills[bill.id] = bill
        return replace(bill)

    async def update_bill(self, bill_id: str, changes: dict[str, Any]) -> Optional[BillRecord]:
        check_fields(changes, BILL_MUTABLE_FIELDS)
        if changes.get("due_date") is not None:
            changes = {**changes, "due_date": as_utc(changes["due_date"])}
        async with self._lock:
            bill = self._bills.get(bill_id)
            if bill is None:
                return None
            updated = replace(bill, **changes)
            self._bills[bill_id] = updated
            return replace(updated)

    async def delete_bill(self, bill_id: str) -> bool:
        async with self._lock:
            return self._bills.pop(bill_id, None) is not None

    async def get_upcoming_bills(
        self,
        user_id: str,
        limit: int = DEFAULT_UPCOMING_LIMIT,
        now: Optional[datetime] = None,
    ) -> list[BillRecord]:
        now = as_utc(now) if now else utcnow()
        upcoming = [
            b for b in self._bills.values()
            if b.user_id == user_id and not b.is_paid and b.due_date > now
        ]
        upcoming.sort(key=lambda b: b.due_date)
        return [replace(b) for b in upcoming[:limit]]

    # Maintenance

    async def clear_all_data(self) -> dict[str, int]:
        async with self._lock:
            counts = {
                "bills": len(self._bills),
                "categories": len(self._categories),
                "users": len(self._users),
            }
            self._bills.clear()
            self._categories.clear()
            self._users.clear()
        return counts
