"""
PayFlow Storage Service - Base Interface
Abstract base class for all storage backends.

Contract:
- Every operation is async.
- "Not found" is ``None`` (or ``False`` for deletes), never an exception.
- Exceptions are reserved for real backend failures.
- Updates only touch whitelisted fields; ``id`` and ``user_id`` are immutable.
- Concurrent updates to the same record are last-write-wins.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

DEFAULT_CATEGORY_COLOR = "#3b82f6"
DEFAULT_CATEGORY_ICON = "CreditCard"
DEFAULT_UPCOMING_LIMIT = 10

CATEGORY_MUTABLE_FIELDS = frozenset({"name", "color", "icon"})
BILL_MUTABLE_FIELDS = frozenset({
    "name", "description", "amount", "due_date", "is_paid", "category_id",
})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalise to aware UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Records
# =============================================================================

@dataclass
class UserRecord:
    id: str
    name: str
    email: str
    created_at: datetime
    password_hash: Optional[str] = None


@dataclass
class CategoryRecord:
    id: str
    user_id: str
    name: str
    color: Optional[str]
    icon: Optional[str]
    created_at: datetime


@dataclass
class BillRecord:
    """A bill. ``amount`` is in minor currency units (cents)."""
    id: str
    user_id: str
    name: str
    amount: int
    due_date: datetime
    is_paid: bool
    created_at: datetime
    description: Optional[str] = None
    category_id: Optional[str] = None


def check_fields(changes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")


# =============================================================================
# Storage Interface
# =============================================================================

class Storage(ABC):
    """User, category and bill persistence."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return backend name: memory, database"""

    async def initialize(self) -> None:
        """Prepare the backend (create tables, open pools)."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check the backend is reachable."""

    # =========================================================================
    # Users
    # =========================================================================

    @abstractmethod
    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> UserRecord:
        """Create a user. Raises ConflictError if the email is taken."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        pass

    # =========================================================================
    # Categories
    # =========================================================================

    @abstractmethod
    async def list_categories(self, user_id: str) -> list[CategoryRecord]:
        pass

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[CategoryRecord]:
        pass

    @abstractmethod
    async def create_category(
        self,
        user_id: str,
        name: str,
        color: Optional[str] = DEFAULT_CATEGORY_COLOR,
        icon: Optional[str] = DEFAULT_CATEGORY_ICON,
    ) -> CategoryRecord:
        pass

    @abstractmethod
    async def update_category(self, category_id: str, changes: dict[str, Any]) -> Optional[CategoryRecord]:
        pass

    @abstractmethod
    async def delete_category(self, category_id: str) -> bool:
        """Delete a category; bills that referenced it keep existing uncategorised."""

    # =========================================================================
    # Bills
    # =========================================================================

    @abstractmethod
    async def list_bills(self, user_id: str) -> list[BillRecord]:
        """All of a user's bills, latest due date first."""

    @abstractmethod
    async def get_bill(self, bill_id: str) -> Optional[BillRecord]:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    async def update_bill(self, bill_id: str, changes: dict[str, Any]) -> Optional[BillRecord]:
        pass

    @abstractmethod
    async def delete_bill(self, bill_id: str) -> bool:
        pass

    @abstractmethod
    async def get_upcoming_bills(
        self,
        user_id: str,
        limit: int = DEFAULT_UPCOMING_LIMIT,
        now: Optional[datetime] = None,
    ) -> list[BillRecord]:
        """Unpaid bills due after ``now``, soonest first, at most ``limit``."""

    # =========================================================================
    # Maintenance
    # =========================================================================

    @abstractmethod
    async def clear_all_data(self) -> dict[str, int]:
        """Delete every bill, category and user. Returns counts removed."""
