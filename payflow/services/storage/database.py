"""
Relational storage backend (PostgreSQL/Supabase in production, SQLite locally).
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from payflow.core.database import create_engine, create_session_factory, init_db
from payflow.core.errors import ConflictError, StorageError
from payflow.models.models import Bill, Category, User
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

logger = logging.getLogger(__name__)


def _user_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        created_at=as_utc(row.created_at),
    )


def _category_record(row: Category) -> CategoryRecord:
    return CategoryRecord(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        color=row.color,
        icon=row.icon,
        created_at=as_utc(row.created_at),
    )


def _bill_record(row: Bill) -> BillRecord:
    return BillRecord(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        amount=row.amount,
        due_date=as_utc(row.due_date),
        is_paid=bool(row.is_paid),
        description=row.description,
        category_id=row.category_id,
        created_at=as_utc(row.created_at),
    )


class DatabaseStorage(Storage):
    """SQLAlchemy async storage."""

    def __init__(self, database_url: str, production: bool = False, echo: bool = False):
        self.engine: AsyncEngine = create_engine(database_url, production=production, echo=echo)
        self._session_factory = create_session_factory(self.engine)

    @property
    def backend_name(self) -> str:
        return "database"

    async def initialize(self) -> None:
        await init_db(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Transactional session; backend faults surface as StorageError."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Storage failure during %s", operation, exc_info=True)
                raise StorageError(operation) from exc

    async def ping(self) -> bool:
        try:
            async with self._session("ping") as session:
                await session.execute(text("SELECT 1"))
            return True
        except StorageError:
            return False

    # =========================================================================
    # Users
    # =========================================================================

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> UserRecord:
        row = User(
            id=user_id or str(uuid.uuid4()),
            name=name,
            email=email.strip().lower(),
            password_hash=password_hash,
            created_at=utcnow(),
        )
        try:
            async with self._session("create_user") as session:
                session.add(row)
        except IntegrityError as exc:
            raise ConflictError("Email already in use") from exc
        return _user_record(row)

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with self._session("get_user") as session:
            row = await session.get(User, user_id)
            return _user_record(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._session("get_user_by_email") as session:
            result = await session.execute(
                select(User).where(User.email == email.strip().lower())
            )
            row = result.scalar_one_or_none()
            return _user_record(row) if row else None

    # =========================================================================
    # Categories
    # =========================================================================

    async def list_categories(self, user_id: str) -> list[CategoryRecord]:
        async with self._session("list_categories") as session:
            result = await session.execute(
                select(Category).where(Category.user_id == user_id).order_by(Category.name)
            )
            return [_category_record(row) for row in result.scalars().all()]

    async def get_category(self, category_id: str) -> Optional[CategoryRecord]:
        async with self._session("get_category") as session:
            row = await session.get(Category, category_id)
            return _category_record(row) if row else None

    async def create_category(
        self,
        user_id: str,
        name: str,
        color: Optional[str] = DEFAULT_CATEGORY_COLOR,
        icon: Optional[str] = DEFAULT_CATEGORY_ICON,
    ) -> CategoryRecord:
        row = Category(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            color=color,
            icon=icon,
            created_at=utcnow(),
        )
        async with self._session("create_category") as session:
            session.add(row)
        return _category_record(row)

    async def update_category(self, category_id: str, changes: dict[str, Any]) -> Optional[CategoryRecord]:
        check_fields(changes, CATEGORY_MUTABLE_FIELDS)
        async with self._session("update_category") as session:
            row = await session.get(Category, category_id)
            if row is None:
                return None
            for field, value in changes.items():
                setattr(row, field, value)
            await session.flush()
            return _category_record(row)

    async def delete_category(self, category_id: str) -> bool:
        async with self._session("delete_category") as session:
            row = await session.get(Category, category_id)
            if row is None:
                return False
            # SQLite does not enforce ON DELETE SET NULL without the FK pragma
            await session.execute(
                update(Bill).where(Bill.category_id == category_id).values(category_id=None)
            )
            await session.delete(row)
            return True

    # =========================================================================
    # Bills
    # =========================================================================

    async def list_bills(self, user_id: str) -> list[BillRecord]:
        async with self._session("list_bills") as session:
            result = await session.execute(
                select(Bill).where(Bill.user_id == user_id).order_by(Bill.due_date.desc())
            )
            return [_bill_record(row) for row in result.scalars().all()]

    async def get_bill(self, bill_id: str) -> Optional[BillRecord]:
        async with self._session("get_bill") as session:
            row = await session.get(Bill, bill_id)
            return _bill_record(row) if row else None

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
        row = Bill(
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
        async with self._session("create_bill") as session:
            session.add(row)
        return _bill_record(row)

    async def update_bill(self, bill_id: str, changes: dict[str, Any]) -> Optional[BillRecord]:
        check_fields(changes, BILL_MUTABLE_FIELDS)
        async with self._session("update_bill") as session:
            row = await session.get(Bill, bill_id)
            if row is None:
                return None
            for field, value in changes.items():
                if field == "due_date" and value is not None:
                    value = as_utc(value)
                setattr(row, field, value)
            await session.flush()
            return _bill_record(row)

    async def delete_bill(self, bill_id: str) -> bool:
        async with self._session("delete_bill") as session:
            result = await session.execute(delete(Bill).where(Bill.id == bill_id))
            return result.rowcount > 0

    async def get_upcoming_bills(
        self,
        user_id: str,
        limit: int = DEFAULT_UPCOMING_LIMIT,
        now: Optional[datetime] = None,
    ) -> list[BillRecord]:
        now = as_utc(now) if now else utcnow()
        async with self._session("get_upcoming_bills") as session:
            result = await session.execute(
                select(Bill)
                .where(
                    Bill.user_id == user_id,
                    Bill.is_paid.is_(False),
                    Bill.due_date > now,
                )
                .order_by(Bill.due_date.asc())
                .limit(limit)
            )
            return [_bill_record(row) for row in result.scalars().all()]

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def clear_all_data(self) -> dict[str, int]:
        async with self._session("clear_all_data") as session:
            bills = await session.execute(delete(Bill))
            categories = await session.execute(delete(Category))
            users = await session.execute(delete(User))
            return {
                "bills": bills.rowcount,
                "categories": categories.rowcount,
                "users": users.rowcount,
            }
