"""
Bills Router
Owner-scoped CRUD for bills plus the upcoming-bills view.

Every mutation takes ownership from the token. ``user_id`` is never read
from the request body, and a bill may only reference the caller's own
categories.
"""

from fastapi import APIRouter, Depends, Query, Response, status

from payflow.core.authentication import Identity
from payflow.core.deps import ensure_category_owned, ensure_owner, get_storage, require_identity
from payflow.core.errors import NotFoundError
from payflow.core.logging_config import get_logger
from payflow.models.schemas import BillCreate, BillOut, BillUpdate
from payflow.services.storage.base import DEFAULT_UPCOMING_LIMIT, Storage

logger = get_logger(__name__)

router = APIRouter(prefix="/bills", tags=["Bills"])


@router.get("", response_model=list[BillOut])
async def list_bills(
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    """The caller's bills, latest due date first."""
    return [BillOut.model_validate(b) for b in await storage.list_bills(identity.user_id)]


@router.get("/upcoming", response_model=list[BillOut])
async def upcoming_bills(
    limit: int = Query(DEFAULT_UPCOMING_LIMIT, ge=1, le=100),
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    """Unpaid bills due in the future, soonest first."""
    bills = await storage.get_upcoming_bills(identity.user_id, limit=limit)
    return [BillOut.model_validate(b) for b in bills]


@router.get("/{bill_id}", response_model=BillOut)
async def get_bill(
    bill_id: str,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    bill = ensure_owner(await storage.get_bill(bill_id), identity, "Bill")
    return BillOut.model_validate(bill)


@router.post("", response_model=BillOut, status_code=status.HTTP_201_CREATED)
async def create_bill(
    body: BillCreate,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    await ensure_category_owned(storage, body.category_id, identity)

    bill = await storage.create_bill(
        user_id=identity.user_id,
        name=body.name,
        amount=body.amount,
        due_date=body.due_date,
        is_paid=body.is_paid,
        description=body.description,
        category_id=body.category_id,
    )
    logger.info("Bill created", extra={"user_id": identity.user_id, "bill_id": bill.id})
    return BillOut.model_validate(bill)


@router.put("/{bill_id}", response_model=BillOut)
async def update_bill(
    bill_id: str,
    body: BillUpdate,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    ensure_owner(await storage.get_bill(bill_id), identity, "Bill")

    changes = body.model_dump(exclude_unset=True)
    if "category_id" in changes:
        await ensure_category_owned(storage, changes["category_id"], identity)

    if not changes:
        bill = await storage.get_bill(bill_id)
    else:
        bill = await storage.update_bill(bill_id, changes)
    if bill is None:
        raise NotFoundError("Bill")
    return BillOut.model_validate(bill)


@router.delete("/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bill(
    bill_id: str,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    ensure_owner(await storage.get_bill(bill_id), identity, "Bill")
    if not await storage.delete_bill(bill_id):
        raise NotFoundError("Bill")
    logger.info("Bill deleted", extra={"user_id": identity.user_id, "bill_id": bill_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
