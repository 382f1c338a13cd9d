"""
Reports Router
"""

from fastapi import APIRouter, Depends

from payflow.core.authentication import Identity
from payflow.core.deps import get_storage, require_identity
from payflow.models.schemas import BillSummaryOut
from payflow.services.reports import summarize_bills
from payflow.services.storage.base import Storage

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/summary", response_model=BillSummaryOut)
async def bill_summary(
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    """Totals over the caller's bills, split by status and category."""
    bills = await storage.list_bills(identity.user_id)
    categories = await storage.list_categories(identity.user_id)
    return BillSummaryOut.model_validate(summarize_bills(bills, categories))
