"""
Admin Router
Destructive maintenance operations. Require the admin capability.
"""

from fastapi import APIRouter, Depends

from payflow.core.deps import get_storage, require_admin
from payflow.core.logging_config import get_logger
from payflow.models.schemas import ClearDataResponse
from payflow.services.storage.base import Storage

logger = get_logger("payflow.admin")

router = APIRouter(tags=["Admin"])


@router.delete("/clear-all-data", response_model=ClearDataResponse)
async def clear_all_data(
    actor: str = Depends(require_admin),
    storage: Storage = Depends(get_storage),
):
    """Wipe every bill, category and user."""
    deleted = await storage.clear_all_data()
    logger.warning("All data cleared by %s", actor, extra={"actor": actor, "deleted": deleted})
    return ClearDataResponse(
        success=True,
        message="All data cleared successfully",
        deleted=deleted,
    )
