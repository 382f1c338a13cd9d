"""
Categories Router
Owner-scoped CRUD for bill categories.
"""

from fastapi import APIRouter, Depends, Response, status

from payflow.core.authentication import Identity
from payflow.core.deps import ensure_owner, get_storage, require_identity
from payflow.core.errors import NotFoundError
from payflow.models.schemas import CategoryCreate, CategoryOut, CategoryUpdate
from payflow.services.storage.base import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    Storage,
)

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=list[CategoryOut])
async def list_categories(
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    return [CategoryOut.model_validate(c) for c in await storage.list_categories(identity.user_id)]


@router.get("/{category_id}", response_model=CategoryOut)
async def get_category(
    category_id: str,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    category = ensure_owner(await storage.get_category(category_id), identity, "Category")
    return CategoryOut.model_validate(category)


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreate,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    category = await storage.create_category(
        user_id=identity.user_id,
        name=body.name,
        color=body.color or DEFAULT_CATEGORY_COLOR,
        icon=body.icon or DEFAULT_CATEGORY_ICON,
    )
    return CategoryOut.model_validate(category)


@router.put("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: str,
    body: CategoryUpdate,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    ensure_owner(await storage.get_category(category_id), identity, "Category")

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        category = await storage.get_category(category_id)
    else:
        category = await storage.update_category(category_id, changes)
    # Deleted between the ownership check and the write
    if category is None:
        raise NotFoundError("Category")
    return CategoryOut.model_validate(category)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: str,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    """Delete a category. Its bills stay, uncategorized."""
    ensure_owner(await storage.get_category(category_id), identity, "Category")
    if not await storage.delete_category(category_id):
        raise NotFoundError("Category")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
