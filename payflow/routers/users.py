"""
Users Router
Profile lookups for the authenticated caller.
"""

from fastapi import APIRouter, Depends

from payflow.core.authentication import Identity
from payflow.core.deps import get_storage, require_identity
from payflow.core.errors import AuthorizationError, NotFoundError
from payflow.models.schemas import IdentityOut, UserOut, WhoAmIResponse, WhoAmIUser
from payflow.services.storage.base import Storage

router = APIRouter(tags=["Users"])


@router.get("/whoami", response_model=WhoAmIResponse)
async def whoami(identity: Identity = Depends(require_identity)):
    return WhoAmIResponse(user=WhoAmIUser(id=identity.user_id, email=identity.email))


@router.get("/users/me", response_model=IdentityOut)
async def get_me(identity: Identity = Depends(require_identity)):
    """The resolved identity of the caller."""
    return IdentityOut(id=identity.user_id, email=identity.email, name=identity.name)


@router.get("/users/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    identity: Identity = Depends(require_identity),
    storage: Storage = Depends(get_storage),
):
    """A user may only read their own profile."""
    if user_id != identity.user_id:
        raise AuthorizationError("You can only view your own profile")

    user = await storage.get_user(user_id)
    if user is None:
        raise NotFoundError("User")
    return UserOut.model_validate(user)
