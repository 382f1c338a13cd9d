"""
PayFlow - FastAPI Dependencies

Components are created once per app (see ``payflow.main.create_app``) and
live on ``app.state``; these dependencies hand them to routes.

Ownership pattern for every resource-scoped route:
1. ``require_identity``   -> acting user (401 if unresolvable)
2. load the target        -> 404 if absent
3. ``ensure_owner``       -> 403 if it belongs to someone else
4. only then read/mutate
"""

import logging
from typing import Optional, TypeVar

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from payflow.core.auth_gate import api_key_matches
from payflow.core.authentication import Authenticator, Identity
from payflow.core.config import Settings
from payflow.core.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from payflow.core.rate_limit import LoginAttemptLimiter
from payflow.core.security import CredentialStore
from payflow.services.storage.base import Storage

logger = logging.getLogger("payflow.auth")

R = TypeVar("R")

security_bearer = HTTPBearer(auto_error=False)


# =============================================================================
# Component Accessors
# =============================================================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_credentials(request: Request) -> CredentialStore:
    return request.app.state.credentials


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_login_limiter(request: Request) -> LoginAttemptLimiter:
    return request.app.state.login_limiter


# =============================================================================
# Identity
# =============================================================================

async def get_optional_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
    authenticator: Authenticator = Depends(get_authenticator),
) -> Optional[Identity]:
    """Resolve the bearer token if one was sent; None otherwise or when invalid."""
    if credentials is None or not credentials.credentials:
        return None

    identity = await authenticator.authenticate(credentials.credentials)
    if identity is not None:
        request.state.user_id = identity.user_id
    return identity


async def require_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> Identity:
    """
    Require an authenticated user.

    Usage:
        @router.get("/bills")
        async def list_bills(identity: Identity = Depends(require_identity)):
            ...
    """
    if identity is not None:
        return identity
    if credentials is None:
        raise AuthenticationError("Authentication required")
    raise AuthenticationError("Invalid or expired token")


async def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
    identity: Optional[Identity] = Depends(get_optional_identity),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """
    Require the admin capability: the internal API key, or a verified
    identity whose email is on ADMIN_EMAILS. Returns an actor label for logs.
    """
    presented = request.headers.get(settings.internal_api_key_header)
    if api_key_matches(presented, settings.internal_api_key):
        return "internal-api-key"

    if identity is None:
        if credentials is None and presented is None:
            raise AuthenticationError("Admin authentication required")
        raise AuthenticationError("Invalid admin credentials")

    if identity.email.lower() not in settings.admin_email_set:
        logger.warning("Non-admin %s attempted an admin action", identity.user_id)
        raise AuthorizationError("Administrator access required")

    return f"admin:{identity.user_id}"


# =============================================================================
# Ownership
# =============================================================================

def ensure_owner(resource: Optional[R], identity: Identity, resource_name: str) -> R:
    """404 when absent, 403 when owned by someone else; otherwise the resource."""
    if resource is None:
        raise NotFoundError(resource_name)

    if resource.user_id != identity.user_id:
        logger.warning(
            "Cross-owner access to %s %s by %s",
            resource_name,
            resource.id,
            identity.user_id,
            extra={"user_id": identity.user_id},
        )
        raise AuthorizationError(f"You do not have access to this {resource_name.lower()}")

    return resource


async def ensure_category_owned(
    storage: Storage,
    category_id: Optional[str],
    identity: Identity,
) -> None:
    """
    A bill may only point at one of its owner's own categories.
    Missing and foreign categories get the same answer.
    """
    if category_id is None:
        return

    category = await storage.get_category(category_id)
    if category is None or category.user_id != identity.user_id:
        raise ValidationError(
            "Invalid category",
            details=[{
                "loc": ["body", "categoryId"],
                "msg": "Category not found",
                "type": "value_error.category",
            }],
        )
