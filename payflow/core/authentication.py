"""
PayFlow - Authenticators

One trust root per deployment, chosen at startup:

- local: tokens issued by the CredentialStore (JWT signed with JWT_SECRET)
- external: tokens issued by the Supabase auth service

Route code only ever sees an ``Identity``; it never knows which variant
produced it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from payflow.core.config import Settings
from payflow.core.errors import ConflictError
from payflow.core.security import ConfigurationError, CredentialStore
from payflow.services.identity import ExternalIdentityValidator
from payflow.services.storage.base import Storage

logger = logging.getLogger("payflow.auth")


@dataclass(frozen=True)
class Identity:
    """The verified acting user of a request."""
    user_id: str
    email: str
    name: str


class Authenticator(ABC):
    """Turns a bearer token into an Identity, or None when it cannot."""

    mode: str = ""

    @abstractmethod
    async def authenticate(self, token: str) -> Optional[Identity]:
        pass

    async def aclose(self) -> None:
        """Release resources held by the authenticator."""


class LocalTokenAuthenticator(Authenticator):
    """Validates locally issued JWTs; the referenced user must still exist."""

    mode = "local"

    def __init__(self, credentials: CredentialStore, storage: Storage):
        self.credentials = credentials
        self.storage = storage

    async def authenticate(self, token: str) -> Optional[Identity]:
        user_id = self.credentials.validate_token(token)
        if user_id is None:
            return None

        user = await self.storage.get_user(user_id)
        if user is None:
            return None
        return Identity(user_id=user.id, email=user.email, name=user.name)


class ExternalIdentityAuthenticator(Authenticator):
    """
    Trusts the external identity service.

    The provider's user id is authoritative. A local user row is provisioned
    the first time an identity is seen so that categories and bills can
    reference it.
    """

    mode = "external"

    def __init__(self, validator: ExternalIdentityValidator, storage: Storage):
        self.validator = validator
        self.storage = storage

    async def authenticate(self, token: str) -> Optional[Identity]:
        external = await self.validator.resolve(token)
        if external is None:
            return None

        user = await self.storage.get_user(external.id)
        if user is None:
            email = external.email or f"{external.id}@users.invalid"
            try:
                user = await self.storage.create_user(
                    name=external.name,
                    email=email,
                    user_id=external.id,
                )
                logger.info("Provisioned local profile for external user %s", external.id)
            except ConflictError:
                # Either a concurrent request won the race, or the email
                # already belongs to a different local account.
                user = await self.storage.get_user(external.id)
                if user is None:
                    logger.warning(
                        "External user %s collides with an existing account email",
                        external.id,
                    )
                    return None

        return Identity(
            user_id=user.id,
            email=external.email or user.email,
            name=user.name,
        )

    async def aclose(self) -> None:
        await self.validator.aclose()


def build_authenticator(
    settings: Settings,
    storage: Storage,
    credentials: CredentialStore,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Authenticator:
    """Pick the deployment's single trust root."""
    if settings.auth_mode == "external":
        if not settings.supabase_url or not settings.identity_api_key:
            raise ConfigurationError(
                "AUTH_MODE=external requires SUPABASE_URL and SUPABASE_ANON_KEY "
                "(or SUPABASE_SERVICE_ROLE_KEY)"
            )
        validator = ExternalIdentityValidator(
            settings.supabase_url,
            settings.identity_api_key,
            timeout=settings.identity_timeout_seconds,
            client=http_client,
        )
        return ExternalIdentityAuthenticator(validator, storage)

    return LocalTokenAuthenticator(credentials, storage)
