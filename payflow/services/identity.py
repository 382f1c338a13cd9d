"""
PayFlow - External Identity Validator

Validates opaque bearer tokens against the Supabase auth service and returns
the provider's canonical user id and email.

Every failure mode (provider error, network failure, timeout, "no user",
unexpected payload) is the same outcome: ``None``. Nothing is retried; an
outage shows up to the caller as a 401.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger("payflow.identity")


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity as reported by the provider."""
    id: str
    email: Optional[str]
    name: str


def _display_name(user: dict[str, Any]) -> str:
    metadata = user.get("user_metadata") or {}
    name = metadata.get("name") or metadata.get("full_name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    email = user.get("email")
    if isinstance(email, str) and "@" in email:
        return email.split("@", 1)[0]
    return "User"


class ExternalIdentityValidator:
    """Resolves bearer tokens through ``GET {base_url}/auth/v1/user``."""

    USER_PATH = "/auth/v1/user"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Identity service base URL (the Supabase project URL)
            api_key: Project key sent as the ``apikey`` header
            timeout: Request timeout in seconds
            client: Pre-built client (tests inject a MockTransport-backed one)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def resolve(self, token: str) -> Optional[ExternalIdentity]:
        """Return the token's identity, or None if it cannot be confirmed."""
        if not token:
            return None

        try:
            response = await self._client.get(
                f"{self.base_url}{self.USER_PATH}",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {token}",
                },
            )
        except httpx.HTTPError as e:
            logger.warning("Identity service unreachable: %s", type(e).__name__)
            return None

        if response.status_code != 200:
            logger.info("Identity service rejected token (HTTP %d)", response.status_code)
            return None

        try:
            user = response.json()
        except ValueError:
            logger.warning("Identity service returned a non-JSON body")
            return None

        # Some deployments wrap the payload as {"user": {...}}
        if isinstance(user, dict) and isinstance(user.get("user"), dict):
            user = user["user"]

        if not isinstance(user, dict):
            return None
        user_id = user.get("id")
        if not isinstance(user_id, str) or not user_id:
            return None

        email = user.get("email")
        return ExternalIdentity(
            id=user_id,
            email=email.lower() if isinstance(email, str) and email else None,
            name=_display_name(user),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
