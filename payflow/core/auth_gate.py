"""
Auth Gate Middleware for PayFlow.

A cheap shape check in front of every /api route, first match wins:

1. Path is on the public allow-list         -> pass
2. ``Authorization: Bearer <token>`` present -> pass (validated later, per route)
3. Internal API key header matches           -> pass (jobs/automation)
4. Anything else                             -> 403

Token authenticity is NOT checked here; route dependencies still do that.
"""

import hmac
import logging
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from payflow.core.rate_limit import client_ip

logger = logging.getLogger("payflow.security")

PUBLIC_PATHS = frozenset({
    "/api/healthz",
    "/api/readyz",
    "/api/whoami",
    "/api/users/me",
    "/api/auth/register",
    "/api/auth/login",
})


def api_key_matches(presented: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an unset server key never matches."""
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def has_bearer(request: Request) -> bool:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    return scheme.lower() == "bearer" and bool(token.strip())


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Reject obviously unauthenticated API traffic before any route runs."""

    def __init__(
        self,
        app,
        api_key: Optional[str] = None,
        api_key_header: str = "X-API-Key",
        public_paths: Iterable[str] = PUBLIC_PATHS,
        prefix: str = "/api",
    ):
        super().__init__(app)
        self.api_key = api_key
        self.api_key_header = api_key_header
        self.public_paths = frozenset(p.rstrip("/") for p in public_paths)
        self.prefix = prefix

    def is_allowed(self, request: Request) -> bool:
        path = request.url.path.rstrip("/") or "/"
        if not (path == self.prefix or path.startswith(self.prefix + "/")):
            return True
        if request.method == "OPTIONS":
            return True
        if path in self.public_paths:
            return True
        if has_bearer(request):
            return True
        if api_key_matches(request.headers.get(self.api_key_header), self.api_key):
            return True
        return False

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self.is_allowed(request):
            return await call_next(request)

        logger.warning(
            "Auth gate rejected %s %s",
            request.method,
            request.url.path,
            extra={"client_ip": client_ip(request), "path": request.url.path},
        )
        return JSONResponse(
            status_code=403,
            content={
                "error": "permission_denied",
                "message": "Authentication required",
                "details": None,
                "request_id": request.headers.get("X-Request-Id"),
            },
        )
