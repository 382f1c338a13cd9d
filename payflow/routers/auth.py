"""
Authentication Router
Local email/password accounts. Mounted only when AUTH_MODE=local.

Endpoints:
- POST /api/auth/register - create an account, returns a token
- POST /api/auth/login    - exchange credentials for a token
"""

from fastapi import APIRouter, Depends, status

from payflow.core.deps import get_credentials, get_login_limiter, get_storage
from payflow.core.errors import AuthenticationError, ConflictError, RateLimitError
from payflow.core.logging_config import get_logger
from payflow.core.rate_limit import LoginAttemptLimiter, rate_limit_dependency
from payflow.core.security import CredentialStore
from payflow.models.schemas import AuthResponse, LoginRequest, RegisterRequest, UserOut
from payflow.services.storage.base import Storage

logger = get_logger("payflow.auth")

router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
    dependencies=[Depends(rate_limit_dependency("auth_rate_limiter"))],
)

INVALID_CREDENTIALS = "Invalid email or password"


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    storage: Storage = Depends(get_storage),
    credentials: CredentialStore = Depends(get_credentials),
):
    """Create a local account. 409 if the email is already registered."""
    if await storage.get_user_by_email(body.email) is not None:
        raise ConflictError("Email already in use")

    password_hash = await credentials.hash_password(body.password)
    # A concurrent registration can still win; create_user raises ConflictError then
    user = await storage.create_user(
        name=body.name,
        email=body.email,
        password_hash=password_hash,
    )
    token = credentials.issue_token(user.id)

    logger.info("User registered", extra={"user_id": user.id})
    return AuthResponse(
        user=UserOut.model_validate(user),
        token=token,
        message="User registered successfully",
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    storage: Storage = Depends(get_storage),
    credentials: CredentialStore = Depends(get_credentials),
    limiter: LoginAttemptLimiter = Depends(get_login_limiter),
):
    """
    Exchange email/password for a token.

    A locked-out email gets 429 before the password is even looked at.
    Unknown emails count as failures so the lockout cannot be used to
    probe which accounts exist.
    """
    if limiter.is_blocked(body.email):
        retry_after = limiter.remaining_lock_time(body.email)
        logger.warning("Login refused for locked account", extra={"retry_after": retry_after})
        raise RateLimitError(retry_after)

    user = await storage.get_user_by_email(body.email)
    valid = user is not None and await credentials.verify_password(body.password, user.password_hash)
    limiter.record_attempt(body.email, success=valid)

    if not valid:
        logger.info("Failed login attempt")
        raise AuthenticationError(INVALID_CREDENTIALS)

    token = credentials.issue_token(user.id)
    logger.info("User logged in", extra={"user_id": user.id})
    return AuthResponse(
        user=UserOut.model_validate(user),
        token=token,
        message="Login successful",
    )
