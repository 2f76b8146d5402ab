"""
Authentication and authorization gates

FastAPI dependencies that run before a route handler:

- get_current_user          token verifier, rejects with 401
- get_optional_user         same resolution, returns Authenticated | Anonymous
- require_roles(*roles)     role allow-list, rejects with 403
- check_ownership(...)      admin short-circuit; handlers call assert_owner
- require_profile_completion(minimum)
- require_email_verification
- rate_limit_by_user(max_requests, window_seconds)

Gates raise AppError subclasses; the error normalizer renders them.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

import jwt
from bson.errors import InvalidId
from fastapi import Depends, Request
from fastapi.security import HTTPBearer

from skills_bridge.config import Settings, get_app_settings
from skills_bridge.db.mongo import get_db
from skills_bridge.middleware.rate_limit import SlidingWindowCounter, get_client_ip
from skills_bridge.models import User, UserRole
from skills_bridge.repos.user_repos import UsersRepository
from skills_bridge.services.security import decode_token
from skills_bridge.utils.errors import (
    AppError,
    AuthenticationError,
    AuthorizationError,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)

NO_TOKEN = "Not authorized to access this route. No token provided."
INVALID_TOKEN = "Invalid token. Please login again."
TOKEN_EXPIRED = "Token has expired. Please login again."
VERIFICATION_FAILED = "Token verification failed"
USER_NOT_FOUND = "Token is valid but user no longer exists"
ACCOUNT_DEACTIVATED = "Account has been deactivated"
ACCOUNT_BLOCKED = "Account has been blocked. Contact support."
AUTH_SERVER_ERROR = "Server error in authentication"

# Documents the bearer scheme in OpenAPI; extraction is done by extract_token
bearer_scheme = HTTPBearer(auto_error=False, description="JWT access token")


async def get_users_repo(db=Depends(get_db)) -> UsersRepository:  # noqa: ANN001
    """Get the users repository"""
    return UsersRepository(db)


def extract_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the ``token`` cookie"""
    token = None
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer"):
        parts = authorization.split(" ")
        token = parts[1].strip() if len(parts) > 1 else None
    if not token:
        token = request.cookies.get("token")
    return token or None


async def authenticate(token: str, users_repo: UsersRepository, settings: Settings) -> User:
    """
    Resolve the principal a token belongs to

    Raises:
        AppError: 500 when no signing secret is configured
        AuthenticationError: For every token or account problem
    """
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured, refusing to verify tokens")
        raise AppError(AUTH_SERVER_ERROR, 500)

    try:
        payload = decode_token(token, settings.jwt_secret, settings.jwt_algorithm)
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError(TOKEN_EXPIRED) from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(INVALID_TOKEN) from e

    user_id = payload.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise AuthenticationError(VERIFICATION_FAILED)

    try:
        doc = await users_repo.find_by_id(user_id)
    except InvalidId as e:
        raise AuthenticationError(VERIFICATION_FAILED) from e

    if not doc:
        raise AuthenticationError(USER_NOT_FOUND)

    user = User.model_validate(doc)
    if not user.is_active:
        raise AuthenticationError(ACCOUNT_DEACTIVATED)
    if user.is_blocked:
        raise AuthenticationError(ACCOUNT_BLOCKED)
    return user


async def get_current_user(
    request: Request,
    _credentials=Depends(bearer_scheme),  # noqa: ANN001
    users_repo: UsersRepository = Depends(get_users_repo),
    settings: Settings = Depends(get_app_settings),
) -> User:
    """
    Token verifier

    Usage:
        @router.get("/me")
        async def me(user: User = Depends(get_current_user)): ...
    """
    token = extract_token(request)
    if not token:
        raise AuthenticationError(NO_TOKEN)

    user = await authenticate(token, users_repo, settings)
    request.state.user = user
    return user


@dataclass(frozen=True)
class Authenticated:
    user: User


@dataclass(frozen=True)
class Anonymous:
    """No principal; ``reason`` is set when credentials were sent but rejected"""
    reason: Optional[str] = None


AuthResult = Union[Authenticated, Anonymous]


async def get_optional_user(
    request: Request,
    _credentials=Depends(bearer_scheme),  # noqa: ANN001
    users_repo: UsersRepository = Depends(get_users_repo),
    settings: Settings = Depends(get_app_settings),
) -> AuthResult:
    """
    Optional authentication for public routes

    Never rejects. Rejected credentials are logged so that malformed or expired
    tokens on public routes stay visible.
    """
    token = extract_token(request)
    if not token:
        return Anonymous()

    try:
        user = await authenticate(token, users_repo, settings)
    except AppError as e:
        logger.warning(
            f"Ignoring credentials on public route {request.method} {request.url.path}: {e.message}"
        )
        return Anonymous(reason=e.message)

    request.state.user = user
    return Authenticated(user)


def _role_value(role: Union[str, UserRole]) -> str:
    return role.value if isinstance(role, UserRole) else role


def require_roles(*roles: Union[str, UserRole]) -> Callable:
    """Restrict a route to principals whose role is in ``roles``"""
    allowed = [_role_value(r) for r in roles]

    async def role_gate(user: User = Depends(get_current_user)) -> User:
        if user.role.value not in allowed:
            raise AuthorizationError(
                f"Access denied. Required roles: {', '.join(allowed)}. Your role: {user.role.value}"
            )
        return user

    return role_gate


def check_ownership(resource_field: str = "user") -> Callable:
    """
    Ownership gate

    Admins pass. For every other role the comparison against
    ``resource_field`` needs the resource itself, so the route handler must
    call assert_owner after loading it.
    """

    async def ownership_gate(user: User = Depends(get_current_user)) -> User:
        if not user.is_admin:
            logger.debug(f"Ownership of '{resource_field}' deferred to handler for user {user.id}")
        return user

    return ownership_gate


def assert_owner(user: User, owner_id: Optional[str]) -> None:
    """Raise 403 unless ``user`` owns the resource or is an admin"""
    if user.is_admin:
        return
    if owner_id is None or str(owner_id) != user.id:
        raise AuthorizationError("Not authorized to access this resource")


def require_profile_completion(minimum_completion: int = 50) -> Callable:
    """Reject principals whose profile completion is below ``minimum_completion``"""

    async def completion_gate(user: User = Depends(get_current_user)) -> User:
        completion = user.profile_completion or 0
        if completion < minimum_completion:
            raise AuthorizationError(
                f"Profile completion required. Your profile is {completion}% complete. "
                f"Minimum required: {minimum_completion}%",
                extra={
                    "currentCompletion": completion,
                    "requiredCompletion": minimum_completion,
                },
            )
        return user

    return completion_gate


async def require_email_verification(user: User = Depends(get_current_user)) -> User:
    if not user.is_email_verified:
        raise AuthorizationError(
            "Email verification required. Please verify your email to access this resource.",
            extra={"requiresEmailVerification": True},
        )
    return user


class _WindowGuard:
    """Shared sliding-window check for the per-caller rate limit guards"""

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.counter = SlidingWindowCounter(max_requests, window_seconds, clock=clock)

    def check(self, key: str) -> None:
        decision = self.counter.hit(key)
        if not decision.allowed:
            logger.info(f"Rate limit hit for {key}")
            raise RateLimitExceededError(decision.retry_after)


class UserRateLimiter(_WindowGuard):
    """Rate limit keyed by the authenticated principal id"""

    async def __call__(self, user: User = Depends(get_current_user)) -> User:
        self.check(user.id)
        return user


class ClientRateLimiter(_WindowGuard):
    """Rate limit keyed by client IP, for sensitive routes without a principal"""

    async def __call__(self, request: Request) -> None:
        self.check(get_client_ip(request))


def rate_limit_by_user(
    max_requests: int = 5,
    window_seconds: float = 15 * 60,
    clock: Callable[[], float] = time.time,
) -> UserRateLimiter:
    return UserRateLimiter(max_requests, window_seconds, clock=clock)
