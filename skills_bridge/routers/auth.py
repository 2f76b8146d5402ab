"""
Account routes

Registration, login and the token lifecycle. These routes issue the tokens
that the token verifier in skills_bridge.middleware.auth consumes.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Optional

import jwt
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from skills_bridge.config import Settings, get_app_settings
from skills_bridge.middleware.auth import (
    AUTH_SERVER_ERROR,
    ClientRateLimiter,
    get_current_user,
    get_users_repo,
    rate_limit_by_user,
)
from skills_bridge.models import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    User,
    UserResponse,
    UserRole,
    UserSummary,
)
from skills_bridge.repos.user_repos import UsersRepository
from skills_bridge.services.mail_service import MailService, get_mail_service
from skills_bridge.services.security import (
    calculate_profile_completion,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_reset_token,
    generate_verification_token,
    hash_password,
    hash_reset_token,
    verify_password,
)
from skills_bridge.utils.errors import AppError, AuthenticationError, BadRequestError

logger = logging.getLogger(__name__)

router = APIRouter()

# 5 password changes per user and 3 reset requests per client every 15 minutes
change_password_limiter = rate_limit_by_user(5, 15 * 60)
forgot_password_limiter = ClientRateLimiter(3, 15 * 60)

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"
DAY_SECONDS = 24 * 60 * 60


def issue_tokens(user: User, response: Response, settings: Settings, message: str) -> TokenResponse:
    """
    Sign access and refresh tokens and set them as HTTP-only cookies

    Raises:
        AppError: 500 when a signing secret is missing
    """
    if not settings.jwt_secret or not settings.jwt_refresh_secret:
        logger.error("JWT secrets are not configured, refusing to issue tokens")
        raise AppError(AUTH_SERVER_ERROR, 500)

    token = create_access_token(user.id, settings)
    refresh_token = create_refresh_token(user.id, settings)

    cookie_options = {"httponly": True, "secure": settings.is_production, "samesite": "strict"}
    response.set_cookie("token", token, max_age=settings.jwt_expire_days * DAY_SECONDS, **cookie_options)
    response.set_cookie(
        "refreshToken",
        refresh_token,
        max_age=settings.jwt_refresh_expire_days * DAY_SECONDS,
        **cookie_options,
    )

    return TokenResponse(
        message=message,
        token=token,
        refresh_token=refresh_token,
        user=UserSummary(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            avatar=user.avatar,
            is_email_verified=user.is_email_verified,
            profile_completion=user.profile_completion,
        ),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    payload: RegisterRequest,
    response: Response,
    users_repo: UsersRepository = Depends(get_users_repo),
    mail_service: MailService = Depends(get_mail_service),
    settings: Settings = Depends(get_app_settings),
) -> TokenResponse:
    """
    Register a new account

    Employers start unapproved; every other role is approved immediately.
    The verification link is mailed; a failed delivery does not fail the
    registration.

    Raises:
        BadRequestError: If the email is already registered
    """
    email = payload.email.lower()
    if await users_repo.find_by_email(email):
        raise BadRequestError("User with this email already exists")

    now = datetime.utcnow()
    verification_token = generate_verification_token()
    user_doc = {
        "name": payload.name.strip(),
        "email": email,
        "password": await run_in_threadpool(hash_password, payload.password),
        "role": payload.role,
        "education": [],
        "experience": [],
        "skills": [],
        "isActive": True,
        "isBlocked": False,
        "isApproved": payload.role != UserRole.employer.value,
        "isEmailVerified": False,
        "emailVerificationToken": verification_token,
        "createdAt": now,
        "updatedAt": now,
    }
    # Unique sparse indexes skip missing fields but not nulls
    if payload.phone:
        user_doc["phone"] = payload.phone
    if payload.role == UserRole.employer.value and payload.company_info:
        user_doc["companyInfo"] = payload.company_info.model_dump(by_alias=True, exclude_none=True)
    if payload.avatar:
        user_doc["avatar"] = {"url": payload.avatar, "public_id": f"avatar_{int(time.time() * 1000)}"}
    user_doc["profileCompletion"] = calculate_profile_completion(user_doc)

    user_id = await users_repo.insert_one(user_doc)
    logger.info(f"Registered {payload.role} {user_id}, email verification pending")

    await mail_service.send_email_verification_email(email, verification_token, user_doc["name"])

    user = User.model_validate({**user_doc, "id": user_id})
    return issue_tokens(user, response, settings, "User registered successfully")


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    users_repo: UsersRepository = Depends(get_users_repo),
    settings: Settings = Depends(get_app_settings),
) -> TokenResponse:
    """Exchange email and password for tokens"""
    user_doc = await users_repo.find_by_email(payload.email, with_password=True)
    if not user_doc or not await run_in_threadpool(verify_password, payload.password, user_doc.get("password")):
        raise AuthenticationError("Invalid credentials")

    if not user_doc.get("isActive", True):
        raise AuthenticationError("Account has been deactivated. Contact support.")
    if user_doc.get("isBlocked", False):
        raise AuthenticationError("Account has been blocked. Contact support.")

    now = datetime.utcnow()
    await users_repo.update_fields(user_doc["id"], {"lastLogin": now})

    user = User.model_validate({**user_doc, "lastLogin": now})
    return issue_tokens(user, response, settings, "Login successful")


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    """Overwrite the auth cookies with short-lived placeholders"""
    response.set_cookie("token", "none", max_age=10, httponly=True)
    response.set_cookie("refreshToken", "none", max_age=10, httponly=True)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)) -> UserResponse:
    """Current authenticated account"""
    return UserResponse(data=user)


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(change_password_limiter),
    users_repo: UsersRepository = Depends(get_users_repo),
) -> MessageResponse:
    """
    Change the password of the authenticated account

    Raises:
        BadRequestError: If the current password is wrong
    """
    user_doc = await users_repo.find_by_id_with_password(user.id)
    if not user_doc or not await run_in_threadpool(
        verify_password, payload.current_password, user_doc.get("password")
    ):
        raise BadRequestError("Current password is incorrect")

    hashed = await run_in_threadpool(hash_password, payload.new_password)
    await users_repo.update_fields(user.id, {"password": hashed})
    logger.info(f"Password changed for user {user.id}")
    return MessageResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=ForgotPasswordResponse, response_model_exclude_none=True)
async def forgot_password(
    payload: ForgotPasswordRequest,
    _: None = Depends(forgot_password_limiter),
    users_repo: UsersRepository = Depends(get_users_repo),
    mail_service: MailService = Depends(get_mail_service),
    settings: Settings = Depends(get_app_settings),
) -> ForgotPasswordResponse:
    """
    Start a password reset

    The reset link is mailed to the account. The answer is the same whether
    or not the email exists or the mail was delivered. In development the
    reset token is also returned for manual testing.
    """
    user_doc = await users_repo.find_by_email(payload.email)
    if not user_doc:
        return ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE)

    reset_token, hashed_token, expires_at = generate_reset_token()
    await users_repo.update_fields(
        user_doc["id"],
        {"resetPasswordToken": hashed_token, "resetPasswordExpire": expires_at},
    )
    logger.info(f"Password reset requested for user {user_doc['id']}")
    await mail_service.send_password_reset_email(user_doc["email"], reset_token, user_doc.get("name", ""))

    return ForgotPasswordResponse(
        message=FORGOT_PASSWORD_MESSAGE,
        reset_token=reset_token if settings.is_development else None,
    )


@router.put("/reset-password/{reset_token}", response_model=TokenResponse)
async def reset_password(
    reset_token: str,
    payload: ResetPasswordRequest,
    response: Response,
    users_repo: UsersRepository = Depends(get_users_repo),
    settings: Settings = Depends(get_app_settings),
) -> TokenResponse:
    """Set a new password with a reset token and sign in"""
    user_doc = await users_repo.find_by_reset_token(hash_reset_token(reset_token), datetime.utcnow())
    if not user_doc:
        raise BadRequestError("Invalid or expired reset token")

    await users_repo.update_fields(
        user_doc["id"],
        {"password": await run_in_threadpool(hash_password, payload.password)},
        unset=["resetPasswordToken", "resetPasswordExpire"],
    )

    user = User.model_validate(user_doc)
    return issue_tokens(user, response, settings, "Password reset successfully")


@router.post("/verify-email/{token}", response_model=MessageResponse)
async def verify_email(
    token: str,
    users_repo: UsersRepository = Depends(get_users_repo),
) -> MessageResponse:
    """Mark the email verified and recompute profile completion"""
    user_doc = await users_repo.find_by_verification_token(token)
    if not user_doc:
        raise BadRequestError("Invalid verification token")

    verified = {**user_doc, "isEmailVerified": True}
    await users_repo.update_fields(
        user_doc["id"],
        {"isEmailVerified": True, "profileCompletion": calculate_profile_completion(verified)},
        unset=["emailVerificationToken"],
    )
    return MessageResponse(message="Email verified successfully")


@router.post("/refresh-token", response_model=TokenResponse)
async def refresh_token(
    request: Request,
    response: Response,
    payload: Optional[RefreshTokenRequest] = None,
    users_repo: UsersRepository = Depends(get_users_repo),
    settings: Settings = Depends(get_app_settings),
) -> TokenResponse:
    """Issue a fresh token pair from a refresh token (body or cookie)"""
    token = (payload.refresh_token if payload else None) or request.cookies.get("refreshToken")
    if not token:
        raise AuthenticationError("Refresh token not provided")

    if not settings.jwt_refresh_secret:
        logger.error("JWT_REFRESH_SECRET is not configured, refusing to refresh tokens")
        raise AppError(AUTH_SERVER_ERROR, 500)

    try:
        claims = decode_token(token, settings.jwt_refresh_secret, settings.jwt_algorithm)
        user_doc = await users_repo.find_by_id(str(claims.get("id")))
    except (jwt.PyJWTError, InvalidId) as e:
        raise AuthenticationError("Invalid refresh token") from e

    if not user_doc or not user_doc.get("isActive", True) or user_doc.get("isBlocked", False):
        raise AuthenticationError("Invalid refresh token")

    user = User.model_validate(user_doc)
    return issue_tokens(user, response, settings, "Token refreshed successfully")
