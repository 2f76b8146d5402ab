"""
Data models for Global Skills Bridge

Models define the data the API accepts and returns.
"""

from skills_bridge.models.schemas import (
    ADMIN_ROLES,
    Avatar,
    ChangePasswordRequest,
    CompanyInfo,
    DatabaseStatus,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    HealthResponse,
    Location,
    LoginRequest,
    MessageResponse,
    PublicStats,
    PublicStatsResponse,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    User,
    UserResponse,
    UserRole,
    UserSummary,
)

__all__ = [
    "ADMIN_ROLES",
    "Avatar",
    "ChangePasswordRequest",
    "CompanyInfo",
    "DatabaseStatus",
    "ForgotPasswordRequest",
    "ForgotPasswordResponse",
    "HealthResponse",
    "Location",
    "LoginRequest",
    "MessageResponse",
    "PublicStats",
    "PublicStatsResponse",
    "RefreshTokenRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "TokenResponse",
    "User",
    "UserResponse",
    "UserRole",
    "UserSummary",
]
