"""
Data schemas for Global Skills Bridge

These models describe the user documents stored in MongoDB and the
request/response bodies of the account and public routes.
Field aliases follow the camelCase names used by the frontend.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, List
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


# ============================================================================
# USERS
# ============================================================================

class UserRole(str, Enum):
    """Account roles"""
    job_seeker = "job-seeker"
    employer = "employer"
    mentor = "mentor"
    admin = "admin"
    rtb_admin = "rtb-admin"


ADMIN_ROLES = frozenset({UserRole.admin.value, UserRole.rtb_admin.value})


class Location(BaseModel):
    model_config = ConfigDict(extra="ignore")

    city: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None


class Avatar(BaseModel):
    model_config = ConfigDict(extra="ignore")

    public_id: Optional[str] = None
    url: Optional[str] = None


class CompanyInfo(BaseModel):
    """Employer company information"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: Optional[str] = None
    industry: Optional[str] = None
    size: Optional[Literal["1-10", "11-50", "51-200", "201-1000", "1000+"]] = None
    website: Optional[str] = None
    description: Optional[str] = None
    registration_number: Optional[str] = Field(default=None, alias="registrationNumber")
    established_year: Optional[int] = Field(default=None, alias="establishedYear")


class User(BaseModel):
    """
    Account document without the password hash

    This is the principal attached to authenticated requests.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    email: str
    name: str
    role: UserRole = UserRole.job_seeker
    phone: Optional[str] = None
    location: Optional[Location] = None
    avatar: Optional[Avatar] = None
    company_info: Optional[CompanyInfo] = Field(default=None, alias="companyInfo")
    education: List[dict[str, Any]] = Field(default_factory=list)
    experience: List[dict[str, Any]] = Field(default_factory=list)
    skills: List[dict[str, Any]] = Field(default_factory=list)

    is_active: bool = Field(default=True, alias="isActive")
    is_blocked: bool = Field(default=False, alias="isBlocked")
    is_approved: bool = Field(default=True, alias="isApproved")
    is_email_verified: bool = Field(default=False, alias="isEmailVerified")
    profile_completion: int = Field(default=0, ge=0, le=100, alias="profileCompletion")
    last_login: Optional[datetime] = Field(default=None, alias="lastLogin")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @property
    def is_admin(self) -> bool:
        return self.role.value in ADMIN_ROLES


class UserSummary(BaseModel):
    """User block returned alongside issued tokens"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    role: UserRole
    avatar: Optional[Avatar] = None
    is_email_verified: bool = Field(alias="isEmailVerified")
    profile_completion: int = Field(alias="profileCompletion")


# ============================================================================
# ACCOUNT REQUESTS
# ============================================================================

class RegisterRequest(BaseModel):
    """Account registration"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Literal["job-seeker", "employer", "mentor"] = "job-seeker"
    phone: Optional[str] = Field(default=None, pattern=r"^\+?[1-9]\d{1,14}$")
    company_info: Optional[CompanyInfo] = Field(default=None, alias="companyInfo")
    avatar: Optional[str] = None


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: EmailStr
    password: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    """Password change for the authenticated user"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    current_password: str = Field(min_length=1, alias="currentPassword")
    new_password: str = Field(min_length=6, alias="newPassword")
    confirm_password: str = Field(alias="confirmPassword")

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.confirm_password != self.new_password:
            raise ValueError("Password confirmation does not match")
        return self


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    password: str = Field(min_length=6)
    confirm_password: str = Field(alias="confirmPassword")

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.confirm_password != self.password:
            raise ValueError("Password confirmation does not match")
        return self


class RefreshTokenRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


# ============================================================================
# RESPONSES
# ============================================================================

class MessageResponse(BaseModel):
    """Plain success envelope"""
    success: bool = True
    message: str


class TokenResponse(BaseModel):
    """Envelope returned whenever tokens are issued"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    token: str
    refresh_token: str = Field(alias="refreshToken")
    user: UserSummary


class UserResponse(BaseModel):
    success: bool = True
    data: User


class ForgotPasswordResponse(MessageResponse):
    model_config = ConfigDict(populate_by_name=True)

    reset_token: Optional[str] = Field(default=None, alias="resetToken")


class PublicStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_graduates: int = Field(alias="totalGraduates")
    total_employers: int = Field(alias="totalEmployers")
    total_mentors: int = Field(alias="totalMentors")
    success_rate: float = Field(alias="successRate")
    viewer_role: Optional[UserRole] = Field(default=None, alias="viewerRole")


class PublicStatsResponse(BaseModel):
    success: bool = True
    data: PublicStats


class DatabaseStatus(BaseModel):
    status: Literal["Connected", "Disconnected"]
    name: str


class HealthResponse(BaseModel):
    """Health check response"""
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    message: str
    timestamp: str
    uptime: float
    environment: str
    database: DatabaseStatus
    version: str
