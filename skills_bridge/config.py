"""
Global Skills Bridge application configuration

This file holds every setting of the API:
- MongoDB connection
- JWT signing secrets and token lifetimes
- Rate limiting and upload limits
- Server and CORS options

ALL SECRETS (JWT secrets, Mongo credentials) live in the .env file
"""

from __future__ import annotations

import os
from functools import lru_cache
from fastapi import Request
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings

    Values are read from environment variables or the .env file
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_env: str = Field(default="development", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=5000, alias="APP_PORT")

    @property
    def port(self) -> int:
        """Port to bind (priority: PORT > APP_PORT > 5000)"""
        return int(os.getenv("PORT", os.getenv("APP_PORT", self.app_port)))

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    # MongoDB
    mongo_uri: str = Field(default="mongodb://localhost:27017", alias="MONGO_URI")
    mongo_db: str = Field(default="global_skills_bridge", alias="MONGO_DB")

    # JWT authentication
    jwt_secret: str = Field(default="", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expire_days: int = Field(default=7, alias="JWT_EXPIRE_DAYS")
    jwt_refresh_secret: str = Field(default="", alias="JWT_REFRESH_SECRET")
    jwt_refresh_expire_days: int = Field(default=30, alias="JWT_REFRESH_EXPIRE_DAYS")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated list of allowed origins. Use '*' for all (not recommended for production)"
    )

    # Rate limiting for /api/ (per client IP)
    rate_limit_requests: int = Field(default=100, ge=1, alias="RATE_LIMIT_REQUESTS")
    rate_limit_window: int = Field(default=900, ge=1, alias="RATE_LIMIT_WINDOW")  # seconds

    # Uploads
    max_upload_size_mb: int = Field(default=5, alias="MAX_UPLOAD_SIZE_MB")

    # Outgoing mail (verification and password reset links)
    smtp_host: str = Field(default="", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: str = Field(default="", alias="SMTP_USER")
    smtp_pass: str = Field(default="", alias="SMTP_PASS")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    from_email: str = Field(default="no-reply@globalskillsbridge.rw", alias="FROM_EMAIL")
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    def get_cors_origins_list(self) -> list[str]:
        """List of allowed CORS origins, trailing slashes stripped"""
        if self.cors_origins == "*":
            return ["*"]
        return [
            origin.strip().rstrip("/")
            for origin in self.cors_origins.split(",")
            if origin.strip()
        ]

    def validate_required(self) -> None:
        """Validate required settings"""
        errors = []

        if not self.jwt_secret:
            errors.append("JWT_SECRET is required")
        if not self.jwt_refresh_secret:
            errors.append("JWT_REFRESH_SECRET is required")
        if not self.mongo_uri or self.mongo_uri == "mongodb://localhost:27017":
            if self.is_production:
                errors.append("MONGO_URI must be set for production")
        if self.is_production and self.cors_origins == "*":
            errors.append("CORS_ORIGINS must not be '*' in production")

        if errors:
            raise ValueError("Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get application settings (cached)

    Returns:
        Settings object
    """
    return Settings()  # type: ignore[call-arg]


def get_app_settings(request: Request) -> Settings:
    """
    Settings of the application serving ``request``

    create_app() stores its settings on ``app.state``; apps built without them
    fall back to the environment.
    """
    return getattr(request.app.state, "settings", None) or get_settings()
