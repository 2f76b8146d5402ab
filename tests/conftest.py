"""
Pytest configuration and fixtures

MongoDB is replaced by in-memory repositories through FastAPI dependency
overrides, so the tests run without a database.
"""

import copy
import smtplib
from datetime import datetime, timedelta
from email.message import EmailMessage
from typing import Any, Optional

import jwt
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

from skills_bridge.config import Settings
from skills_bridge.main import create_app
from skills_bridge.middleware.auth import get_users_repo
from skills_bridge.routers import auth as auth_routes
from skills_bridge.routers.public import get_applications_repo
from skills_bridge.services.mail_service import MailService, get_mail_service
from skills_bridge.services.security import create_access_token, hash_password

TEST_SECRET = "test-access-secret-0123456789abcdef0123456789"
TEST_REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"
TEST_PASSWORD = "password123"

_UNIQUE_FIELDS = ("email", "phone")


def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    for key, expected in query.items():
        actual = doc.get(key)
        if isinstance(expected, dict) and "$gt" in expected:
            if actual is None or not actual > expected["$gt"]:
                return False
        elif actual != expected:
            return False
    return True


class FakeUsersRepository:
    """In-memory stand-in for UsersRepository"""

    def __init__(self) -> None:
        self.docs: dict[str, dict[str, Any]] = {}

    def _public(self, doc: Optional[dict[str, Any]], with_password: bool = False) -> Optional[dict[str, Any]]:
        if doc is None:
            return None
        result = copy.deepcopy(doc)
        if not with_password:
            result.pop("password", None)
        return result

    def _find(self, query: dict[str, Any]) -> Optional[dict[str, Any]]:
        return next((d for d in self.docs.values() if _matches(d, query)), None)

    async def find_by_id(self, user_id: str):
        return self._public(self.docs.get(str(ObjectId(user_id))))

    async def find_by_id_with_password(self, user_id: str):
        return self._public(self.docs.get(str(ObjectId(user_id))), with_password=True)

    async def find_by_email(self, email: str, with_password: bool = False):
        return self._public(self._find({"email": email.lower()}), with_password)

    async def find_by_verification_token(self, token: str):
        return self._public(self._find({"emailVerificationToken": token}))

    async def find_by_reset_token(self, hashed_token: str, now: datetime):
        return self._public(self._find({"resetPasswordToken": hashed_token, "resetPasswordExpire": {"$gt": now}}))

    async def insert_one(self, user: dict[str, Any]) -> str:
        for name in _UNIQUE_FIELDS:
            value = user.get(name)
            if value is not None and self._find({name: value}):
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: users index: {name}_1",
                    11000,
                    {"keyPattern": {name: 1}, "keyValue": {name: value}},
                )
        user_id = str(ObjectId())
        self.docs[user_id] = {**copy.deepcopy(user), "id": user_id}
        return user_id

    async def update_fields(self, user_id: str, fields: dict[str, Any], unset: Optional[list[str]] = None) -> None:
        doc = self.docs[str(ObjectId(user_id))]
        doc.update(fields)
        for name in unset or []:
            doc.pop(name, None)

    async def count(self, query: dict[str, Any]) -> int:
        return sum(1 for d in self.docs.values() if _matches(d, query))

    def add_user(self, **overrides: Any) -> dict[str, Any]:
        """Insert a ready-to-use account and return its stored document"""
        user_id = str(ObjectId())
        doc = {
            "id": user_id,
            "name": "Test User",
            "email": f"user-{user_id}@example.com",
            "password": hash_password(TEST_PASSWORD),
            "role": "job-seeker",
            "isActive": True,
            "isBlocked": False,
            "isApproved": True,
            "isEmailVerified": False,
            "profileCompletion": 0,
            "education": [],
            "experience": [],
            "skills": [],
        }
        doc.update(overrides)
        self.docs[user_id] = doc
        return doc


class FakeApplicationsRepository:
    def __init__(self) -> None:
        self.docs: list[dict[str, Any]] = []

    async def count(self, query: Optional[dict[str, Any]] = None) -> int:
        return sum(1 for d in self.docs if _matches(d, query or {}))


class FakeMailService(MailService):
    """MailService whose SMTP transport records messages instead of sending them"""

    def __init__(self, settings: Settings, fail: bool = False) -> None:
        super().__init__(settings)
        self.fail = fail
        self.sent: list[EmailMessage] = []

    @property
    def configured(self) -> bool:
        return True

    def _deliver(self, message: EmailMessage) -> None:
        if self.fail:
            raise smtplib.SMTPServerDisconnected("Connection unexpectedly closed")
        self.sent.append(message)


def make_settings(**overrides: Any) -> Settings:
    values = {
        "app_env": "test",
        "jwt_secret": TEST_SECRET,
        "jwt_refresh_secret": TEST_REFRESH_SECRET,
        "cors_origins": "http://localhost:3000",
        "rate_limit_requests": 1000,
        "rate_limit_window": 900,
    }
    values.update(overrides)
    return Settings(**values)


def build_app(
    settings: Settings,
    users_repo: FakeUsersRepository,
    applications_repo: FakeApplicationsRepository,
    mail_service: Optional[FakeMailService] = None,
):
    """Application from create_app(settings) with the datastore and SMTP replaced"""
    app = create_app(settings)
    mail_service = mail_service or FakeMailService(settings)
    app.dependency_overrides[get_users_repo] = lambda: users_repo
    app.dependency_overrides[get_applications_repo] = lambda: applications_repo
    app.dependency_overrides[get_mail_service] = lambda: mail_service
    return app


@pytest.fixture(autouse=True)
def reset_route_limiters():
    """Route-level limiters are module singletons; start every test empty"""
    auth_routes.change_password_limiter.counter.reset()
    auth_routes.forgot_password_limiter.counter.reset()
    yield


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def users_repo() -> FakeUsersRepository:
    return FakeUsersRepository()


@pytest.fixture
def applications_repo() -> FakeApplicationsRepository:
    return FakeApplicationsRepository()


@pytest.fixture
def mail_service(settings) -> FakeMailService:
    return FakeMailService(settings)


@pytest.fixture
def app(settings, users_repo, applications_repo, mail_service):
    return build_app(settings, users_repo, applications_repo, mail_service)


@pytest.fixture
def client(app):
    """Create a test client for the FastAPI application"""
    return TestClient(app)


@pytest.fixture
def make_user(users_repo):
    return users_repo.add_user


@pytest.fixture
def auth_headers(settings):
    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, settings)}"}
    return _headers


def sign(payload: dict[str, Any], secret: str = TEST_SECRET, lifetime: timedelta = timedelta(hours=1)) -> str:
    """Sign an arbitrary token for negative tests"""
    now = datetime.utcnow()
    return jwt.encode({"iat": now, "exp": now + lifetime, **payload}, secret, algorithm="HS256")
