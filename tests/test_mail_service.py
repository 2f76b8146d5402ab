"""
Tests for verification and password reset mail
"""

import asyncio
import re

from fastapi.testclient import TestClient

from conftest import FakeMailService, build_app, make_settings
from skills_bridge.services.mail_service import MailService

RESET_LINK = re.compile(r"/reset-password/([0-9a-f]+)")


def test_register_mails_verification_link(client: TestClient, mail_service, users_repo):
    body = {"name": "Diane Ingabire", "email": "diane@example.com", "password": "secret123"}
    assert client.post("/api/auth/register", json=body).status_code == 201

    stored = next(iter(users_repo.docs.values()))
    assert len(mail_service.sent) == 1
    message = mail_service.sent[0]
    assert message["To"] == "diane@example.com"
    assert "Global Skills Bridge" in message["From"]
    assert f"http://localhost:3000/verify-email/{stored['emailVerificationToken']}" in message.get_content()


def test_production_reset_link_is_mailed(users_repo, applications_repo):
    settings = make_settings(app_env="production", frontend_url="https://skills.example.rw/")
    mail_service = FakeMailService(settings)
    client = TestClient(build_app(settings, users_repo, applications_repo, mail_service))
    users_repo.add_user(email="olivier@example.com", name="Olivier")

    response = client.post("/api/auth/forgot-password", json={"email": "olivier@example.com"})
    assert response.status_code == 200
    assert "resetToken" not in response.json()

    assert len(mail_service.sent) == 1
    text = mail_service.sent[0].get_content()
    assert "https://skills.example.rw/reset-password/" in text
    assert "Olivier" in text
    reset_token = RESET_LINK.search(text).group(1)

    body = {"password": "brandnew1", "confirmPassword": "brandnew1"}
    response = client.put(f"/api/auth/reset-password/{reset_token}", json=body)
    assert response.status_code == 200
    assert response.json()["message"] == "Password reset successfully"


def test_unknown_email_sends_nothing(client: TestClient, mail_service):
    response = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert response.status_code == 200
    assert mail_service.sent == []


def test_failed_delivery_does_not_fail_requests(users_repo, applications_repo, caplog):
    settings = make_settings()
    mail_service = FakeMailService(settings, fail=True)
    client = TestClient(build_app(settings, users_repo, applications_repo, mail_service))

    body = {"name": "Patrick Habimana", "email": "patrick@example.com", "password": "secret123"}
    assert client.post("/api/auth/register", json=body).status_code == 201

    response = client.post("/api/auth/forgot-password", json={"email": "patrick@example.com"})
    assert response.status_code == 200
    assert response.json()["message"].startswith("If an account with that email exists")
    assert any("Failed to send" in record.getMessage() for record in caplog.records)


def test_unconfigured_smtp_is_reported():
    mail_service = MailService(make_settings(smtp_host=""))
    assert mail_service.configured is False
    assert asyncio.run(mail_service.send("a@example.com", "Hello", "Body")) is False
