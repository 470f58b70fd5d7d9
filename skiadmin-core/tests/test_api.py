"""
Tests for Auth API
==================
End-to-end behaviour of the HTTP endpoints over in-memory services.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import SECRET


@pytest.fixture
def settings():
    from skiadmin_core.config import Settings

    return Settings(jwt_secret_key=SECRET, environment="development", app_url="https://app.test")


@pytest.fixture
def notifier():
    from skiadmin_core.notifications import LoggingNotifier

    return LoggingNotifier()


@pytest.fixture
def services(settings, notifier, profiles, clock):
    from skiadmin_core.api import AuthServices

    return AuthServices.in_memory(settings, notifier=notifier, profiles=profiles, clock=clock)


@pytest.fixture
def client(services):
    from skiadmin_core.api import create_app

    return TestClient(create_app(services, configure_logging=False))


def _send(client, **overrides):
    body = {"userId": "user-1", "type": "email_verification", "contact": "admin@club.test"}
    body.update(overrides)
    return client.post("/api/otp/send", json=body)


def _verify(client, code, **overrides):
    body = {"userId": "user-1", "code": code, "type": "email_verification", "contact": "admin@club.test"}
    body.update(overrides)
    return client.post("/api/otp/verify", json=body)


class TestSetupTokenEndpoints:
    """Tests for /auth/verify-setup-token and /auth/setup-password."""

    def test_verify_setup_token(self, client, services):
        """Should describe the token's principal."""
        token = services.setup_flow.codec.issue("user-1", "admin@club.test", club_id="club-1")

        response = client.post("/api/auth/verify-setup-token", json={"token": token})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "user": {
                "id": "user-1",
                "email": "admin@club.test",
                "role": "admin",
                "clubId": "club-1",
                "type": "admin_setup",
            },
        }

    def test_missing_token(self, client):
        """Should answer 400 without a token."""
        response = client.post("/api/auth/verify-setup-token", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "Token is required"

    def test_garbage_token(self, client):
        """Should answer 401 for an unparseable token."""
        response = client.post("/api/auth/verify-setup-token", json={"token": "garbage"})

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["code"] == "MALFORMED_TOKEN"

    def test_setup_password_then_replay(self, client, services, profiles):
        """Should set the password once and refuse the same token afterwards."""
        from skiadmin_core.password import verify_password
        import asyncio

        token = services.setup_flow.codec.issue("user-1", "admin@club.test")
        body = {"userId": "user-1", "token": token, "password": "correct-horse-battery"}

        first = client.post("/api/auth/setup-password", json=body)
        second = client.post("/api/auth/setup-password", json=body)
        check = client.post("/api/auth/verify-setup-token", json={"token": token})

        assert first.status_code == 200
        assert first.json() == {"success": True, "message": "Password set successfully"}
        assert second.status_code == 401
        assert second.json()["code"] == "ALREADY_CONSUMED"
        assert check.json()["success"] is False

        profile = asyncio.run(profiles.get_profile("user-1"))
        assert asyncio.run(verify_password("correct-horse-battery", profile.password_hash)) is True

    def test_weak_password(self, client, services):
        """Should answer 400 and leave the token unconsumed."""
        token = services.setup_flow.codec.issue("user-1", "admin@club.test")

        response = client.post(
            "/api/auth/setup-password",
            json={"userId": "user-1", "token": token, "password": "short"},
        )
        check = client.post("/api/auth/verify-setup-token", json={"token": token})

        assert response.status_code == 400
        assert response.json()["code"] == "WEAK_CREDENTIAL"
        assert response.json()["error"] == "Password must be at least 12 characters"
        assert check.status_code == 200

    def test_missing_fields(self, client):
        """Should list the required fields."""
        response = client.post("/api/auth/setup-password", json={"userId": "user-1"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: userId, password, token"


class TestOTPEndpoints:
    """Tests for /otp/send and /otp/verify."""

    def test_send_and_verify(self, client, notifier):
        """Should deliver a code that verifies."""
        sent = _send(client)
        body = sent.json()

        assert sent.status_code == 200
        assert body["success"] is True
        assert body["code"] == notifier.last.code
        assert "expiresAt" in body
        assert notifier.last.subject == "Verify Your Email"

        verified = _verify(client, body["code"])
        assert verified.status_code == 200
        assert verified.json() == {"success": True, "message": "Verified"}

    def test_code_hidden_outside_development(self, settings, notifier, profiles, clock):
        """Should not echo the code in production."""
        from dataclasses import replace

        from skiadmin_core.api import AuthServices, create_app

        services = AuthServices.in_memory(
            replace(settings, environment="production"), notifier=notifier, profiles=profiles, clock=clock
        )
        client = TestClient(create_app(services, configure_logging=False))

        body = _send(client).json()

        assert body["success"] is True
        assert "code" not in body

    def test_phone_purpose_uses_sms(self, client, notifier):
        """Phone verification should go out as SMS."""
        from skiadmin_core.notifications import DeliveryMethod

        _send(client, type="phone_verification", contact="+14155551234")

        assert notifier.last.method is DeliveryMethod.SMS
        assert notifier.last.subject is None

    def test_invalid_type(self, client):
        """Should reject an unknown purpose tag."""
        response = _send(client, type="carrier_pigeon")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid OTP type"

    def test_send_throttled(self, client):
        """Fourth request within the hour should get 429 with resetAt."""
        for _ in range(3):
            assert _send(client).status_code == 200

        response = _send(client)

        assert response.status_code == 429
        assert "resetAt" in response.json()

    def test_failed_delivery(self, settings, profiles, clock):
        """Should answer 500 when the notifier fails."""
        from skiadmin_core.api import AuthServices, create_app
        from skiadmin_core.notifications import LoggingNotifier

        services = AuthServices.in_memory(
            settings, notifier=LoggingNotifier(fail_with="down"), profiles=profiles, clock=clock
        )
        response = _send(TestClient(create_app(services, configure_logging=False)))

        assert response.status_code == 500
        assert response.json()["code"] == "DELIVERY_FAILED"

    @pytest.mark.parametrize("code", ["12345", "1234567", "abcdef"])
    def test_bad_code_format(self, client, code):
        """Should reject anything but six digits before any lookup."""
        response = _verify(client, code)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid code format. Code must be 6 digits."

    def test_wrong_code_reports_remaining(self, client):
        """Should answer 400 with the attempts left."""
        code = _send(client).json()["code"]
        wrong = "000000" if code != "000000" else "111111"

        response = _verify(client, wrong)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["code"] == "INVALID_CODE"
        assert response.json()["attemptsRemaining"] == 2

    def test_lockout_after_five_failures(self, client, clock):
        """Sixth attempt should be locked even with the right code."""
        first = _send(client).json()["code"]
        wrong = "000000" if first != "000000" else "111111"
        for _ in range(3):
            assert _verify(client, wrong).status_code == 400

        second = _send(client).json()["code"]
        wrong = "000000" if second != "000000" else "111111"
        for _ in range(2):
            assert _verify(client, wrong).status_code == 400

        locked = _verify(client, second)

        assert locked.status_code == 429
        assert locked.json()["locked"] is True
        assert locked.json()["resetAt"] == "2026-01-16T12:00:00+00:00"

        clock.advance(hours=24)
        third = _send(client).json()["code"]
        assert _verify(client, third).status_code == 200

    def test_success_resets_failure_count(self, client, services):
        """A verified code should clear earlier failures."""
        import asyncio

        code = _send(client).json()["code"]
        wrong = "000000" if code != "000000" else "111111"
        _verify(client, wrong)
        _verify(client, code)

        info = asyncio.run(services.failed_attempts.check_failed_attempts("user-1"))
        assert info.count == 0


class TestHealthEndpoints:
    """Tests for the health router."""

    def test_liveness_and_readiness(self, client):
        """Should be alive and ready without external stores."""
        assert client.get("/health/live").json() == {"status": "alive"}
        assert client.get("/health/ready").json() == {"status": "ready"}

    def test_health_summary(self, client):
        """Should report the service name and status."""
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["service"] == "skiadmin-auth"

    def test_metrics_exposition(self, client):
        """Should expose the auth counters."""
        _send(client)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "otp_codes_issued_total" in response.text
