"""ABOUTME: End-to-end tests for the JSON API
ABOUTME: Drives the user, email verification, password reset, TOTP and recovery endpoints through Flask"""

import base64
import json
import secrets
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from warden.service_layer import otp

PASSWORD = "Wobbly-Lantern-42"
NEW_PASSWORD = "Velvet-Harbour-77"
CLIENT_IP = "203.0.113.7"


@pytest.fixture
def user(api):
    response = api.post("/users", json={"email": "user@example.com", "password": PASSWORD})
    assert response.status_code == 201
    return response.get_json()


def totp_code(key: bytes) -> str:
    return otp.generate_totp(datetime.now(UTC), key)


@pytest.fixture
def totp_key(api, user):
    key = secrets.token_bytes(20)
    response = api.post(
        f"/users/{user['id']}/register-totp",
        json={"key": base64.b64encode(key).decode("ascii"), "code": totp_code(key)},
    )
    assert response.status_code == 201
    return key


class TestSharedSecret:
    def test_missing_secret(self, client):
        response = client.get("/users")
        assert response.status_code == 401
        assert response.get_json() == {"error": "NOT_AUTHENTICATED"}

    def test_wrong_secret(self, client):
        response = client.get("/users", headers={"Authorization": "not-the-secret"})
        assert response.status_code == 401

    def test_no_secret_configured(self, app, client):
        app.config["WARDEN_SECRET"] = ""
        response = client.get("/users")
        assert response.status_code == 200


class TestRequestParsing:
    def test_unsupported_media_type(self, api):
        response = api.post("/users", data="<user/>", content_type="application/xml")
        assert response.status_code == 415
        assert response.get_json() == {"error": "UNSUPPORTED_MEDIA_TYPE"}

    def test_text_plain_body_is_read_as_json(self, api):
        body = json.dumps({"email": "plain@example.com", "password": PASSWORD})
        response = api.post("/users", data=body, content_type="text/plain")
        assert response.status_code == 201

    def test_malformed_json(self, api):
        response = api.post("/users", data="{not json", content_type="application/json")
        assert response.status_code == 400
        assert response.get_json() == {"error": "INVALID_DATA"}

    def test_field_of_wrong_type(self, api):
        response = api.post("/users", json={"email": 42, "password": PASSWORD})
        assert response.status_code == 400
        assert response.get_json() == {"error": "INVALID_DATA"}

    def test_unknown_route(self, api):
        response = api.get("/nothing-here")
        assert response.status_code == 404
        assert response.get_json() == {"error": "NOT_FOUND"}

    def test_wrong_method(self, api):
        response = api.delete("/authenticate")
        assert response.status_code == 405
        assert response.get_json() == {"error": "METHOD_NOT_ALLOWED"}

    def test_unexpected_error_hides_details(self, api):
        with patch("warden.service_layer.user_service.list_users", side_effect=RuntimeError("db on fire")):
            response = api.get("/users")
        assert response.status_code == 500
        assert response.get_json() == {"error": "UNEXPECTED_ERROR"}


class TestUsers:
    def test_create_user(self, user):
        assert user["email"] == "user@example.com"
        assert user["email_verified"] is False
        assert user["registered_totp"] is False
        assert isinstance(user["created_at"], int)
        assert "password_hash" not in user
        assert "recovery_code" not in user

    def test_duplicate_email(self, api, user):
        response = api.post("/users", json={"email": "user@example.com", "password": PASSWORD})
        assert response.status_code == 400
        assert response.get_json() == {"error": "EMAIL_ALREADY_USED"}

    def test_weak_password(self, api):
        response = api.post("/users", json={"email": "weak@example.com", "password": "password"})
        assert response.status_code == 400
        assert response.get_json() == {"error": "WEAK_PASSWORD"}

    def test_get_and_list(self, api, user):
        assert api.get(f"/users/{user['id']}").get_json() == user
        assert api.get("/users").get_json() == [user]

    def test_get_missing(self, api):
        response = api.get("/users/missing")
        assert response.status_code == 404
        assert response.get_json() == {"error": "NOT_FOUND"}

    def test_delete(self, api, user):
        response = api.delete(f"/users/{user['id']}")
        assert response.status_code == 204
        assert api.get(f"/users/{user['id']}").status_code == 404

    def test_delete_all(self, api, user, totp_key):
        api.post("/users", json={"email": "other@example.com", "password": PASSWORD})

        response = api.delete("/users")

        assert response.status_code == 204
        assert api.get("/users").get_json() == []
        assert api.get(f"/users/{user['id']}/totp-credential").status_code == 404

    def test_verify_password(self, api, user):
        ok = api.post(f"/users/{user['id']}/verify-password", json={"password": PASSWORD})
        assert ok.status_code == 204

        wrong = api.post(f"/users/{user['id']}/verify-password", json={"password": "wrong password"})
        assert wrong.status_code == 400
        assert wrong.get_json() == {"error": "INCORRECT_PASSWORD"}

    def test_update_password(self, api, user):
        response = api.post(
            f"/users/{user['id']}/update-password", json={"password": PASSWORD, "new_password": NEW_PASSWORD}
        )
        assert response.status_code == 204
        assert api.post("/authenticate", json={"email": user["email"], "password": NEW_PASSWORD}).status_code == 200


class TestAuthenticate:
    def test_success(self, api, user):
        response = api.post("/authenticate", json={"email": "user@example.com", "password": PASSWORD})
        assert response.status_code == 200
        assert response.get_json()["id"] == user["id"]

    def test_unknown_email(self, api):
        response = api.post("/authenticate", json={"email": "nobody@example.com", "password": PASSWORD})
        assert response.status_code == 400
        assert response.get_json() == {"error": "USER_NOT_EXISTS"}

    def test_ip_lockout(self, api, user, fake_clock):
        for _ in range(5):
            fake_clock.advance(timedelta(seconds=10))
            response = api.post(
                "/authenticate",
                json={"email": "user@example.com", "password": "wrong password", "client_ip": CLIENT_IP},
            )
            assert response.status_code == 400

        fake_clock.advance(timedelta(seconds=10))
        response = api.post(
            "/authenticate", json={"email": "user@example.com", "password": PASSWORD, "client_ip": CLIENT_IP}
        )
        assert response.status_code == 429
        assert response.get_json() == {"error": "TOO_MANY_REQUESTS"}

    def test_client_ip_from_header(self, api, user, fake_clock):
        for _ in range(5):
            fake_clock.advance(timedelta(seconds=10))
            api.post(
                "/authenticate",
                json={"email": "user@example.com", "password": "wrong password"},
                headers={"X-Client-IP": CLIENT_IP},
            )

        fake_clock.advance(timedelta(seconds=10))
        response = api.post(
            "/authenticate",
            json={"email": "user@example.com", "password": PASSWORD},
            headers={"X-Client-IP": CLIENT_IP},
        )
        assert response.status_code == 429


class TestEmailVerification:
    def test_verify_email(self, api, user):
        created = api.post(f"/users/{user['id']}/email-verification-request")
        assert created.status_code == 201
        request = created.get_json()
        assert request["email"] == "user@example.com"
        assert request["expires_at"] - request["created_at"] == 600

        assert api.get(f"/users/{user['id']}/email-verification-request").get_json() == request

        response = api.post(f"/users/{user['id']}/verify-email", json={"code": request["code"]})
        assert response.status_code == 200
        assert response.get_json()["email_verified"] is True
        assert api.get(f"/users/{user['id']}/email-verification-request").status_code == 403

    def test_change_email(self, api, user):
        request = api.post(
            f"/users/{user['id']}/email-verification-request", json={"email": "new@example.com"}
        ).get_json()

        response = api.post(f"/users/{user['id']}/verify-email", json={"code": request["code"]})

        assert response.get_json()["email"] == "new@example.com"

    def test_wrong_code(self, api, user):
        request = api.post(f"/users/{user['id']}/email-verification-request").get_json()
        wrong = "A" * 8 if request["code"] != "A" * 8 else "B" * 8

        response = api.post(f"/users/{user['id']}/verify-email", json={"code": wrong})

        assert response.status_code == 400
        assert response.get_json() == {"error": "INCORRECT_CODE"}

    def test_no_request(self, api, user):
        response = api.post(f"/users/{user['id']}/verify-email", json={"code": "ABCD2345"})
        assert response.status_code == 403
        assert response.get_json() == {"error": "NOT_ALLOWED"}

    def test_delete_request(self, api, user):
        api.post(f"/users/{user['id']}/email-verification-request")
        assert api.delete(f"/users/{user['id']}/email-verification-request").status_code == 204
        assert api.delete(f"/users/{user['id']}/email-verification-request").status_code == 404


class TestPasswordReset:
    def _start_reset(self, api, email="user@example.com"):
        response = api.post("/password-reset-requests", json={"email": email})
        assert response.status_code == 201
        return response.get_json()

    def test_create_returns_the_code_once(self, api, user):
        reset = self._start_reset(api)

        assert reset["user_id"] == user["id"]
        assert len(reset["code"]) == 8
        assert reset["email_verified"] is False
        fetched = api.get(f"/password-reset-requests/{reset['id']}").get_json()
        assert "code" not in fetched
        assert "code_hash" not in fetched

    def test_unknown_email(self, api):
        response = api.post("/password-reset-requests", json={"email": "nobody@example.com"})
        assert response.status_code == 400
        assert response.get_json() == {"error": "USER_NOT_EXISTS"}

    def test_full_reset(self, api, user):
        reset = self._start_reset(api)

        verified = api.post(f"/password-reset-requests/{reset['id']}/verify-email", json={"code": reset["code"]})
        assert verified.get_json()["email_verified"] is True

        response = api.post("/reset-password", json={"request_id": reset["id"], "password": NEW_PASSWORD})
        assert response.status_code == 200
        assert response.get_json()["email_verified"] is True

        assert api.get(f"/password-reset-requests/{reset['id']}").status_code == 404
        login = api.post("/authenticate", json={"email": "user@example.com", "password": NEW_PASSWORD})
        assert login.status_code == 200

    def test_reset_before_email_verified(self, api, user):
        reset = self._start_reset(api)
        response = api.post("/reset-password", json={"request_id": reset["id"], "password": NEW_PASSWORD})
        assert response.status_code == 403
        assert response.get_json() == {"error": "EMAIL_NOT_VERIFIED"}

    def test_reset_with_second_factor(self, api, user, totp_key):
        reset = self._start_reset(api)
        api.post(f"/password-reset-requests/{reset['id']}/verify-email", json={"code": reset["code"]})

        refused = api.post("/reset-password", json={"request_id": reset["id"], "password": NEW_PASSWORD})
        assert refused.status_code == 403
        assert refused.get_json() == {"error": "SECOND_FACTOR_NOT_VERIFIED"}

        verified = api.post(
            f"/password-reset-requests/{reset['id']}/verify-2fa/totp", json={"code": totp_code(totp_key)}
        )
        assert verified.get_json()["two_factor_verified"] is True

        response = api.post("/reset-password", json={"request_id": reset["id"], "password": NEW_PASSWORD})
        assert response.status_code == 200

    def test_reset_with_unknown_request(self, api):
        response = api.post("/reset-password", json={"request_id": "missing", "password": NEW_PASSWORD})
        assert response.status_code == 400
        assert response.get_json() == {"error": "INVALID_REQUEST"}

    def test_list_for_user(self, api, user):
        first = self._start_reset(api)
        second = self._start_reset(api)

        response = api.get(f"/users/{user['id']}/password-reset-requests")

        assert response.status_code == 200
        assert {reset["id"] for reset in response.get_json()} == {first["id"], second["id"]}
        assert all("code" not in reset for reset in response.get_json())

    def test_list_for_missing_user(self, api):
        response = api.get("/users/missing/password-reset-requests")
        assert response.status_code == 404
        assert response.get_json() == {"error": "NOT_FOUND"}

    def test_delete_all_for_user(self, api, user):
        reset = self._start_reset(api)

        response = api.delete(f"/users/{user['id']}/password-reset-requests")

        assert response.status_code == 204
        assert api.get(f"/users/{user['id']}/password-reset-requests").get_json() == []
        assert api.get(f"/password-reset-requests/{reset['id']}").status_code == 404

    def test_delete(self, api, user):
        reset = self._start_reset(api)
        assert api.delete(f"/password-reset-requests/{reset['id']}").status_code == 204
        assert api.get(f"/password-reset-requests/{reset['id']}").status_code == 404


class TestTOTP:
    def test_register_and_get(self, api, user, totp_key):
        assert api.get(f"/users/{user['id']}").get_json()["registered_totp"] is True

        credential = api.get(f"/users/{user['id']}/totp-credential").get_json()
        assert base64.b64decode(credential["key"]) == totp_key
        assert credential["user_id"] == user["id"]

    def test_register_with_bad_key(self, api, user):
        response = api.post(f"/users/{user['id']}/register-totp", json={"key": "!!!", "code": "123456"})
        assert response.status_code == 400
        assert response.get_json() == {"error": "INVALID_DATA"}

    def test_verify(self, api, user, totp_key):
        response = api.post(f"/users/{user['id']}/verify-2fa/totp", json={"code": totp_code(totp_key)})
        assert response.status_code == 204

    def test_verify_without_credential(self, api, user):
        response = api.post(f"/users/{user['id']}/verify-2fa/totp", json={"code": "123456"})
        assert response.status_code == 403
        assert response.get_json() == {"error": "NOT_ALLOWED"}

    def test_delete(self, api, user, totp_key):
        assert api.delete(f"/users/{user['id']}/totp-credential").status_code == 204
        assert api.get(f"/users/{user['id']}/totp-credential").status_code == 404


class TestRecoveryCode:
    def test_reset_second_factor(self, api, user, totp_key):
        code = api.get(f"/users/{user['id']}/recovery-code").get_json()["recovery_code"]

        response = api.post(f"/users/{user['id']}/reset-2fa", json={"recovery_code": code})

        assert response.status_code == 200
        new_code = response.get_json()["recovery_code"]
        assert new_code != code
        assert api.get(f"/users/{user['id']}").get_json()["registered_totp"] is False
        assert api.get(f"/users/{user['id']}/recovery-code").get_json()["recovery_code"] == new_code

    def test_wrong_recovery_code(self, api, user, totp_key):
        code = api.get(f"/users/{user['id']}/recovery-code").get_json()["recovery_code"]
        wrong = "A" * 8 if code != "A" * 8 else "B" * 8

        response = api.post(f"/users/{user['id']}/reset-2fa", json={"recovery_code": wrong})

        assert response.status_code == 400
        assert response.get_json() == {"error": "INCORRECT_CODE"}

    def test_regenerate(self, api, user):
        code = api.get(f"/users/{user['id']}/recovery-code").get_json()["recovery_code"]
        response = api.post(f"/users/{user['id']}/regenerate-recovery-code")
        assert response.get_json()["recovery_code"] != code
