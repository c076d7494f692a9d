"""ABOUTME: JSON API endpoints exposing the warden services to the application server
ABOUTME: Checks the shared secret, parses bodies, and serialises users, requests and credentials"""

import base64
import binascii
import hmac
from datetime import datetime
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from flask.typing import ResponseReturnValue

from warden.domain.email_verification import EmailVerificationRequest
from warden.domain.password_reset import PasswordResetRequest
from warden.domain.totp_credentials import TOTPCredential
from warden.domain.users import User
from warden.entrypoints.flask_app import error_response, get_warden
from warden.service_layer import (
    email_verification_service,
    password_reset_service,
    recovery_code_service,
    totp_service,
    user_service,
)
from warden.service_layer.exceptions import InvalidInput

api_bp = Blueprint("api", __name__)

JSON_MEDIA_TYPES = ("application/json", "text/plain")


def _unix(moment: datetime) -> int:
    return int(moment.timestamp())


def user_json(user: User, registered_totp: bool) -> dict[str, Any]:
    return {
        "id": user.id,
        "created_at": _unix(user.created_at),
        "email": user.email,
        "email_verified": user.email_verified,
        "registered_totp": registered_totp,
    }


def email_verification_request_json(verification: EmailVerificationRequest) -> dict[str, Any]:
    return {
        "user_id": verification.user_id,
        "created_at": _unix(verification.created_at),
        "expires_at": _unix(verification.expires_at),
        "email": verification.email,
        "code": verification.code,
    }


def password_reset_request_json(reset: PasswordResetRequest) -> dict[str, Any]:
    return {
        "id": reset.id,
        "user_id": reset.user_id,
        "created_at": _unix(reset.created_at),
        "expires_at": _unix(reset.expires_at),
        "email": reset.email,
        "email_verified": reset.email_verified,
        "two_factor_verified": reset.two_factor_verified,
    }


def totp_credential_json(key: bytes, credential: TOTPCredential) -> dict[str, Any]:
    return {
        "user_id": credential.user_id,
        "created_at": _unix(credential.created_at),
        "key": base64.b64encode(key).decode("ascii"),
    }


def _user_response(user: User) -> dict[str, Any]:
    registered_totp = totp_service.has_totp_credential(get_warden().new_uow(), user.id)
    return user_json(user, registered_totp)


@api_bp.before_request
def check_request() -> ResponseReturnValue | None:
    """Reject callers without the shared secret, and bodies that are not JSON."""
    secret = current_app.config.get("WARDEN_SECRET", "")
    if secret:
        given = request.headers.get("Authorization", "")
        if not hmac.compare_digest(given.encode("utf-8"), secret.encode("utf-8")):
            return error_response("NOT_AUTHENTICATED")

    if request.content_type and request.mimetype not in JSON_MEDIA_TYPES:
        return error_response("UNSUPPORTED_MEDIA_TYPE")
    return None


def _json_body() -> dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    return data


def _string(data: dict[str, Any], name: str, required: bool = True) -> str:
    value = data.get(name)
    if value is None and not required:
        return ""
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be a string")
    return value


def _client_ip(data: dict[str, Any] | None = None) -> str | None:
    client_ip = (data or {}).get("client_ip") or request.headers.get("X-Client-IP", "")
    if not isinstance(client_ip, str):
        raise InvalidInput("client_ip must be a string")
    return client_ip or None


# users


@api_bp.route("/users", methods=["POST"])
def create_user() -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    user = user_service.create_user(
        app_warden.new_uow(),
        app_warden.limits,
        email=_string(data, "email"),
        password=_string(data, "password"),
        client_ip=_client_ip(data),
        check_pwned=app_warden.check_pwned,
    )
    return jsonify(user_json(user, registered_totp=False)), 201


@api_bp.route("/users", methods=["GET"])
def list_users() -> ResponseReturnValue:
    users = user_service.list_users(get_warden().new_uow())
    return jsonify([_user_response(user) for user in users])


@api_bp.route("/users", methods=["DELETE"])
def delete_all_users() -> ResponseReturnValue:
    user_service.delete_all_users(get_warden().new_uow())
    return "", 204


@api_bp.route("/users/<user_id>", methods=["GET"])
def get_user(user_id: str) -> ResponseReturnValue:
    user = user_service.get_user(get_warden().new_uow(), user_id)
    return jsonify(_user_response(user))


@api_bp.route("/users/<user_id>", methods=["DELETE"])
def delete_user(user_id: str) -> ResponseReturnValue:
    user_service.delete_user(get_warden().new_uow(), user_id)
    return "", 204


@api_bp.route("/authenticate", methods=["POST"])
def authenticate() -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    user = user_service.authenticate_with_password(
        app_warden.new_uow(),
        app_warden.limits,
        email=_string(data, "email"),
        password=_string(data, "password"),
        client_ip=_client_ip(data),
    )
    return jsonify(_user_response(user))


@api_bp.route("/users/<user_id>/verify-password", methods=["POST"])
def verify_password(user_id: str) -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    user_service.verify_password(
        app_warden.new_uow(),
        app_warden.limits,
        user_id,
        password=_string(data, "password"),
        client_ip=_client_ip(data),
    )
    return "", 204


@api_bp.route("/users/<user_id>/update-password", methods=["POST"])
def update_password(user_id: str) -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    user_service.update_password(
        app_warden.new_uow(),
        app_warden.limits,
        user_id,
        current_password=_string(data, "password"),
        new_password=_string(data, "new_password"),
        client_ip=_client_ip(data),
        check_pwned=app_warden.check_pwned,
    )
    return "", 204


# email verification


@api_bp.route("/users/<user_id>/email-verification-request", methods=["POST"])
def create_email_verification_request(user_id: str) -> ResponseReturnValue:
    app_warden = get_warden()
    data = request.get_json(force=True, silent=True) or {}
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    email = _string(data, "email", required=False)
    if not email:
        email = user_service.get_user(app_warden.new_uow(), user_id).email
    verification = email_verification_service.create_email_verification_request(
        app_warden.new_uow(), app_warden.limits, user_id, email
    )
    return jsonify(email_verification_request_json(verification)), 201


@api_bp.route("/users/<user_id>/email-verification-request", methods=["GET"])
def get_email_verification_request(user_id: str) -> ResponseReturnValue:
    app_warden = get_warden()
    verification = email_verification_service.get_email_verification_request(
        app_warden.new_uow(), app_warden.limits, user_id
    )
    return jsonify(email_verification_request_json(verification))


@api_bp.route("/users/<user_id>/email-verification-request", methods=["DELETE"])
def delete_email_verification_request(user_id: str) -> ResponseReturnValue:
    email_verification_service.delete_email_verification_request(get_warden().new_uow(), user_id)
    return "", 204


@api_bp.route("/users/<user_id>/verify-email", methods=["POST"])
def verify_email(user_id: str) -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    user = email_verification_service.verify_email_verification_request(
        app_warden.new_uow(), app_warden.limits, user_id, _string(data, "code")
    )
    return jsonify(_user_response(user))


# password reset


@api_bp.route("/password-reset-requests", methods=["POST"])
def create_password_reset_request() -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    reset, code = password_reset_service.create_password_reset_request(
        app_warden.new_uow(), app_warden.limits, _string(data, "email"), client_ip=_client_ip(data)
    )
    return jsonify({**password_reset_request_json(reset), "code": code}), 201


@api_bp.route("/password-reset-requests/<request_id>", methods=["GET"])
def get_password_reset_request(request_id: str) -> ResponseReturnValue:
    reset = password_reset_service.get_password_reset_request(get_warden().new_uow(), request_id)
    return jsonify(password_reset_request_json(reset))


@api_bp.route("/password-reset-requests/<request_id>", methods=["DELETE"])
def delete_password_reset_request(request_id: str) -> ResponseReturnValue:
    password_reset_service.delete_password_reset_request(get_warden().new_uow(), request_id)
    return "", 204


@api_bp.route("/users/<user_id>/password-reset-requests", methods=["GET"])
def get_user_password_reset_requests(user_id: str) -> ResponseReturnValue:
    resets = password_reset_service.get_user_password_reset_requests(get_warden().new_uow(), user_id)
    return jsonify([password_reset_request_json(reset) for reset in resets])


@api_bp.route("/users/<user_id>/password-reset-requests", methods=["DELETE"])
def delete_user_password_reset_requests(user_id: str) -> ResponseReturnValue:
    password_reset_service.delete_user_password_reset_requests(get_warden().new_uow(), user_id)
    return "", 204


@api_bp.route("/password-reset-requests/<request_id>/verify-email", methods=["POST"])
def verify_password_reset_request_email(request_id: str) -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    reset = password_reset_service.verify_password_reset_request_email(
        app_warden.new_uow(), app_warden.limits, request_id, _string(data, "code"), client_ip=_client_ip(data)
    )
    return jsonify(password_reset_request_json(reset))


@api_bp.route("/password-reset-requests/<request_id>/verify-2fa/totp", methods=["POST"])
def verify_password_reset_request_totp(request_id: str) -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    reset = password_reset_service.verify_password_reset_request_2fa(
        app_warden.new_uow(), app_warden.limits, request_id, _string(data, "code")
    )
    return jsonify(password_reset_request_json(reset))


@api_bp.route("/reset-password", methods=["POST"])
def reset_password() -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    user = password_reset_service.reset_password(
        app_warden.new_uow(),
        app_warden.limits,
        _string(data, "request_id"),
        _string(data, "password"),
        client_ip=_client_ip(data),
        check_pwned=app_warden.check_pwned,
    )
    return jsonify(_user_response(user))


# TOTP


@api_bp.route("/users/<user_id>/register-totp", methods=["POST"])
def register_totp(user_id: str) -> ResponseReturnValue:
    data = _json_body()
    try:
        key = base64.b64decode(_string(data, "key"), validate=True)
    except binascii.Error as error:
        raise InvalidInput("key must be base64 encoded") from error
    credential = totp_service.register_totp_credential(get_warden().new_uow(), user_id, key, _string(data, "code"))
    return jsonify(totp_credential_json(key, credential)), 201


@api_bp.route("/users/<user_id>/totp-credential", methods=["GET"])
def get_totp_credential(user_id: str) -> ResponseReturnValue:
    key, credential = totp_service.get_totp_credential(get_warden().new_uow(), user_id)
    return jsonify(totp_credential_json(key, credential))


@api_bp.route("/users/<user_id>/totp-credential", methods=["DELETE"])
def delete_totp_credential(user_id: str) -> ResponseReturnValue:
    totp_service.delete_totp_credential(get_warden().new_uow(), user_id)
    return "", 204


@api_bp.route("/users/<user_id>/verify-2fa/totp", methods=["POST"])
def verify_totp(user_id: str) -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    totp_service.verify_totp(app_warden.new_uow(), app_warden.limits, user_id, _string(data, "code"))
    return "", 204


# recovery code


@api_bp.route("/users/<user_id>/recovery-code", methods=["GET"])
def get_recovery_code(user_id: str) -> ResponseReturnValue:
    code = user_service.get_recovery_code(get_warden().new_uow(), user_id)
    return jsonify({"recovery_code": code})


@api_bp.route("/users/<user_id>/reset-2fa", methods=["POST"])
def reset_second_factors(user_id: str) -> ResponseReturnValue:
    data = _json_body()
    app_warden = get_warden()
    new_code = recovery_code_service.verify_recovery_code(
        app_warden.new_uow(), app_warden.limits, user_id, _string(data, "recovery_code")
    )
    return jsonify({"recovery_code": new_code})


@api_bp.route("/users/<user_id>/regenerate-recovery-code", methods=["POST"])
def regenerate_recovery_code(user_id: str) -> ResponseReturnValue:
    new_code = recovery_code_service.regenerate_recovery_code(get_warden().new_uow(), user_id)
    return jsonify({"recovery_code": new_code})
