"""ABOUTME: Health check endpoint for monitoring service status
ABOUTME: Reports database status and the running version as JSON"""

import logging
from importlib.metadata import PackageNotFoundError, version

from flask import Blueprint, jsonify
from flask.typing import ResponseReturnValue

from warden.entrypoints.flask_app import get_warden

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)


def get_warden_version() -> str:
    try:
        return version("warden-auth")
    except PackageNotFoundError:
        return "UNKNOWN"


def check_database() -> tuple[bool, int | str]:
    """
    Check database connectivity and return user count.

    Returns:
        Tuple of (success: bool, user_count: int | "UNKNOWN")
    """
    try:
        with get_warden().new_uow() as uow:
            user_count = len(list(uow.users.all()))
        return True, user_count
    except Exception as e:
        logger.warning(f"Health check could not reach the database: {e}")
        return False, "UNKNOWN"


@health_bp.route("/health")
def health_check() -> ResponseReturnValue:
    """
    Health check endpoint returning JSON with system status.

    Returns:
        JSON response with:
        - database_ok: bool
        - user_count: int | "UNKNOWN"
        - version: str

    HTTP status 200 if the database is reachable, 500 otherwise.
    """
    db_ok, user_count = check_database()

    response_data = {
        "database_ok": db_ok,
        "user_count": user_count,
        "version": get_warden_version(),
    }
    return jsonify(response_data), 200 if db_ok else 500
