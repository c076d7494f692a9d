"""ABOUTME: Flask application factory with configuration, blueprints, and error handling
ABOUTME: Creates the JSON API app and turns service layer errors into {"error": CODE} responses"""

from flask import Flask, current_app, jsonify
from flask.typing import ResponseReturnValue
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

import warden.logging
from warden import bootstrap, config
from warden.service_layer.exceptions import ServiceLayerError

STATUS_BY_CODE = {
    "INVALID_DATA": 400,
    "WEAK_PASSWORD": 400,
    "USER_NOT_EXISTS": 400,
    "INCORRECT_PASSWORD": 400,
    "INCORRECT_CODE": 400,
    "INVALID_REQUEST": 400,
    "EMAIL_ALREADY_USED": 400,
    "NOT_AUTHENTICATED": 401,
    "NOT_ALLOWED": 403,
    "EMAIL_NOT_VERIFIED": 403,
    "SECOND_FACTOR_NOT_VERIFIED": 403,
    "NOT_FOUND": 404,
    "NOT_ACCEPTABLE": 406,
    "UNSUPPORTED_MEDIA_TYPE": 415,
    "TOO_MANY_REQUESTS": 429,
    "UNEXPECTED_ERROR": 500,
}


def error_response(code: str) -> ResponseReturnValue:
    return jsonify({"error": code}), STATUS_BY_CODE.get(code, 500)


def create_app(config_name: str = "", app_warden: bootstrap.Warden | None = None) -> Flask:
    """
    Flask application factory.

    Args:
        config_name: Configuration name (development, testing, production)
        app_warden: already wired session factory and rate limiters, built from the config if not given

    Returns:
        Configured Flask application instance
    """
    warden.logging.logging_setup(config.get_log_level())

    app = Flask(__name__)

    # Load configuration
    flask_config = config.get_config(config_name)
    app.config.from_object(flask_config)

    # Trust 1 layer of proxy (the reverse proxy in front of the app)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore[method-assign]

    if app_warden is None:
        app_warden = bootstrap.bootstrap(
            database_url=app.config["SQLALCHEMY_DATABASE_URI"],
            check_pwned=app.config["CHECK_PWNED_PASSWORDS"],
        )
    app.extensions["warden"] = app_warden

    register_blueprints(app)
    register_error_handlers(app)

    app.logger.info("warden application startup")

    return app


def get_warden() -> bootstrap.Warden:
    warden_instance: bootstrap.Warden = current_app.extensions["warden"]
    return warden_instance


def register_blueprints(app: Flask) -> None:
    """Register application blueprints."""
    from .blueprints.api import api_bp
    from .blueprints.health import health_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(api_bp)


def register_error_handlers(app: Flask) -> None:
    """Every error leaves as JSON, unexpected ones without any detail."""

    @app.errorhandler(ServiceLayerError)
    def service_error(error: ServiceLayerError) -> ResponseReturnValue:
        return error_response(error.code)

    @app.errorhandler(404)
    def not_found(error: HTTPException) -> ResponseReturnValue:
        return error_response("NOT_FOUND")

    @app.errorhandler(405)
    def method_not_allowed(error: HTTPException) -> ResponseReturnValue:
        return jsonify({"error": "METHOD_NOT_ALLOWED"}), 405

    @app.errorhandler(Exception)
    def unexpected_error(error: Exception) -> ResponseReturnValue:
        if isinstance(error, HTTPException):
            return jsonify({"error": error.name.upper().replace(" ", "_")}), error.code or 500
        app.logger.exception(f"Server Error: {error}")
        return error_response("UNEXPECTED_ERROR")
