# server.py
import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from errors import ConfigurationError, ServiceError
from log_utils import parse_level
from scan_routes import ScanService, scan_bp
from settings import Settings


def error_response(error: str, reason: str, status: int):
    return jsonify({"error": error, "reason": reason}), status


def create_app(settings: Settings, logger: logging.Logger, rule_set, engine) -> Flask:
    app = Flask(__name__)
    CORS(app, origins="*", supports_credentials=True)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_size
    app.extensions["scan_service"] = ScanService(rule_set, engine, logger)
    app.register_blueprint(scan_bp)

    # --- Errors ------------------------------------------------------------

    @app.errorhandler(ServiceError)
    def handle_service_error(e: ServiceError):
        status = getattr(e, "status", 500)
        logger.error("%s %s failed: %s", request.method, request.path, e)
        return error_response(e.code, str(e), status)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e: RequestEntityTooLarge):
        logger.error("%s %s rejected: body larger than %d bytes", request.method, request.path, settings.max_upload_size)
        return error_response(
            "payload_too_large",
            f"request body exceeds the {settings.max_upload_size} byte limit",
            413,
        )

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return error_response(e.name.lower().replace(" ", "_"), e.description or "", e.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error_response("internal_error", str(e) or type(e).__name__, 500)

    # --- Operations --------------------------------------------------------

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "rules": len(rule_set)})

    @app.put("/logging")
    def set_log_level():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        name = str(data.get("level") or request.values.get("level") or "").strip()
        if not name:
            return error_response("bad_request", "missing field: level", 400)
        try:
            level = parse_level(name)
        except ConfigurationError as e:
            return error_response("bad_request", str(e), 400)
        logger.setLevel(level)
        logger.warning("Log level changed to %s", name.lower())
        return jsonify({"level": name.lower()})

    return app
