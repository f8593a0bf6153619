from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from supplyhub.errors import SupplyHubError
from supplyhub.extensions import db

bp = Blueprint("errors", __name__)


@bp.app_errorhandler(SupplyHubError)
def handle_domain_error(error: SupplyHubError):
    db.session.rollback()
    current_app.logger.info(
        "%s on %s %s: %s",
        type(error).__name__,
        request.method,
        request.path,
        error.message,
    )
    return jsonify(error.to_dict()), error.status_code


@bp.app_errorhandler(HTTPException)
def handle_http_error(error: HTTPException):
    return jsonify({"error": error.description or error.name}), error.code


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    db.session.rollback()
    current_app.logger.exception(
        "Unhandled exception on %s %s", request.method, request.path, exc_info=error
    )
    return jsonify({"error": "Internal Server Error"}), 500
