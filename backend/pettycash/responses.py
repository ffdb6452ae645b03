# Overview: JSON response envelope helpers shared by all blueprints.

from flask import current_app, jsonify

from .errors import PettyCashError
from .extensions import db


def ok(data=None, message: str | None = None, status: int = 200, **extra):
    """{success: true, data?, message?} plus any extra top-level fields."""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return jsonify(body), status


def fail(message: str, status: int, code: str | None = None, **extra):
    body = {"success": False, "message": message}
    if code:
        body["error"] = code
    body.update(extra)
    return jsonify(body), status


def error_response(exc: PettyCashError):
    """Roll back the unit of work and render a domain error."""
    db.session.rollback()
    return jsonify(exc.to_dict()), exc.status_code


def unexpected_error(what: str, exc: Exception | None = None):
    """
    Log the active exception and return a 500.

    Call only from inside an except block. The exception text is exposed
    only when EXPOSE_ERROR_DETAILS is on.
    """
    db.session.rollback()
    current_app.logger.exception("Failed to %s", what)
    if exc is not None and current_app.config.get("EXPOSE_ERROR_DETAILS"):
        return fail("Internal server error", 500, "UNEXPECTED_ERROR", detail=str(exc))
    return fail("Internal server error", 500, "UNEXPECTED_ERROR")


def page_meta(total: int, page: int, per_page: int) -> dict:
    pages = (total + per_page - 1) // per_page if per_page else 0
    return {"total": total, "page": page, "per_page": per_page, "pages": pages}
