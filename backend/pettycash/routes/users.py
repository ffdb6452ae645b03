# Overview: Flask API routes for user administration.

# backend/pettycash/routes/users.py
"""
User administration routes

There is no self-registration: admins and managers create accounts here.
Only admins may create or manage admin accounts.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError
from ..responses import error_response, ok, unexpected_error
from ..services import user_service


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("VIEW_USERS")
def list_users_route():
    is_active = request.args.get("is_active")
    rows = user_service.list_users(
        role=request.args.get("role"),
        is_active=None if is_active is None else is_active.lower() in {"1", "true", "yes"},
        search=request.args.get("search"),
    )
    return ok([u.to_dict() for u in rows])


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    try:
        user = user_service.create_user(g.current_user, request.get_json(silent=True) or {})
        return ok(user.to_dict(), "User created", 201)
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("create user", e)


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("VIEW_USERS")
def get_user_route(user_id: int):
    try:
        return ok(user_service.get_user(user_id).to_dict())
    except PettyCashError as e:
        return error_response(e)


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    try:
        user = user_service.update_user(g.current_user, user_id, request.get_json(silent=True) or {})
        return ok(user.to_dict(), "User updated")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("update user", e)


@users_bp.patch("/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user_route(user_id: int):
    try:
        user = user_service.set_active(g.current_user, user_id, False)
        return ok(user.to_dict(), "User deactivated")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("deactivate user", e)


@users_bp.patch("/<int:user_id>/reactivate")
@require_auth
@require_permission("MANAGE_USERS")
def reactivate_user_route(user_id: int):
    try:
        user = user_service.set_active(g.current_user, user_id, True)
        return ok(user.to_dict(), "User reactivated")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("reactivate user", e)


@users_bp.patch("/<int:user_id>/unlock")
@require_auth
@require_permission("MANAGE_USERS")
def unlock_user_route(user_id: int):
    """Clear the OTP lockout and both failure counters."""
    try:
        user = user_service.unlock_user(g.current_user, user_id)
        return ok(user.to_dict(), "User unlocked")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("unlock user", e)
