# Overview: Flask API routes for expense categories.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError
from ..responses import error_response, ok, unexpected_error
from ..services import category_service


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
@require_permission("VIEW_CATEGORIES")
def list_categories_route():
    include_inactive = request.args.get("include_inactive", "").lower() in {"1", "true", "yes"}
    rows = category_service.list_categories(include_inactive=include_inactive)
    return ok([c.to_dict() for c in rows])


@categories_bp.post("")
@require_auth
@require_permission("MANAGE_CATEGORIES")
def create_category_route():
    try:
        category = category_service.create_category(g.current_user, request.get_json(silent=True) or {})
        return ok(category.to_dict(), "Category created", 201)
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("create category", e)


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission("VIEW_CATEGORIES")
def get_category_route(category_id: int):
    try:
        return ok(category_service.get_category(category_id).to_dict())
    except PettyCashError as e:
        return error_response(e)


@categories_bp.put("/<int:category_id>")
@require_auth
@require_permission("MANAGE_CATEGORIES")
def update_category_route(category_id: int):
    try:
        category = category_service.update_category(g.current_user, category_id, request.get_json(silent=True) or {})
        return ok(category.to_dict(), "Category updated")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("update category", e)


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_permission("MANAGE_CATEGORIES")
def delete_category_route(category_id: int):
    try:
        category_service.delete_category(g.current_user, category_id)
        return ok(message="Category deleted")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("delete category", e)
