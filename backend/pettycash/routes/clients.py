# Overview: Flask API routes for the vendor / payee directory.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError
from ..responses import error_response, ok, unexpected_error
from ..services import client_service


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_auth
@require_permission("VIEW_CLIENTS")
def list_clients_route():
    is_active = request.args.get("is_active")
    rows = client_service.list_clients(
        search=request.args.get("search"),
        client_type=request.args.get("client_type"),
        is_active=None if is_active is None else is_active.lower() in {"1", "true", "yes"},
    )
    return ok([c.to_dict() for c in rows])


@clients_bp.post("")
@require_auth
@require_permission("MANAGE_CLIENTS")
def create_client_route():
    try:
        client = client_service.create_client(g.current_user, request.get_json(silent=True) or {})
        return ok(client.to_dict(), "Client created", 201)
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("create client", e)


@clients_bp.get("/<int:client_id>")
@require_auth
@require_permission("VIEW_CLIENTS")
def get_client_route(client_id: int):
    try:
        return ok(client_service.get_client(client_id).to_dict())
    except PettyCashError as e:
        return error_response(e)


@clients_bp.put("/<int:client_id>")
@require_auth
@require_permission("MANAGE_CLIENTS")
def update_client_route(client_id: int):
    try:
        client = client_service.update_client(g.current_user, client_id, request.get_json(silent=True) or {})
        return ok(client.to_dict(), "Client updated")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("update client", e)


@clients_bp.delete("/<int:client_id>")
@require_auth
@require_permission("DELETE_CLIENTS")
def delete_client_route(client_id: int):
    try:
        client_service.delete_client(g.current_user, client_id)
        return ok(message="Client deleted")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("delete client", e)
