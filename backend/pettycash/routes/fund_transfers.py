# Overview: Flask API routes for fund transfers and the current balance.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError
from ..responses import error_response, ok, page_meta, unexpected_error
from ..services import fund_transfer_service, ledger_service
from ..services.report_service import resolve_range


fund_transfers_bp = Blueprint("fund_transfers", __name__, url_prefix="/api/fund-transfers")
balance_bp = Blueprint("balance", __name__, url_prefix="/api/balance")


@fund_transfers_bp.post("")
@require_auth
@require_permission("MANAGE_FUNDS")
def create_transfer_route():
    try:
        data = request.get_json(silent=True) or {}
        transfer = fund_transfer_service.create_transfer(
            g.current_user,
            transfer_type=data.get("transfer_type"),
            amount=data.get("amount"),
            reference=data.get("reference"),
            description=data.get("description"),
            transfer_date=data.get("transfer_date"),
        )
        return ok(
            {
                "transfer": transfer.to_dict(),
                "balance": ledger_service.get_balance(transfer.account_type, refresh=True).to_dict(),
            },
            "Fund transfer recorded",
            201,
        )
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("create fund transfer", e)


@fund_transfers_bp.get("")
@require_auth
@require_permission("VIEW_BALANCE")
def list_transfers_route():
    try:
        start, end = resolve_range(start=request.args.get("start"), end=request.args.get("end"))
        page = request.args.get("page", 1, type=int)
        per_page = request.args.get("per_page", 20, type=int)
        rows, total = fund_transfer_service.list_transfers(
            transfer_type=request.args.get("transfer_type"),
            start=start,
            end=end,
            page=page,
            per_page=per_page,
        )
        return ok(
            [t.to_dict() for t in rows],
            pagination=page_meta(total, max(1, page), min(max(1, per_page), 200)),
        )
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("list fund transfers", e)


@fund_transfers_bp.get("/<int:transfer_id>")
@require_auth
@require_permission("VIEW_BALANCE")
def get_transfer_route(transfer_id: int):
    try:
        return ok(fund_transfer_service.get_transfer(transfer_id).to_dict())
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("get fund transfer", e)


@fund_transfers_bp.delete("/<int:transfer_id>")
@require_auth
@require_permission("MANAGE_FUNDS")
def delete_transfer_route(transfer_id: int):
    try:
        compensate = str(request.args.get("compensate", "")).strip().lower() in {"1", "true", "yes"}
        result = fund_transfer_service.delete_transfer(g.current_user, transfer_id, compensate=compensate)
        return ok(result, "Fund transfer deleted")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("delete fund transfer", e)


@balance_bp.get("/current")
@require_auth
@require_permission("VIEW_BALANCE")
def current_balance_route():
    """Ledger balance and available (current minus committed) for every account."""
    try:
        return ok(ledger_service.get_balance_overview())
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("get current balance", e)
