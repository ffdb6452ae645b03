# Overview: Flask API routes for expense transactions and their lifecycle actions.

# backend/pettycash/routes/transactions.py
"""
Expense transaction routes.

Every status change goes through transaction_service; these handlers only
parse input and shape the response.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError, ValidationError
from ..responses import error_response, ok, page_meta, unexpected_error
from ..services import transaction_service
from ..services.report_service import resolve_range


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _json() -> dict:
    return request.get_json(silent=True) or {}


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


@transactions_bp.post("")
@require_auth
@require_permission("CREATE_TRANSACTION")
def create_transaction_route():
    try:
        txn = transaction_service.create_transaction(g.current_user, _json())
        return ok(txn.to_dict(), "Transaction created", 201)
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("create transaction", e)


@transactions_bp.get("")
@require_auth
@require_permission("VIEW_TRANSACTIONS")
def list_transactions_route():
    """
    List transactions visible to the caller.

    Query params: status, category_id, account_type, payment_method,
    submitted_by, start, end, search, page, per_page
    """
    try:
        start, end = resolve_range(start=request.args.get("start"), end=request.args.get("end"))
        page = request.args.get("page", 1, type=int)
        per_page = request.args.get("per_page", 20, type=int)
        rows, total = transaction_service.list_transactions(
            g.current_user,
            status=request.args.get("status"),
            category_id=request.args.get("category_id", type=int),
            account_type=request.args.get("account_type"),
            payment_method=request.args.get("payment_method"),
            submitted_by=request.args.get("submitted_by", type=int),
            start=start,
            end=end,
            search=request.args.get("search"),
            page=page,
            per_page=per_page,
        )
        return ok(
            [txn.to_dict() for txn in rows],
            pagination=page_meta(total, max(1, page), min(max(1, per_page), 200)),
        )
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("list transactions", e)


@transactions_bp.get("/<int:transaction_id>")
@require_auth
@require_permission("VIEW_TRANSACTIONS")
def get_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_visible_transaction(g.current_user, transaction_id)
        return ok(txn.to_dict())
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("get transaction", e)


@transactions_bp.put("/<int:transaction_id>")
@require_auth
@require_permission("CREATE_TRANSACTION")
def update_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.update_transaction(g.current_user, transaction_id, _json())
        return ok(txn.to_dict(), "Transaction updated")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("update transaction", e)


@transactions_bp.delete("/<int:transaction_id>")
@require_auth
@require_permission("DELETE_TRANSACTIONS")
def delete_transaction_route(transaction_id: int):
    """
    Admin-only delete. Pass ?compensate=true to credit an already-deducted
    amount back to the ledger; otherwise the ledger is left untouched.
    """
    try:
        compensate = _flag(request.args.get("compensate") or _json().get("compensate"))
        result = transaction_service.delete_transaction(g.current_user, transaction_id, compensate=compensate)
        return ok(result, "Transaction deleted")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("delete transaction", e)


@transactions_bp.patch("/<int:transaction_id>/submit")
@require_auth
@require_permission("CREATE_TRANSACTION")
def submit_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.submit_transaction(g.current_user, transaction_id)
        return ok(txn.to_dict(), "Transaction submitted")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("submit transaction", e)


@transactions_bp.patch("/<int:transaction_id>/forward")
@require_auth
@require_permission("APPROVE_TRANSACTIONS")
def forward_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.forward_transaction(g.current_user, transaction_id)
        return ok(txn.to_dict(), "Transaction forwarded for approval")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("forward transaction", e)


@transactions_bp.patch("/<int:transaction_id>/approve")
@require_auth
@require_permission("APPROVE_TRANSACTIONS")
def approve_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.approve_transaction(
            g.current_user, transaction_id, comment=_json().get("comment")
        )
        return ok(txn.to_dict(), "Transaction approved")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("approve transaction", e)


@transactions_bp.patch("/<int:transaction_id>/reject")
@require_auth
@require_permission("APPROVE_TRANSACTIONS")
def reject_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.reject_transaction(g.current_user, transaction_id, _json().get("comment"))
        return ok(txn.to_dict(), "Transaction rejected")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("reject transaction", e)


@transactions_bp.patch("/<int:transaction_id>/request-info")
@require_auth
@require_permission("APPROVE_TRANSACTIONS")
def request_info_route(transaction_id: int):
    try:
        txn = transaction_service.request_info(g.current_user, transaction_id, _json().get("comment"))
        return ok(txn.to_dict(), "Information requested")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("request transaction info", e)


@transactions_bp.patch("/<int:transaction_id>/resubmit")
@require_auth
@require_permission("CREATE_TRANSACTION")
def resubmit_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.resubmit_transaction(g.current_user, transaction_id, _json())
        return ok(txn.to_dict(), "Transaction resubmitted")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("resubmit transaction", e)


@transactions_bp.patch("/<int:transaction_id>/pay")
@require_auth
def pay_transaction_route(transaction_id: int):
    """Record payment. Repeating the call on a paid transaction succeeds without side effects."""
    try:
        data = _json()
        txn = transaction_service.record_payment(
            g.current_user,
            transaction_id,
            payment_reference=data.get("payment_reference"),
        )
        return ok(txn.to_dict(), "Payment recorded")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("record payment", e)


@transactions_bp.post("/<int:transaction_id>/attachments")
@require_auth
def upload_attachment_route(transaction_id: int):
    """
    Multipart upload. Form fields: file, kind (invoice | payment_proof).
    """
    try:
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            raise ValidationError("No file uploaded")
        kind = request.form.get("kind") or "invoice"
        txn = transaction_service.attach_file(
            g.current_user,
            transaction_id,
            kind,
            upload.read(),
            upload.filename,
            upload.mimetype,
        )
        return ok(txn.to_dict(), "File uploaded", 201)
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("upload attachment", e)
