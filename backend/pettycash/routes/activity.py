# Overview: Flask API routes for the audit trail, user activity and login history.

from flask import Blueprint, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError
from ..responses import error_response, ok, unexpected_error
from ..services import audit_service
from ..services.report_service import resolve_range


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


def _paging() -> tuple[int, int]:
    limit = min(max(1, request.args.get("limit", 100, type=int)), 500)
    offset = max(0, request.args.get("offset", 0, type=int))
    return limit, offset


@activity_bp.get("/audit-logs")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def audit_logs_route():
    try:
        limit, offset = _paging()
        start, end = resolve_range(start=request.args.get("start"), end=request.args.get("end"))
        rows, total = audit_service.list_audit_logs(
            action=request.args.get("action"),
            target_model=request.args.get("target_model"),
            target_id=request.args.get("target_id", type=int),
            performed_by=request.args.get("performed_by", type=int),
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
        return ok([r.to_dict() for r in rows], total=total, limit=limit, offset=offset)
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("list audit logs", e)


@activity_bp.get("/user-activity")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def user_activity_route():
    try:
        limit, offset = _paging()
        rows, total = audit_service.list_user_activity(
            target_user_id=request.args.get("user_id", type=int),
            action=request.args.get("action"),
            limit=limit,
            offset=offset,
        )
        return ok([r.to_dict() for r in rows], total=total, limit=limit, offset=offset)
    except Exception as e:
        return unexpected_error("list user activity", e)


@activity_bp.get("/login-activity")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def login_activity_route():
    try:
        limit, offset = _paging()
        start, end = resolve_range(start=request.args.get("start"), end=request.args.get("end"))
        rows, total = audit_service.list_login_activity(
            user_id=request.args.get("user_id", type=int),
            login_status=request.args.get("status"),
            login_method=request.args.get("method"),
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
        return ok([r.to_dict() for r in rows], total=total, limit=limit, offset=offset)
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("list login activity", e)
