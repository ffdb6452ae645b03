# Overview: Flask API routes for reports; parses filters and returns JSON, CSV or XLSX.

from flask import Blueprint, Response, g, request

from ..decorators import require_auth, require_permission
from ..errors import PettyCashError, ValidationError
from ..models.expenses import ACCOUNT_TYPES
from ..responses import error_response, ok, unexpected_error
from ..services import report_service
from ..validation import to_cents
from pettycash.time_utils import utcnow


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range():
    return report_service.resolve_range(
        start=request.args.get("start"),
        end=request.args.get("end"),
        period=request.args.get("period"),
    )


@reports_bp.get("/summary")
@require_auth
@require_permission("VIEW_REPORTS")
def summary_route():
    """
    Totals and counts per status.

    Query params: start, end (ISO-8601) or period (today|week|month|quarter|year),
    category_id, status. Callers without VIEW_ALL_TRANSACTIONS see their own only.
    """
    try:
        start, end = _range()
        report = report_service.summary(
            g.current_user,
            start=start,
            end=end,
            category_id=request.args.get("category_id", type=int),
            status=request.args.get("status"),
        )
        return ok(report)
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("build summary report", e)


@reports_bp.get("/by-category")
@require_auth
@require_permission("VIEW_REPORTS")
def by_category_route():
    try:
        start, end = _range()
        return ok(report_service.by_category(g.current_user, start=start, end=end, status=request.args.get("status")))
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("build category report", e)


@reports_bp.get("/monthly-trend")
@require_auth
@require_permission("VIEW_REPORTS")
def monthly_trend_route():
    try:
        months = request.args.get("months", 12, type=int)
        return ok(report_service.monthly_trend(g.current_user, months=months, status=request.args.get("status")))
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("build monthly trend", e)


@reports_bp.get("/balance-overview")
@require_auth
@require_permission("VIEW_BALANCE")
def balance_overview_route():
    try:
        return ok(report_service.balance_overview())
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("build balance overview", e)


@reports_bp.get("/reconciliation")
@require_auth
@require_permission("VIEW_RECONCILIATION")
def reconciliation_route():
    """
    Ledger consistency per account. Optional counted amounts:
    ?petty_cash_physical=1200.50&petty_cash_bank=5000
    """
    try:
        counted = {}
        for account_type in ACCOUNT_TYPES:
            raw = request.args.get(account_type)
            if raw not in (None, ""):
                counted[account_type] = to_cents(raw, account_type)
        return ok(report_service.reconciliation(counted))
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("build reconciliation", e)


@reports_bp.get("/login-activity")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def login_activity_route():
    try:
        start, end = _range()
        return ok(report_service.login_activity(start=start, end=end))
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("build login activity report", e)


XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _export_filters() -> dict:
    start, end = _range()
    status = request.args.get("status")
    if status == "":
        raise ValidationError("status must not be empty")
    return {
        "start": start,
        "end": end,
        "category_id": request.args.get("category_id", type=int),
        "status": status,
    }


@reports_bp.get("/export/csv")
@require_auth
@require_permission("VIEW_REPORTS")
def export_csv_route():
    try:
        body = report_service.export_csv(g.current_user, **_export_filters())
        filename = f"transactions-{utcnow():%Y%m%d}.csv"
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("export transactions", e)


@reports_bp.get("/export/xlsx")
@require_auth
@require_permission("VIEW_REPORTS")
def export_xlsx_route():
    try:
        body = report_service.export_xlsx(g.current_user, **_export_filters())
        filename = f"transactions-{utcnow():%Y%m%d}.xlsx"
        return Response(
            body,
            mimetype=XLSX_MIMETYPE,
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("export transactions workbook", e)
