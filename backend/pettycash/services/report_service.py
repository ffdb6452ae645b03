# Overview: Read-only reports over transactions, balances and logins, plus CSV and XLSX export.

from __future__ import annotations

import csv
import io
from datetime import datetime, timedelta

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from sqlalchemy import func, or_

from ..errors import ValidationError
from ..extensions import db
from ..models import Category, LoginActivity, Transaction, User
from ..models.expenses import (
    ACCOUNT_TYPES,
    STATUS_APPROVED,
    STATUS_PAID,
    TRANSACTION_STATUSES,
)
from ..permissions import role_has_permission
from ..validation import cents_to_str
from . import ledger_service
from pettycash.time_utils import parse_iso_datetime, to_utc_z, utcnow


PERIODS = ("today", "week", "month", "quarter", "year")


def _day_start(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def period_range(period: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Start/end of a named period containing now (UTC). Weeks start on Sunday."""
    now = now or utcnow()
    if period == "today":
        start = _day_start(now)
        return start, start + timedelta(days=1) - timedelta(microseconds=1)
    if period == "week":
        start = _day_start(now) - timedelta(days=(now.weekday() + 1) % 7)
        return start, now
    if period == "month":
        start = _day_start(now).replace(day=1)
        nxt = (start + timedelta(days=32)).replace(day=1)
        return start, nxt - timedelta(microseconds=1)
    if period == "quarter":
        first_month = 3 * ((now.month - 1) // 3) + 1
        start = _day_start(now).replace(month=first_month, day=1)
        nxt = start
        for _ in range(3):
            nxt = (nxt + timedelta(days=32)).replace(day=1)
        return start, nxt - timedelta(microseconds=1)
    if period == "year":
        start = _day_start(now).replace(month=1, day=1)
        return start, start.replace(year=start.year + 1) - timedelta(microseconds=1)
    raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")


def resolve_range(
    *, start: str | None = None, end: str | None = None, period: str | None = None
) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 dates")
    if start_dt is None and end_dt is None and period:
        return period_range(period)
    if end_dt is not None and end and len(end.strip()) == 10:
        # Date-only end is inclusive of the whole day
        end_dt = end_dt + timedelta(days=1) - timedelta(microseconds=1)
    return start_dt, end_dt


def _scoped(query, actor: User):
    if role_has_permission(actor.role, "VIEW_ALL_TRANSACTIONS"):
        return query
    return query.filter(
        or_(
            Transaction.submitted_by_user_id == actor.id,
            Transaction.requested_by_user_id == actor.id,
        )
    )


def _filtered(query, actor: User, *, start=None, end=None, category_id=None, status=None):
    query = _scoped(query, actor)
    if start is not None:
        query = query.filter(Transaction.transaction_date >= start)
    if end is not None:
        query = query.filter(Transaction.transaction_date <= end)
    if category_id is not None:
        query = query.filter(Transaction.category_id == category_id)
    if status:
        if status not in TRANSACTION_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        query = query.filter(Transaction.status == status)
    return query


def summary(actor: User, *, start=None, end=None, category_id=None, status=None) -> dict:
    amount = Transaction.resolved_amount_cents
    rows = (
        _filtered(
            db.session.query(
                Transaction.status,
                func.count(Transaction.id),
                func.coalesce(func.sum(amount), 0),
            ),
            actor, start=start, end=end, category_id=category_id, status=status,
        )
        .group_by(Transaction.status)
        .all()
    )

    by_status = {s: {"count": 0, "amount": cents_to_str(0)} for s in TRANSACTION_STATUSES}
    total_count = 0
    total_cents = 0
    spent_cents = 0
    for row_status, count, total in rows:
        by_status[row_status] = {"count": int(count), "amount": cents_to_str(int(total))}
        total_count += int(count)
        total_cents += int(total)
        if row_status in (STATUS_APPROVED, STATUS_PAID):
            spent_cents += int(total)

    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "total_transactions": total_count,
        "total_amount": cents_to_str(total_cents),
        "approved_or_paid_amount": cents_to_str(spent_cents),
        "by_status": by_status,
    }


def by_category(actor: User, *, start=None, end=None, status=None) -> list[dict]:
    amount = Transaction.resolved_amount_cents
    rows = (
        _filtered(
            db.session.query(
                Category.id,
                Category.name,
                Category.code,
                Category.budget_limit_cents,
                func.count(Transaction.id),
                func.coalesce(func.sum(amount), 0),
            ).join(Category, Category.id == Transaction.category_id),
            actor, start=start, end=end, status=status,
        )
        .group_by(Category.id, Category.name, Category.code, Category.budget_limit_cents)
        .order_by(func.coalesce(func.sum(amount), 0).desc())
        .all()
    )
    report = []
    for cat_id, name, code, budget, count, total in rows:
        total = int(total)
        report.append({
            "category_id": cat_id,
            "name": name,
            "code": code,
            "count": int(count),
            "total_amount": cents_to_str(total),
            "budget_limit": cents_to_str(budget),
            "over_budget": bool(budget) and total > budget,
        })
    return report


def monthly_trend(actor: User, *, months: int = 12, status=None) -> list[dict]:
    if months < 1 or months > 60:
        raise ValidationError("months must be between 1 and 60")
    now = utcnow()
    start = _day_start(now).replace(day=1)
    for _ in range(months - 1):
        start = (start - timedelta(days=1)).replace(day=1)

    period_expr = func.strftime("%Y-%m", Transaction.transaction_date)
    amount = Transaction.resolved_amount_cents
    rows = (
        _filtered(
            db.session.query(
                period_expr.label("period"),
                func.count(Transaction.id),
                func.coalesce(func.sum(amount), 0),
            ),
            actor, start=start, status=status,
        )
        .group_by("period")
        .order_by("period")
        .all()
    )
    found = {period: (int(count), int(total)) for period, count, total in rows}

    trend = []
    cursor = start
    for _ in range(months):
        key = f"{cursor:%Y-%m}"
        count, total = found.get(key, (0, 0))
        trend.append({"period": key, "count": count, "total_amount": cents_to_str(total)})
        cursor = (cursor + timedelta(days=32)).replace(day=1)
    return trend


def balance_overview() -> dict:
    return ledger_service.get_balance_overview()


def reconciliation(counted: dict[str, int] | None = None) -> dict:
    """counted maps account_type -> physically counted cents (optional per account)."""
    counted = counted or {}
    accounts = [ledger_service.reconcile(acct, counted.get(acct)) for acct in ACCOUNT_TYPES]
    return {
        "accounts": accounts,
        "is_consistent": all(a["is_consistent"] for a in accounts),
    }


def login_activity(*, start=None, end=None) -> dict:
    query = db.session.query(
        LoginActivity.login_method,
        LoginActivity.login_status,
        func.count(LoginActivity.id),
    )
    if start is not None:
        query = query.filter(LoginActivity.occurred_at >= start)
    if end is not None:
        query = query.filter(LoginActivity.occurred_at <= end)
    rows = query.group_by(LoginActivity.login_method, LoginActivity.login_status).all()

    totals = {"success": 0, "failed": 0}
    by_method = {}
    for method, status, count in rows:
        by_method.setdefault(method, {"success": 0, "failed": 0})[status] = int(count)
        totals[status] = totals.get(status, 0) + int(count)

    locked_now = (
        db.session.query(func.count(User.id))
        .filter(User.account_locked_until.isnot(None), User.account_locked_until > utcnow())
        .scalar()
    )
    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "totals": totals,
        "by_method": by_method,
        "currently_locked_accounts": int(locked_now or 0),
    }


CSV_COLUMNS = (
    "transaction_number",
    "transaction_date",
    "status",
    "category",
    "description",
    "vendor_name",
    "payment_method",
    "account_type",
    "pre_tax_amount",
    "tax_amount",
    "resolved_amount",
    "amount_provenance",
    "submitted_by",
    "approved_at",
    "paid_at",
)


def _export_rows(actor: User, *, start=None, end=None, category_id=None, status=None):
    rows = (
        _filtered(db.session.query(Transaction), actor, start=start, end=end, category_id=category_id, status=status)
        .order_by(Transaction.transaction_date.asc(), Transaction.id.asc())
        .all()
    )
    for txn in rows:
        yield [
            txn.transaction_number,
            to_utc_z(txn.transaction_date),
            txn.status,
            txn.category.name if txn.category else "",
            txn.description or "",
            txn.vendor_name or "",
            txn.payment_method,
            txn.account_type,
            cents_to_str(txn.pre_tax_amount_cents) or "",
            cents_to_str(txn.tax_amount_cents) or "",
            cents_to_str(txn.resolved_amount_cents),
            txn.amount_provenance,
            txn.submitted_by.email if txn.submitted_by else "",
            to_utc_z(txn.approved_at) or "",
            to_utc_z(txn.paid_at) or "",
        ]


def export_csv(actor: User, *, start=None, end=None, category_id=None, status=None) -> str:
    """Filtered transactions as CSV text (header row first)."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_COLUMNS)
    writer.writerows(_export_rows(actor, start=start, end=end, category_id=category_id, status=status))
    return buf.getvalue()


def export_xlsx(actor: User, *, start=None, end=None, category_id=None, status=None) -> bytes:
    """
    Same rows and columns as export_csv, as a single-sheet workbook.

    Amounts stay two-place strings so the sheet matches the CSV cell for cell.
    """
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Transactions"
    sheet.append(list(CSV_COLUMNS))
    for row in _export_rows(actor, start=start, end=end, category_id=category_id, status=status):
        # control characters in free text would make openpyxl refuse the cell
        sheet.append([ILLEGAL_CHARACTERS_RE.sub("", v) if isinstance(v, str) else v for v in row])
    sheet.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
