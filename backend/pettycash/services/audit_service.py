# Overview: Write-only audit recorder fed through the outbound dispatcher.

from __future__ import annotations

from flask import has_request_context, request

from ..extensions import db
from ..models import AuditLog, LoginActivity, UserActivityLog
from . import outbound


def _client_info() -> tuple[str | None, str | None]:
    if not has_request_context():
        return None, None
    return request.remote_addr, request.headers.get("User-Agent")


def record(
    action: str,
    performed_by: int | None,
    target_model: str | None = None,
    target_id: int | None = None,
    changes: dict | None = None,
    *,
    status: str = "success",
    error_message: str | None = None,
) -> None:
    """
    Record an audit entry. Fire-and-forget.

    Client details are captured now, while the request is still available;
    the row itself is written by the dispatcher.
    """
    ip_address, user_agent = _client_info()
    outbound.dispatch(
        f"audit:{action}",
        _write_audit,
        action=action,
        performed_by_user_id=performed_by,
        target_model=target_model,
        target_id=target_id,
        changes=changes,
        ip_address=ip_address,
        user_agent=user_agent,
        status=status,
        error_message=error_message,
    )


def _write_audit(**fields) -> None:
    db.session.add(AuditLog(**fields))
    db.session.commit()


def record_user_activity(
    action: str,
    *,
    target_user: dict,
    performed_by: dict | None,
    details: dict | None = None,
) -> None:
    """target_user / performed_by are summaries ({"id", "name", "email"})."""
    ip_address, _ = _client_info()
    outbound.dispatch(
        f"user_activity:{action}",
        _write_user_activity,
        action=action,
        target_user_id=target_user.get("id"),
        target_user_name=target_user.get("name"),
        target_user_email=target_user.get("email"),
        performed_by_user_id=performed_by.get("id") if performed_by else None,
        performed_by_name=performed_by.get("name") if performed_by else None,
        details=details,
        ip_address=ip_address,
    )


def _write_user_activity(**fields) -> None:
    db.session.add(UserActivityLog(**fields))
    db.session.commit()


def record_login(
    *,
    login_method: str,
    login_status: str,
    user=None,
    email: str | None = None,
    failure_reason: str | None = None,
) -> None:
    ip_address, user_agent = _client_info()
    outbound.dispatch(
        f"login:{login_status}",
        _write_login,
        user_id=user.id if user else None,
        email=user.email if user else email,
        name=user.name if user else None,
        role=user.effective_role if user else None,
        login_method=login_method,
        login_status=login_status,
        failure_reason=failure_reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def _write_login(**fields) -> None:
    db.session.add(LoginActivity(**fields))
    db.session.commit()


# =============================================================================
# Read side (activity routes)
# =============================================================================

def list_audit_logs(
    *,
    action: str | None = None,
    target_model: str | None = None,
    target_id: int | None = None,
    performed_by: int | None = None,
    start=None,
    end=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    query = db.session.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    if target_model:
        query = query.filter(AuditLog.target_model == target_model)
    if target_id is not None:
        query = query.filter(AuditLog.target_id == target_id)
    if performed_by is not None:
        query = query.filter(AuditLog.performed_by_user_id == performed_by)
    if start is not None:
        query = query.filter(AuditLog.created_at >= start)
    if end is not None:
        query = query.filter(AuditLog.created_at <= end)
    total = query.count()
    rows = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def list_user_activity(
    *,
    target_user_id: int | None = None,
    action: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[UserActivityLog], int]:
    query = db.session.query(UserActivityLog)
    if target_user_id is not None:
        query = query.filter(UserActivityLog.target_user_id == target_user_id)
    if action:
        query = query.filter(UserActivityLog.action == action)
    total = query.count()
    rows = query.order_by(UserActivityLog.created_at.desc(), UserActivityLog.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def list_login_activity(
    *,
    user_id: int | None = None,
    login_status: str | None = None,
    login_method: str | None = None,
    start=None,
    end=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[LoginActivity], int]:
    query = db.session.query(LoginActivity)
    if user_id is not None:
        query = query.filter(LoginActivity.user_id == user_id)
    if login_status:
        query = query.filter(LoginActivity.login_status == login_status)
    if login_method:
        query = query.filter(LoginActivity.login_method == login_method)
    if start is not None:
        query = query.filter(LoginActivity.occurred_at >= start)
    if end is not None:
        query = query.filter(LoginActivity.occurred_at <= end)
    total = query.count()
    rows = query.order_by(LoginActivity.occurred_at.desc(), LoginActivity.id.desc()).offset(offset).limit(limit).all()
    return rows, total
