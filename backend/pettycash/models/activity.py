from __future__ import annotations

from ..extensions import db
from pettycash.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only audit trail for mutating operations.

    Written by services/audit_service.py from the outbound queue, never inside
    the primary unit of work, so a failed audit write cannot roll back the
    operation it describes.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_target", "target_model", "target_id"),
        db.Index("ix_audit_logs_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    target_model = db.Column(db.String(64), nullable=True)
    target_id = db.Column(db.Integer, nullable=True)
    changes = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="success")  # success, failure
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    performed_by = db.relationship("User", foreign_keys=[performed_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "performed_by": self.performed_by.to_summary() if self.performed_by else None,
            "target_model": self.target_model,
            "target_id": self.target_id,
            "changes": self.changes,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "status": self.status,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
        }


USER_ACTIVITY_ACTIONS = ("created", "updated", "deleted", "deactivated", "reactivated", "role_changed")


class UserActivityLog(db.Model):
    """User administration history. Names are copied so entries survive renames."""
    __tablename__ = "user_activity_logs"
    __table_args__ = (
        db.Index("ix_user_activity_target", "target_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(32), nullable=False)
    target_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    target_user_name = db.Column(db.String(120), nullable=True)
    target_user_email = db.Column(db.String(255), nullable=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    performed_by_name = db.Column(db.String(120), nullable=True)
    details = db.Column(db.JSON, nullable=True)  # {"previous": ..., "new": ..., "changes": [...]}
    ip_address = db.Column(db.String(45), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "target_user_id": self.target_user_id,
            "target_user_name": self.target_user_name,
            "target_user_email": self.target_user_email,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_by_name": self.performed_by_name,
            "details": self.details,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }


class LoginActivity(db.Model):
    """One row per login attempt (password or OTP), successful or not."""
    __tablename__ = "login_activities"
    __table_args__ = (
        db.Index("ix_login_activities_user_time", "user_id", "occurred_at"),
        db.Index("ix_login_activities_status", "login_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    name = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(32), nullable=True)
    login_method = db.Column(db.String(16), nullable=False)  # password, otp
    login_status = db.Column(db.String(16), nullable=False)  # success, failed
    failure_reason = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "login_method": self.login_method,
            "login_status": self.login_status,
            "failure_reason": self.failure_reason,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "occurred_at": to_utc_z(self.occurred_at),
        }
